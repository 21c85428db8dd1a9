"""Entrypoints (inbound adapters) for TESSERA.

Expose the runner to the outside world: currently the ``tessera`` CLI. Parse
and validate inputs, call the bootstrap/service layer, and present results.

Dependency rule: may import `tessera.bootstrap` and `tessera.service_layer`;
avoid importing `tessera.adapters` directly.
"""
