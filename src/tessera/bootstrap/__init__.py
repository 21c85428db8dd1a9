"""Bootstrap (composition root) for TESSERA.

Assembles a run at runtime: resolves the user's suite target, gives every
suite a snapshot store, and builds the runner.

Import rules:
- Entry points import *this* package (not adapters/service_layer/interfaces/domain).
- This package may import: `tessera.adapters`, `tessera.service_layer`,
  `tessera.interfaces`, `tessera.domain`, and `tessera.config`.
- Inner layers must not import `tessera.bootstrap`.
"""

from tessera.adapters.snapshot.sqlalchemy_store import UnsupportedBaselineUrlError

from .bootstrap import (
    AppContainer,
    TargetLoadError,
    bootstrap,
    build_store,
    load_target,
)

__all__ = [
    "AppContainer",
    "TargetLoadError",
    "UnsupportedBaselineUrlError",
    "bootstrap",
    "build_store",
    "load_target",
]
