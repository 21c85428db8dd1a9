"""Interfaces (application boundary) for TESSERA.

Defines framework-free contracts: ABCs, protocols and small DTOs shared by the
service layer and adapters (snapshot stores, migration appliers, ID
generators). Engine rules stay out of this package.

Dependency rule: this package may import `tessera.domain` only. It may be
imported by `tessera.service_layer`, `tessera.adapters` and
`tessera.bootstrap`.
"""
