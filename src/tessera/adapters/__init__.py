"""Adapters (infrastructure) for TESSERA.

Concrete implementations of the ports in `tessera.interfaces`: snapshot
stores, migration appliers, ID generators and database engine helpers.
"""
