"""Snapshot store adapters.

- `MemorySnapshotStore`: copy-on-write overlays over a frozen in-memory dataset.
- `SqlAlchemySnapshotStore`: one rolled-back outer transaction per view.
"""

from .memory_store import (
    DuplicateRowError,
    MemoryDataset,
    MemorySnapshotStore,
    MemoryView,
    RowNotFoundError,
    UnknownTableError,
)
from .sqlalchemy_store import SqlAlchemySnapshotStore, SqlView

__all__ = [
    "DuplicateRowError",
    "MemoryDataset",
    "MemorySnapshotStore",
    "MemoryView",
    "RowNotFoundError",
    "SqlAlchemySnapshotStore",
    "SqlView",
    "UnknownTableError",
]
