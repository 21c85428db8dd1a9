"""In-memory, copy-on-write snapshot store.

The baseline is a dictionary of tables (each a mapping of row key -> row
dict) frozen behind read-only mapping proxies once migrations and seeding are
done. A view is a set of per-table overlays (written rows plus tombstones)
created lazily on first write, so acquiring one costs the same regardless of
dataset size. Releasing a view simply drops its overlays.

Use for unit tests of application code whose persistence is a repository
abstraction, or anywhere a real database is not required.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Hashable, Iterator, Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from tessera.adapters.id_generators import ULIDGenerator
from tessera.interfaces.snapshot_store import (
    BaselineAlreadyCreatedError,
    BaselineMutationError,
    BaselineSnapshot,
    MigrationError,
    SeedError,
    SnapshotStore,
    SnapshotStoreError,
    ViewCapacityTimeout,
    ViewReleasedError,
    WorkingView,
)

if TYPE_CHECKING:
    from tessera.domain.units import RunContext
    from tessera.interfaces.id_generator import IdGenerator
    from tessera.interfaces.snapshot_store import MigrationApplier, Seeder

logger = logging.getLogger(__name__)

Row = dict[str, Any]
FrozenTables = Mapping[str, Mapping[Hashable, Mapping[str, Any]]]

_TOMBSTONE = object()


# --- Errors ---


class UnknownTableError(SnapshotStoreError, LookupError):
    """The named table was never declared by the migrations."""

    def __init__(self, table: str) -> None:
        super().__init__(f"Unknown table '{table}'.")
        self.table = table


class RowNotFoundError(SnapshotStoreError, LookupError):
    """No row with the given key exists in the table."""

    def __init__(self, table: str, key: Hashable) -> None:
        super().__init__(f"No row with key {key!r} in table '{table}'.")
        self.table = table
        self.key = key


class DuplicateRowError(SnapshotStoreError, ValueError):
    """A row with the given key already exists in the table."""

    def __init__(self, table: str, key: Hashable) -> None:
        super().__init__(f"Row with key {key!r} already exists in table '{table}'.")
        self.table = table
        self.key = key


# --- Build target ---


class MemoryDataset:
    """Mutable dataset handed to migration appliers and seeders.

    Migrations declare tables with `create_table`; seeders add rows with
    `insert`. The store freezes the dataset once both have run.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[Hashable, Row]] = {}
        self.version: str | None = None

    def create_table(self, name: str) -> None:
        """Declare a table. Declaring an existing table is a no-op."""
        self._tables.setdefault(name, {})

    def drop_table(self, name: str) -> None:
        """Remove a table and its rows."""
        if name not in self._tables:
            raise UnknownTableError(name)
        del self._tables[name]

    def insert(self, table: str, key: Hashable, row: Mapping[str, Any]) -> None:
        """Add a row to a declared table.

        Raises:
            UnknownTableError: If the table was not declared.
            DuplicateRowError: If *key* is already present.
        """
        rows = self._table(table)
        if key in rows:
            raise DuplicateRowError(table, key)
        rows[key] = copy.deepcopy(dict(row))

    @property
    def tables(self) -> list[str]:
        """Declared table names, in declaration order."""
        return list(self._tables)

    def freeze(self) -> FrozenTables:
        """Return a read-only deep copy of the dataset."""
        return MappingProxyType(
            {
                name: MappingProxyType(
                    {
                        key: MappingProxyType(copy.deepcopy(row))
                        for key, row in rows.items()
                    }
                )
                for name, rows in self._tables.items()
            }
        )

    def _table(self, name: str) -> dict[Hashable, Row]:
        try:
            return self._tables[name]
        except KeyError as e:
            raise UnknownTableError(name) from e


# --- Views ---


class MemoryView(WorkingView):
    """Copy-on-write view over a frozen dataset.

    Reads fall through the view's overlay to the baseline; writes only ever
    touch the overlay. Every row handed out is a private copy, so mutating a
    returned dict never reaches the baseline.
    """

    def __init__(self, view_id: str, base: FrozenTables, *, read_only: bool = False):
        self.view_id = view_id
        self._base = base
        self._read_only = read_only
        self._overlays: dict[str, dict[Hashable, Any]] = {}
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def read_only(self) -> bool:
        """True for the reference view handed to isolation-free units."""
        return self._read_only

    # --------------------------------------------------------------------- #
    # Reads
    # --------------------------------------------------------------------- #

    def tables(self) -> list[str]:
        """Table names declared by the baseline."""
        self._check_open()
        return list(self._base)

    def find(self, table: str, key: Hashable) -> Row | None:
        """Return a copy of the row stored under *key*, or None."""
        self._check_open()
        base_rows = self._base_table(table)
        overlay = self._overlays.get(table, {})
        if key in overlay:
            value = overlay[key]
            return None if value is _TOMBSTONE else copy.deepcopy(value)
        if key in base_rows:
            return copy.deepcopy(dict(base_rows[key]))
        return None

    def get(self, table: str, key: Hashable) -> Row:
        """Return a copy of the row stored under *key*.

        Raises:
            RowNotFoundError: If no such row is visible through this view.
        """
        if (row := self.find(table, key)) is None:
            raise RowNotFoundError(table, key)
        return row

    def rows(self, table: str) -> list[Row]:
        """Copies of all visible rows, baseline order first, then new rows."""
        return [row for _, row in self.items(table)]

    def items(self, table: str) -> Iterator[tuple[Hashable, Row]]:
        """Yield ``(key, row copy)`` for every visible row."""
        self._check_open()
        base_rows = self._base_table(table)
        overlay = self._overlays.get(table, {})
        for key, row in base_rows.items():
            if key in overlay:
                if overlay[key] is not _TOMBSTONE:
                    yield key, copy.deepcopy(overlay[key])
            else:
                yield key, copy.deepcopy(dict(row))
        for key, value in overlay.items():
            if key not in base_rows and value is not _TOMBSTONE:
                yield key, copy.deepcopy(value)

    def count(self, table: str) -> int:
        """Number of visible rows in *table*."""
        return sum(1 for _ in self.items(table))

    # --------------------------------------------------------------------- #
    # Writes
    # --------------------------------------------------------------------- #

    def insert(self, table: str, key: Hashable, row: Mapping[str, Any]) -> None:
        """Add a new row.

        Raises:
            DuplicateRowError: If a row with *key* is already visible.
        """
        self._check_writable()
        if self.find(table, key) is not None:
            raise DuplicateRowError(table, key)
        self._overlay(table)[key] = copy.deepcopy(dict(row))

    def update(self, table: str, key: Hashable, **changes: Any) -> Row:
        """Merge *changes* into an existing row and return the new row.

        Raises:
            RowNotFoundError: If no row with *key* is visible.
        """
        self._check_writable()
        row = self.get(table, key)
        row.update(copy.deepcopy(changes))
        self._overlay(table)[key] = row
        return copy.deepcopy(row)

    def upsert(self, table: str, key: Hashable, row: Mapping[str, Any]) -> None:
        """Insert or replace the row stored under *key*."""
        self._check_writable()
        self._base_table(table)
        self._overlay(table)[key] = copy.deepcopy(dict(row))

    def delete(self, table: str, key: Hashable) -> None:
        """Remove a row.

        Raises:
            RowNotFoundError: If no row with *key* is visible.
        """
        self._check_writable()
        if self.find(table, key) is None:
            raise RowNotFoundError(table, key)
        self._overlay(table)[key] = _TOMBSTONE

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _discard(self) -> None:
        self._overlays.clear()
        self._released = True

    def _base_table(self, table: str) -> Mapping[Hashable, Mapping[str, Any]]:
        try:
            return self._base[table]
        except KeyError as e:
            raise UnknownTableError(table) from e

    def _overlay(self, table: str) -> dict[Hashable, Any]:
        return self._overlays.setdefault(table, {})

    def _check_open(self) -> None:
        if self._released:
            raise ViewReleasedError(f"View {self.view_id} has been released.")

    def _check_writable(self) -> None:
        self._check_open()
        if self._read_only:
            raise BaselineMutationError(
                "The reference view is read-only; declare the unit stateful to write."
            )


# --- Store ---


class MemorySnapshotStore(SnapshotStore):
    """Snapshot store keeping the baseline in process memory.

    Args:
        max_views: Optional cap on concurrently acquired views. None (default)
            means unbounded.
        id_generator: Source of baseline/view identifiers.
    """

    def __init__(
        self,
        max_views: int | None = None,
        id_generator: IdGenerator | None = None,
    ) -> None:
        self._ids = id_generator or ULIDGenerator()
        self.max_views = max_views
        self._capacity = threading.BoundedSemaphore(max_views) if max_views else None
        self._lock = threading.Lock()
        self._created = False

    def create_baseline(
        self,
        migrations: MigrationApplier,
        seeder: Seeder | None,
        context: RunContext,
    ) -> BaselineSnapshot:
        with self._lock:
            if self._created:
                raise BaselineAlreadyCreatedError(
                    "This store already built its baseline."
                )
            self._created = True

        dataset = MemoryDataset()
        try:
            migrations(dataset, context)
        except Exception as e:
            raise MigrationError(f"Migration failed: {e}") from e
        if seeder is not None:
            try:
                seeder(dataset, context)
            except Exception as e:
                raise SeedError(f"Seeding failed: {e}") from e

        baseline = BaselineSnapshot(
            baseline_id=self._ids.new_id(),
            version=dataset.version,
            created_at=datetime.now(timezone.utc),
            handle=dataset.freeze(),
        )
        logger.info(
            "Built in-memory baseline %s (%d tables, version=%s)",
            baseline.baseline_id,
            len(dataset.tables),
            baseline.version,
        )
        return baseline

    def acquire_view(
        self, baseline: BaselineSnapshot, timeout: float | None = None
    ) -> MemoryView:
        if self._capacity is not None and not self._capacity.acquire(timeout=timeout):
            raise ViewCapacityTimeout(f"No view capacity after {timeout} seconds.")
        view = MemoryView(self._ids.new_id(), baseline.handle)
        logger.debug("Acquired view %s", view.view_id)
        return view

    def release(self, view: WorkingView) -> None:
        if not isinstance(view, MemoryView):
            raise TypeError(f"Expected a MemoryView, got {type(view).__name__}")
        if view.released or view.read_only:
            return
        view._discard()  # pylint: disable=protected-access
        if self._capacity is not None:
            self._capacity.release()
        logger.debug("Released view %s", view.view_id)

    def reference_view(self, baseline: BaselineSnapshot) -> MemoryView:
        return MemoryView(f"{baseline.baseline_id}-ref", baseline.handle, read_only=True)

    def dispose(self, baseline: BaselineSnapshot) -> None:
        logger.info("Disposed in-memory baseline %s", baseline.baseline_id)
