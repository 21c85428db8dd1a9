"""Snapshot store interfaces for TESSERA.

This module defines:
- The `BaselineSnapshot` DTO: the single migrated-and-seeded dataset of a run.
- The `WorkingView` port: a disposable, per-execution view of the baseline.
- The `SnapshotStore` port (framework-free ABC) producing and reverting views.
- The `MigrationApplier` / `Seeder` collaborator protocols.
- An adapter-agnostic exception hierarchy.

Contract overview
-----------------
Baseline:
- `create_baseline` invokes the migration applier, then the seeder, exactly
  once per store. Either failing is fatal for the run
  (`MigrationError` / `SeedError`, both `BaselineBuildError`).
- After creation the baseline is read-only. A write through it (rather than
  through a working view) raises `BaselineMutationError`.

Views:
- `acquire_view` is near-constant time relative to dataset size. It may
  block while the store's bounded capacity is saturated; that is the only
  suspension point of a worker.
- Mutations through a view are invisible to every other view and vanish on
  `release`.
- `release` is idempotent and safe after the execution errored. It never
  raises for an already released view.

Reference view:
- `reference_view` exposes the baseline read-only for units declaring
  isolation ``none``; it needs no release.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from tessera.domain.units import RunContext

# pylint: disable=too-few-public-methods

# --- Exceptions to standardize adapter behavior ---


class SnapshotStoreError(Exception):
    """Base class for snapshot store errors."""


class BaselineBuildError(SnapshotStoreError):
    """The baseline could not be built; no unit can run."""


class MigrationError(BaselineBuildError):
    """The migration applier failed."""


class SeedError(BaselineBuildError):
    """The seeder failed."""


class BaselineAlreadyCreatedError(SnapshotStoreError):
    """`create_baseline` was called twice on the same store."""


class BaselineMutationError(SnapshotStoreError):
    """A write was attempted through the baseline instead of a working view."""


class ViewReleasedError(SnapshotStoreError):
    """A working view was used after it was released."""


class ViewCapacityTimeout(SnapshotStoreError):  # noqa: N818
    """No view capacity became available within the acquire timeout."""


# --- Collaborator protocols ---


class MigrationApplier(Protocol):
    """Application-supplied schema builder.

    Called once with the store-specific build target (a SQLAlchemy
    `Connection` for SQL stores, a `MemoryDataset` for the memory store) and
    the run context.
    """

    def __call__(self, target: Any, context: RunContext) -> None: ...


class Seeder(Protocol):
    """Application-supplied baseline data loader. Same call shape as migrations."""

    def __call__(self, target: Any, context: RunContext) -> None: ...


# --- DTOs and ports ---


@dataclass(frozen=True)
class BaselineSnapshot:
    """The read-only dataset every view of a run derives from.

    Attributes:
        baseline_id: Unique identifier of this baseline.
        version: Schema version label (e.g. the Alembic head revision), or
            None when the migration applier does not track versions.
        created_at: UTC creation timestamp.
        handle: Store-private payload (engine, frozen tables, ...). Only the
            store that created the baseline interprets it.
    """

    baseline_id: str
    version: str | None
    created_at: datetime
    handle: Any


class WorkingView(abc.ABC):
    """A disposable materialization of a baseline owned by one execution."""

    view_id: str

    @property
    @abc.abstractmethod
    def released(self) -> bool:
        """True once the owning store has reverted and discarded this view."""


class SnapshotStore(abc.ABC):
    """Produces isolated, disposable views of a shared baseline."""

    @abc.abstractmethod
    def create_baseline(
        self,
        migrations: MigrationApplier,
        seeder: Seeder | None,
        context: RunContext,
    ) -> BaselineSnapshot:
        """Build the baseline: apply migrations, then seed, exactly once.

        Raises:
            MigrationError: If the migration applier raised.
            SeedError: If the seeder raised.
            BaselineAlreadyCreatedError: If this store already built a baseline.

        Returns:
            The sealed, read-only baseline.
        """

    @abc.abstractmethod
    def acquire_view(
        self, baseline: BaselineSnapshot, timeout: float | None = None
    ) -> WorkingView:
        """Return a fresh working view of *baseline*.

        Args:
            baseline: The baseline created by this store.
            timeout: Seconds to wait for capacity; None waits indefinitely.

        Raises:
            ViewCapacityTimeout: If capacity did not free up within *timeout*.
        """

    @abc.abstractmethod
    def release(self, view: WorkingView) -> None:
        """Revert every mutation made through *view* and discard it.

        Idempotent: releasing an already released view is a no-op.
        """

    @abc.abstractmethod
    def reference_view(self, baseline: BaselineSnapshot) -> Any:
        """Return a read-only view of *baseline* for isolation-free units."""

    @abc.abstractmethod
    def dispose(self, baseline: BaselineSnapshot) -> None:
        """Tear the baseline down at the end of the run."""
