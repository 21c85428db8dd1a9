"""SQLAlchemy-backed snapshot store using transactional rollback.

The baseline is a real database, migrated and seeded once and then *sealed*.
Each working view is a dedicated connection with an open outer transaction
that is rolled back on release, so nothing a test writes ever reaches the
committed baseline. Application code that wants an ORM session gets one from
`SqlView.session()`, joined to the view's transaction with
``join_transaction_mode="create_savepoint"``: its ``commit()`` calls only
release savepoints.

Sealing installs two engine listeners:

- writes (INSERT/UPDATE/DELETE/DDL) on a connection that is not a working
  view raise `BaselineMutationError`;
- a COMMIT issued on a working-view connection raises
  `BaselineMutationError` before reaching the database.

Backends:

- **SQLite** (file only; ``:memory:`` is rejected). Writers are serialized
  by SQLite itself, so the store admits one view at a time by default.
- **PostgreSQL**: views default to the engine pool size; the default READ
  COMMITTED level keeps each view's uncommitted writes private.
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from alembic.runtime.migration import MigrationContext
from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.orm import Session

from tessera.adapters.db.dialects import DialectName
from tessera.adapters.db.engine import is_memory_sqlite, make_engine
from tessera.adapters.id_generators import ULIDGenerator
from tessera.interfaces.snapshot_store import (
    BaselineAlreadyCreatedError,
    BaselineBuildError,
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
    from sqlalchemy.engine import Connection, Engine, Result, RootTransaction

    from tessera.domain.units import RunContext
    from tessera.interfaces.id_generator import IdGenerator
    from tessera.interfaces.snapshot_store import MigrationApplier, Seeder

logger = logging.getLogger(__name__)

VIEW_INFO_KEY = "tessera.view_id"  # pragma: no mutate
DEFAULT_POOL_VIEWS = 5

WRITE_STATEMENT = re.compile(
    r"^\s*(INSERT|UPDATE|DELETE|REPLACE|MERGE|UPSERT|CREATE|DROP|ALTER|TRUNCATE|GRANT|REVOKE)\b",
    re.IGNORECASE,
)


class UnsupportedBaselineUrlError(SnapshotStoreError):
    """The database URL cannot host a shared baseline (e.g. in-memory SQLite)."""


# --- Views ---


class SqlView(WorkingView):
    """A connection plus an outer transaction that will be rolled back."""

    def __init__(
        self, view_id: str, connection: Connection, transaction: RootTransaction
    ) -> None:
        self.view_id = view_id
        self._connection = connection
        self._transaction = transaction
        self._sessions: list[Session] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def connection(self) -> Connection:
        """The view's connection. Do not call ``commit()`` on it."""
        if self._released:
            raise ViewReleasedError(f"View {self.view_id} has been released.")
        return self._connection

    def execute(self, statement: Any, parameters: Any = None) -> Result:
        """Execute *statement* inside the view's transaction."""
        return self.connection.execute(statement, parameters)

    def session(self, **kwargs: Any) -> Session:
        """Return an ORM session bound to this view.

        The session's ``commit()`` releases a SAVEPOINT instead of committing,
        so application code can commit freely. Sessions are closed on release.
        """
        session = Session(
            bind=self.connection, join_transaction_mode="create_savepoint", **kwargs
        )
        self._sessions.append(session)
        return session


class SqlReferenceView:
    """Read-only access to a sealed baseline for isolation-free units.

    Every call opens its own short-lived connection, so one instance can be
    shared across worker threads.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield a fresh connection; writes through it raise `BaselineMutationError`."""
        with self._engine.connect() as conn:
            yield conn

    def execute(self, statement: Any, parameters: Any = None) -> list[Any]:
        """Run a read statement and return all rows."""
        with self.connect() as conn:
            return list(conn.execute(statement, parameters))


# --- Store ---


class SqlAlchemySnapshotStore(SnapshotStore):
    """Snapshot store over a SQLAlchemy database.

    Args:
        url: Database URL. None creates a private temporary SQLite file that
            is deleted on `dispose`.
        max_views: Cap on concurrently acquired views. Defaults to 1 for
            SQLite and to the engine pool size otherwise.
        on_dispose: Optional callback run (unsealed, inside a transaction)
            before the engine is disposed, e.g. to drop the application schema
            from a shared server.
        id_generator: Source of baseline/view identifiers.
        engine_options: Extra keyword arguments for `make_engine`.

    Raises:
        UnsupportedBaselineUrlError: For in-memory SQLite URLs.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        url: str | URL | None = None,
        *,
        max_views: int | None = None,
        on_dispose: Callable[[Connection], None] | None = None,
        id_generator: IdGenerator | None = None,
        **engine_options: Any,
    ) -> None:
        self._tmpdir: Path | None = None
        if url is None:
            self._tmpdir = Path(tempfile.mkdtemp(prefix="tessera-"))
            url = URL.create("sqlite+pysqlite", database=str(self._tmpdir / "baseline.db"))
        elif is_memory_sqlite(url):
            raise UnsupportedBaselineUrlError(
                "In-memory SQLite cannot be shared between views; use a file URL."
            )

        self.engine = make_engine(url, **engine_options)
        self.dialect = DialectName.from_sqlalchemy(self.engine)
        if max_views is None:
            max_views = (
                1 if self.dialect.serializes_writers else self._pool_size(self.engine)
            )
        self.max_views = max_views
        self._capacity = threading.BoundedSemaphore(max_views)
        self._on_dispose = on_dispose
        self._ids = id_generator or ULIDGenerator()
        self._lock = threading.Lock()
        self._created = False
        self._sealed = False

    # --------------------------------------------------------------------- #
    # Interface implementation
    # --------------------------------------------------------------------- #

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

        try:
            self._build(migrations, seeder, context)
        except BaselineBuildError:
            self._discard()
            raise

        with self.engine.connect() as conn:
            version = MigrationContext.configure(conn).get_current_revision()

        self._seal()
        baseline = BaselineSnapshot(
            baseline_id=self._ids.new_id(),
            version=version,
            created_at=datetime.now(timezone.utc),
            handle=self.engine,
        )
        logger.info(
            "Built %s baseline %s (version=%s, max_views=%d)",
            self.dialect.value,
            baseline.baseline_id,
            version,
            self.max_views,
        )
        return baseline

    def acquire_view(
        self, baseline: BaselineSnapshot, timeout: float | None = None
    ) -> SqlView:
        if not self._capacity.acquire(timeout=timeout):
            raise ViewCapacityTimeout(f"No view capacity after {timeout} seconds.")
        view_id = self._ids.new_id()
        try:
            conn = baseline.handle.connect()
            conn.info[VIEW_INFO_KEY] = view_id
            transaction = conn.begin()
        except Exception:
            self._capacity.release()
            raise
        logger.debug("Acquired view %s", view_id)
        return SqlView(view_id, conn, transaction)

    def release(self, view: WorkingView) -> None:
        if not isinstance(view, SqlView):
            raise TypeError(f"Expected a SqlView, got {type(view).__name__}")
        if view.released:
            return
        # pylint: disable=protected-access
        view._released = True
        conn = view._connection
        try:
            for session in view._sessions:
                session.close()
            if view._transaction.is_active:
                view._transaction.rollback()
        except Exception as e:
            logger.exception("Rollback of view %s failed", view.view_id)
            conn.invalidate()
            raise SnapshotStoreError(f"Could not roll back view {view.view_id}") from e
        finally:
            if not conn.invalidated:
                conn.info.pop(VIEW_INFO_KEY, None)
            conn.close()
            self._capacity.release()
        logger.debug("Released view %s", view.view_id)

    def reference_view(self, baseline: BaselineSnapshot) -> SqlReferenceView:
        return SqlReferenceView(baseline.handle)

    def dispose(self, baseline: BaselineSnapshot) -> None:
        self._unseal()
        try:
            if self._on_dispose is not None:
                with self.engine.begin() as conn:
                    self._on_dispose(conn)
        finally:
            self._discard()
        logger.info("Disposed baseline %s", baseline.baseline_id)

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _build(
        self, migrations: MigrationApplier, seeder: Seeder | None, context: RunContext
    ) -> None:
        # migrations and seed share one transaction; a failure rolls back both
        try:
            with self.engine.begin() as conn:
                try:
                    migrations(conn, context)
                except Exception as e:
                    raise MigrationError(f"Migration failed: {e}") from e
                if seeder is not None:
                    try:
                        seeder(conn, context)
                    except Exception as e:
                        raise SeedError(f"Seeding failed: {e}") from e
        except BaselineBuildError:
            raise
        except Exception as e:
            raise BaselineBuildError(f"Baseline commit failed: {e}") from e

    def _discard(self) -> None:
        self.engine.dispose()
        if self._tmpdir is not None:
            shutil.rmtree(self._tmpdir, ignore_errors=True)

    @staticmethod
    def _pool_size(engine: Engine) -> int:
        size = getattr(engine.pool, "size", None)
        return size() if callable(size) else DEFAULT_POOL_VIEWS

    def _seal(self) -> None:
        if not self._sealed:
            event.listen(self.engine, "before_cursor_execute", _reject_baseline_write)
            event.listen(self.engine, "commit", _reject_view_commit)
            self._sealed = True

    def _unseal(self) -> None:
        if self._sealed:
            event.remove(self.engine, "before_cursor_execute", _reject_baseline_write)
            event.remove(self.engine, "commit", _reject_view_commit)
            self._sealed = False


def _reject_baseline_write(  # pylint: disable=too-many-arguments,too-many-positional-arguments,unused-argument
    conn, cursor, statement, parameters, context, executemany
) -> None:
    if conn.info.get(VIEW_INFO_KEY) is None and WRITE_STATEMENT.match(statement):
        raise BaselineMutationError(
            "Write attempted through the baseline; acquire a working view instead."
        )


def _reject_view_commit(conn) -> None:
    if (view_id := conn.info.get(VIEW_INFO_KEY)) is not None:
        raise BaselineMutationError(
            f"COMMIT attempted on working view {view_id}; views are always rolled back."
        )
