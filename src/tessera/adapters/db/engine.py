"""Engine factory and URL helpers for the SQL snapshot store.

All engines come from `make_engine` so SQLite connections are tuned the same
way everywhere. Other backends are used as configured by their URL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, make_url

from .dialects import DialectName, UnsupportedDialect

if TYPE_CHECKING:
    from sqlite3 import Connection as SQLiteConnection

    from sqlalchemy.engine import Connection, Engine

MEMORY_DATABASES = {None, "", ":memory:"}

# foreign keys enforced; WAL so readers never block on a view's open writes
SQLITE_PRAGMAS = (
    "foreign_keys=ON",
    "journal_mode=WAL",
    "synchronous=NORMAL",
    "temp_store=MEMORY",
)


def is_sqlite(url: str | URL) -> bool:
    """True if *url* names a SQLite database (unknown backends count as not SQLite)."""
    try:
        return DialectName.from_url(url) is DialectName.SQLITE
    except UnsupportedDialect:
        return False


def is_memory_sqlite(url: str | URL) -> bool:
    """Return True for an in-memory SQLite URL (each connection is a new database)."""
    u = make_url(str(url))
    return is_sqlite(u) and (
        u.database in MEMORY_DATABASES or (u.database or "").startswith("file::memory:")
    )


def make_engine(url: str | URL, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy Engine for *url*.

    SQLite connections get `SQLITE_PRAGMAS` on connect, and transaction
    control is taken away from the ``sqlite3`` driver: SQLAlchemy emits
    ``BEGIN`` itself, which keeps SAVEPOINTs inside a working view's outer
    transaction from being committed implicitly by the driver.

    Args:
        url: Database URL.
        echo: Log SQL statements.
        **kwargs: Passed through to `sqlalchemy.create_engine`.
    """
    engine = create_engine(url, echo=echo, **kwargs)
    if not is_sqlite(url):
        return engine

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_conn: SQLiteConnection, conn_record):  # type: ignore #pylint: disable=W0613
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        try:
            for pragma in SQLITE_PRAGMAS:
                cur.execute(f"PRAGMA {pragma};")
        finally:
            cur.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn: Connection):  # pylint: disable=W0612
        conn.exec_driver_sql("BEGIN")

    return engine
