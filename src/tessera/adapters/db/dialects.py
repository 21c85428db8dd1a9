"""Database backends the SQL snapshot store knows how to isolate.

Dialect checks go through `DialectName` rather than raw strings. Anything
other than PostgreSQL and SQLite is rejected up front, since rollback
isolation has only been verified for those two.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.engine import URL, make_url

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine


class UnsupportedDialect(Exception):
    """Raised for a backend the snapshot store cannot isolate."""


class DialectName(str, Enum):
    """Supported SQLAlchemy backends.

    Attributes:
        POSTGRES: PostgreSQL (``"postgresql"``).
        SQLITE: SQLite (``"sqlite"``).
    """

    POSTGRES = "postgresql"
    SQLITE = "sqlite"

    @property
    def serializes_writers(self) -> bool:
        """True if the backend lets only one write transaction run at a time."""
        return self is DialectName.SQLITE

    @classmethod
    def from_string(cls, dialect_str: str | None) -> DialectName:
        """Resolve a dialect name, alias or ``backend+driver`` string.

        Raises:
            UnsupportedDialect: For unknown or empty names.
        """
        backend = (dialect_str or "").strip().lower().partition("+")[0]
        try:
            return _ALIASES[backend]
        except KeyError:
            raise UnsupportedDialect(f"Unsupported dialect: {dialect_str!r}") from None

    @classmethod
    def from_url(cls, url: str | URL) -> DialectName:
        """Resolve the backend of a database URL."""
        return cls.from_string(make_url(str(url)).get_backend_name())

    @classmethod
    def from_sqlalchemy(cls, obj: Engine | Connection) -> DialectName:
        """Resolve the backend of an Engine or Connection."""
        dialect = getattr(obj, "dialect", None)
        if dialect is None:
            raise UnsupportedDialect(f"{type(obj).__name__} has no SQLAlchemy dialect")
        return cls.from_string(dialect.name)


_ALIASES = {
    "postgresql": DialectName.POSTGRES,
    "postgres": DialectName.POSTGRES,
    "pg": DialectName.POSTGRES,
    "sqlite": DialectName.SQLITE,
}
