"""Configuration utilities for TESSERA.

This module centralizes the run configuration, environment lookups and the
Alembic configuration builder used by the migration appliers.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import TextIO

from alembic.config import Config

from tessera.domain.errors import InvalidRunConfigError

DB_URL_ENV = "TESSERA_DB_URL"  # pragma: no mutate
STOP_ON_FAILURE_ENV = "TESSERA_STOP_ON_FAILURE"  # pragma: no mutate
WORKERS_ENV = "TESSERA_WORKERS"  # pragma: no mutate
FILTER_ENV = "TESSERA_FILTER"  # pragma: no mutate

ALEMBIC_URL_KEY = "sqlalchemy.url"  # pragma: no mutate
ALEMBIC_SCRIPT_LOCATION_KEY = "script_location"  # pragma: no mutate

_TRUTHY = {"1", "true", "yes", "on"}


class DatabaseUrlNotSetError(Exception):
    """Raised when the TESSERA_DB_URL environment variable is not set."""


def get_db_url() -> str:
    """Get the baseline database URL from the environment.

    Returns:
        The value of the `TESSERA_DB_URL` environment variable.

    Raises:
        DatabaseUrlNotSetError: If `TESSERA_DB_URL` is not set.
    """
    if not (url := os.environ.get(DB_URL_ENV)):
        raise DatabaseUrlNotSetError
    return url


@dataclass(frozen=True)
class RunConfig:
    """Options controlling one run.

    Attributes:
        stop_on_failure: Stop dispatching new units after the first `Failed`
            or `Errored` outcome. Units already in flight finish normally.
        worker_count: Number of parallel execution contexts (>= 1).
        suite_filter: Optional shell-style pattern; only units whose name or
            `<suite>::<name>` matches are run.
    """

    stop_on_failure: bool = False
    worker_count: int = 1
    suite_filter: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.worker_count, bool) or not isinstance(
            self.worker_count, int
        ):
            raise InvalidRunConfigError("worker_count must be an integer.")
        if self.worker_count < 1:
            raise InvalidRunConfigError(
                f"worker_count must be >= 1, got {self.worker_count}."
            )

    @classmethod
    def from_env(cls) -> RunConfig:
        """Build a config from `TESSERA_*` environment variables.

        Unset variables fall back to the field defaults.

        Raises:
            InvalidRunConfigError: If `TESSERA_WORKERS` is not a positive integer.
        """
        stop = os.environ.get(STOP_ON_FAILURE_ENV, "").strip().lower() in _TRUTHY
        raw_workers = os.environ.get(WORKERS_ENV, "").strip()
        try:
            workers = int(raw_workers) if raw_workers else 1
        except ValueError as e:
            raise InvalidRunConfigError(
                f"{WORKERS_ENV} must be an integer, got {raw_workers!r}."
            ) from e
        pattern = os.environ.get(FILTER_ENV) or None
        return cls(stop_on_failure=stop, worker_count=workers, suite_filter=pattern)


def build_alembic_config(
    db_url: str | None = None,
    script_location: str | None = None,
    stdout: TextIO = sys.stdout,
) -> Config:
    """Build an Alembic `Config` object for an application's migrations.

    Sets only Alembic "main" options:
    - `sqlalchemy.url` → the database URL you pass
    - `script_location` → the application's Alembic scripts

    Args:
        db_url: SQLAlchemy database URL. Can be `None` (default) when the
            caller hands Alembic a live connection through
            ``config.attributes["connection"]``.
        script_location: Directory (or ``package:dir`` resource path) holding
            the application's ``env.py`` and ``versions/``.
        stdout: Text stream Alembic will write status lines to. Defaults to
            `sys.stdout`; override in tests to capture output.

    Returns:
        An `alembic.config.Config` pointing at the given migration scripts.
    """
    cfg = Config(stdout=stdout)
    if db_url is not None:
        cfg.set_main_option(ALEMBIC_URL_KEY, db_url)
    if script_location is not None:
        cfg.set_main_option(ALEMBIC_SCRIPT_LOCATION_KEY, script_location)
    return cfg
