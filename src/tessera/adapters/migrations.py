"""Migration appliers for SQL snapshot stores.

Both appliers follow the `MigrationApplier` protocol: they are called once
with the store's build connection (already inside a transaction) and the run
context.

- `AlembicMigrationApplier` upgrades to a target revision through the
  application's own Alembic scripts. The live connection is shared with the
  application's ``env.py`` through ``config.attributes["connection"]``; an
  ``env.py`` must prefer that connection when present.
- `MetadataMigrationApplier` issues ``MetaData.create_all`` for projects that
  do not keep migration scripts.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

from alembic import command

from tessera import config

if TYPE_CHECKING:
    from sqlalchemy import MetaData
    from sqlalchemy.engine import Connection

    from tessera.domain.units import RunContext

logger = logging.getLogger(__name__)

# pylint: disable=too-few-public-methods

CONNECTION_ATTRIBUTE = "connection"  # pragma: no mutate


class AlembicMigrationApplier:
    """Apply an application's Alembic migrations to the baseline.

    Args:
        script_location: Directory (or ``package:dir``) with the application's
            ``env.py`` and ``versions/``.
        revision: Target revision. Defaults to ``"head"``.
    """

    def __init__(self, script_location: str, revision: str = "head") -> None:
        self.script_location = script_location
        self.revision = revision

    def __call__(self, target: Connection, context: RunContext) -> None:
        output = io.StringIO()
        cfg = config.build_alembic_config(
            script_location=self.script_location,
            stdout=output,
        )
        cfg.attributes[CONNECTION_ATTRIBUTE] = target
        cfg.attributes["run_context"] = context
        logger.debug(
            "Upgrading baseline to %s using %s", self.revision, self.script_location
        )
        command.upgrade(cfg, self.revision)
        if text := output.getvalue().strip():
            logger.debug("alembic: %s", text)


class MetadataMigrationApplier:
    """Create every table of a SQLAlchemy `MetaData` on the baseline."""

    def __init__(self, metadata: MetaData) -> None:
        self.metadata = metadata

    def __call__(self, target: Connection, context: RunContext) -> None:
        logger.debug("Creating %d tables from metadata", len(self.metadata.tables))
        self.metadata.create_all(target)
