"""Resolve suite targets and wire them to stores and a runner."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tessera import config
from tessera.adapters.snapshot import SqlAlchemySnapshotStore
from tessera.domain.errors import TesseraError
from tessera.domain.units import TestUnit
from tessera.service_layer.runner import Runner, Suite

if TYPE_CHECKING:
    from tessera.interfaces.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


class TargetLoadError(TesseraError):
    """A ``module:attribute`` target could not be resolved to suites."""


@dataclass(frozen=True)
class AppContainer:
    """A class to hold the wiring of one run."""

    runner: Runner
    suites: tuple[Suite, ...]


def build_store(url: str | None = None, **options: Any) -> SnapshotStore:
    """Build a SQL snapshot store; None means a private temporary SQLite file."""
    return SqlAlchemySnapshotStore(url, **options)


def load_target(target: str) -> list[Suite]:
    """Resolve ``package.module:attribute`` to a list of suites.

    The attribute may be a `Suite`, a sequence of suites, a sequence of
    `TestUnit` (wrapped in a suite named after the attribute), or a
    zero-argument callable returning any of those.

    Raises:
        TargetLoadError: If the target is malformed, cannot be imported, or
            does not resolve to suites.
    """
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise TargetLoadError(f"Expected MODULE:ATTRIBUTE, got {target!r}")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise TargetLoadError(f"Cannot import {module_name!r}: {e}") from e
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise TargetLoadError(f"{module_name!r} has no attribute {attr_path!r}") from e

    if callable(obj) and not isinstance(obj, Suite):
        obj = obj()
    suites = _as_suites(obj, attr_path.rsplit(".", 1)[-1])
    if suites is None:
        raise TargetLoadError(
            f"{target!r} resolved to {type(obj).__name__}, expected a Suite or units"
        )
    logger.debug("Loaded %d suite(s) from %s", len(suites), target)
    return suites


def _as_suites(obj: Any, name: str) -> list[Suite] | None:
    if isinstance(obj, Suite):
        return [obj]
    if isinstance(obj, Sequence) and not isinstance(obj, str):
        items = list(obj)
        if all(isinstance(i, Suite) for i in items):
            return items
        if all(isinstance(i, TestUnit) for i in items):
            return [Suite(name=name, units=items)]
    return None


def bootstrap(
    target: str,
    *,
    db_url: str | None = None,
    settings: Mapping[str, Any] | None = None,
) -> AppContainer:
    """Load *target* and build the runner for it.

    Suites that bring no store get a SQL store on *db_url*, built for each
    suite just before it runs. Without *db_url* the store uses
    `TESSERA_DB_URL`, or a temporary SQLite file when that is unset too.
    """
    suites = load_target(target)
    if db_url is None:
        db_url = _db_url_from_env()
    runner = Runner(settings=settings, store_factory=lambda: build_store(db_url))
    return AppContainer(runner=runner, suites=tuple(suites))


def _db_url_from_env() -> str | None:
    try:
        return config.get_db_url()
    except config.DatabaseUrlNotSetError:
        return None
