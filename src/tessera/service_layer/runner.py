"""Scheduler/runner: builds the baseline, dispatches units, collects results.

Dispatch model
--------------
A pool of ``worker_count`` threads, each running one unit end to end before
taking the next. The runner keeps at most ``worker_count`` units in flight
and decides before *every* dispatch whether to continue:

- ``stop_on_failure``: after the first `Failed`/`Errored` result no new unit
  starts; units already in flight finish normally.
- a set cancellation event has the same effect, and marks the report as
  cancelled.

Stateful units are additionally limited to the store's view capacity
(``store.max_views``). While that capacity is used up, isolation-free units
further down the list are dispatched ahead of waiting stateful ones, so they
never sit behind a view they do not need. Results are always reported in
declaration order.
"""

from __future__ import annotations

import dataclasses
import fnmatch
import functools
import logging
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tessera.adapters.id_generators import ULIDGenerator
from tessera.config import RunConfig
from tessera.domain.errors import DuplicateUnitError, UnitDefinitionError
from tessera.domain.units import RunContext, TestUnit
from tessera.interfaces.snapshot_store import BaselineBuildError

from .lifecycle import LifecycleManager
from .report import RunReport

if TYPE_CHECKING:
    from tessera.domain.outcomes import UnitResult
    from tessera.interfaces.id_generator import IdGenerator
    from tessera.interfaces.snapshot_store import (
        BaselineSnapshot,
        MigrationApplier,
        Seeder,
        SnapshotStore,
    )

logger = logging.getLogger(__name__)

GLOB_CHARS = set("*?[")


def no_migrations(target: Any, context: RunContext) -> None:  # pylint: disable=unused-argument
    """Migration applier for stores whose schema already exists."""


@dataclass(frozen=True)
class Suite:
    """A group of units sharing one baseline.

    Suites that declare independent schemas carry their own store and
    migration/seed collaborators; `Runner.run_suites` builds one baseline per
    suite.
    """

    name: str
    units: Sequence[TestUnit]
    store: SnapshotStore | None = None
    migrations: MigrationApplier | None = None
    seeder: Seeder | None = None

    def labelled_units(self) -> list[TestUnit]:
        """Units with their `suite` label defaulted to this suite's name."""
        return [
            u if u.suite else dataclasses.replace(u, suite=self.name) for u in self.units
        ]


def select_units(units: Iterable[TestUnit], pattern: str | None) -> list[TestUnit]:
    """Apply a suite filter.

    The pattern is a shell-style glob matched against both the unit name and
    ``<suite>::<name>``. A pattern without glob characters matches as a
    substring.
    """
    units = list(units)
    if not pattern:
        return units
    if not GLOB_CHARS & set(pattern):
        pattern = f"*{pattern}*"
    return [
        u
        for u in units
        if fnmatch.fnmatchcase(u.name, pattern)
        or fnmatch.fnmatchcase(u.qualified_name, pattern)
    ]


def _check_unique(units: Sequence[TestUnit]) -> None:
    seen: set[str] = set()
    for unit in units:
        if unit.name in seen:
            raise DuplicateUnitError(unit.name)
        seen.add(unit.name)


class Runner:
    """Orchestrates a run over an ordered collection of units.

    Args:
        store: Snapshot store providing views. None runs every unit without a
            data store (views are None).
        migrations: Schema builder invoked once to create the baseline.
        seeder: Baseline data loader invoked once after migrations.
        settings: Application settings exposed read-only as
            ``RunContext.settings``.
        lifecycle: Lifecycle manager (injectable for tests).
        id_generator: Source of run identifiers.
        store_factory: Builds a fresh store for each group that has none
            (neither its own nor this runner's). Called only when the group
            is about to run.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        store: SnapshotStore | None = None,
        migrations: MigrationApplier | None = None,
        seeder: Seeder | None = None,
        *,
        settings: Mapping[str, Any] | None = None,
        lifecycle: LifecycleManager | None = None,
        id_generator: IdGenerator | None = None,
        store_factory: Callable[[], SnapshotStore] | None = None,
    ) -> None:
        self.store = store
        self.store_factory = store_factory
        self.migrations = migrations or no_migrations
        self.seeder = seeder
        self.settings = dict(settings or {})
        self.lifecycle = lifecycle or LifecycleManager()
        self._ids = id_generator or ULIDGenerator()

    # --------------------------------------------------------------------- #
    # Entry points
    # --------------------------------------------------------------------- #

    def run(
        self,
        units: Iterable[TestUnit],
        config: RunConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> RunReport:
        """Run *units* against one baseline built from this runner's collaborators.

        Raises:
            DuplicateUnitError: If two selected units share a name.
        """
        config = config or RunConfig()
        context = self._new_context(config)
        stop = threading.Event()
        results, fatal = self._run_group(
            select_units(units, config.suite_filter),
            functools.partial(self._store_for, None),
            self.migrations,
            self.seeder,
            context,
            stop,
            cancel,
        )
        return self._report(results, fatal, cancel, context)

    def run_suites(
        self,
        suites: Iterable[Suite],
        config: RunConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> RunReport:
        """Run several suites, one baseline each, in order.

        A suite without its own store/migrations/seeder falls back to this
        runner's. Stop-on-failure and cancellation apply across suites; a
        fatal baseline error in any suite aborts the whole run.

        Raises:
            DuplicateUnitError: If two units share a name.
            UnitDefinitionError: If several suites would share this runner's
                store.
        """
        config = config or RunConfig()
        suites = list(suites)
        _check_unique([u for s in suites for u in s.units])
        if self.store is not None and sum(s.store is None for s in suites) > 1:
            raise UnitDefinitionError(
                "A store builds a single baseline; give each suite its own store."
            )
        context = self._new_context(config)
        stop = threading.Event()
        results: list[UnitResult] = []
        fatal: str | None = None
        for suite in suites:
            if stop.is_set() or (cancel is not None and cancel.is_set()):
                break
            logger.info("Suite %s", suite.name)
            suite_results, fatal = self._run_group(
                select_units(suite.labelled_units(), config.suite_filter),
                functools.partial(self._store_for, suite),
                suite.migrations or self.migrations,
                suite.seeder if suite.seeder is not None else self.seeder,
                context,
                stop,
                cancel,
            )
            results.extend(suite_results)
            if fatal is not None:
                fatal = f"suite {suite.name}: {fatal}"
                break
        return self._report(results, fatal, cancel, context)

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _store_for(self, suite: Suite | None) -> SnapshotStore | None:
        if suite is not None and suite.store is not None:
            return suite.store
        if self.store is None and self.store_factory is not None:
            return self.store_factory()
        return self.store

    def _new_context(self, config: RunConfig) -> RunContext:
        context = RunContext(run_id=self._ids.new_id(), config=config, settings=self.settings)
        logger.info(
            "Run %s: workers=%d, stop_on_failure=%s, filter=%s",
            context.run_id,
            config.worker_count,
            config.stop_on_failure,
            config.suite_filter,
        )
        return context

    @staticmethod
    def _report(
        results: list[UnitResult],
        fatal: str | None,
        cancel: threading.Event | None,
        context: RunContext,
    ) -> RunReport:
        report = RunReport(
            results=tuple(results),
            fatal_error=fatal,
            cancelled=cancel is not None and cancel.is_set(),
            run_id=context.run_id,
        )
        logger.info("Run %s finished: %s", context.run_id, report.summary())
        return report

    def _run_group(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        units: list[TestUnit],
        store_source: Callable[[], SnapshotStore | None],
        migrations: MigrationApplier,
        seeder: Seeder | None,
        context: RunContext,
        stop: threading.Event,
        cancel: threading.Event | None,
    ) -> tuple[list[UnitResult], str | None]:
        """Build the baseline, execute *units*, dispose the baseline."""
        _check_unique(units)
        if not units:
            return [], None

        store = store_source()
        baseline: BaselineSnapshot | None = None
        if store is not None:
            try:
                baseline = store.create_baseline(migrations, seeder, context)
            except BaselineBuildError as e:
                logger.error("Baseline build failed; aborting run: %s", e)
                return [], str(e)

        try:
            return self._dispatch(units, store, baseline, context, stop, cancel), None
        finally:
            if store is not None and baseline is not None:
                store.dispose(baseline)

    def _dispatch(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        units: list[TestUnit],
        store: SnapshotStore | None,
        baseline: BaselineSnapshot | None,
        context: RunContext,
        stop: threading.Event,
        cancel: threading.Event | None,
    ) -> list[UnitResult]:
        config = context.config
        results: dict[int, UnitResult] = {}

        def halted() -> bool:
            if cancel is not None and cancel.is_set():
                return True
            return stop.is_set()

        def collect(index: int, result: UnitResult) -> None:
            results[index] = result
            if result.is_failure and config.stop_on_failure and not stop.is_set():
                logger.info("Stopping after %s: %s", result.unit_name, result.outcome)
                stop.set()

        if config.worker_count == 1:
            for index, unit in enumerate(units):
                if halted():
                    break
                collect(index, self.lifecycle.execute(unit, context, store, baseline))
        else:
            self._dispatch_parallel(units, store, baseline, context, halted, collect)

        if len(results) < len(units):
            logger.info("%d unit(s) not started", len(units) - len(results))
        return [results[i] for i in sorted(results)]

    def _dispatch_parallel(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        units: list[TestUnit],
        store: SnapshotStore | None,
        baseline: BaselineSnapshot | None,
        context: RunContext,
        halted,
        collect,
    ) -> None:
        workers = context.config.worker_count
        view_limit = getattr(store, "max_views", None) or workers
        queue = list(range(len(units)))
        in_flight: dict[Future[UnitResult], int] = {}

        def stateful_in_flight() -> int:
            return sum(1 for i in in_flight.values() if units[i].is_stateful)

        def next_index() -> int | None:
            saturated = stateful_in_flight() >= view_limit
            for position, index in enumerate(queue):
                if not (saturated and units[index].is_stateful):
                    return queue.pop(position)
            return None

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="tessera-worker"
        ) as pool:
            while True:
                while len(in_flight) < workers and queue and not halted():
                    if (index := next_index()) is None:
                        break
                    future = pool.submit(
                        self.lifecycle.execute, units[index], context, store, baseline
                    )
                    in_flight[future] = index
                if not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    collect(in_flight.pop(future), future.result())
