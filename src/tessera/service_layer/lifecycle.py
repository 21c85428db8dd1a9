"""Lifecycle manager: runs one test unit's setup, body and teardown.

State machine per execution::

    IDLE -> ARRANGING -> ACTING -> ASSERTING -> VERIFYING -> DONE
                 |                                 ^
                 +---------- setup raised ---------+

- ARRANGING runs the setup hook. If it raises, the body is never called and
  the outcome is `Errored` (or `Skipped` for `SkipUnit`).
- ACTING runs the body. `ExecutionContext.check` / `fail` move the execution
  to ASSERTING; plain ``assert`` statements are classified the same way.
- VERIFYING always runs: teardown, then verification of every mock created
  during the execution. Teardown failures and mock violations are appended
  to the result, never dropped, and downgrade a passed or skipped outcome.
- DONE: the working view is released and the mock scope discarded, on every
  exit path.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from tessera.domain.errors import MockViolationError, SkipUnit, UnitAssertionError
from tessera.domain.outcomes import (
    Errored,
    Failed,
    Outcome,
    Passed,
    Skipped,
    Status,
    UnitResult,
    Violation,
    ViolationKind,
)
from tessera.domain.units import TestUnit

from .mocks import MockHandle, MockRegistry

if TYPE_CHECKING:
    from tessera.domain.units import RunContext
    from tessera.interfaces.snapshot_store import (
        BaselineSnapshot,
        SnapshotStore,
        WorkingView,
    )

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Lifecycle phases of one unit execution."""

    IDLE = "idle"
    ARRANGING = "arranging"
    ACTING = "acting"
    ASSERTING = "asserting"
    VERIFYING = "verifying"
    DONE = "done"


@dataclass
class ExecutionContext:
    """Everything a hook or body receives for one execution.

    Attributes:
        unit: The unit being executed.
        run: The run-wide context (settings, config, run id).
        view: The unit's working view (stateful units), the read-only
            reference view (isolation ``none``), or None when the run has no
            data store.
        mocks: The execution's private mock registry scope.
        state: Scratch space shared by setup, body and teardown.
        trace: Phases entered so far, in order.
    """

    unit: TestUnit
    run: RunContext
    view: Any
    mocks: MockRegistry
    state: dict[str, Any] = field(default_factory=dict)
    trace: list[Phase] = field(default_factory=lambda: [Phase.IDLE])

    @property
    def phase(self) -> Phase:
        """The current phase."""
        return self.trace[-1]

    def enter(self, phase: Phase) -> None:
        """Record a phase transition."""
        if phase is not self.phase:
            logger.debug("%s: %s -> %s", self.unit.name, self.phase.value, phase.value)
            self.trace.append(phase)

    # --- conveniences for hooks and bodies ---

    def mock(self, capability: type) -> MockHandle:
        """Shortcut for ``ctx.mocks.create_mock(capability)``."""
        return self.mocks.create_mock(capability)

    def spy(self, capability: type) -> MockHandle:
        """Shortcut for ``ctx.mocks.create_spy(capability)``."""
        return self.mocks.create_spy(capability)

    def check(self, condition: Any, message: str = "check failed") -> None:
        """Assert *condition*; a false value fails the unit with *message*."""
        self.enter(Phase.ASSERTING)
        if not condition:
            raise UnitAssertionError(message)

    def fail(self, message: str) -> None:
        """Fail the unit unconditionally."""
        self.enter(Phase.ASSERTING)
        raise UnitAssertionError(message)

    @staticmethod
    def skip(reason: str = "") -> None:
        """Stop the execution and report it as skipped."""
        raise SkipUnit(reason)


def classify(exc: Exception) -> Outcome:
    """Map an exception raised by a hook or body to an outcome.

    `SkipUnit` -> Skipped; assertion failures and mock violations -> Failed;
    anything else -> Errored.
    """
    if isinstance(exc, SkipUnit):
        return Skipped(exc.reason)
    if isinstance(exc, (AssertionError, MockViolationError)):
        return Failed(str(exc) or type(exc).__name__)
    return Errored.from_exception(exc)


class LifecycleManager:
    """Executes units one at a time with guaranteed cleanup.

    Args:
        acquire_timeout: Seconds to wait for a working view before the unit
            is reported as `Errored`. None waits indefinitely.
        clock: Monotonic clock used for durations (injectable for tests).
    """

    def __init__(
        self,
        acquire_timeout: float | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.acquire_timeout = acquire_timeout
        self._clock = clock

    def execute(
        self,
        unit: TestUnit,
        run: RunContext,
        store: SnapshotStore | None = None,
        baseline: BaselineSnapshot | None = None,
    ) -> UnitResult:
        """Run *unit* end to end and return its final result.

        View acquisition happens here so that its failure is contained to the
        unit. Non-`Exception` errors (``KeyboardInterrupt``) still release the
        view before propagating.
        """
        started = self._clock()
        if unit.skip is not None:
            logger.info("%s skipped: %s", unit.name, unit.skip)
            return UnitResult(unit.name, Skipped(unit.skip), (), 0.0)

        view: WorkingView | None = None
        mocks = MockRegistry()
        violations: list[Violation] = []
        try:
            try:
                view = self._open_view(unit, store, baseline)
            except Exception as e:  # pylint: disable=broad-except
                logger.exception("%s: could not acquire a working view", unit.name)
                return UnitResult(unit.name, Errored.from_exception(e), (), 0.0)

            ctx = ExecutionContext(
                unit=unit,
                run=run,
                view=view if view is not None else self._reference(unit, store, baseline),
                mocks=mocks,
            )
            outcome = self._run_phases(ctx, violations)
        finally:
            mocks.close()
            if view is not None:
                violations.extend(self._release(unit, store, view))

        outcome = self._finalize(outcome, violations)
        result = UnitResult(unit.name, outcome, tuple(violations), self._clock() - started)
        self._log_result(result)
        return result

    # --------------------------------------------------------------------- #
    # Phases
    # --------------------------------------------------------------------- #

    def _run_phases(self, ctx: ExecutionContext, violations: list[Violation]) -> Outcome:
        unit = ctx.unit
        outcome: Outcome = Passed()
        try:
            ctx.enter(Phase.ARRANGING)
            setup_ok = self._call_hook(unit.setup, ctx)
            if not isinstance(setup_ok, Passed):
                outcome = (
                    setup_ok if isinstance(setup_ok, Skipped) else self._as_error(setup_ok)
                )
            else:
                ctx.enter(Phase.ACTING)
                outcome = self._call_hook(unit.body, ctx)
        finally:
            ctx.enter(Phase.VERIFYING)
            teardown = self._call_hook(unit.teardown, ctx)
            if not isinstance(teardown, Passed):
                detail = teardown.cause if isinstance(teardown, Errored) else str(teardown)
                violations.append(
                    Violation(ViolationKind.TEARDOWN_FAILURE, f"teardown failed: {detail}")
                )
            violations.extend(ctx.mocks.verify_all())
            ctx.enter(Phase.DONE)
        return outcome

    @staticmethod
    def _call_hook(hook: Callable[[ExecutionContext], Any] | None, ctx: ExecutionContext) -> Outcome:
        if hook is None:
            return Passed()
        try:
            hook(ctx)
        except Exception as e:  # pylint: disable=broad-except
            return classify(e)
        return Passed()

    @staticmethod
    def _as_error(outcome: Outcome) -> Outcome:
        # a failing check during setup still means preconditions were never met
        if isinstance(outcome, Failed):
            return Errored(cause=f"setup failed: {outcome.reason}")
        return outcome

    @staticmethod
    def _finalize(outcome: Outcome, violations: list[Violation]) -> Outcome:
        """Apply downgrade rules to the body's outcome.

        Passed and runtime-skipped outcomes never hide a cleanup failure or a
        mock violation. Missing calls are not held against a skipped unit.
        """
        if not isinstance(outcome, (Passed, Skipped)):
            return outcome
        cleanup = [
            v
            for v in violations
            if v.kind in {ViolationKind.TEARDOWN_FAILURE, ViolationKind.RELEASE_FAILURE}
        ]
        if cleanup:
            return Errored(cause="; ".join(v.message for v in cleanup))
        mock_violations = [v for v in violations if v.is_mock_violation]
        if isinstance(outcome, Skipped):
            mock_violations = [
                v for v in mock_violations if v.kind is not ViolationKind.MISSING_CALLS
            ]
        if mock_violations:
            return Failed(
                "mock verification failed: " + "; ".join(v.message for v in mock_violations)
            )
        return outcome

    # --------------------------------------------------------------------- #
    # Isolation resources
    # --------------------------------------------------------------------- #

    def _open_view(
        self,
        unit: TestUnit,
        store: SnapshotStore | None,
        baseline: BaselineSnapshot | None,
    ) -> WorkingView | None:
        if not unit.is_stateful or store is None or baseline is None:
            return None
        return store.acquire_view(baseline, timeout=self.acquire_timeout)

    @staticmethod
    def _reference(
        unit: TestUnit,
        store: SnapshotStore | None,
        baseline: BaselineSnapshot | None,
    ) -> Any:
        if unit.is_stateful or store is None or baseline is None:
            return None
        return store.reference_view(baseline)

    @staticmethod
    def _release(unit: TestUnit, store: SnapshotStore | None, view: WorkingView) -> list[Violation]:
        assert store is not None  # a view only exists when a store handed it out
        try:
            store.release(view)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception("%s: releasing view %s failed", unit.name, view.view_id)
            return [
                Violation(
                    ViolationKind.RELEASE_FAILURE,
                    f"releasing view {view.view_id} failed: {type(e).__name__}: {e}",
                )
            ]
        return []

    @staticmethod
    def _log_result(result: UnitResult) -> None:
        if result.status in {Status.FAILED, Status.ERRORED}:
            logger.warning("%s %s", result.unit_name, result.outcome)
            for violation in result.violations:
                logger.warning("%s   %s", result.unit_name, violation)
        else:
            logger.info("%s %s (%.3fs)", result.unit_name, result.outcome, result.duration)
