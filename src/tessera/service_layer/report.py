"""Run report: the ordered unit results plus the overall exit status."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import IntEnum

from tessera.domain.outcomes import Status, UnitResult


class ExitCode(IntEnum):
    """Process exit status derived from a run report."""

    OK = 0
    FAILURES = 1
    FATAL = 2
    INTERRUPTED = 3


@dataclass(frozen=True)
class RunReport:
    """Everything the reporting layer needs about one run.

    Attributes:
        results: One entry per attempted unit, in declaration order.
        fatal_error: Message of a migration/seed failure that aborted the
            run before any unit executed, else None.
        cancelled: True if a cancellation signal kept units from starting.
        run_id: Identifier of the run.
    """

    results: tuple[UnitResult, ...] = ()
    fatal_error: str | None = None
    cancelled: bool = False
    run_id: str = ""

    @property
    def exit_code(self) -> ExitCode:
        """0 when nothing failed; distinct codes for failures and fatal errors."""
        if self.fatal_error is not None:
            return ExitCode.FATAL
        if any(r.is_failure for r in self.results):
            return ExitCode.FAILURES
        if self.cancelled:
            return ExitCode.INTERRUPTED
        return ExitCode.OK

    @property
    def ok(self) -> bool:
        """True when the exit code is 0."""
        return self.exit_code is ExitCode.OK

    def counts(self) -> dict[Status, int]:
        """Number of results per status (every status present, zero or not)."""
        tally = Counter(r.status for r in self.results)
        return {status: tally.get(status, 0) for status in Status}

    def result_for(self, unit_name: str) -> UnitResult:
        """Return the result of the named unit.

        Raises:
            KeyError: If the unit was not attempted.
        """
        for result in self.results:
            if result.unit_name == unit_name:
                return result
        raise KeyError(unit_name)

    @property
    def failures(self) -> list[UnitResult]:
        """Results whose outcome is `Failed` or `Errored`."""
        return [r for r in self.results if r.is_failure]

    def summary(self) -> str:
        """One-line summary such as ``3 passed, 1 failed``."""
        if self.fatal_error is not None:
            return f"run aborted: {self.fatal_error}"
        parts = [f"{n} {status.value}" for status, n in self.counts().items() if n]
        text = ", ".join(parts) if parts else "no units run"
        if self.cancelled:
            text += " (cancelled)"
        return text
