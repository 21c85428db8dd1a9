"""Outcome and violation types produced by one test unit execution.

`Outcome` is a tagged union of four frozen dataclasses. The lifecycle manager
classifies every execution into exactly one of them; reporting code branches
on the tag (`outcome.status`) instead of on exception types.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias


class Status(str, Enum):
    """Tag of an `Outcome`."""

    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class Passed:
    """The body completed, teardown succeeded and every mock verified."""

    status = Status.PASSED

    def __str__(self) -> str:
        return "passed"


@dataclass(frozen=True, slots=True)
class Failed:
    """A deliberate check did not hold (assertion or mock verification)."""

    reason: str
    status = Status.FAILED

    def __str__(self) -> str:
        return f"failed: {self.reason}"


@dataclass(frozen=True, slots=True)
class Errored:
    """An unanticipated defect: setup, body or teardown raised unexpectedly.

    Attributes:
        cause: One-line description of the exception (``Type: message``).
        detail: Formatted traceback, empty when no exception was involved.
    """

    cause: str
    detail: str = ""
    status = Status.ERRORED

    @classmethod
    def from_exception(cls, exc: BaseException) -> Errored:
        """Build an `Errored` outcome describing *exc*."""
        return cls(
            cause=f"{type(exc).__name__}: {exc}",
            detail="".join(traceback.format_exception(exc)),
        )

    def __str__(self) -> str:
        return f"errored: {self.cause}"


@dataclass(frozen=True, slots=True)
class Skipped:
    """The unit was declared skipped or asked to be skipped."""

    reason: str = ""
    status = Status.SKIPPED

    def __str__(self) -> str:
        return f"skipped: {self.reason}" if self.reason else "skipped"


Outcome: TypeAlias = Passed | Failed | Errored | Skipped


class ViolationKind(str, Enum):
    """Category of a violation appended to a unit result."""

    MISSING_CALLS = "missing_calls"
    EXCESS_CALLS = "excess_calls"
    UNEXPECTED_CALL = "unexpected_call"
    TEARDOWN_FAILURE = "teardown_failure"
    RELEASE_FAILURE = "release_failure"


@dataclass(frozen=True, slots=True)
class Violation:
    """A discrepancy surfaced during verification or cleanup."""

    kind: ViolationKind
    message: str
    capability: str | None = None
    method: str | None = None

    @property
    def is_mock_violation(self) -> bool:
        """True for violations produced by mock verification."""
        return self.kind in {
            ViolationKind.MISSING_CALLS,
            ViolationKind.EXCESS_CALLS,
            ViolationKind.UNEXPECTED_CALL,
        }

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


@dataclass(frozen=True, slots=True)
class UnitResult:
    """Final, immutable record of one unit execution."""

    unit_name: str
    outcome: Outcome
    violations: tuple[Violation, ...] = ()
    duration: float = 0.0

    @property
    def status(self) -> Status:
        """Shortcut for ``result.outcome.status``."""
        return self.outcome.status

    @property
    def is_failure(self) -> bool:
        """True when the outcome is `Failed` or `Errored`."""
        return self.outcome.status in {Status.FAILED, Status.ERRORED}
