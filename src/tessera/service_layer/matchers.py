"""Argument matchers and call-count constraints for mock expectations.

Any plain value used as an expected argument is an exact matcher. `ANY`
accepts any single argument, `where` accepts arguments satisfying a
predicate, and `ANY_ARGS` used in place of the whole argument list accepts
every call.
"""

from __future__ import annotations

import abc
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

# pylint: disable=too-few-public-methods


class Matcher(abc.ABC):
    """A test applied to one argument value."""

    exact: bool = False

    @abc.abstractmethod
    def matches(self, value: Any) -> bool:
        """Return True if *value* is accepted."""

    @abc.abstractmethod
    def describe(self) -> str:
        """Short human-readable rendering used in violation messages."""

    def __repr__(self) -> str:
        return self.describe()


class Exact(Matcher):
    """Accepts values equal to the expected one."""

    exact = True

    def __init__(self, expected: Any) -> None:
        self.expected = expected

    def matches(self, value: Any) -> bool:
        try:
            return bool(value == self.expected)
        except Exception:  # pylint: disable=broad-except
            return False

    def describe(self) -> str:
        return repr(self.expected)


class _Anything(Matcher):
    def matches(self, value: Any) -> bool:
        return True

    def describe(self) -> str:
        return "ANY"


class Predicate(Matcher):
    """Accepts values for which *predicate* returns a truthy value."""

    def __init__(self, predicate: Callable[[Any], bool], description: str = "") -> None:
        self.predicate = predicate
        self.description = description or getattr(predicate, "__name__", "predicate")

    def matches(self, value: Any) -> bool:
        try:
            return bool(self.predicate(value))
        except Exception:  # pylint: disable=broad-except
            return False

    def describe(self) -> str:
        return f"<{self.description}>"


class _AnyArgs:
    """Whole-call wildcard sentinel."""

    def __repr__(self) -> str:
        return "ANY_ARGS"


ANY = _Anything()
ANY_ARGS = _AnyArgs()


def where(predicate: Callable[[Any], bool], description: str = "") -> Predicate:
    """Matcher accepting arguments that satisfy *predicate*."""
    return Predicate(predicate, description)


def instance_of(*types: type) -> Predicate:
    """Matcher accepting instances of any of *types*."""
    names = " | ".join(t.__name__ for t in types)
    return Predicate(lambda value: isinstance(value, types), f"instance of {names}")


def as_matcher(value: Any) -> Matcher:
    """Wrap plain values in `Exact`; pass matchers through."""
    return value if isinstance(value, Matcher) else Exact(value)


# --- Call counts ---


class CountKind(str, Enum):
    """Kind of a call-count constraint."""

    EXACTLY = "exactly"
    AT_LEAST = "at least"
    ANY = "any"


@dataclass(frozen=True, slots=True)
class CallCount:
    """How many times an expectation must be discharged."""

    kind: CountKind
    n: int = 0

    def __post_init__(self) -> None:
        if self.n < 0:
            raise ValueError("call count cannot be negative")

    def is_satisfied(self, count: int) -> bool:
        """True if *count* calls fulfil the constraint."""
        if self.kind is CountKind.EXACTLY:
            return count == self.n
        if self.kind is CountKind.AT_LEAST:
            return count >= self.n
        return True

    def is_exhausted(self, count: int) -> bool:
        """True once no further call may be attributed to the expectation."""
        return self.kind is CountKind.EXACTLY and count >= self.n

    def describe(self) -> str:
        """Render as e.g. ``exactly 2 calls``."""
        if self.kind is CountKind.ANY:
            return "any number of calls"
        noun = "call" if self.n == 1 else "calls"
        return f"{self.kind.value} {self.n} {noun}"


def exactly(n: int) -> CallCount:
    """Expect exactly *n* calls."""
    return CallCount(CountKind.EXACTLY, n)


def at_least(n: int) -> CallCount:
    """Expect *n* or more calls."""
    return CallCount(CountKind.AT_LEAST, n)


def any_number() -> CallCount:
    """Accept any number of calls, including none."""
    return CallCount(CountKind.ANY)


once = exactly(1)
