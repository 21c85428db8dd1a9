"""Mock registry: verifiable substitutes for capability interfaces.

A *capability* is any Python class describing a collaborator (an ABC, a
`typing.Protocol`, or a plain class). `MockRegistry.create_mock` /
`create_spy` generate a conforming subclass at registration time: every
public method (and every abstract one) is replaced by a stub that binds the
received arguments against the real method's signature and hands them to
`MockHandle.record`. Calling a stub with arguments the real method would not
accept raises `TypeError`, just like the real collaborator.

Matching
--------
`record` scans the handle's expectations for the called method in
declaration order. Among the undischarged expectations whose matchers accept
the arguments, an *exact* one (all arguments plain values) wins over a
wildcard one; otherwise the earliest wins. Expectations whose call-count
constraint is exhausted are skipped, which lets "first call returns A, second
returns B" be written as two expectations. An already satisfied expectation
that still admits calls (`at_least`, `any_number`) only takes a call when no
unsatisfied expectation accepts it.

- A call matching nothing is *unexpected*: strict mocks raise
  `UnexpectedCallError`, spies return a neutral value.
- A call matching only exhausted expectations is *excess*: strict mocks
  raise, spies answer with the last matching expectation's response.

Verification reports missing calls and excess calls for both modes, and
unexpected calls for strict mocks only.
"""

from __future__ import annotations

import inspect
import itertools
import logging
import threading
import types
import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tessera.domain.errors import (
    MockRegistryClosedError,
    UnexpectedCallError,
    UnknownMethodError,
)
from tessera.domain.outcomes import Violation, ViolationKind

from .matchers import ANY_ARGS, CallCount, Matcher, as_matcher, once

logger = logging.getLogger(__name__)

_NEUTRAL_FACTORIES: dict[Any, Callable[[], Any]] = {
    list: list,
    dict: dict,
    set: set,
    frozenset: frozenset,
    tuple: tuple,
    str: str,
    bytes: bytes,
    int: int,
    float: float,
    bool: bool,
}


class MockMode(str, Enum):
    """Default behavior of a substitute for calls no expectation covers."""

    STRICT = "strict"
    SPY = "spy"


@dataclass(frozen=True, slots=True)
class ObservedCall:
    """One invocation recorded against a mock, in arrival order."""

    sequence: int
    method: str
    arguments: Mapping[str, Any]
    expectation: int | None = None  # declaration index of the matched expectation
    excess: bool = False

    @property
    def matched(self) -> bool:
        """True if the call discharged an expectation."""
        return self.expectation is not None and not self.excess

    def render(self, capability: str) -> str:
        """Render as ``Capability.method(a=1, b=2)``."""
        args = ", ".join(f"{k}={v!r}" for k, v in self.arguments.items())
        return f"{capability}.{self.method}({args})"


class Expectation:
    """A declared, anticipated call and the response it produces.

    Built by `MockHandle.expect`; configure the response fluently with
    `returns`, `raises` or `answers`.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        index: int,
        method: str,
        matchers: Mapping[str, Matcher] | None,
        count: CallCount,
        capability: str,
    ) -> None:
        self.index = index
        self.method = method
        self.matchers = matchers  # None means ANY_ARGS
        self.count = count
        self.capability = capability
        self.satisfied = 0
        self.excess = 0
        self._respond: Callable[[Mapping[str, Any]], Any] = lambda _: None

    def returns(self, value: Any) -> Expectation:
        """Answer matching calls with *value*."""
        self._respond = lambda _: value
        return self

    def raises(self, error: BaseException | type[BaseException]) -> Expectation:
        """Answer matching calls by raising *error*."""

        def _raise(_: Mapping[str, Any]) -> Any:
            raise error

        self._respond = _raise
        return self

    def answers(self, fn: Callable[..., Any]) -> Expectation:
        """Answer matching calls with ``fn(**arguments)``."""
        self._respond = lambda arguments: fn(**arguments)
        return self

    @property
    def exact(self) -> bool:
        """True if every argument is matched by value."""
        return self.matchers is not None and all(
            m.exact for m in self.matchers.values()
        )

    @property
    def discharged(self) -> bool:
        """True once the call-count constraint admits no further calls."""
        return self.count.is_exhausted(self.satisfied)

    @property
    def fulfilled(self) -> bool:
        """True once the call-count constraint is met."""
        return self.count.is_satisfied(self.satisfied)

    def accepts(self, method: str, arguments: Mapping[str, Any]) -> bool:
        """True if a call to *method* with *arguments* fits this expectation."""
        if method != self.method:
            return False
        if self.matchers is None:
            return True
        if arguments.keys() != self.matchers.keys():
            return False
        return all(self.matchers[k].matches(v) for k, v in arguments.items())

    def respond(self, arguments: Mapping[str, Any]) -> Any:
        """Produce the configured return value or raise the configured error."""
        return self._respond(arguments)

    def describe(self) -> str:
        """Render as ``Capability.method(a=1, b=ANY)``."""
        if self.matchers is None:
            rendered = "ANY_ARGS"
        else:
            rendered = ", ".join(f"{k}={m.describe()}" for k, m in self.matchers.items())
        return f"{self.capability}.{self.method}({rendered})"

    def __repr__(self) -> str:
        return f"<Expectation #{self.index} {self.describe()} {self.count.describe()}>"


class MockHandle:
    """Bookkeeping for one substituted capability.

    Attributes:
        capability: The class being substituted.
        capability_id: Identifier used in messages (the class's qualified name).
        mode: `MockMode.STRICT` or `MockMode.SPY`.
        proxy: The generated object to hand to the code under test.
    """

    def __init__(self, capability: type, mode: MockMode) -> None:
        if not isinstance(capability, type):
            raise TypeError(
                f"A capability must be a class, got {type(capability).__name__}"
            )
        self.capability = capability
        self.capability_id = capability.__qualname__
        self.mode = mode
        self._signatures = _method_signatures(capability)
        self._expectations: list[Expectation] = []
        self._calls: list[ObservedCall] = []
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self.proxy = _build_proxy(self)

    # --------------------------------------------------------------------- #
    # Declaring
    # --------------------------------------------------------------------- #

    def expect(
        self, method: str, *args: Any, times: CallCount = once, **kwargs: Any
    ) -> Expectation:
        """Append an expectation for *method*.

        Arguments are bound against the real method's signature (defaults
        applied), so positional and keyword spellings of the same call are
        equivalent. Pass `ANY_ARGS` as the only argument to accept every call;
        passing no arguments at all to a method that takes some does the same.

        Raises:
            UnknownMethodError: If the capability has no such method.
            TypeError: If the arguments do not fit the method's signature.
        """
        signature = self._signature(method)
        if (len(args) == 1 and args[0] is ANY_ARGS and not kwargs) or (
            not args and not kwargs and signature.parameters
        ):
            matchers = None
        else:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            matchers = {k: as_matcher(v) for k, v in bound.arguments.items()}
        with self._lock:
            expectation = Expectation(
                len(self._expectations), method, matchers, times, self.capability_id
            )
            self._expectations.append(expectation)
        return expectation

    # --------------------------------------------------------------------- #
    # Recording
    # --------------------------------------------------------------------- #

    def record(
        self,
        method: str,
        args: tuple[Any, ...] = (),
        kwargs: Mapping[str, Any] | None = None,
    ) -> Any:
        """Record a call and answer it.

        Raises:
            UnexpectedCallError: In strict mode, for unexpected or excess calls.
            TypeError: If the arguments do not fit the method's signature.
            Exception: Whatever the matched expectation was told to raise.
        """
        bound = self._signature(method).bind(*args, **(kwargs or {}))
        bound.apply_defaults()
        arguments = types.MappingProxyType(dict(bound.arguments))

        with self._lock:
            expectation, excess = self._match(method, arguments)
            call = ObservedCall(
                sequence=next(self._sequence),
                method=method,
                arguments=arguments,
                expectation=None if expectation is None else expectation.index,
                excess=excess,
            )
            self._calls.append(call)
            if expectation is not None:
                if excess:
                    expectation.excess += 1
                else:
                    expectation.satisfied += 1

        if expectation is None or excess:
            logger.debug(
                "%s %s call %s",
                self.mode.value,
                "excess" if excess else "unexpected",
                call.render(self.capability_id),
            )
            if self.mode is MockMode.STRICT:
                raise UnexpectedCallError(self.capability_id, method, dict(arguments))
            if expectation is None:
                return self._neutral_value(method)
        return expectation.respond(arguments)

    def _match(
        self, method: str, arguments: Mapping[str, Any]
    ) -> tuple[Expectation | None, bool]:
        candidates = [e for e in self._expectations if e.accepts(method, arguments)]
        live = [e for e in candidates if not e.discharged]
        pending = [e for e in live if not e.fulfilled]
        for group in (pending, live):
            for expectation in group:
                if expectation.exact:
                    return expectation, False
            if group:
                return group[0], False
        if candidates:
            return candidates[-1], True
        return None, False

    # --------------------------------------------------------------------- #
    # Inspection & verification
    # --------------------------------------------------------------------- #

    @property
    def expectations(self) -> list[Expectation]:
        """Declared expectations, in declaration order."""
        with self._lock:
            return list(self._expectations)

    @property
    def calls(self) -> list[ObservedCall]:
        """Observed calls, in arrival order."""
        with self._lock:
            return list(self._calls)

    def calls_to(self, method: str) -> list[ObservedCall]:
        """Observed calls to one method."""
        return [c for c in self.calls if c.method == method]

    def call_count(self, method: str) -> int:
        """Number of observed calls to one method."""
        return len(self.calls_to(method))

    def verify(self) -> list[Violation]:
        """Compare declared expectations with observed calls.

        Returns:
            One violation per unmet count constraint, per over-called
            expectation and (strict mode) per unexpected call. Empty on success.
        """
        violations: list[Violation] = []
        with self._lock:
            for e in self._expectations:
                total = e.satisfied + e.excess
                if e.excess:
                    violations.append(
                        Violation(
                            ViolationKind.EXCESS_CALLS,
                            f"expected {e.count.describe()} to {e.describe()}, got {total}",
                            capability=self.capability_id,
                            method=e.method,
                        )
                    )
                elif not e.count.is_satisfied(e.satisfied):
                    violations.append(
                        Violation(
                            ViolationKind.MISSING_CALLS,
                            f"expected {e.count.describe()} to {e.describe()}, got {total}",
                            capability=self.capability_id,
                            method=e.method,
                        )
                    )
            if self.mode is MockMode.STRICT:
                violations.extend(
                    Violation(
                        ViolationKind.UNEXPECTED_CALL,
                        f"unexpected call {c.render(self.capability_id)}",
                        capability=self.capability_id,
                        method=c.method,
                    )
                    for c in self._calls
                    if c.expectation is None
                )
        return violations

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    @property
    def methods(self) -> list[str]:
        """Names of the substituted methods."""
        return list(self._signatures)

    def _signature(self, method: str) -> inspect.Signature:
        try:
            return self._signatures[method]
        except KeyError as e:
            raise UnknownMethodError(self.capability_id, method) from e

    def _neutral_value(self, method: str) -> Any:
        func = getattr(self.capability, method)
        try:
            hint = typing.get_type_hints(func).get("return")
        except Exception:  # pylint: disable=broad-except
            return None
        factory = _NEUTRAL_FACTORIES.get(typing.get_origin(hint) or hint)
        return factory() if factory is not None else None

    def __repr__(self) -> str:
        return f"<MockHandle {self.mode.value} {self.capability_id}>"


class MockRegistry:
    """Per-execution scope of mocks.

    The lifecycle manager creates one registry per unit execution, verifies
    every handle it produced at teardown and closes it afterwards.
    """

    def __init__(self) -> None:
        self._handles: list[MockHandle] = []
        self._lock = threading.Lock()
        self._closed = False

    def create_mock(self, capability: type) -> MockHandle:
        """Substitute *capability* with a strict mock."""
        return self._register(capability, MockMode.STRICT)

    def create_spy(self, capability: type) -> MockHandle:
        """Substitute *capability* with a spy that tolerates unexpected calls."""
        return self._register(capability, MockMode.SPY)

    def expect(
        self,
        handle: MockHandle,
        method: str,
        *args: Any,
        times: CallCount = once,
        **kwargs: Any,
    ) -> Expectation:
        """Append an expectation to *handle*; see `MockHandle.expect`."""
        return handle.expect(method, *args, times=times, **kwargs)

    @staticmethod
    def record(
        handle: MockHandle,
        method: str,
        args: tuple[Any, ...] = (),
        kwargs: Mapping[str, Any] | None = None,
    ) -> Any:
        """Record a call against *handle*; see `MockHandle.record`."""
        return handle.record(method, args, kwargs)

    @staticmethod
    def verify(handle: MockHandle) -> list[Violation]:
        """Verify a single handle."""
        return handle.verify()

    def verify_all(self) -> list[Violation]:
        """Verify every handle created in this scope, in creation order."""
        return [v for handle in self.handles for v in handle.verify()]

    @property
    def handles(self) -> list[MockHandle]:
        """Handles created in this scope, in creation order."""
        with self._lock:
            return list(self._handles)

    @property
    def closed(self) -> bool:
        """True once the scope has been discarded."""
        return self._closed

    def close(self) -> None:
        """Discard the scope; further `create_*` calls raise."""
        with self._lock:
            self._closed = True

    def _register(self, capability: type, mode: MockMode) -> MockHandle:
        with self._lock:
            if self._closed:
                raise MockRegistryClosedError("This mock registry has been discarded.")
            handle = MockHandle(capability, mode)
            self._handles.append(handle)
        logger.debug("Created %s for %s", mode.value, handle.capability_id)
        return handle


# --- Proxy generation ---


def _method_signatures(capability: type) -> dict[str, inspect.Signature]:
    """Signatures (without self/cls) of every substitutable method."""
    abstract = set(getattr(capability, "__abstractmethods__", ()))
    signatures: dict[str, inspect.Signature] = {}
    for name in dir(capability):
        if name.startswith("_") and name not in abstract:
            continue
        static = inspect.getattr_static(capability, name)
        if isinstance(static, (staticmethod, classmethod)):
            signatures[name] = inspect.signature(getattr(capability, name))
        elif inspect.isfunction(static):
            signature = inspect.signature(static)
            params = list(signature.parameters.values())[1:]
            signatures[name] = signature.replace(parameters=params)
    return signatures


def _make_stub(handle: MockHandle, name: str) -> Callable[..., Any]:
    def stub(self, *args: Any, **kwargs: Any) -> Any:  # pylint: disable=unused-argument
        return handle.record(name, args, kwargs)

    stub.__name__ = name
    stub.__qualname__ = f"{handle.capability.__qualname__}.{name}"
    return stub


def _build_proxy(handle: MockHandle) -> Any:
    """Generate and instantiate a subclass of the capability routed to *handle*."""
    namespace: dict[str, Any] = {name: _make_stub(handle, name) for name in handle.methods}
    # abstract non-method members (e.g. properties) would block instantiation
    for name in getattr(handle.capability, "__abstractmethods__", ()):
        namespace.setdefault(name, None)
    namespace["__repr__"] = lambda self: f"<{handle.mode.value} {handle.capability_id}>"
    cls = types.new_class(
        f"Mock{handle.capability.__name__}",
        (handle.capability,),
        exec_body=lambda ns: ns.update(namespace),
    )
    # the capability's own __init__ is skipped on purpose: a substitute has no state
    return object.__new__(cls)
