"""Unit tests for the mock registry and its generated substitutes."""

from __future__ import annotations

import abc
import threading
from typing import Protocol

import pytest

from tessera.domain.errors import (
    MockRegistryClosedError,
    UnexpectedCallError,
    UnknownMethodError,
)
from tessera.domain.outcomes import ViolationKind
from tessera.service_layer.matchers import ANY, ANY_ARGS, at_least, exactly, where
from tessera.service_layer.mocks import MockMode, MockRegistry
from tests.sample_app.services import Notifier

# pylint: disable=magic-value-comparison
# pylint: disable=redefined-outer-name
# pylint: disable=missing-function-docstring


class Clock(Protocol):
    """A protocol capability."""

    def now(self) -> float: ...


class Mailer(abc.ABC):
    """A capability with defaults, a property and a static method."""

    @abc.abstractmethod
    def send(self, to: str, subject: str, body: str = "") -> bool: ...

    @property
    @abc.abstractmethod
    def sender(self) -> str: ...

    @staticmethod
    def normalize(address: str) -> str:
        return address.lower()

    def send_many(self, recipients: list[str]) -> int:
        return sum(self.send(r, "hi") for r in recipients)


@pytest.fixture
def registry() -> MockRegistry:
    """A fresh registry scope."""
    return MockRegistry()


def _kinds(violations):
    return [v.kind for v in violations]


# --- substitutes ----------------------------------------------------------------


def test_proxy_conforms_to_capability(registry):
    """Generated substitutes are instances of the capability."""
    handle = registry.create_mock(Notifier)
    assert isinstance(handle.proxy, Notifier)
    assert sorted(handle.methods) == ["notify", "recipients"]
    assert "Notifier" in repr(handle.proxy)


def test_protocol_and_abstract_property_capabilities(registry):
    """Protocols and ABCs with abstract properties can be substituted."""
    clock = registry.create_mock(Clock)
    clock.expect("now").returns(12.5)
    assert clock.proxy.now() == 12.5

    mailer = registry.create_spy(Mailer)
    assert isinstance(mailer.proxy, Mailer)
    assert {"send", "send_many", "normalize"} <= set(mailer.methods)


def test_capability_must_be_a_class(registry):
    """Substituting a non-class is a programming error."""
    with pytest.raises(TypeError):
        registry.create_mock("Notifier")  # type: ignore[arg-type]


def test_wrong_arity_raises_type_error(registry):
    """Calls the real method would reject are rejected by the substitute."""
    handle = registry.create_spy(Notifier)
    with pytest.raises(TypeError):
        handle.proxy.notify(1)
    with pytest.raises(TypeError):
        handle.proxy.notify(1, "m", "extra")
    assert handle.calls == []


def test_expect_unknown_method(registry):
    """Expectations on methods the capability lacks are rejected."""
    handle = registry.create_mock(Notifier)
    with pytest.raises(UnknownMethodError):
        handle.expect("shout", 1)


# --- matching -------------------------------------------------------------------


def test_positional_and_keyword_spellings_match(registry):
    """Arguments are bound to the signature, so spelling does not matter."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", user_id=1, message="hi").returns(True)
    assert handle.proxy.notify(1, "hi") is True
    assert handle.verify() == []


def test_defaults_are_applied_when_matching(registry):
    """Omitted defaulted parameters match their default value."""
    handle = registry.create_mock(Mailer)
    handle.expect("send", "a@x", "s", "").returns(True)
    assert handle.proxy.send(to="a@x", subject="s") is True


def test_sequential_responses(registry):
    """Two exactly-once expectations answer successive calls in order."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", 1, ANY).returns("A")
    handle.expect("notify", 1, ANY).returns("B")
    assert handle.proxy.notify(1, "x") == "A"
    assert handle.proxy.notify(1, "y") == "B"
    assert handle.verify() == []


def test_exact_expectation_wins_over_earlier_wildcard(registry):
    """Among live candidates an exact expectation beats a wildcard."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", 1, ANY).returns("wild")
    handle.expect("notify", 1, "exact").returns("exact")
    assert handle.proxy.notify(1, "exact") == "exact"
    assert handle.proxy.notify(1, "other") == "wild"
    assert handle.verify() == []


def test_satisfied_at_least_yields_to_later_expectation(registry):
    """A satisfied `at_least` only takes calls nothing unsatisfied accepts."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", 1, ANY, times=at_least(1)).returns("A")
    handle.expect("notify", 1, ANY).returns("B")
    answers = [handle.proxy.notify(1, "x") for _ in range(3)]
    assert answers == ["A", "B", "A"]
    assert handle.verify() == []


def test_any_args_and_bare_expect(registry):
    """ANY_ARGS, or no arguments for a method taking some, accept every call."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", ANY_ARGS, times=exactly(2)).returns(True)
    handle.proxy.notify(1, "a")
    handle.proxy.notify(2, message="b")
    assert handle.verify() == []

    bare = registry.create_mock(Notifier)
    bare.expect("notify").returns(False)
    assert bare.proxy.notify(9, "z") is False


def test_predicate_matchers(registry):
    """`where` expectations accept calls satisfying the predicate."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", where(lambda uid: uid > 10), ANY, times=at_least(1))
    handle.proxy.notify(11, "x")
    with pytest.raises(UnexpectedCallError):
        handle.proxy.notify(3, "x")


def test_responses_raises_and_answers(registry):
    """Expectations can raise or compute their answer from the arguments."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", 1, ANY).raises(ConnectionError("down"))
    handle.expect("notify", 2, ANY).answers(lambda user_id, message: len(message))
    with pytest.raises(ConnectionError):
        handle.proxy.notify(1, "x")
    assert handle.proxy.notify(2, "four") == 4


# --- strict vs spy ----------------------------------------------------------------


def test_strict_mock_raises_on_unexpected_call(registry):
    """Strict mocks refuse calls matching no expectation."""
    handle = registry.create_mock(Notifier)
    with pytest.raises(UnexpectedCallError) as excinfo:
        handle.proxy.notify(2, "hello")
    assert str(excinfo.value) == "Unexpected call Notifier.notify(user_id=2, message='hello')"
    assert _kinds(handle.verify()) == [ViolationKind.UNEXPECTED_CALL]


def test_spy_returns_neutral_values(registry):
    """Spies answer unexpected calls with a neutral value of the return type."""
    handle = registry.create_spy(Notifier)
    assert handle.proxy.notify(1, "x") is False
    assert handle.proxy.recipients() == []
    assert handle.call_count("notify") == 1
    assert handle.verify() == []


def test_excess_calls_strict(registry):
    """A call matching only discharged expectations is excess."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", 1, "m").returns(True)
    handle.proxy.notify(1, "m")
    with pytest.raises(UnexpectedCallError):
        handle.proxy.notify(1, "m")
    violations = handle.verify()
    assert _kinds(violations) == [ViolationKind.EXCESS_CALLS]
    assert "got 2" in violations[0].message


def test_excess_calls_spy_reuse_last_response(registry):
    """Spies answer excess calls with the last matching expectation's response."""
    handle = registry.create_spy(Notifier)
    handle.expect("notify", 1, ANY).returns("first")
    handle.expect("notify", 1, ANY).returns("second")
    answers = [handle.proxy.notify(1, str(i)) for i in range(3)]
    assert answers == ["first", "second", "second"]
    assert _kinds(handle.verify()) == [ViolationKind.EXCESS_CALLS]


def test_missing_calls_reported(registry):
    """Undischarged expectations are reported as missing."""
    handle = registry.create_mock(Notifier)
    handle.expect("notify", 1, ANY, times=exactly(2))
    handle.proxy.notify(1, "only once")
    violations = handle.verify()
    assert _kinds(violations) == [ViolationKind.MISSING_CALLS]
    assert violations[0].capability == "Notifier"
    assert violations[0].method == "notify"
    assert "expected exactly 2 calls" in violations[0].message


def test_spy_does_not_report_unexpected_calls(registry):
    """Unexpected calls are tolerated by spies at verification too."""
    handle = registry.create_spy(Notifier)
    handle.proxy.recipients()
    assert handle.mode is MockMode.SPY
    assert handle.verify() == []


def test_calls_recorded_in_arrival_order(registry):
    """Observed calls keep their order and matched expectation index."""
    handle = registry.create_spy(Notifier)
    handle.expect("notify", 2, ANY)
    handle.proxy.recipients()
    handle.proxy.notify(2, "x")
    calls = handle.calls
    assert [c.method for c in calls] == ["recipients", "notify"]
    assert [c.sequence for c in calls] == [1, 2]
    assert not calls[0].matched
    assert calls[1].matched and calls[1].expectation == 0
    assert calls[1].arguments == {"user_id": 2, "message": "x"}


def test_concurrent_calls_are_all_recorded(registry):
    """Calls from several threads are serialized and counted exactly."""
    handle = registry.create_spy(Notifier)
    handle.expect("notify", ANY_ARGS, times=exactly(400))
    barrier = threading.Barrier(8)

    def worker(n: int) -> None:
        barrier.wait()
        for i in range(50):
            handle.proxy.notify(n, str(i))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert handle.call_count("notify") == 400
    assert handle.verify() == []


# --- registry scope -----------------------------------------------------------------


def test_verify_all_in_creation_order(registry):
    """verify_all aggregates handle violations in creation order."""
    first = registry.create_mock(Notifier)
    first.expect("recipients")
    second = registry.create_mock(Clock)
    second.expect("now")
    violations = registry.verify_all()
    assert [v.capability for v in violations] == ["Notifier", "Clock"]
    assert registry.handles == [first, second]


def test_registry_helpers_delegate_to_handles(registry):
    """The registry-level expect/record/verify operations act on the handle."""
    handle = registry.create_mock(Notifier)
    registry.expect(handle, "notify", 1, "m").returns(True)
    assert MockRegistry.record(handle, "notify", (1, "m")) is True
    assert MockRegistry.verify(handle) == []


def test_closed_registry_refuses_new_mocks(registry):
    """A discarded scope cannot hand out substitutes."""
    registry.close()
    assert registry.closed
    with pytest.raises(MockRegistryClosedError):
        registry.create_mock(Notifier)
