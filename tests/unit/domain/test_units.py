"""Unit tests for test unit declarations and the run context."""

import dataclasses

import pytest

from tessera.config import RunConfig
from tessera.domain.errors import UnitDefinitionError
from tessera.domain.units import Isolation, RunContext, TestUnit

# pylint: disable=magic-value-comparison


def _body(ctx):  # pylint: disable=unused-argument
    return None


def test_defaults_to_stateful_isolation():
    """A unit without an isolation declaration gets its own working view."""
    unit = TestUnit("creates_user", _body)
    assert unit.isolation is Isolation.STATEFUL
    assert unit.is_stateful


def test_isolation_accepts_plain_string():
    """Isolation may be given by value and is normalized to the enum."""
    unit = TestUnit("reads_only", _body, isolation="none")
    assert unit.isolation is Isolation.NONE
    assert not unit.is_stateful


def test_unknown_isolation_rejected():
    """An unknown isolation value is a definition error."""
    with pytest.raises(UnitDefinitionError, match="unknown isolation"):
        TestUnit("weird", _body, isolation="shared")


@pytest.mark.parametrize("name", ["", "   ", None])
def test_blank_name_rejected(name):
    """Units must carry a non-empty name."""
    with pytest.raises(UnitDefinitionError):
        TestUnit(name, _body)


def test_non_callable_body_rejected():
    """The body must be callable."""
    with pytest.raises(UnitDefinitionError, match="not callable"):
        TestUnit("broken", body="not a function")


@pytest.mark.parametrize("hook", ["setup", "teardown"])
def test_non_callable_hook_rejected(hook):
    """Setup and teardown hooks, when given, must be callable."""
    with pytest.raises(UnitDefinitionError, match=hook.capitalize()):
        TestUnit("broken", _body, **{hook: 42})


def test_units_are_immutable():
    """Declared units cannot be modified."""
    unit = TestUnit("frozen", _body)
    with pytest.raises(dataclasses.FrozenInstanceError):
        unit.name = "thawed"  # type: ignore[misc]


def test_qualified_name_includes_suite():
    """The qualified name is `suite::name` when a suite label is set."""
    assert TestUnit("a", _body).qualified_name == "a"
    assert TestUnit("a", _body, suite="posts").qualified_name == "posts::a"


def test_run_context_settings_are_read_only():
    """Settings handed to hooks cannot be mutated through the context."""
    source = {"hash_rounds": 4}
    context = RunContext(run_id="r1", config=RunConfig(), settings=source)
    source["hash_rounds"] = 99
    assert context.settings["hash_rounds"] == 4
    with pytest.raises(TypeError):
        context.settings["hash_rounds"] = 1  # type: ignore[index]
