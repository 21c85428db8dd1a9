"""Test unit declarations and the per-run context handed to every hook."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .errors import UnitDefinitionError

if TYPE_CHECKING:
    from tessera.config import RunConfig

# pylint: disable=too-few-public-methods

Hook = Callable[[Any], Any]


class Isolation(str, Enum):
    """Declared data-isolation requirement of a test unit.

    Attributes:
        NONE: The unit does not touch mutable state; it runs against the
            read-only reference view and pays no acquire/release cost.
        STATEFUL: The unit gets its own disposable working view.
    """

    NONE = "none"
    STATEFUL = "stateful"


@dataclass(frozen=True, slots=True)
class TestUnit:
    """One registered test: a body plus optional setup/teardown hooks.

    Hooks and the body are called with a single `ExecutionContext` argument.
    Instances are immutable once created.
    """

    __test__ = False  # keep pytest from collecting this class

    name: str
    body: Hook
    setup: Hook | None = None
    teardown: Hook | None = None
    isolation: Isolation = Isolation.STATEFUL
    suite: str = ""
    skip: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise UnitDefinitionError("Test unit name must be a non-empty string.")
        if not callable(self.body):
            raise UnitDefinitionError(f"Body of unit '{self.name}' is not callable.")
        for hook_name in ("setup", "teardown"):
            hook = getattr(self, hook_name)
            if hook is not None and not callable(hook):
                raise UnitDefinitionError(
                    f"{hook_name.capitalize()} hook of unit '{self.name}' is not callable."
                )
        try:
            object.__setattr__(self, "isolation", Isolation(self.isolation))
        except ValueError as e:
            raise UnitDefinitionError(
                f"Unit '{self.name}' declares unknown isolation {self.isolation!r}."
            ) from e

    @property
    def qualified_name(self) -> str:
        """`<suite>::<name>`, or just the name when the unit has no suite."""
        return f"{self.suite}::{self.name}" if self.suite else self.name

    @property
    def is_stateful(self) -> bool:
        """True if the unit needs its own working view."""
        return self.isolation is Isolation.STATEFUL


@dataclass(frozen=True)
class RunContext:
    """Explicit per-run state passed to migrations, seeders and hooks.

    Replaces process-wide application globals: anything a hook needs that is
    shared across the whole run (hashing parameters, feature flags, ...) goes
    in `settings`.
    """

    run_id: str
    config: RunConfig
    settings: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))
