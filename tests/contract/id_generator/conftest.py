"""Fixtures for IdGenerator contract tests."""

from collections.abc import Callable

import pytest

from tessera.adapters.id_generators import SimpleIdGenerator, ULIDGenerator
from tessera.interfaces.id_generator import IdGenerator

GENERATORS: dict[str, Callable[[], IdGenerator]] = {
    "ulid": ULIDGenerator,
    "simple": lambda: SimpleIdGenerator("view-"),
}

# Generators whose ids sort in generation order.
ORDERED = ("ulid", "simple")


@pytest.fixture(params=sorted(GENERATORS))
def id_generator(request: pytest.FixtureRequest) -> IdGenerator:
    """A fresh generator of every kind the runner and stores accept."""
    return GENERATORS[request.param]()


@pytest.fixture(params=ORDERED)
def ordered_id_generator(request: pytest.FixtureRequest) -> IdGenerator:
    """A fresh generator whose ids sort in the order they were produced."""
    return GENERATORS[request.param]()
