"""Global pytest configuration for TESSERA.

Shared fixtures live in ``tests/fixtures`` and are registered here so every
test directory can use them without importing. Tests are marked after the
top-level directory they live in (``unit``, ``integration``, ``contract``,
``e2e``) unless they carry that mark already.
"""

from pathlib import Path

import pytest

# pylint: disable=unused-argument

pytest_plugins = [
    "tests.fixtures.sqlite",
    "tests.fixtures.postgres",
    "tests.fixtures.sample_app",
]

TESTS_ROOT = Path(__file__).parent.resolve()
DIRECTORY_MARKERS = ("unit", "integration", "contract", "e2e")


def _layer_of(path: Path) -> str | None:
    try:
        top = path.resolve().relative_to(TESTS_ROOT).parts[0]
    except (ValueError, IndexError):
        return None
    return top if top in DIRECTORY_MARKERS else None


@pytest.hookimpl(tryfirst=True)
def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Mark every item with the layer its directory belongs to."""
    for item in items:
        layer = _layer_of(item.path)
        if layer and item.get_closest_marker(layer) is None:
            item.add_marker(getattr(pytest.mark, layer))
