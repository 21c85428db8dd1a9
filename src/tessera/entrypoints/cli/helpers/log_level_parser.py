"""Parse ``-L NAME=LEVEL`` logger-level options.

Values arrive either as repeated options or as one comma/space-separated
string (from ``TESSERA_LOGGER_LEVELS``). `parse_levels` turns them into a
``{logger_name: numeric_level}`` mapping on top of `DEFAULT_LIB_LEVELS`;
`parse_log_level` wraps it as a Click callback.
"""

import logging
import re
from collections.abc import Iterable

import click

# Chatty libraries stay at WARNING unless overridden.
DEFAULT_LIB_LEVELS = {"sqlalchemy": logging.WARNING, "alembic": logging.WARNING}

_SEPARATORS = re.compile(r"[,\s]+")


def split_items(value: str | Iterable[str]) -> list[str]:
    """Flatten *value* into non-empty ``NAME=LEVEL`` fragments.

    >>> split_items(("sqlalchemy=INFO", "alembic=DEBUG, tessera=INFO"))
    ['sqlalchemy=INFO', 'alembic=DEBUG', 'tessera=INFO']
    """
    chunks = [value] if isinstance(value, str) else list(value)
    return [item for chunk in chunks for item in _SEPARATORS.split(chunk) if item]


def parse_levels(value: str | Iterable[str]) -> dict[str, int]:
    """Return DEFAULT_LIB_LEVELS updated with the overrides in *value*.

    Raises:
        ValueError: If an item is not ``NAME=LEVEL`` or LEVEL is not a
            standard logging level name.
    """
    levels = dict(DEFAULT_LIB_LEVELS)
    for item in split_items(value):
        name, sep, level_name = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected NAME=LEVEL, got {item!r}")
        level = logging.getLevelNamesMapping().get(level_name.strip().upper())
        if level is None:
            raise ValueError(f"Invalid log level: {level_name}")
        levels[name.strip()] = level
    return levels


def parse_log_level(
    ctx: click.Context,  # pylint: disable=unused-argument
    param: click.Parameter | None,  # pylint: disable=unused-argument
    value: str | Iterable[str],
) -> dict[str, int]:
    """Click callback for ``-L/--logger-level``.

    Raises:
        click.BadParameter: If any item is malformed.
    """
    try:
        return parse_levels(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
