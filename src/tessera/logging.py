"""Logging helpers used by the TESSERA CLI and runner.

Console output goes through Rich on stderr, so stdout stays reserved for the
per-unit report. An optional in-memory "flight recorder" buffers DEBUG-level
records and writes them to disk when a warning is logged. The lifecycle
manager logs every failed or errored unit at WARNING, so a failing run leaves
the activity leading up to the failure in the recorder's file.
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from logging.handlers import MemoryHandler
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TypeAlias

import alembic
import sqlalchemy
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator
    from logging import Logger

# pylint: disable=too-few-public-methods

PROJECT_PREFIX = "tessera"
WORKER_THREAD_PREFIX = "tessera-worker_"

CONSOLE_FORMAT = "%(prefix)s %(message)s"
DEBUG_CONSOLE_FORMAT = "%(asctime)s [%(worker)s] %(name)s: %(message)s"
FLIGHT_RECORDER_FORMAT = (
    "[%(asctime)s] [%(process)d:%(threadName)s] "
    "%(levelname)s %(name)s:%(lineno)d: %(message)s"
)

ColorSystem: TypeAlias = Literal["auto", "standard", "256", "truecolor", "windows"]


class ThirdPartyPrefixFilter(logging.Filter):
    """Set ``record.prefix`` to ``[package]`` for loggers outside the project.

    Project records get an empty prefix. Nothing is ever filtered out.
    """

    def __init__(self, project: str = PROJECT_PREFIX) -> None:
        super().__init__()
        self.project = project

    def filter(self, record: logging.LogRecord) -> bool:
        top = record.name.partition(".")[0]
        record.prefix = "" if top == self.project else f"[{top}]"
        return True


class WorkerThreadFilter(logging.Filter):
    """Expose the short worker name (``w0``, ``w1``...) as ``record.worker``.

    Parallel runs execute units on ``tessera-worker_N`` threads; any other
    thread is shown as ``main``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.threadName or ""
        if name.startswith(WORKER_THREAD_PREFIX):
            record.worker = "w" + name[len(WORKER_THREAD_PREFIX) :]
        else:
            record.worker = "main"
        return True


def config_console_handler(
    level: int = logging.INFO, debug_mode: bool = False, color: bool = True
) -> RichHandler:
    """Build the Rich console handler.

    In debug mode the handler drops to DEBUG and shows timestamps, source
    locations and the emitting worker. Otherwise third-party records get a
    short prefix so they stand out from the runner's own messages.

    Args:
        level: Minimum level for console output (ignored in debug mode).
        debug_mode: Enable debug formatting.
        color: False disables color, matching click-extra's ``--no-color``.
    """
    color_system: ColorSystem | None = "auto" if color else None
    handler = RichHandler(
        level=logging.DEBUG if debug_mode else level,
        console=Console(color_system=color_system, stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_path=debug_mode,
        enable_link_path=debug_mode,
    )
    if debug_mode:
        handler.setFormatter(logging.Formatter(DEBUG_CONSOLE_FORMAT))
        handler.addFilter(WorkerThreadFilter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        handler.addFilter(ThirdPartyPrefixFilter())
    return handler


def config_flight_recorder(
    path: Path,
    capacity: int = 2000,
    flush_level: int = logging.WARNING,
    flush_on_close: bool = False,
) -> MemoryHandler:
    """Build the flight recorder: a `MemoryHandler` in front of a log file.

    Up to *capacity* records are kept in memory and written to *path* when a
    record at *flush_level* or above arrives, or on close if
    *flush_on_close* is set. The file (and its directory) is created
    immediately and truncated.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    target = logging.FileHandler(path, mode="w", encoding="utf-8")
    target.setLevel(logging.DEBUG)
    target.setFormatter(logging.Formatter(FLIGHT_RECORDER_FORMAT))
    return MemoryHandler(
        capacity=capacity,
        flushLevel=flush_level,
        target=target,
        flushOnClose=flush_on_close,
    )


def _environment(handlers: list[logging.Handler]) -> Iterator[tuple[str, object]]:
    yield "Python", sys.version.split()[0]
    yield "Platform", f"{platform.system()} {platform.release()}"
    yield "PID", os.getpid()
    yield "CWD", Path.cwd()
    yield "Alembic", alembic.__version__
    yield "SQLAlchemy", sqlalchemy.__version__
    yield "Handlers", [type(h).__name__ for h in handlers]


def log_startup(  # pylint: disable=too-many-arguments
    logger: Logger,
    *,
    app_version: str,
    level: int,
    handlers: list[logging.Handler],
    log_path: Path | None,
    flight_recorder: bool,
    flight_capacity: int | None,
    force_flush_fr: bool,
    logger_levels: dict[str, int],
) -> None:
    """Log a one-line banner at INFO, then environment details at DEBUG."""
    logger.info(
        "TESSERA %s: console=%s, flight-recorder=%s",
        app_version,
        logging.getLevelName(level),
        "ON" if flight_recorder else "OFF",
    )
    for label, value in _environment(handlers):
        logger.debug("%s: %s", label, value)

    if flight_recorder:
        logger.debug(
            "Flight recorder: path=%s, capacity=%s, flush_on_close=%s",
            log_path if log_path else "<none>",
            flight_capacity,
            force_flush_fr,
        )
    overrides = {name: logging.getLevelName(lvl) for name, lvl in logger_levels.items()}
    logger.debug("Per-logger overrides: %s", overrides or "<none>")
