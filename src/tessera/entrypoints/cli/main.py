"""TESSERA CLI entry point.

Defines the top-level ``tessera`` command (via Click-Extra), which configures
console logging and the flight recorder, and the ``run`` subcommand.

Commands
- ``tessera run TARGET``: load the suites named by ``module:attribute``, run
  them, print one line per unit plus a summary, and exit with the run's exit
  code (0 ok, 1 failures, 2 fatal baseline error, 3 cancelled).

Notes
- The CLI version is sourced from `tessera.__version__` and displayed
  automatically by Click-Extra (``--version``).
- Ctrl-C during a run stops dispatching new units; units in flight finish
  and the partial report is printed. A second Ctrl-C aborts immediately.

Examples
    $ tessera run tests.suites:suite
    $ tessera -v run myapp.checks:build_suites -n 4 -x
    $ tessera run myapp.checks:suite -k "posts::*"
"""

import logging
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import click
import click_extra as clickx
from platformdirs import user_log_dir
from sqlalchemy.exc import ArgumentError

from tessera import __version__, config
from tessera.bootstrap import UnsupportedBaselineUrlError, bootstrap
from tessera.domain.errors import TesseraError
from tessera.domain.outcomes import Errored, Skipped, Status
from tessera.logging import config_console_handler, config_flight_recorder, log_startup

from .helpers import error, sanitize_url, success, warn
from .helpers.log_level_parser import parse_log_level

if TYPE_CHECKING:
    from collections.abc import Iterator
    from logging import Handler

    from tessera.domain.outcomes import UnitResult
    from tessera.service_layer.report import RunReport

logger = logging.getLogger(__name__)


HELP = """TESSERA command-line interface.

    TESSERA runs isolated test units against a shared, migrated and seeded
    database baseline. Every unit gets its own rolled-back view of the
    baseline, so units can run in parallel without seeing each other's writes.
    """

STATUS_STYLES = {
    Status.PASSED: {"fg": "green"},
    Status.FAILED: {"fg": "red", "bold": True},
    Status.ERRORED: {"fg": "magenta", "bold": True},
    Status.SKIPPED: {"fg": "yellow"},
}


@clickx.extra_group(
    version=__version__,
    help=HELP,
    params=[
        clickx.ColorOption(show_envvar=True),
        clickx.TimerOption(show_envvar=True),
        clickx.ExtraVersionOption(),
    ],
)
@click.option(
    "--verbose",
    "-v",
    "verbose_count",
    count=True,
    help="Show one more level of console logging per repetition (-v INFO, -vv DEBUG).",
)
@click.option(
    "--quiet",
    "-q",
    "quiet_count",
    count=True,
    help="Show one less level of console logging per repetition (-q ERROR, -qq CRITICAL).",
)
@click.option(
    "--debug/--no-debug",
    is_flag=True,
    help="Enable debug mode (timestamps, source paths and worker names in logs).",
    default=False,
)
@click.option(
    "--log-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to log file (overrides default flight recorder path).",
    default=Path(user_log_dir("tessera", appauthor=False)) / "latest.log",
    envvar="TESSERA_LOG_PATH",
    show_default=True,
    show_envvar=True,
)
@click.option(
    "--flight-recorder-capacity",
    type=int,
    default=2000,
    hidden=True,
    envvar="TESSERA_FLIGHT_RECORDER_CAPACITY",
    show_envvar=True,
    help="Capacity of the flight recorder (in number of log records).",
)
@click.option(
    "--flight-recorder/--no-flight-recorder",
    "flight_recorder",
    is_flag=True,
    help=(
        "Enable the in-memory flight recorder. Keeps the last N log records "
        "(tunable via TESSERA_FLIGHT_RECORDER_CAPACITY) at DEBUG granularity "
        "and writes them to --log-path when a WARNING/ERROR occurs, e.g. when "
        "a unit fails, or on clean exit if --force-flush is set."
    ),
    default=True,
    show_envvar=True,
)
@click.option(
    "--force-flush/--no-force-flush",
    "force_flush_flight_recorder",
    is_flag=True,
    help="Force-flush the flight recorder buffer to --log-path on program exit.",
    default=False,
    show_default=True,
    show_envvar=True,
)
@click.option(
    "-L",
    "--logger-level",
    "logger_levels",
    multiple=True,
    callback=parse_log_level,
    envvar="TESSERA_LOGGER_LEVELS",
    help=(
        "Set MINIMUM LEVEL for specific LOGGERS (NAME=LEVEL). Applies to both "
        "console and flight recorder. Repeatable (e.g. -L sqlalchemy.engine=INFO) "
        "or via TESSERA_LOGGER_LEVELS (comma/space list)."
    ),
    default=("sqlalchemy=WARNING", "alembic=WARNING"),
    show_default=True,
    show_envvar=True,
)
@clickx.pass_context
def tessera(  # pylint: disable=too-many-arguments, too-many-positional-arguments
    ctx: click.Context,
    verbose_count: int,
    quiet_count: int,
    debug: bool,
    log_path: Path,
    flight_recorder_capacity: int,
    flight_recorder: bool,
    force_flush_flight_recorder: bool,
    logger_levels: dict[str, int],
) -> None:
    """TESSERA command-line interface."""
    level = console_level(verbose_count, quiet_count)
    handlers: list[Handler] = [
        config_console_handler(level=level, debug_mode=debug, color=ctx.color is not False)
    ]
    if flight_recorder:
        handlers.append(
            config_flight_recorder(
                path=log_path,
                capacity=flight_recorder_capacity,
                flush_on_close=force_flush_flight_recorder,
            )
        )

    # the root logger passes everything; each handler applies its own level
    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)
    for name, lvl in logger_levels.items():
        logging.getLogger(name).setLevel(lvl)

    log_startup(
        logger,
        app_version=__version__,
        level=level,
        handlers=handlers,
        log_path=log_path,
        flight_recorder=flight_recorder,
        flight_capacity=flight_recorder_capacity if flight_recorder else None,
        force_flush_fr=force_flush_flight_recorder,
        logger_levels=logger_levels,
    )
    ctx.call_on_close(logging.shutdown)


def console_level(verbose_count: int, quiet_count: int) -> int:
    """WARNING, moved one level per -v/-q and clamped to DEBUG..CRITICAL."""
    steps = verbose_count - quiet_count
    return max(logging.DEBUG, min(logging.CRITICAL, logging.WARNING - 10 * steps))


@tessera.command()
@click.argument("target")
@click.option(
    "--stop-on-failure",
    "-x",
    is_flag=True,
    default=False,
    envvar=config.STOP_ON_FAILURE_ENV,
    show_envvar=True,
    help="Start no new unit after the first failed or errored one.",
)
@click.option(
    "--workers",
    "-n",
    type=click.IntRange(min=1),
    default=1,
    envvar=config.WORKERS_ENV,
    show_default=True,
    show_envvar=True,
    help="Number of units executed in parallel.",
)
@click.option(
    "--filter",
    "-k",
    "suite_filter",
    default=None,
    envvar=config.FILTER_ENV,
    show_envvar=True,
    help=(
        "Run only units whose name or SUITE::NAME matches this glob. "
        "A pattern without wildcards matches as a substring."
    ),
)
@click.option(
    "--db-url",
    default=None,
    envvar=config.DB_URL_ENV,
    show_envvar=True,
    help=(
        "Database URL for suites that bring no store of their own. "
        "Defaults to a temporary SQLite file."
    ),
)
@click.option(
    "--app-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory prepended to the import path before loading TARGET.",
)
def run(  # pylint: disable=too-many-arguments, too-many-positional-arguments
    target: str,
    stop_on_failure: bool,
    workers: int,
    suite_filter: str | None,
    db_url: str | None,
    app_dir: Path,
) -> None:
    """Run the suites named by TARGET (``module:attribute``).

    The attribute may be a Suite, a list of suites or units, or a callable
    returning one of those.
    """
    app_path = str(app_dir.resolve())
    if app_path not in sys.path:
        sys.path.insert(0, app_path)

    try:
        run_config = config.RunConfig(
            stop_on_failure=stop_on_failure,
            worker_count=workers,
            suite_filter=suite_filter,
        )
        container = bootstrap(target, db_url=db_url)
    except TesseraError as e:
        raise click.ClickException(str(e)) from e

    logger.info("Baseline database: %s", sanitize_url(db_url))
    cancel = threading.Event()
    with _cancel_on_interrupt(cancel):
        try:
            report = container.runner.run_suites(container.suites, run_config, cancel)
        except (TesseraError, UnsupportedBaselineUrlError, ArgumentError) as e:
            raise click.ClickException(str(e)) from e

    _print_report(report)
    click.get_current_context().exit(int(report.exit_code))


@contextmanager
def _cancel_on_interrupt(cancel: threading.Event) -> "Iterator[None]":
    """Turn the first SIGINT into a cancellation request."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum, frame):  # pylint: disable=unused-argument
        if cancel.is_set():
            raise KeyboardInterrupt
        warn("Cancelling: waiting for running units (Ctrl-C again to abort).")
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _print_result(result: "UnitResult") -> None:
    status = result.status
    label = click.style(f"{status.value.upper():<8}", **STATUS_STYLES[status])
    click.echo(f"{label} {result.unit_name} ({result.duration:.3f}s)")
    if status is not Status.PASSED and status is not Status.SKIPPED:
        click.echo(f"         {result.outcome}")
    elif isinstance(result.outcome, Skipped) and result.outcome.reason:
        click.echo(f"         {result.outcome.reason}")
    for violation in result.violations:
        click.echo(f"         {violation}")
    if isinstance(result.outcome, Errored) and result.outcome.detail:
        logger.debug("%s traceback:\n%s", result.unit_name, result.outcome.detail)


def _print_report(report: "RunReport") -> None:
    for result in report.results:
        _print_result(result)

    if report.fatal_error is not None:
        error(report.summary())
    elif report.failures:
        error(report.summary())
    elif report.cancelled:
        warn(report.summary())
    else:
        success(report.summary())
