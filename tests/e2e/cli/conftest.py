"""Fixtures for end-to-end CLI tests.

Tests invoke `tessera` through Click's runner inside an isolated filesystem,
so relative paths such as ``--log-path flight.log`` land in a scratch
directory. ``log-demo`` is a throwaway subcommand that logs one record per
level, which lets logging options be checked without building a baseline.
"""

import logging

import click
import pytest
from click.testing import CliRunner

from tessera.entrypoints.cli.main import tessera

# pylint: disable=redefined-outer-name

DEMO_COMMAND = "log-demo"


@click.command(DEMO_COMMAND)
def log_demo():
    """Log every level on a project logger, then two records from a library."""
    demo = logging.getLogger("tessera.demo")
    for level in ("debug", "info", "warning", "error", "critical"):
        getattr(demo, level)("demo %s record", level)
    vendor = logging.getLogger("vendor.driver")
    vendor.debug("vendor debug record")
    vendor.info("vendor info record")
    demo.debug("demo trailing debug record")


def _unregister(group: click.Group, name: str) -> None:
    group.commands.pop(name, None)
    # click-extra groups also list commands per help section
    sections = [getattr(group, "_default_section", None), *getattr(group, "_sections", [])]
    for section in filter(None, sections):
        getattr(section, "commands", {}).pop(name, None)


@pytest.fixture
def registered_log_demo():
    """Make ``tessera log-demo`` available for one test."""
    tessera.add_command(log_demo)
    yield DEMO_COMMAND
    _unregister(tessera, DEMO_COMMAND)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fs(runner):
    """Run the test inside ``runner.isolated_filesystem()``."""
    with runner.isolated_filesystem():
        yield
