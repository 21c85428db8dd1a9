"""End-to-end tests for ``tessera run`` against the sample app suites."""

import pytest

from tessera.entrypoints.cli.main import tessera

# pylint: disable=unused-argument

SUITES = "tests.sample_app.suites"


def invoke_run(runner, *args, env=None):
    """Invoke ``tessera --no-color --no-flight-recorder run ...``."""
    return runner.invoke(tessera, ["--no-color", "--no-flight-recorder", "run", *args], env=env)


def test_sample_suite_passes(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite")

    assert result.exit_code == 0, result.output
    for name in (
        "create_post_with_permission",
        "create_post_without_permission",
        "baseline_has_two_users",
    ):
        assert f"PASSED   {name}" in result.stdout
    assert "3 passed" in result.stderr


def test_failing_suite_exits_with_one(runner, fs):
    result = invoke_run(runner, f"{SUITES}:failing_suite")

    assert result.exit_code == 1
    assert "FAILED   always_fails" in result.stdout
    assert "boom" in result.stdout
    assert "PASSED   after_failure" in result.stdout
    assert "1 passed, 1 failed" in result.stderr


def test_stop_on_failure_skips_remaining_units(runner, fs):
    result = invoke_run(runner, f"{SUITES}:failing_suite", "-x")

    assert result.exit_code == 1
    assert "always_fails" in result.stdout
    assert "after_failure" not in result.stdout


def test_stop_on_failure_from_env(runner, fs):
    result = invoke_run(
        runner, f"{SUITES}:failing_suite", env={"TESSERA_STOP_ON_FAILURE": "1"}
    )

    assert result.exit_code == 1
    assert "after_failure" not in result.stdout


def test_broken_baseline_is_fatal(runner, fs):
    result = invoke_run(runner, f"{SUITES}:broken_suite")

    assert result.exit_code == 2
    assert "never_runs" not in result.stdout
    assert "run aborted" in result.stderr
    assert "suite broken" in result.stderr


@pytest.mark.parametrize(
    "target, fragment",
    [
        (f"{SUITES}:not_a_suite", "not_a_suite"),
        (f"{SUITES}:missing", "has no attribute"),
        ("tests.sample_app.nowhere:suite", "Cannot import"),
        ("no-colon-here", "Expected MODULE:ATTRIBUTE"),
    ],
)
def test_bad_target_is_a_usage_error(runner, fs, target, fragment):
    result = invoke_run(runner, target)

    assert result.exit_code == 1
    assert "Error:" in result.stderr
    assert fragment in result.stderr
    assert result.stdout == ""


def test_filter_selects_units(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite", "-k", "without")

    assert result.exit_code == 0, result.output
    assert "create_post_without_permission" in result.stdout
    assert "create_post_with_permission " not in result.stdout
    assert "baseline_has_two_users" not in result.stdout
    assert "1 passed" in result.stderr


def test_qualified_filter_from_env(runner, fs):
    result = invoke_run(
        runner, f"{SUITES}:suite", env={"TESSERA_FILTER": "posts::baseline_*"}
    )

    assert result.exit_code == 0, result.output
    assert "baseline_has_two_users" in result.stdout
    assert "create_post" not in result.stdout


def test_filter_matching_nothing(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite", "-k", "zzz")

    assert result.exit_code == 0
    assert result.stdout == ""
    assert "no units run" in result.stderr


def test_parallel_workers_report_in_declaration_order(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite", "-n", "2")

    assert result.exit_code == 0, result.output
    lines = [line.split()[1] for line in result.stdout.splitlines() if line.strip()]
    assert lines == [
        "create_post_with_permission",
        "create_post_without_permission",
        "baseline_has_two_users",
    ]


def test_invalid_worker_count(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite", "-n", "0")

    assert result.exit_code == 2
    assert "Invalid value" in result.stderr


def test_memory_sqlite_url_is_rejected(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite", "--db-url", "sqlite:///:memory:")

    assert result.exit_code == 1
    assert "Error:" in result.stderr
    assert "In-memory SQLite" in result.stderr


def test_explicit_sqlite_file_url(runner, fs):
    result = invoke_run(runner, f"{SUITES}:suite", "--db-url", "sqlite:///baseline.db")

    assert result.exit_code == 0, result.output
    assert "3 passed" in result.stderr


def test_plain_unit_list_target(runner, fs):
    result = invoke_run(runner, f"{SUITES}:smoke")

    assert result.exit_code == 0, result.output
    assert "PASSED   smoke" in result.stdout


def test_failure_flushes_flight_recorder(runner, fs):
    result = runner.invoke(
        tessera, ["--no-color", "--log-path", "run.log", "run", f"{SUITES}:failing_suite"]
    )

    assert result.exit_code == 1
    with open("run.log", encoding="utf-8") as f:
        content = f.read()
    assert "always_fails" in content
