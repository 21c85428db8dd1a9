"""End-to-end tests.

Purpose
- Drive the ``tessera`` command line the way a user would and assert on exit
  codes, printed reports and log files.

Guidelines
- Invoke through ``click.testing.CliRunner`` inside an isolated filesystem.
- Point ``--log-path`` into the isolated filesystem (or disable the flight
  recorder) so runs never write to the user's log directory.
"""
