"""TESSERA test suite.

Folder taxonomy
- unit/         : Isolated, fast checks of a single module/class/function.
- integration/  : Real databases: SQLite files and, when Docker is up, Postgres.
- contract/     : Port behavior enforced across every snapshot store backend.
- e2e/          : The ``tessera`` command line, invoked through Click's runner.
- fixtures/     : Shared pytest fixtures (registered as plugins in conftest).
- sample_app/   : A tiny application (schema, migrations, services, suites)
                  the tests run TESSERA against. No tests here.

General guidance
- Keep unit fast and deterministic; the in-memory store stands in for a database.
- Integration hits real databases with realistic setup/teardown.
- Contract parametrizes backends to keep them interchangeable.
- Postgres tests are skipped automatically when Docker is unavailable.
"""
