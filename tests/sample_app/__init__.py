"""A small blogging application used as the system under test.

Users, per-user permissions and posts in a SQL schema managed by Alembic,
plus a `Notifier` capability the services call out to. Suites in
`tests.sample_app.suites` exercise it through the TESSERA runner.
"""
