"""Fixtures for snapshot store contract tests.

Every backend is driven through a small `StoreDriver` that knows how to build
the sample schema in it and how to read and write through its views, so the
contract tests themselves stay backend-agnostic.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

import pytest
from sqlalchemy import func, insert, select

from tessera.adapters.migrations import MetadataMigrationApplier
from tessera.adapters.snapshot import MemorySnapshotStore, SqlAlchemySnapshotStore
from tessera.interfaces.snapshot_store import SnapshotStore
from tests.sample_app.schema import metadata, posts, users
from tests.sample_app.seed import ALICE, migrate_memory, seed, seed_memory

# pylint: disable=redefined-outer-name


@dataclass
class StoreDriver:
    """Backend-specific glue used by the contract tests."""

    name: str
    make_store: Callable[..., SnapshotStore]
    migrations: Callable[[Any, Any], None]
    seeder: Callable[[Any, Any], None]
    add_post: Callable[[Any, str], None]
    count_posts: Callable[[Any], int]
    count_users: Callable[[Any], int]
    write_reference: Callable[[Any], None]


def _sql_add_post(view, title: str) -> None:
    view.execute(insert(posts).values(author_id=ALICE, title=title))


def _sql_count(table):
    def count(view) -> int:
        rows = view.execute(select(func.count()).select_from(table))
        return list(rows)[0][0]

    return count


def _sql_write_reference(reference) -> None:
    with reference.connect() as conn:
        conn.execute(insert(users).values(id=99, name="mallory"))


def _memory_add_post(view, title: str) -> None:
    view.insert("posts", title, {"author_id": ALICE, "title": title})


def _sql_driver(name: str, make_store: Callable[..., SnapshotStore]) -> StoreDriver:
    return StoreDriver(
        name=name,
        make_store=make_store,
        migrations=MetadataMigrationApplier(metadata),
        seeder=seed,
        add_post=_sql_add_post,
        count_posts=_sql_count(posts),
        count_users=_sql_count(users),
        write_reference=_sql_write_reference,
    )


@pytest.fixture(params=["memory", "sqlite", "postgres"])
def driver(request: pytest.FixtureRequest, tmp_path) -> Iterator[StoreDriver]:
    """Yield a driver for each snapshot store backend.

    Supported params:
      - `"memory"` → MemorySnapshotStore
      - `"sqlite"` → SqlAlchemySnapshotStore on a per-test SQLite file
      - `"postgres"` → SqlAlchemySnapshotStore on the session Postgres container
    """
    match request.param:
        case "memory":
            yield StoreDriver(
                name="memory",
                make_store=MemorySnapshotStore,
                migrations=migrate_memory,
                seeder=seed_memory,
                add_post=_memory_add_post,
                count_posts=lambda view: view.count("posts"),
                count_users=lambda view: view.count("users"),
                write_reference=lambda ref: ref.insert("users", 99, {"name": "mallory"}),
            )
        case "sqlite":
            created: list[SqlAlchemySnapshotStore] = []

            def make_sqlite(**kwargs) -> SqlAlchemySnapshotStore:
                path = tmp_path / f"baseline-{len(created)}.db"
                created.append(SqlAlchemySnapshotStore(f"sqlite:///{path}", **kwargs))
                return created[-1]

            yield _sql_driver("sqlite", make_sqlite)
            for snapshot_store in created:
                snapshot_store.engine.dispose()
        case "postgres":
            factory = request.getfixturevalue("postgres_store_factory")
            yield _sql_driver("postgres", factory)
        case _:
            raise ValueError(f"unknown snapshot store backend: {request.param}")


@pytest.fixture
def built(driver, run_context):
    """A store of the driver's kind with its baseline built; disposed afterwards."""
    snapshot_store = driver.make_store()
    baseline = snapshot_store.create_baseline(driver.migrations, driver.seeder, run_context)
    yield snapshot_store, baseline
    snapshot_store.dispose(baseline)
