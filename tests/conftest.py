from __future__ import annotations

import sys
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import sqlalchemy as sa

REPO_ROOT = Path(__file__).resolve().parents[1]
# Ensure the repo root is importable (so `import db_bootstrap` and `import tests.fakes` work).
sys.path.insert(0, str(REPO_ROOT))

from db_bootstrap.settings import normalize_database_url  # noqa: E402


@pytest.fixture(scope="session")
def postgres_url() -> Iterator[str]:
    try:
        from testcontainers.postgres import PostgresContainer
    except ImportError:
        pytest.skip("testcontainers is not installed")

    try:
        pg = PostgresContainer("postgres:16")
        pg.start()
    except Exception as e:  # noqa: BLE001
        pytest.skip(f"docker is not available: {e}")
    try:
        # Normalize testcontainers URL (may be postgresql:// or postgresql+psycopg2://).
        yield normalize_database_url(pg.get_connection_url())
    finally:
        pg.stop()


@pytest.fixture()
def database_url(postgres_url: str) -> Iterator[str]:
    """A fresh, empty database per test. Roles are cluster-wide, see `role_name`."""
    name = f"bootstrap_{uuid.uuid4().hex[:10]}"
    admin = sa.create_engine(postgres_url, isolation_level="AUTOCOMMIT", poolclass=sa.pool.NullPool)
    with admin.connect() as conn:
        conn.exec_driver_sql(f'CREATE DATABASE "{name}"')
    try:
        yield sa.engine.make_url(postgres_url).set(database=name).render_as_string(hide_password=False)
    finally:
        with admin.connect() as conn:
            conn.exec_driver_sql(f'DROP DATABASE IF EXISTS "{name}" WITH (FORCE)')
        admin.dispose()


@pytest.fixture()
def role_name(postgres_url: str, database_url: str) -> Iterator[Callable[..., str]]:
    """Hands out unique role names and drops those roles again after the test."""
    created: list[str] = []

    def make(prefix: str = "app") -> str:
        name = f"{prefix}_{uuid.uuid4().hex[:8]}"
        created.append(name)
        return name

    yield make

    admin = sa.create_engine(postgres_url, isolation_level="AUTOCOMMIT", poolclass=sa.pool.NullPool)
    try:
        with admin.connect() as conn:
            # Newest first: roles made by a test admin go before that admin.
            for name in reversed(created):
                conn.exec_driver_sql(f'DROP ROLE IF EXISTS "{name}"')
    finally:
        admin.dispose()


@pytest.fixture()
def engine(database_url: str) -> Iterator[sa.Engine]:
    from db_bootstrap.store import create_store_engine

    eng = create_store_engine(database_url)
    yield eng
    eng.dispose()
