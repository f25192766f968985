from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.pool import NullPool

from db_bootstrap.errors import StoreUnavailable, classify, translate_errors
from db_bootstrap.logging import logger


RELKINDS = {
    "r": "table",
    "p": "partitioned table",
    "v": "view",
    "m": "materialized view",
    "S": "sequence",
    "i": "index",
    "I": "partitioned index",
    "c": "composite type",
    "f": "foreign table",
    "t": "toast table",
}


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    # Escape-string form reads the same whatever standard_conforming_strings is set to.
    return "E'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def _column_for(name: str, value: Any) -> sa.ColumnClause:  # noqa: ANN401
    if isinstance(value, (dict, list)):
        return sa.column(name, postgresql.JSONB())
    if isinstance(value, (bytes, bytearray, memoryview)):
        return sa.column(name, postgresql.BYTEA())
    return sa.column(name)


def _table_clause(table: str, columns: Mapping[str, Any]) -> sa.TableClause:
    return sa.table(table, *[_column_for(k, v) for k, v in columns.items()])


class Store:
    """
    One logical session against the store.

    Exposes the generic capabilities the bootstrap steps need: catalog existence
    queries, verbatim DDL execution and equality-keyed row operations. Driver
    errors leave this class already translated into the bootstrap taxonomy.
    """

    def __init__(self, conn: sa.Connection):
        self._conn = conn

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with translate_errors("transaction"), self._conn.begin():
            yield

    def _scalar(self, action: str, sql: str, params: dict[str, Any]) -> Any:  # noqa: ANN401
        with translate_errors(action):
            return self._conn.execute(sa.text(sql), params).scalar()

    def role_capabilities(self, name: str) -> frozenset[str] | None:
        """Capability keywords the role currently holds, or None when it does not exist."""
        q = (
            "SELECT rolcreatedb, rolcreaterole, rolreplication, rolbypassrls "
            "FROM pg_catalog.pg_roles WHERE rolname = :name"
        )
        with translate_errors("role lookup"):
            row = self._conn.execute(sa.text(q), {"name": name}).first()
        if row is None:
            return None
        flags = zip(("CREATEDB", "CREATEROLE", "REPLICATION", "BYPASSRLS"), row)
        return frozenset(keyword for keyword, held in flags if held)

    def extension_exists(self, name: str) -> bool:
        q = "SELECT 1 FROM pg_catalog.pg_extension WHERE extname = :name"
        return self._scalar("extension lookup", q, {"name": name}) is not None

    def relation_kind(self, name: str) -> str | None:
        q = (
            "SELECT c.relkind FROM pg_catalog.pg_class c "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "WHERE c.relname = :name AND n.nspname = current_schema()"
        )
        relkind = self._scalar("relation lookup", q, {"name": name})
        if relkind is None:
            return None
        return RELKINDS.get(str(relkind), str(relkind))

    def constraint_exists(self, table: str, name: str) -> bool:
        q = (
            "SELECT 1 FROM pg_catalog.pg_constraint con "
            "JOIN pg_catalog.pg_class c ON c.oid = con.conrelid "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "WHERE con.conname = :name AND c.relname = :table AND n.nspname = current_schema()"
        )
        return self._scalar("constraint lookup", q, {"name": name, "table": table}) is not None

    def execute(self, statement: str) -> None:
        # DDL goes to the driver verbatim: no bind-parameter parsing, no %-placeholder handling.
        with translate_errors("execute"):
            self._conn.exec_driver_sql(statement, execution_options={"no_parameters": True})

    def row_exists(self, table: str, key: Mapping[str, Any]) -> bool:
        t = _table_clause(table, key)
        q = sa.select(sa.literal(1)).select_from(t).where(*[t.c[k] == v for k, v in key.items()]).limit(1)
        with translate_errors(f"select {table}"):
            return self._conn.execute(q).first() is not None

    def insert_row(self, table: str, values: Mapping[str, Any]) -> None:
        t = _table_clause(table, values)
        with translate_errors(f"insert {table}"):
            self._conn.execute(sa.insert(t).values(**values))

    def update_rows(self, table: str, selector: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        t = _table_clause(table, {**selector, **values})
        q = sa.update(t).where(*[t.c[k] == v for k, v in selector.items()]).values(**values)
        with translate_errors(f"update {table}"):
            return self._conn.execute(q).rowcount


def create_store_engine(database_url: str) -> sa.Engine:
    # NullPool: the bootstrap holds exactly one connection for its whole run.
    return sa.create_engine(database_url, future=True, poolclass=NullPool)


def wait_until_ready(
    engine: sa.Engine,
    *,
    attempts: int,
    interval_s: float,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            with engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
            logger.info("store_ready", attempt=attempt)
            return
        except sa.exc.DBAPIError as e:
            error = classify(e, "connect")
            # Only unavailability is retried.
            if not isinstance(error, StoreUnavailable):
                raise error from e
            last_exc = e
            logger.info("store_not_ready", attempt=attempt, attempts=attempts, error=str(e.orig or e))
            if attempt < attempts:
                sleep(interval_s)
    raise StoreUnavailable(f"store not reachable after {attempts} attempts") from last_exc


@contextmanager
def open_store(engine: sa.Engine) -> Iterator[Store]:
    with translate_errors("connect"):
        conn = engine.connect()
    try:
        yield Store(conn)
    finally:
        conn.close()
