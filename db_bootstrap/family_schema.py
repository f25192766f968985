"""
Tables of the family store.

`family_users` and `event_log` are read by the signaling server; their column
names and types are a contract and only change through a new, explicitly ordered
step.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from db_bootstrap.schema import SchemaObject, SchemaObjectKind


FAMILY_USERS = "family_users"
EVENT_LOG = "event_log"
UNIQUE_NAME = "unique_name"

meta = sa.MetaData()

family_users = sa.Table(
    FAMILY_USERS,
    meta,
    sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
    sa.Column("name", sa.String(255), nullable=False),
    sa.Column("picture_url", sa.Text(), nullable=True),
    sa.Column("picture_data", postgresql.BYTEA(), nullable=True),
    sa.Column("email", sa.String(255), nullable=True),
    sa.Column("availability", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    sa.UniqueConstraint("name", name=UNIQUE_NAME),
)

event_log = sa.Table(
    EVENT_LOG,
    meta,
    sa.Column("id", sa.Integer(), primary_key=True),
    sa.Column("timestamp", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    sa.Column("event_type", sa.String(64), nullable=False),
    sa.Column("details", sa.Text(), nullable=True),
)


def _create_table_ddl(table: sa.Table) -> str:
    return str(CreateTable(table).compile(dialect=postgresql.dialect())).strip()


def family_schema_objects() -> list[SchemaObject]:
    # pgcrypto first: the family_users id default calls gen_random_uuid().
    return [
        SchemaObject(
            name="pgcrypto",
            kind=SchemaObjectKind.EXTENSION,
            definition='CREATE EXTENSION IF NOT EXISTS "pgcrypto"',
        ),
        SchemaObject(
            name=FAMILY_USERS,
            kind=SchemaObjectKind.TABLE,
            definition=_create_table_ddl(family_users),
            requires=("pgcrypto",),
        ),
        SchemaObject(
            name=EVENT_LOG,
            kind=SchemaObjectKind.TABLE,
            definition=_create_table_ddl(event_log),
        ),
        # Stores created by the older table variant lack the named constraint.
        SchemaObject(
            name=UNIQUE_NAME,
            kind=SchemaObjectKind.CONSTRAINT,
            definition=f"ALTER TABLE {FAMILY_USERS} ADD CONSTRAINT {UNIQUE_NAME} UNIQUE (name)",
            table=FAMILY_USERS,
        ),
    ]
