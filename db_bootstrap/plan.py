from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from db_bootstrap.family_schema import FAMILY_USERS, family_schema_objects
from db_bootstrap.roles import Role, RoleCapability, RoleEnsurer
from db_bootstrap.schema import SchemaEnsurer, SchemaObject
from db_bootstrap.seeding import DataSeeder, FileResourceReader, RowEnsurer, RowSeed, SeedTarget
from db_bootstrap.settings import BootstrapSettings
from db_bootstrap.steps import StepDescriptor, StepKind, StepResult
from db_bootstrap.store import Store


def role_step(ordinal: int, role: Role, *, name: str | None = None) -> StepDescriptor:
    def apply(store: Store) -> StepResult:
        RoleEnsurer(store).ensure(role)
        return StepResult(detail=f"role {role.name} ensured")

    return StepDescriptor(ordinal, name or f"role:{role.name}", StepKind.ROLE_ENSURE, apply)


def schema_step(ordinal: int, name: str, objects: Sequence[SchemaObject]) -> StepDescriptor:
    objects = list(objects)

    def apply(store: Store) -> StepResult:
        created = SchemaEnsurer(store).ensure(objects)
        return StepResult(detail=f"created {', '.join(created)}" if created else "up to date")

    return StepDescriptor(ordinal, name, StepKind.SCHEMA_ENSURE, apply)


def row_step(ordinal: int, name: str, seed: RowSeed) -> StepDescriptor:
    def apply(store: Store) -> StepResult:
        inserted = RowEnsurer(store).ensure(seed)
        return StepResult(rows_affected=inserted, detail=None if inserted else "already present")

    return StepDescriptor(ordinal, name, StepKind.ROW_ENSURE, apply)


def seed_step(
    ordinal: int,
    name: str,
    target: SeedTarget,
    reader: FileResourceReader | None = None,
) -> StepDescriptor:
    def apply(store: Store) -> StepResult:
        result = DataSeeder(store, reader).seed(target)
        return StepResult(skipped=result.skipped, rows_affected=result.rows_affected, detail=result.note)

    return StepDescriptor(ordinal, name, StepKind.DATA_SEED, apply)


def build_default_plan(settings: BootstrapSettings) -> list[StepDescriptor]:
    app_role = Role(
        name=settings.app_role_name,
        login=True,
        password=settings.app_role_password.get_secret_value() if settings.app_role_password else None,
        capabilities=frozenset({RoleCapability.CREATEDB}) if settings.app_role_createdb else frozenset(),
    )
    default_user = {"name": settings.default_user_name}
    return [
        role_step(1, app_role),
        schema_step(2, "schema:family", family_schema_objects()),
        row_step(3, f"row:{settings.default_user_name}", RowSeed(FAMILY_USERS, default_user, {"availability": {}})),
        seed_step(
            4,
            "seed:default_picture",
            SeedTarget(
                table=FAMILY_USERS,
                selector=default_user,
                resource=Path(settings.default_picture_path),
                column="picture_data",
            ),
        ),
    ]
