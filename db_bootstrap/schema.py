from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from db_bootstrap.errors import DefinitionConflict, DependencyMissing
from db_bootstrap.logging import logger
from db_bootstrap.store import Store


TABLE_RELKINDS = {"table", "partitioned table"}


class SchemaObjectKind(str, Enum):
    EXTENSION = "extension"
    TABLE = "table"
    CONSTRAINT = "constraint"


@dataclass(frozen=True)
class SchemaObject:
    name: str
    kind: SchemaObjectKind
    definition: str
    # Extensions that must already be installed before the definition is applied.
    requires: tuple[str, ...] = ()
    # Owning table, constraints only.
    table: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("schema object name must not be empty")
        if self.kind is SchemaObjectKind.CONSTRAINT and not self.table:
            raise ValueError(f"constraint {self.name} needs an owning table")


class SchemaEnsurer:
    """
    Create-if-missing for extensions, tables and constraints.

    Objects are applied in the order given. An object that already exists is left
    untouched, even if its definition has drifted; this component only ever adds.
    """

    def __init__(self, store: Store):
        self._store = store

    def ensure(self, objects: Sequence[SchemaObject]) -> list[str]:
        created: list[str] = []
        for obj in objects:
            if self._exists(obj):
                logger.info("schema_object_present", name=obj.name, kind=obj.kind.value)
                continue
            self._check_dependencies(obj)
            self._store.execute(obj.definition)
            logger.info("schema_object_created", name=obj.name, kind=obj.kind.value)
            created.append(obj.name)
        return created

    def _exists(self, obj: SchemaObject) -> bool:
        if obj.kind is SchemaObjectKind.EXTENSION:
            return self._store.extension_exists(obj.name)

        if obj.kind is SchemaObjectKind.TABLE:
            found = self._store.relation_kind(obj.name)
            if found is None:
                return False
            if found not in TABLE_RELKINDS:
                raise DefinitionConflict(f"{obj.name} exists as a {found}, expected a table")
            return True

        if self._store.constraint_exists(obj.table, obj.name):
            return True
        # A unique constraint owns an index of the same name; any other relation blocks it.
        found = self._store.relation_kind(obj.name)
        if found is not None:
            raise DefinitionConflict(f"{obj.name} exists as a {found}, expected a constraint on {obj.table}")
        return False

    def _check_dependencies(self, obj: SchemaObject) -> None:
        for ext in obj.requires:
            if not self._store.extension_exists(ext):
                raise DependencyMissing(f"{obj.kind.value} {obj.name} requires extension {ext}, which is not installed")
        if obj.kind is SchemaObjectKind.CONSTRAINT and self._store.relation_kind(obj.table) not in TABLE_RELKINDS:
            raise DependencyMissing(f"constraint {obj.name} requires table {obj.table}, which does not exist")
