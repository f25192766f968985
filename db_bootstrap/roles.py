from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from db_bootstrap.logging import logger
from db_bootstrap.store import Store, quote_ident, quote_literal


class RoleCapability(str, Enum):
    CREATEDB = "CREATEDB"
    CREATEROLE = "CREATEROLE"
    REPLICATION = "REPLICATION"
    BYPASSRLS = "BYPASSRLS"


@dataclass(frozen=True)
class Role:
    name: str
    login: bool = True
    password: str | None = field(default=None, repr=False)
    capabilities: frozenset[RoleCapability] = frozenset()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("role name must not be empty")


# Only a superuser may name these, even to switch them off.
SUPERUSER_ONLY = frozenset({RoleCapability.REPLICATION, RoleCapability.BYPASSRLS})


def role_options(role: Role, held: frozenset[str] = frozenset()) -> str:
    """
    Option list for CREATE/ALTER ROLE.

    LOGIN, CREATEDB and CREATEROLE are always stated so ALTER leaves the role as
    described. Superuser-only capabilities appear when requested, or in their NO
    form when `held` shows the role still has them.
    """
    parts = ["LOGIN" if role.login else "NOLOGIN"]
    for cap in RoleCapability:
        if cap in role.capabilities:
            parts.append(cap.value)
        elif cap not in SUPERUSER_ONLY or cap.value in held:
            parts.append(f"NO{cap.value}")
    if role.password is None:
        parts.append("PASSWORD NULL")
    else:
        parts.append(f"PASSWORD {quote_literal(role.password)}")
    return " ".join(parts)


class RoleEnsurer:
    """Create-or-overwrite for login roles; re-running rotates credentials."""

    def __init__(self, store: Store):
        self._store = store

    def ensure(self, role: Role) -> None:
        held = self._store.role_capabilities(role.name)
        verb = "CREATE" if held is None else "ALTER"
        options = role_options(role, held or frozenset())
        self._store.execute(f"{verb} ROLE {quote_ident(role.name)} WITH {options}")
        logger.info(
            "role_ensured",
            role=role.name,
            action="created" if held is None else "updated",
            login=role.login,
            capabilities=sorted(c.value for c in role.capabilities),
        )
