from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from db_bootstrap.errors import DuplicateStep

if TYPE_CHECKING:
    from db_bootstrap.store import Store


class StepKind(str, Enum):
    ROLE_ENSURE = "role_ensure"
    SCHEMA_ENSURE = "schema_ensure"
    DATA_SEED = "data_seed"
    ROW_ENSURE = "row_ensure"


@dataclass(frozen=True)
class StepResult:
    skipped: bool = False
    rows_affected: int | None = None
    detail: str | None = None


@dataclass(frozen=True)
class StepDescriptor:
    ordinal: int
    name: str
    kind: StepKind
    apply: Callable[[Store], StepResult | None]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("step name must not be empty")


def validate_steps(steps: Iterable[StepDescriptor]) -> list[StepDescriptor]:
    """
    Return the steps in execution order.

    Order comes only from the ordinal. A repeated ordinal or a repeated name means
    two definitions of the same unit of work, and neither is picked silently.
    """
    steps = list(steps)
    dup_ordinals = sorted(o for o, n in Counter(s.ordinal for s in steps).items() if n > 1)
    dup_names = sorted(name for name, n in Counter(s.name for s in steps).items() if n > 1)
    problems = []
    if dup_ordinals:
        problems.append(f"duplicate ordinals: {', '.join(str(o) for o in dup_ordinals)}")
    if dup_names:
        problems.append(f"duplicate names: {', '.join(dup_names)}")
    if problems:
        raise DuplicateStep("; ".join(problems))
    return sorted(steps, key=lambda s: s.ordinal)
