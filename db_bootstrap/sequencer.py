from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from db_bootstrap.errors import BootstrapError
from db_bootstrap.logging import logger
from db_bootstrap.steps import StepDescriptor, StepKind, StepResult, validate_steps
from db_bootstrap.store import Store


class BootstrapState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    ordinal: int
    name: str
    kind: StepKind
    status: StepStatus
    detail: str | None = None
    rows_affected: int | None = None
    elapsed_ms: int = 0


@dataclass
class BootstrapReport:
    state: BootstrapState = BootstrapState.NOT_STARTED
    current_ordinal: int | None = None
    failed_ordinal: int | None = None
    error: BootstrapError | None = None
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is BootstrapState.COMPLETED

    @property
    def completed(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status is not StepStatus.FAILED]

    @property
    def failed_step(self) -> StepOutcome | None:
        return next((o for o in self.outcomes if o.status is StepStatus.FAILED), None)


class BootstrapSequencer:
    """
    Runs bootstrap steps in ascending ordinal order on a single store session.

    Each step runs in its own transaction. The first failing step stops the run;
    steps that already completed stay applied. Re-running the whole sequence is
    the recovery path, which is safe because every step is idempotent.
    """

    def __init__(self, store: Store):
        self._store = store

    def run(self, steps: Iterable[StepDescriptor]) -> BootstrapReport:
        ordered = validate_steps(steps)
        report = BootstrapReport(state=BootstrapState.RUNNING)
        logger.info("bootstrap_started", steps=len(ordered))

        for step in ordered:
            report.current_ordinal = step.ordinal
            logger.info("step_started", ordinal=step.ordinal, step=step.name, kind=step.kind.value)
            t0 = time.perf_counter()
            try:
                with self._store.transaction():
                    result = step.apply(self._store) or StepResult()
            except BootstrapError as e:
                elapsed_ms = int((time.perf_counter() - t0) * 1000)
                report.outcomes.append(
                    StepOutcome(
                        ordinal=step.ordinal,
                        name=step.name,
                        kind=step.kind,
                        status=StepStatus.FAILED,
                        detail=f"{e.kind}: {e}",
                        elapsed_ms=elapsed_ms,
                    )
                )
                report.state = BootstrapState.FAILED
                report.failed_ordinal = step.ordinal
                report.error = e
                logger.error(
                    "step_failed",
                    ordinal=step.ordinal,
                    step=step.name,
                    error_kind=e.kind,
                    error=str(e),
                    elapsed_ms=elapsed_ms,
                )
                return report

            elapsed_ms = int((time.perf_counter() - t0) * 1000)
            status = StepStatus.SKIPPED if result.skipped else StepStatus.SUCCEEDED
            report.outcomes.append(
                StepOutcome(
                    ordinal=step.ordinal,
                    name=step.name,
                    kind=step.kind,
                    status=status,
                    detail=result.detail,
                    rows_affected=result.rows_affected,
                    elapsed_ms=elapsed_ms,
                )
            )
            logger.info(
                "step_finished",
                ordinal=step.ordinal,
                step=step.name,
                status=status.value,
                rows_affected=result.rows_affected,
                elapsed_ms=elapsed_ms,
            )

        report.state = BootstrapState.COMPLETED
        report.current_ordinal = None
        logger.info("bootstrap_finished", steps=len(report.outcomes))
        return report


def render_report(report: BootstrapReport) -> list[str]:
    lines = []
    for o in report.outcomes:
        line = f"[{o.ordinal}] {o.name} ({o.kind.value}): {o.status.value}"
        if o.rows_affected is not None:
            line += f", rows_affected={o.rows_affected}"
        if o.detail:
            line += f" - {o.detail}"
        lines.append(line)
    if report.ok:
        lines.append(f"bootstrap completed: {len(report.outcomes)} step(s)")
    elif report.state is BootstrapState.FAILED:
        lines.append(
            f"bootstrap failed at step {report.failed_ordinal}; "
            f"completed before it: {', '.join(report.completed) or 'none'}"
        )
    else:
        lines.append(f"bootstrap {report.state.value}")
    return lines
