"""
Step models: the unit of provisioning and its outcome.

A Step is declared once (name, predicate, action, failure policy) and
never changes during a run. Executing it produces a StepRecord, the
receipt the runner keeps for every step it visits. RunResult
aggregates the records of one invocation.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from netbox_installer.core.models.context import RunContext


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepError(Exception):
    """Raised by a step action when its effect could not be produced."""


class FailurePolicy(StrEnum):
    """What the runner does when a step's action fails."""

    ABORT = "abort"
    WARN = "warn"


StepCheck = Callable[["RunContext"], bool]
StepAction = Callable[["RunContext"], "dict[str, Any] | None"]
StepRollback = Callable[["RunContext"], None]


@dataclass(frozen=True)
class Step:
    """One discrete provisioning action.

    Attributes:
        name:        Unique identifier (kebab-case, e.g. 'create-database').
        description: Human-readable label for status lines.
        check:       Idempotency predicate. True means the effect is
                     already present and the action is skipped. Must be
                     side-effect-free.
        action:      Side-effecting operation. Returns values to merge
                     into the run context (or None). Raises on failure.
        policy:      ABORT halts the run, WARN records and continues.
        rollback:    Optional undo hook, run in reverse order on abort.
        retries:     Extra attempts for transient (network) failures.
    """

    name: str
    description: str
    check: StepCheck
    action: StepAction
    policy: FailurePolicy = FailurePolicy.ABORT
    rollback: StepRollback | None = None
    retries: int = 0


class StepRecord(BaseModel):
    """Outcome of visiting one step during a run."""

    step: str
    ordinal: int
    status: Literal["completed", "skipped", "failed"] = "completed"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    attempts: int = 0

    error: str | None = None
    policy: FailurePolicy = FailurePolicy.ABORT

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def fatal(self) -> bool:
        """Whether this failure halted the run."""
        return self.status == "failed" and self.policy == FailurePolicy.ABORT


@dataclass
class StepFailure:
    """The first fatal failure of a run, attributed to one step."""

    step: str
    ordinal: int
    error: str

    def __str__(self) -> str:
        return f"step '{self.step}' failed: {self.error}"


@dataclass
class RunResult:
    """Result of running an ordered step list."""

    total: int = 0
    records: list[StepRecord] = field(default_factory=list)
    fatal_error: StepFailure | None = None
    rollback_errors: list[str] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(1 for r in self.records if r.status == "completed")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.records if r.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.records if r.status == "failed")

    @property
    def ok(self) -> bool:
        return self.fatal_error is None

    @property
    def aborted_at(self) -> str | None:
        return self.fatal_error.step if self.fatal_error else None

    def record_for(self, name: str) -> StepRecord | None:
        for record in self.records:
            if record.step == name:
                return record
        return None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "total": self.total,
            "completed": self.completed,
            "skipped": self.skipped,
            "failed": self.failed,
            "fatal_error": (
                {
                    "step": self.fatal_error.step,
                    "ordinal": self.fatal_error.ordinal,
                    "error": self.fatal_error.error,
                }
                if self.fatal_error
                else None
            ),
            "rollback_errors": self.rollback_errors,
            "records": [r.model_dump(mode="json") for r in self.records],
        }
