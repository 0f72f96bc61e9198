"""
Pipeline models — stage declarations, retry policy, outcomes, report.

A pipeline is an ordered list of ``StageDescriptor``. Running it yields
one ``StageOutcome`` per stage and a single ``PipelineReport``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from siliconcraft.core.engine.orchestrator import RunContext


class FailurePolicy(StrEnum):
    """What the orchestrator does when a stage does not succeed."""

    FATAL = "fatal"
    DEGRADE_AND_CONTINUE = "degrade_and_continue"
    RETRY_THEN_FATAL = "retry_then_fatal"


class StageStatus(StrEnum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


class Backoff(StrEnum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """Bounded retry/poll policy.

    ``delay`` is the base sleep between attempts (or between polls for
    the lock waiter). ``deadline`` bounds the total wait where a caller
    polls rather than counts attempts.
    """

    max_attempts: int = Field(default=3, ge=1)
    backoff: Backoff = Backoff.FIXED
    delay: float = Field(default=10.0, ge=0)
    max_delay: float = Field(default=300.0, ge=0)
    per_attempt_timeout: float | None = Field(default=None, gt=0)
    deadline: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_delays(self) -> RetryPolicy:
        if self.max_delay < self.delay:
            self.max_delay = self.delay
        return self

    def delay_for(self, attempt: int) -> float:
        """Sleep before retrying after the given failed attempt (1-based)."""
        if attempt < 1:
            return 0.0
        if self.backoff == Backoff.LINEAR:
            value = self.delay * attempt
        elif self.backoff == Backoff.EXPONENTIAL:
            value = self.delay * (2 ** (attempt - 1))
        else:
            value = self.delay
        return min(value, self.max_delay)


@dataclass(frozen=True)
class Degraded:
    """Returned by a stage action that completed with reduced results."""

    detail: str


StageAction = Callable[["RunContext"], "str | Degraded | None"]
StageCheck = Callable[["RunContext"], bool]


@dataclass(frozen=True)
class StageDescriptor:
    """One declared pipeline stage. Not mutated at runtime."""

    name: str
    action: StageAction
    failure_policy: FailurePolicy = FailurePolicy.FATAL
    idempotency_check: StageCheck | None = None
    description: str = ""


class StageOutcome(BaseModel):
    """Result of running (or skipping) one stage."""

    stage: str
    status: StageStatus
    detail: str = ""
    duration_s: float = 0.0
    skipped: bool = False
    attempts: int = 0
    error_category: str | None = None
    exit_code: int | None = None
    remediation: str = ""

    @property
    def ok(self) -> bool:
        return self.status != StageStatus.FAILED


class PipelineReport(BaseModel):
    """Aggregate of every stage outcome plus the terminal status."""

    pipeline: str = ""
    outcomes: list[StageOutcome] = Field(default_factory=list)
    aborted_at: str | None = None

    @property
    def status(self) -> StageStatus:
        if self.failed_outcome is not None:
            return StageStatus.FAILED
        return StageStatus.SUCCESS

    @property
    def failed_outcome(self) -> StageOutcome | None:
        for outcome in self.outcomes:
            if outcome.status == StageStatus.FAILED:
                return outcome
        return None

    @property
    def degraded(self) -> list[StageOutcome]:
        return [o for o in self.outcomes if o.status == StageStatus.DEGRADED]

    @property
    def exit_code(self) -> int:
        failed = self.failed_outcome
        if failed is None:
            return 0
        return failed.exit_code or 1

    def outcome(self, stage: str) -> StageOutcome | None:
        for o in self.outcomes:
            if o.stage == stage:
                return o
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "aborted_at": self.aborted_at,
            "stages": [o.model_dump(mode="json") for o in self.outcomes],
        }
