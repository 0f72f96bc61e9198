"""
Pipeline orchestrator — the one place that decides what a failure means.

Stages run strictly in declared order. For each one:

    idempotency check satisfied?  → success (skipped), next stage
    run action
        returns str / None        → success
        returns Degraded(...)     → degraded, continue
        raises ProvisionError     → apply the stage's failure policy

Failure policies:
    fatal                 stop the pipeline
    degrade_and_continue  record degraded, warn, continue
    retry_then_fatal      run the stage once more, then fatal
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import ProvisionError
from siliconcraft.core.models.environment import EnvironmentProfile, ExecutionMode
from siliconcraft.core.models.pipeline import (
    Degraded,
    FailurePolicy,
    PipelineReport,
    StageDescriptor,
    StageOutcome,
    StageStatus,
)
from siliconcraft.core.models.settings import ProvisionConfig
from siliconcraft.core.models.workspace import WorkspaceLayout
from siliconcraft.core.persistence.run_log import RunLog
from siliconcraft.core.reliability.retry import Clock, SystemClock

logger = logging.getLogger(__name__)

StageObserver = Callable[[StageDescriptor, "StageOutcome | None"], None]


@dataclass
class RunContext:
    """Shared state for one pipeline run.

    ``profile`` is filled in by the profile stage and ``execution_mode``
    by the runtime gate; later stages read them, never recompute them.
    """

    config: ProvisionConfig
    registry: AdapterRegistry
    run_log: RunLog
    layout: WorkspaceLayout
    clock: Clock = field(default_factory=SystemClock)
    design: str = ""
    profile: EnvironmentProfile | None = None
    execution_mode: ExecutionMode | None = None
    facts: dict[str, Any] = field(default_factory=dict)

    def require_profile(self) -> EnvironmentProfile:
        if self.profile is None:
            raise ProvisionError("environment profile requested before the profile stage ran")
        return self.profile

    def require_mode(self) -> ExecutionMode:
        if self.execution_mode is None:
            raise ProvisionError("container execution mode requested before the runtime gate ran")
        return self.execution_mode


def run_pipeline(
    stages: list[StageDescriptor],
    ctx: RunContext,
    name: str = "pipeline",
    observer: StageObserver | None = None,
) -> PipelineReport:
    """Run ``stages`` in order and aggregate their outcomes."""
    report = PipelineReport(pipeline=name)
    ctx.run_log.run(f"{name} started ({len(stages)} stages)")
    logger.info("Pipeline %s: %d stages", name, len(stages))

    for stage in stages:
        if observer:
            observer(stage, None)

        if _already_satisfied(stage, ctx):
            outcome = StageOutcome(
                stage=stage.name,
                status=StageStatus.SUCCESS,
                detail="already satisfied",
                skipped=True,
            )
            ctx.run_log.stage(stage.name, "skipped", "already satisfied")
        else:
            outcome = _run_with_policy(stage, ctx)

        report.outcomes.append(outcome)
        if observer:
            observer(stage, outcome)

        if outcome.status == StageStatus.FAILED:
            report.aborted_at = stage.name
            logger.error("Stage %s failed: %s", stage.name, outcome.detail)
            break

    ctx.run_log.run(f"{name} finished: {report.status.value} (exit {report.exit_code})")
    return report


def _already_satisfied(stage: StageDescriptor, ctx: RunContext) -> bool:
    if stage.idempotency_check is None:
        return False
    try:
        return bool(stage.idempotency_check(ctx))
    except Exception as e:
        logger.debug("Idempotency check for %s raised %s; running stage", stage.name, e)
        return False


def _run_with_policy(stage: StageDescriptor, ctx: RunContext) -> StageOutcome:
    outcome = _execute(stage, ctx, attempt=1)
    if outcome.status != StageStatus.FAILED:
        return outcome

    if stage.failure_policy == FailurePolicy.RETRY_THEN_FATAL:
        logger.warning("Stage %s failed (%s); retrying once", stage.name, outcome.detail)
        ctx.run_log.stage(stage.name, "retrying")
        outcome = _execute(stage, ctx, attempt=2)

    elif stage.failure_policy == FailurePolicy.DEGRADE_AND_CONTINUE:
        logger.warning("Stage %s degraded: %s", stage.name, outcome.detail)
        outcome = outcome.model_copy(update={"status": StageStatus.DEGRADED})
        ctx.run_log.stage(stage.name, "degraded", "continuing")

    return outcome


def _execute(stage: StageDescriptor, ctx: RunContext, attempt: int) -> StageOutcome:
    ctx.run_log.stage(stage.name, "running", f"attempt {attempt}" if attempt > 1 else "")
    start = ctx.clock.monotonic()

    try:
        result = stage.action(ctx)
    except ProvisionError as e:
        duration = ctx.clock.monotonic() - start
        ctx.run_log.stage(stage.name, "failed", f"[{e.category}] {e.message}", duration)
        return StageOutcome(
            stage=stage.name,
            status=StageStatus.FAILED,
            detail=e.message,
            duration_s=duration,
            attempts=attempt,
            error_category=e.category,
            exit_code=e.exit_code,
            remediation=e.remediation,
        )
    except Exception as e:
        logger.exception("Stage %s raised unexpectedly", stage.name)
        duration = ctx.clock.monotonic() - start
        ctx.run_log.stage(stage.name, "failed", f"[internal] {e}", duration)
        internal = ProvisionError(f"unexpected error in {stage.name}: {e}")
        return StageOutcome(
            stage=stage.name,
            status=StageStatus.FAILED,
            detail=internal.message,
            duration_s=duration,
            attempts=attempt,
            error_category=internal.category,
            exit_code=internal.exit_code,
        )

    duration = ctx.clock.monotonic() - start
    if isinstance(result, Degraded):
        ctx.run_log.stage(stage.name, "degraded", result.detail, duration)
        return StageOutcome(
            stage=stage.name,
            status=StageStatus.DEGRADED,
            detail=result.detail,
            duration_s=duration,
            attempts=attempt,
        )

    detail = result or ""
    ctx.run_log.stage(stage.name, "success", detail, duration)
    return StageOutcome(
        stage=stage.name,
        status=StageStatus.SUCCESS,
        detail=detail,
        duration_s=duration,
        attempts=attempt,
    )
