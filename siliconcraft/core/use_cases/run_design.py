"""
Run-design use case — ``siliconcraft flow DESIGN``.

Runs one design through the flow in an already provisioned workspace.
The runtime gate runs again so the execution mode is chosen fresh for
this session; the flow itself always re-runs (``-overwrite``).
"""

from __future__ import annotations

import logging
from pathlib import Path

from siliconcraft.core.engine.orchestrator import RunContext
from siliconcraft.core.errors import ToolFlowError, WorkspaceError
from siliconcraft.core.models.pipeline import Degraded, FailurePolicy, StageDescriptor
from siliconcraft.core.models.settings import ProvisionConfig
from siliconcraft.core.services.toolflow import ToolFlow
from siliconcraft.core.use_cases.provision import (
    ProvisionResult,
    RunOptions,
    container_runtime_stage,
    execute,
    inspect_stage,
    prepare_config,
    profile_stage,
)

logger = logging.getLogger(__name__)


def flow_run_id(design: str) -> str:
    return f"run_{design}"


def _check_design(ctx: RunContext) -> str:
    if not ctx.layout.repo_is_valid():
        raise WorkspaceError(
            f"no usable flow checkout at {ctx.layout.runtime_repo_dir}",
            remediation="Run 'siliconcraft setup' first.",
        )
    if not ctx.layout.design_is_valid(ctx.design):
        raise ToolFlowError(
            f"design '{ctx.design}' not found at {ctx.layout.design_dir(ctx.design)}",
            remediation="Create the design directory with a config.tcl or config.json.",
        )
    return f"design at {ctx.layout.design_dir(ctx.design)}"


def _flow(interactive: bool):
    def action(ctx: RunContext) -> str | Degraded:
        flow = ToolFlow(ctx.registry, ctx.config, ctx.layout, env=ctx.facts.get("env"))
        return flow.run_design(ctx.design, ctx.require_mode(), interactive=interactive)

    return action


def flow_stages(interactive: bool = False) -> list[StageDescriptor]:
    fatal = FailurePolicy.FATAL
    return [
        StageDescriptor("profile", profile_stage, fatal,
                        description="Detect host platform"),
        StageDescriptor("container-runtime", container_runtime_stage, fatal,
                        description="Verify docker"),
        StageDescriptor("design-check", _check_design, fatal,
                        description="Check the checkout and design"),
        StageDescriptor("interactive-flow" if interactive else "design-flow",
                        _flow(interactive), fatal,
                        description="Run the flow"),
        StageDescriptor("inspect-result", inspect_stage, FailurePolicy.DEGRADE_AND_CONTINUE,
                        description="Locate the generated GDS"),
    ]


def run_design(
    design: str,
    interactive: bool = False,
    config_path: Path | None = None,
    workspace_root: Path | None = None,
    *,
    config: ProvisionConfig | None = None,
    options: RunOptions | None = None,
) -> ProvisionResult:
    """Run the flow for ``design``; log to ``run_<design>.log``."""
    options = options or RunOptions()
    result = ProvisionResult()

    config = prepare_config(config, config_path, workspace_root, options.env, result)
    if config is None:
        return result

    logger.info("Running %s flow for %s", "interactive" if interactive else "full", design)
    return execute(
        flow_stages(interactive), config, flow_run_id(design), options, result, design=design,
    )
