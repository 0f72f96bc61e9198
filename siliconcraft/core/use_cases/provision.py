"""
Provision use case — the full setup pipeline, from bare host to GDS.

This is the top-level entry for ``siliconcraft setup``: it loads
config, prepares the workspace and run log, wires the adapters and
runs the one parameterized pipeline. The stage list is declared once
in ``setup_stages``; nothing about it varies per machine except what
the config says.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.config.loader import ConfigError, load_config
from siliconcraft.core.engine.orchestrator import RunContext, StageObserver, run_pipeline
from siliconcraft.core.errors import ProvisionError, UnsupportedEnvironment
from siliconcraft.core.models.action import Action, Receipt
from siliconcraft.core.models.pipeline import (
    Degraded,
    FailurePolicy,
    PipelineReport,
    StageDescriptor,
)
from siliconcraft.core.models.settings import ProvisionConfig
from siliconcraft.core.models.workspace import WorkspaceLayout
from siliconcraft.core.persistence.run_log import RunLog
from siliconcraft.core.persistence.workspace import ensure_directory
from siliconcraft.core.reliability.retry import Clock, SystemClock
from siliconcraft.core.services.fetcher import ResilientFetcher
from siliconcraft.core.services.lock_waiter import fuser_probe, wait_for_locks
from siliconcraft.core.services.package_healer import PackageStateHealer
from siliconcraft.core.services.packages import install_packages, missing_packages
from siliconcraft.core.services.profiler import HostProbe, profile_environment
from siliconcraft.core.services.runtime_gate import ContainerRuntimeGate
from siliconcraft.core.services.toolflow import ToolFlow

logger = logging.getLogger(__name__)

SETUP_RUN_ID = "setup"


@dataclass
class ProvisionResult:
    """Result of a setup or flow run."""

    report: PipelineReport | None = None
    config: ProvisionConfig | None = None
    log_path: Path | None = None
    error: str | None = None
    error_category: str | None = None
    remediation: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        result: dict = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["category"] = self.error_category
            if self.remediation:
                result["remediation"] = self.remediation
            return result

        if self.config:
            result["workspace_root"] = str(self.config.workspace_root)
        if self.log_path:
            result["log"] = str(self.log_path)
        if self.report:
            result["report"] = self.report.to_dict()
        return result


# ── Wiring ──────────────────────────────────────────────────────


def build_registry(workspace_root: Path, run_log: RunLog | None = None) -> AdapterRegistry:
    """Registry with the real shell, container runtime and git adapters."""
    from siliconcraft.adapters.containers.docker import ContainerRuntimeAdapter
    from siliconcraft.adapters.shell.command import ShellCommandAdapter
    from siliconcraft.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry(workspace_root=str(workspace_root), run_log=run_log)
    registry.register(ShellCommandAdapter())
    registry.register(ContainerRuntimeAdapter())
    registry.register(GitAdapter())
    return registry


@dataclass
class RunOptions:
    """Test seams and caller context shared by every pipeline entry point."""

    registry: AdapterRegistry | None = None
    probe: HostProbe | None = None
    clock: Clock = field(default_factory=SystemClock)
    env: Mapping[str, str] | None = None
    observer: StageObserver | None = None


def prepare_config(
    config: ProvisionConfig | None,
    config_path: Path | None,
    workspace_root: Path | None,
    env: Mapping[str, str] | None,
    result: ProvisionResult,
) -> ProvisionConfig | None:
    """Load config into ``result``; on error record it and return None."""
    if config is not None:
        result.config = config
        return config
    try:
        config = load_config(config_path, workspace_root=workspace_root, env=env)
    except ConfigError as e:
        _record_error(result, e)
        return None
    result.config = config
    return config


def execute(
    stages: list[StageDescriptor],
    config: ProvisionConfig,
    run_id: str,
    options: RunOptions,
    result: ProvisionResult,
    design: str = "",
) -> ProvisionResult:
    """Prepare the workspace and run log, then run ``stages``."""
    try:
        ensure_directory(config.workspace_root)
    except ProvisionError as e:
        return _record_error(result, e)

    layout = WorkspaceLayout(config.workspace_root, config.runtime_repo_dir)
    run_log = RunLog(layout.log_path(run_id))
    result.log_path = run_log.path

    registry = options.registry or build_registry(config.workspace_root)
    registry.attach_run_log(run_log)

    ctx = RunContext(
        config=config,
        registry=registry,
        run_log=run_log,
        layout=layout,
        clock=options.clock,
        design=design,
    )
    ctx.facts["probe"] = options.probe
    ctx.facts["env"] = options.env

    report = run_pipeline(stages, ctx, name=run_id, observer=options.observer)
    result.report = report
    result.exit_code = report.exit_code

    failed = report.failed_outcome
    if failed is not None:
        result.error_category = failed.error_category
        result.remediation = failed.remediation
    return result


def _record_error(result: ProvisionResult, error: ProvisionError) -> ProvisionResult:
    result.error = error.message
    result.error_category = error.category
    result.remediation = error.remediation
    result.exit_code = error.exit_code
    return result


# ── Stage actions ───────────────────────────────────────────────


def profile_stage(ctx: RunContext) -> str:
    profile = profile_environment(ctx.facts.get("probe"))
    ctx.profile = profile
    if not profile.supported:
        raise UnsupportedEnvironment(f"unsupported host: {profile.reason}")
    runtime = "docker present" if profile.has_container_runtime else "no docker"
    return f"{profile.platform_kind.value} ({profile.reason}; {runtime})"


def package_lock_stage(ctx: RunContext) -> str:
    waited = wait_for_locks(
        ctx.config.lock_paths,
        ctx.config.lock_policy,
        fuser_probe(ctx.registry),
        ctx.clock,
    )
    if waited:
        return f"package locks free after {waited:.0f}s"
    return "package locks free"


def package_index_stage(ctx: RunContext) -> str:
    healer = PackageStateHealer(ctx.registry, ctx.config.apt, ctx.run_log)
    return healer.ensure_package_index_healthy().summary()


def base_packages_installed(ctx: RunContext) -> bool:
    return not missing_packages(ctx.registry, ctx.config.base_packages)


def base_packages_stage(ctx: RunContext) -> str:
    missing = missing_packages(ctx.registry, ctx.config.base_packages)
    if not missing:
        return "base packages present"
    return install_packages(ctx.registry, missing)


def container_runtime_stage(ctx: RunContext) -> str:
    gate = ContainerRuntimeGate(ctx.registry, ctx.config, ctx.require_profile(), ctx.run_log)
    ctx.execution_mode = gate.ensure_runtime_ready()
    return f"docker ready ({ctx.execution_mode.value})"


def gui_tools_installed(ctx: RunContext) -> bool:
    return not missing_packages(ctx.registry, ctx.config.gui_packages)


def gui_tools_stage(ctx: RunContext) -> str:
    missing = missing_packages(ctx.registry, ctx.config.gui_packages)
    return install_packages(ctx.registry, missing, action_id="apt.install-gui")


def _git_config(ctx: RunContext, operation: str, key: str, value: str | None = None) -> Receipt:
    params = {"operation": operation, "key": key}
    if value is not None:
        params["value"] = value
    return ctx.registry.execute_action(
        Action(id=f"git.{operation}", adapter="git", params=params)
    )


def git_tuned(ctx: RunContext) -> bool:
    for key, value in ctx.config.git_tuning.items():
        receipt = _git_config(ctx, "config-get", key)
        if not receipt.ok or receipt.output.strip() != value:
            return False
    return True


def git_tuning_stage(ctx: RunContext) -> str | Degraded:
    failed = []
    for key, value in ctx.config.git_tuning.items():
        if not _git_config(ctx, "config-set", key, value).ok:
            failed.append(key)
    if failed:
        return Degraded(f"could not set {', '.join(failed)}")
    return f"set {len(ctx.config.git_tuning)} git network option(s)"


def repo_fetched(ctx: RunContext) -> bool:
    return ctx.layout.repo_is_valid()


def fetch_stage(ctx: RunContext) -> str:
    fetcher = ResilientFetcher(ctx.registry, ctx.clock)
    result = fetcher.fetch(
        ctx.config.runtime_repo_url,
        ctx.layout.runtime_repo_dir,
        ctx.config.fetch_policy,
    )
    return result.summary()


def _toolflow(ctx: RunContext) -> ToolFlow:
    return ToolFlow(ctx.registry, ctx.config, ctx.layout, env=ctx.facts.get("env"))


def pdk_present(ctx: RunContext) -> bool:
    return ctx.layout.pdk_present(ctx.config.pdk)


def pdk_stage(ctx: RunContext) -> str | Degraded:
    return _toolflow(ctx).install_pdk(ctx.require_mode())


def sample_design_present(ctx: RunContext) -> bool:
    return ctx.layout.design_is_valid(ctx.design)


def sample_design_stage(ctx: RunContext) -> str:
    return _toolflow(ctx).seed_sample_design(ctx.design)


def design_gds_present(ctx: RunContext) -> bool:
    return ctx.layout.find_gds(ctx.design) is not None


def design_flow_stage(ctx: RunContext) -> str | Degraded:
    return _toolflow(ctx).run_design(ctx.design, ctx.require_mode())


def inspect_stage(ctx: RunContext) -> str | Degraded:
    return _toolflow(ctx).inspect_result(ctx.design, ctx.require_profile().has_display)


# ── Pipeline ────────────────────────────────────────────────────


def setup_stages() -> list[StageDescriptor]:
    """The setup pipeline, in execution order."""
    fatal = FailurePolicy.FATAL
    degrade = FailurePolicy.DEGRADE_AND_CONTINUE
    return [
        StageDescriptor("profile", profile_stage, fatal,
                        description="Detect host platform"),
        StageDescriptor("package-lock", package_lock_stage, FailurePolicy.RETRY_THEN_FATAL,
                        description="Wait for apt/dpkg locks"),
        StageDescriptor("package-index", package_index_stage, fatal,
                        description="Refresh and heal the apt index"),
        StageDescriptor("base-packages", base_packages_stage, fatal, base_packages_installed,
                        description="Install build prerequisites"),
        StageDescriptor("container-runtime", container_runtime_stage, fatal,
                        description="Install and verify docker"),
        StageDescriptor("gui-tools", gui_tools_stage, degrade, gui_tools_installed,
                        description="Install layout viewers"),
        StageDescriptor("git-tuning", git_tuning_stage, degrade, git_tuned,
                        description="Tune git for large clones"),
        StageDescriptor("fetch-runtime-repo", fetch_stage, fatal, repo_fetched,
                        description="Clone the OpenLane repository"),
        StageDescriptor("pdk", pdk_stage, degrade, pdk_present,
                        description="Install the PDK"),
        StageDescriptor("sample-design", sample_design_stage, fatal, sample_design_present,
                        description="Seed the sample design"),
        StageDescriptor("design-flow", design_flow_stage, fatal, design_gds_present,
                        description="Run RTL to GDS on the sample design"),
        StageDescriptor("inspect-result", inspect_stage, degrade,
                        description="Locate the generated GDS"),
    ]


def run_setup(
    config_path: Path | None = None,
    workspace_root: Path | None = None,
    *,
    config: ProvisionConfig | None = None,
    options: RunOptions | None = None,
) -> ProvisionResult:
    """Provision the host and workspace end to end.

    Args:
        config_path: Optional explicit siliconcraft.yml.
        workspace_root: Optional root override (the --workspace-root flag).
        config: Pre-built config; skips loading when given.
        options: Registry, host probe, clock and observer overrides.

    Returns:
        ProvisionResult with the pipeline report and process exit code.
    """
    options = options or RunOptions()
    result = ProvisionResult()

    config = prepare_config(config, config_path, workspace_root, options.env, result)
    if config is None:
        return result

    return execute(
        setup_stages(), config, SETUP_RUN_ID, options, result, design=config.sample_design,
    )
