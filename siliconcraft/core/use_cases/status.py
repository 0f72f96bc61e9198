"""
Status use case — what the workspace currently holds.

Read-only: nothing here runs a command or touches the network; tool
availability is a PATH lookup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.config.loader import ConfigError, load_config
from siliconcraft.core.models.settings import ProvisionConfig
from siliconcraft.core.models.workspace import WorkspaceLayout
from siliconcraft.core.persistence.run_log import RunLog
from siliconcraft.core.services.fetcher import read_marker
from siliconcraft.core.services.toolflow import gds_files
from siliconcraft.core.use_cases.provision import build_registry


@dataclass
class DesignStatus:
    name: str
    valid: bool
    gds: list[Path] = field(default_factory=list)


@dataclass
class LogStatus:
    path: Path
    last_run: str = ""


@dataclass
class StatusResult:
    """Aggregated workspace status."""

    config: ProvisionConfig | None = None
    error: str | None = None

    root_exists: bool = False
    repo_valid: bool = False
    fetch_marker: dict | None = None
    pdk_present: bool = False
    designs: list[DesignStatus] = field(default_factory=list)
    logs: list[LogStatus] = field(default_factory=list)
    tools: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        assert self.config is not None
        result["workspace_root"] = str(self.config.workspace_root)
        result["image"] = self.config.container_image
        result["root_exists"] = self.root_exists
        result["tools"] = self.tools
        result["repo"] = {
            "valid": self.repo_valid,
            "marker": self.fetch_marker,
        }
        result["pdk"] = {"name": self.config.pdk, "present": self.pdk_present}
        result["designs"] = [
            {"name": d.name, "valid": d.valid, "gds": [str(p) for p in d.gds]}
            for d in self.designs
        ]
        result["logs"] = [
            {"path": str(log.path), "last_run": log.last_run} for log in self.logs
        ]
        return result


def get_status(
    config_path: Path | None = None,
    workspace_root: Path | None = None,
    registry: AdapterRegistry | None = None,
) -> StatusResult:
    """Summarize the workspace and which host tools the adapters can find."""
    result = StatusResult()

    try:
        config = load_config(config_path, workspace_root=workspace_root)
    except ConfigError as e:
        result.error = str(e)
        return result
    result.config = config

    if registry is None:
        registry = build_registry(config.workspace_root)
    result.tools = {
        name: info["available"] for name, info in registry.adapter_status().items()
    }

    layout = WorkspaceLayout(config.workspace_root, config.runtime_repo_dir)
    result.root_exists = layout.root.is_dir()
    if not result.root_exists:
        return result

    result.repo_valid = layout.repo_is_valid()
    result.fetch_marker = read_marker(layout.runtime_repo_dir)
    result.pdk_present = layout.pdk_present(config.pdk)

    if layout.designs_dir.is_dir():
        for d in sorted(p for p in layout.designs_dir.iterdir() if p.is_dir()):
            result.designs.append(
                DesignStatus(
                    name=d.name,
                    valid=layout.design_is_valid(d.name),
                    gds=gds_files(d),
                )
            )

    for path in sorted(layout.root.glob("*.log")):
        runs = RunLog(path).records("RUN")
        result.logs.append(LogStatus(path=path, last_run=runs[-1] if runs else ""))

    return result
