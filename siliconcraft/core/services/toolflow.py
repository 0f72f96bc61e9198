"""
Tool flow — everything that runs inside the flow container.

All container calls take the ExecutionMode chosen by the runtime gate
as an argument. The flow tool's own exit code is only half the story:
a run that exits non-zero but still wrote a GDS is reported as
degraded, one that wrote nothing is a failure.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import ToolFlowError
from siliconcraft.core.models.action import Action, Receipt
from siliconcraft.core.models.environment import ExecutionMode
from siliconcraft.core.models.pipeline import Degraded
from siliconcraft.core.models.settings import ProvisionConfig
from siliconcraft.core.models.workspace import WorkspaceLayout
from siliconcraft.core.persistence.workspace import ensure_directory, set_aside

logger = logging.getLogger(__name__)


# ── Sample design ───────────────────────────────────────────────

SAMPLE_SOURCES: dict[str, dict[str, str]] = {
    "inverter": {
        "inverter.v": """\
module inverter(input wire a, output wire y);
  assign y = ~a;
endmodule
""",
        "config.tcl": """\
set ::env(DESIGN_NAME) inverter
set ::env(VERILOG_FILES) "$::env(DESIGN_DIR)/inverter.v"

set ::env(RUN_TAG) inv_run
set ::env(CLOCK_PORT) clk
set ::env(CLOCK_PERIOD) 10

set ::env(FP_SIZING) absolute
set ::env(DIE_AREA) "0 0 50 50"
set ::env(FP_CORE_UTIL) 10
set ::env(PL_TARGET_DENSITY) 0.30

set ::env(MAGIC_SKIP_DRC) 1
set ::env(QUIT_ON_MAGIC_DRC) 0
set ::env(MAGIC_ALLOW_NON_MANHATTAN) 1
set ::env(GDS_ALLOW_EMPTY) 1
""",
    },
}


class ToolFlow:
    """Container-side operations on the flow checkout."""

    def __init__(
        self,
        registry: AdapterRegistry,
        config: ProvisionConfig,
        layout: WorkspaceLayout,
        env: Mapping[str, str] | None = None,
    ):
        self._registry = registry
        self._config = config
        self._layout = layout
        self._env = os.environ if env is None else env

    # ── Container invocation ────────────────────────────────────

    def container_env(self) -> dict[str, str]:
        """PDK variables for the container; caller-set values pass through unchanged."""
        return {
            "PDK_ROOT": self._env.get("PDK_ROOT") or self._config.pdk_root,
            "PDK": self._env.get("PDK") or self._config.pdk,
            "PWD": self._config.container_mount,
        }

    def _run(
        self,
        action_id: str,
        mode: ExecutionMode,
        command: list[str],
        timeout: int,
        interactive: bool = False,
    ) -> Receipt:
        mount = self._config.container_mount
        params = {
            "operation": "run",
            "mode": mode.value,
            "image": self._config.container_image,
            "user": _uid_gid(),
            "volumes": [f"{self._layout.runtime_repo_dir}:{mount}"],
            "workdir": mount,
            "env": self.container_env(),
            "command": command,
            "timeout": timeout,
        }
        if interactive:
            params["interactive"] = True
        return self._registry.execute_action(
            Action(id=action_id, name=" ".join(command), adapter="runtime", params=params)
        )

    # ── Operations ──────────────────────────────────────────────

    def install_pdk(self, mode: ExecutionMode) -> str | Degraded:
        receipt = self._run("flow.pdk", mode, ["bash", "-lc", "make pdk"], self._config.pdk_timeout)
        if receipt.ok and self._layout.pdk_present(self._config.pdk):
            return f"{self._config.pdk} installed"
        if receipt.ok:
            return Degraded(f"make pdk finished but pdks/{self._config.pdk} is missing")
        return Degraded(f"make pdk failed (exit {receipt.return_code}); see the run log")

    def seed_sample_design(self, design_id: str) -> str:
        """Write the bundled sample design into the checkout."""
        sources = SAMPLE_SOURCES.get(design_id)
        if sources is None:
            raise ToolFlowError(
                f"no bundled sources for sample design '{design_id}'",
                remediation=f"Set sample_design to one of: {', '.join(SAMPLE_SOURCES)}",
            )

        target = self._layout.design_dir(design_id)
        if target.exists() and not self._layout.design_is_valid(design_id):
            set_aside(target, "backup")
        ensure_directory(target)

        for name, content in sources.items():
            (target / name).write_text(content, encoding="utf-8")
        return f"seeded {target}"

    def run_design(
        self,
        design_id: str,
        mode: ExecutionMode,
        interactive: bool = False,
    ) -> str | Degraded:
        """Run the flow for one design.

        Raises:
            ToolFlowError: The design is missing, or the flow failed
                without producing a GDS.
        """
        if not self._layout.design_is_valid(design_id):
            raise ToolFlowError(
                f"design '{design_id}' not found at {self._layout.design_dir(design_id)}",
                remediation="Create the design directory with a config.tcl or config.json.",
            )

        if interactive:
            command = ["./flow.tcl", "-interactive"]
        else:
            command = ["./flow.tcl", "-design", design_id, "-overwrite"]

        receipt = self._run(
            "flow.interactive" if interactive else "flow.run",
            mode,
            command,
            self._config.flow_timeout,
            interactive=interactive,
        )
        if interactive:
            if receipt.ok:
                return "interactive session ended"
            return Degraded(f"interactive session exited with code {receipt.return_code}")

        gds = self._layout.find_gds(design_id)
        if receipt.ok:
            if gds is None:
                return Degraded("flow finished but no GDS was found")
            return f"GDS written: {gds}"
        if gds is not None:
            return Degraded(f"flow exited with code {receipt.return_code}; GDS present at {gds}")
        raise ToolFlowError(
            f"flow for '{design_id}' failed (exit {receipt.return_code}) and produced no GDS",
            remediation="Check the CMD output in the run log for the failing step.",
        )

    def inspect_result(self, design_id: str, has_display: bool) -> str | Degraded:
        gds = self._layout.find_gds(design_id)
        if gds is None:
            return Degraded(f"no GDS under {self._layout.design_dir(design_id)}")

        viewer = shutil.which("klayout")
        if viewer and has_display:
            return f"GDS at {gds} (open with: klayout {gds})"
        if viewer:
            return f"GDS at {gds} (klayout installed, no display available)"
        return f"GDS at {gds} (klayout not installed)"


def _uid_gid() -> str:
    if hasattr(os, "getuid"):
        return f"{os.getuid()}:{os.getgid()}"
    return "1000:1000"


def gds_files(design_dir: Path) -> list[Path]:
    """Every GDS under a design directory, for status reporting."""
    if not design_dir.is_dir():
        return []
    return sorted(design_dir.rglob("*.gds"))
