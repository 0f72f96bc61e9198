"""
Tests for container-side flow operations.
"""

import pytest

from siliconcraft.core.errors import ToolFlowError
from siliconcraft.core.models.environment import ExecutionMode
from siliconcraft.core.models.pipeline import Degraded
from siliconcraft.core.services.toolflow import ToolFlow

from tests.fakes import make_checkout, write_gds


@pytest.fixture
def flow(host, config, layout) -> ToolFlow:
    make_checkout(layout.runtime_repo_dir, marker=True)
    return ToolFlow(host.registry, config, layout, env={})


class TestToolFlow:
    def test_container_env_defaults(self, flow):
        assert flow.container_env() == {"PDK_ROOT": "/openlane/pdks", "PDK": "sky130A", "PWD": "/openlane"}

    def test_container_env_passthrough(self, host, config, layout):
        flow = ToolFlow(host.registry, config, layout, env={"PDK_ROOT": "/pdk", "PDK": "sky130B"})
        env = flow.container_env()
        assert env["PDK_ROOT"] == "/pdk"
        assert env["PDK"] == "sky130B"

    def test_seed_sample_design(self, flow, layout):
        flow.seed_sample_design("inverter")
        design = layout.design_dir("inverter")
        assert "assign y = ~a;" in (design / "inverter.v").read_text()
        assert "set ::env(DESIGN_NAME) inverter" in (design / "config.tcl").read_text()
        assert layout.design_is_valid("inverter")

    def test_seed_sets_aside_invalid_dir(self, flow, layout):
        design = layout.design_dir("inverter")
        design.mkdir(parents=True)
        (design / "notes.txt").write_text("left over")
        flow.seed_sample_design("inverter")
        backups = [p for p in layout.designs_dir.iterdir() if p.name.startswith("inverter_backup_")]
        assert len(backups) == 1
        assert (backups[0] / "notes.txt").exists()

    def test_seed_unknown_design(self, flow):
        with pytest.raises(ToolFlowError):
            flow.seed_sample_design("riscv")

    def test_run_design_success(self, flow, host, layout, config):
        flow.seed_sample_design("inverter")
        result = flow.run_design("inverter", ExecutionMode.UNPRIVILEGED)

        assert isinstance(result, str)
        assert "GDS written" in result
        params = host.runtime.calls("flow.run")[0].action.params
        assert params["mode"] == "unprivileged"
        assert params["image"] == config.container_image
        assert params["command"] == ["./flow.tcl", "-design", "inverter", "-overwrite"]
        assert params["volumes"] == [f"{layout.runtime_repo_dir}:/openlane"]
        assert params["workdir"] == "/openlane"

    def test_nonzero_exit_with_gds_is_degraded(self, flow, host):
        flow.seed_sample_design("inverter")
        host.runtime.set_failure("flow.run", "[ERROR]: Magic DRC failed")
        host.runtime.gds_on_failure = True
        result = flow.run_design("inverter", ExecutionMode.ELEVATED)
        assert isinstance(result, Degraded)
        assert "GDS present" in result.detail

    def test_nonzero_exit_without_gds_fails(self, flow, host):
        flow.seed_sample_design("inverter")
        host.runtime.set_failure("flow.run", "[ERROR]: synthesis failed")
        with pytest.raises(ToolFlowError) as exc:
            flow.run_design("inverter", ExecutionMode.UNPRIVILEGED)
        assert exc.value.exit_code == 6

    def test_missing_design(self, flow):
        with pytest.raises(ToolFlowError, match="not found"):
            flow.run_design("nope", ExecutionMode.UNPRIVILEGED)

    def test_interactive(self, flow, host):
        flow.seed_sample_design("inverter")
        assert flow.run_design("inverter", ExecutionMode.UNPRIVILEGED, interactive=True) == "interactive session ended"
        params = host.runtime.calls("flow.interactive")[0].action.params
        assert params["interactive"] is True
        assert params["command"] == ["./flow.tcl", "-interactive"]

    def test_install_pdk(self, flow, host, layout):
        assert flow.install_pdk(ExecutionMode.ELEVATED) == "sky130A installed"
        assert layout.pdk_present("sky130A")
        params = host.runtime.calls("flow.pdk")[0].action.params
        assert params["mode"] == "elevated"
        assert params["command"] == ["bash", "-lc", "make pdk"]

    def test_install_pdk_failure_degrades(self, flow, host):
        host.runtime.set_failure("flow.pdk", "volare: network error")
        assert isinstance(flow.install_pdk(ExecutionMode.UNPRIVILEGED), Degraded)

    def test_inspect(self, flow, layout):
        assert isinstance(flow.inspect_result("inverter", has_display=False), Degraded)
        gds = write_gds(layout.design_dir("inverter"), "inverter")
        assert str(gds) in flow.inspect_result("inverter", has_display=True)
