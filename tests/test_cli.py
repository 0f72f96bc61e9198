"""
Tests for CLI commands — global options, setup, flow and status.

The pipelines themselves are covered elsewhere; here the use cases are
replaced so only argument handling, rendering and exit codes run.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from siliconcraft.core.models.pipeline import PipelineReport, StageOutcome, StageStatus
from siliconcraft.core.use_cases import provision, run_design
from siliconcraft.core.use_cases.provision import ProvisionResult
from siliconcraft.main import cli


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("WORKSPACE_ROOT", "CONTAINER_IMAGE", "SC_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)


def _result(exit_code: int = 0, **kwargs) -> ProvisionResult:
    report = PipelineReport(
        pipeline="setup",
        outcomes=[StageOutcome(stage="profile", status=StageStatus.SUCCESS, detail="bare_linux")],
    )
    return ProvisionResult(report=report, exit_code=exit_code, **kwargs)


class Recorder:
    """Stand-in use case that remembers how it was called."""

    def __init__(self, result: ProvisionResult):
        self.result = result
        self.calls: list[tuple[tuple, dict]] = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        return self.result


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Silicon Craft" in result.output
        for command in ("setup", "flow", "status"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestSetupCommand:
    def test_success(self, monkeypatch, tmp_path: Path):
        fake = Recorder(_result(log_path=tmp_path / "setup.log"))
        monkeypatch.setattr(provision, "run_setup", fake)

        result = CliRunner().invoke(cli, ["--workspace-root", str(tmp_path), "setup"])

        assert result.exit_code == 0
        assert "Setup complete" in result.output
        assert fake.calls[0][1]["workspace_root"] == tmp_path

    def test_no_subcommand_runs_setup(self, monkeypatch):
        fake = Recorder(_result())
        monkeypatch.setattr(provision, "run_setup", fake)

        result = CliRunner().invoke(cli, [])

        assert result.exit_code == 0
        assert len(fake.calls) == 1

    def test_failure_exit_code_and_remediation(self, monkeypatch):
        fake = Recorder(_result(
            exit_code=3,
            error="docker cannot run containers",
            error_category="container_runtime",
            remediation="Log out and back in.",
        ))
        monkeypatch.setattr(provision, "run_setup", fake)

        result = CliRunner().invoke(cli, ["setup"])

        assert result.exit_code == 3
        assert "[container_runtime]" in result.output
        assert "Log out and back in." in result.output

    def test_json(self, monkeypatch):
        monkeypatch.setattr(provision, "run_setup", Recorder(_result()))
        result = CliRunner().invoke(cli, ["setup", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["exit_code"] == 0
        assert data["report"]["stages"][0]["stage"] == "profile"


class TestFlowCommand:
    def test_mode_option(self, monkeypatch):
        fake = Recorder(_result())
        monkeypatch.setattr(run_design, "run_design", fake)

        result = CliRunner().invoke(cli, ["flow", "inverter", "--mode", "1"])

        assert result.exit_code == 0
        args, kwargs = fake.calls[0]
        assert args == ("inverter",)
        assert kwargs["interactive"] is False

    def test_prompts_for_mode(self, monkeypatch):
        fake = Recorder(_result())
        monkeypatch.setattr(run_design, "run_design", fake)

        result = CliRunner().invoke(cli, ["flow", "inverter"], input="2\n")

        assert result.exit_code == 0
        assert "Select run mode" in result.output
        assert fake.calls[0][1]["interactive"] is True

    def test_interactive_json_rejected(self, monkeypatch):
        fake = Recorder(_result())
        monkeypatch.setattr(run_design, "run_design", fake)

        result = CliRunner().invoke(cli, ["flow", "inverter", "--mode", "2", "--json"])

        assert result.exit_code == 2
        assert fake.calls == []

    def test_failure_exit_code(self, monkeypatch):
        monkeypatch.setattr(run_design, "run_design", Recorder(_result(
            exit_code=6, error="design 'spm' not found", error_category="tool_flow",
        )))
        result = CliRunner().invoke(cli, ["flow", "spm", "--mode", "1"])
        assert result.exit_code == 6
        assert "design 'spm' not found" in result.output


class TestStatusCommand:
    def test_empty_workspace(self, tmp_path: Path):
        root = tmp_path / "ws"
        result = CliRunner().invoke(cli, ["--workspace-root", str(root), "status"])
        assert result.exit_code == 0
        assert "not created" in result.output

    def test_empty_workspace_json(self, tmp_path: Path):
        root = tmp_path / "ws"
        result = CliRunner().invoke(cli, ["--workspace-root", str(root), "status", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["root_exists"] is False
        assert data["pdk"]["name"] == "sky130A"

    def test_workspace_root_from_env(self, tmp_path: Path, monkeypatch):
        root = tmp_path / "from-env"
        monkeypatch.setenv("WORKSPACE_ROOT", str(root))
        result = CliRunner().invoke(cli, ["status", "--json"])
        assert json.loads(result.output)["workspace_root"] == str(root)

    def test_bad_config(self, tmp_path: Path):
        config = tmp_path / "siliconcraft.yml"
        config.write_text("container_image: [unclosed\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "status"])
        assert result.exit_code == 7
        assert "Invalid YAML" in result.output
