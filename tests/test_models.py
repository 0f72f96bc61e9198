"""
Tests for domain models — pipeline, workspace layout, receipts, environment.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from siliconcraft.core.models.action import Receipt
from siliconcraft.core.models.environment import EnvironmentProfile, PlatformKind
from siliconcraft.core.models.pipeline import (
    Backoff,
    PipelineReport,
    RetryPolicy,
    StageOutcome,
    StageStatus,
)
from siliconcraft.core.models.workspace import (
    FETCH_MARKER,
    WorkspaceLayout,
    checkout_is_valid,
)

from tests.fakes import make_checkout, write_gds


class TestRetryPolicy:
    def test_fixed_backoff(self):
        policy = RetryPolicy(max_attempts=3, backoff=Backoff.FIXED, delay=10)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [10, 10, 10]

    def test_linear_backoff(self):
        policy = RetryPolicy(backoff=Backoff.LINEAR, delay=5)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [5, 10, 15]

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(backoff=Backoff.EXPONENTIAL, delay=10, max_delay=30)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [10, 20, 30, 30]

    def test_max_delay_never_below_delay(self):
        policy = RetryPolicy(delay=60, max_delay=5)
        assert policy.delay_for(1) == 60

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)


class TestPipelineReport:
    def test_empty_report_succeeds(self):
        report = PipelineReport(pipeline="setup")
        assert report.status == StageStatus.SUCCESS
        assert report.exit_code == 0

    def test_degraded_stages_still_succeed(self):
        report = PipelineReport(outcomes=[
            StageOutcome(stage="a", status=StageStatus.SUCCESS),
            StageOutcome(stage="b", status=StageStatus.DEGRADED, detail="no viewer"),
        ])
        assert report.status == StageStatus.SUCCESS
        assert report.exit_code == 0
        assert [o.stage for o in report.degraded] == ["b"]

    def test_failed_stage_sets_exit_code(self):
        report = PipelineReport(outcomes=[
            StageOutcome(stage="a", status=StageStatus.SUCCESS),
            StageOutcome(stage="b", status=StageStatus.FAILED, exit_code=4),
        ], aborted_at="b")
        assert report.status == StageStatus.FAILED
        assert report.exit_code == 4
        assert report.failed_outcome.stage == "b"

    def test_to_dict(self):
        report = PipelineReport(pipeline="setup", outcomes=[
            StageOutcome(stage="profile", status=StageStatus.SUCCESS, detail="bare_linux"),
        ])
        data = report.to_dict()
        assert data["status"] == "success"
        assert data["stages"][0]["stage"] == "profile"
        assert data["stages"][0]["status"] == "success"

    def test_outcome_lookup(self):
        report = PipelineReport(outcomes=[StageOutcome(stage="pdk", status=StageStatus.DEGRADED)])
        assert report.outcome("pdk").status == StageStatus.DEGRADED
        assert report.outcome("missing") is None


class TestWorkspaceLayout:
    def test_paths(self, tmp_path: Path):
        layout = WorkspaceLayout(tmp_path)
        assert layout.runtime_repo_dir == tmp_path / "OpenLane"
        assert layout.designs_dir == tmp_path / "OpenLane" / "designs"
        assert layout.design_dir("inverter") == tmp_path / "OpenLane" / "designs" / "inverter"
        assert layout.log_path("setup") == tmp_path / "setup.log"

    def test_checkout_needs_marker(self, tmp_path: Path):
        repo = make_checkout(tmp_path / "OpenLane")
        assert not checkout_is_valid(repo)
        (repo / FETCH_MARKER).write_text("{}")
        assert checkout_is_valid(repo)

    def test_checkout_needs_structure(self, tmp_path: Path):
        repo = make_checkout(tmp_path / "OpenLane", marker=True)
        (repo / "Makefile").unlink()
        assert not checkout_is_valid(repo)

    def test_design_validity(self, tmp_path: Path):
        layout = WorkspaceLayout(tmp_path)
        design = layout.design_dir("inverter")
        design.mkdir(parents=True)
        assert not layout.design_is_valid("inverter")
        (design / "config.json").write_text("{}")
        assert layout.design_is_valid("inverter")

    def test_find_gds(self, tmp_path: Path):
        layout = WorkspaceLayout(tmp_path)
        assert layout.find_gds("inverter") is None
        gds = write_gds(layout.design_dir("inverter"), "inverter")
        assert layout.find_gds("inverter") == gds

    def test_find_gds_respects_depth(self, tmp_path: Path):
        layout = WorkspaceLayout(tmp_path)
        deep = layout.design_dir("inverter") / "a" / "b" / "c" / "d" / "e" / "f" / "x.gds"
        deep.parent.mkdir(parents=True)
        deep.write_bytes(b"")
        assert layout.find_gds("inverter") is None

    def test_find_gds_prefers_newest(self, tmp_path: Path):
        layout = WorkspaceLayout(tmp_path)
        design = layout.design_dir("inverter")
        old = design / "runs" / "old" / "inverter.gds"
        new = design / "runs" / "new" / "inverter.gds"
        for p in (old, new):
            p.parent.mkdir(parents=True)
            p.write_bytes(b"")
        os.utime(old, (1_000_000, 1_000_000))
        assert layout.find_gds("inverter") == new


class TestReceipt:
    def test_success_defaults(self):
        r = Receipt.success(adapter="shell", action_id="x", output="hi")
        assert r.ok
        assert r.return_code == 0

    def test_transcript_joins_output_and_error(self):
        r = Receipt.failure(adapter="shell", action_id="x", error="E: broken", output="Hit:1 ...")
        assert r.transcript == "Hit:1 ...\nE: broken"

    def test_transcript_falls_back_to_stderr_metadata(self):
        r = Receipt.success(adapter="shell", action_id="x", output="ok", metadata={"stderr": "W: warn"})
        assert "W: warn" in r.transcript


class TestEnvironmentProfile:
    def test_guest_flags(self):
        profile = EnvironmentProfile(platform_kind=PlatformKind.VIRTUALIZED_LINUX_GUEST)
        assert profile.is_guest
        assert profile.supported

    def test_unsupported(self):
        profile = EnvironmentProfile(platform_kind=PlatformKind.UNSUPPORTED)
        assert not profile.supported

    def test_frozen(self):
        profile = EnvironmentProfile(platform_kind=PlatformKind.BARE_LINUX)
        with pytest.raises(ValidationError):
            profile.is_elevated = True
