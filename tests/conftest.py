"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from siliconcraft.core.models.pipeline import Backoff, RetryPolicy
from siliconcraft.core.models.settings import AptRepairSettings, ProvisionConfig
from siliconcraft.core.models.workspace import WorkspaceLayout
from siliconcraft.core.persistence.run_log import RunLog

from tests.fakes import FakeClock, FakeHost, fake_host


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "Silicon_Craft_PD_Workspace"


@pytest.fixture
def apt_root(tmp_path: Path) -> Path:
    """A throwaway / with an empty apt configuration tree."""
    root = tmp_path / "host"
    (root / "etc" / "apt" / "sources.list.d").mkdir(parents=True)
    (root / "etc" / "apt" / "apt.conf.d").mkdir(parents=True)
    (root / "var" / "lib" / "apt" / "lists" / "partial").mkdir(parents=True)
    return root


@pytest.fixture
def config(workspace_root: Path, apt_root: Path) -> ProvisionConfig:
    return ProvisionConfig(
        workspace_root=workspace_root,
        apt=AptRepairSettings(root=apt_root),
        lock_policy=RetryPolicy(max_attempts=1, backoff=Backoff.FIXED, delay=5, deadline=120),
        fetch_policy=RetryPolicy(max_attempts=3, backoff=Backoff.FIXED, delay=10),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def host(workspace_root: Path) -> FakeHost:
    return fake_host(workspace_root)


@pytest.fixture
def layout(workspace_root: Path) -> WorkspaceLayout:
    return WorkspaceLayout(workspace_root)


@pytest.fixture
def run_log(workspace_root: Path) -> RunLog:
    return RunLog(workspace_root / "setup.log")
