"""
Provisioning configuration — one parameterized pipeline definition.

Loaded from an optional siliconcraft.yml plus environment overrides.
Everything that differed between the old per-machine setup variants
(retry counts, image tags, mirrors, package lists) lives here instead
of in separate code paths.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from siliconcraft.core.models.pipeline import Backoff, RetryPolicy

DEFAULT_WORKSPACE_DIRNAME = "Silicon_Craft_PD_Workspace"
DEFAULT_IMAGE = (
    "ghcr.io/the-openroad-project/openlane:ff5509f65b17bfa4068d5336495ab1718987ff69"
)


def default_workspace_root() -> Path:
    return Path.home() / DEFAULT_WORKSPACE_DIRNAME


def image_is_pinned(reference: str) -> bool:
    """Whether an image reference names one fixed build.

    A digest (``@sha256:...``) or an explicit tag other than ``latest``
    counts as pinned. An untagged reference resolves to ``latest``.
    """
    ref = reference.strip()
    if not ref:
        return False
    if "@sha256:" in ref:
        return True
    last = ref.rsplit("/", 1)[-1]
    if ":" not in last:
        return False
    tag = last.rsplit(":", 1)[1]
    return bool(tag) and tag != "latest"


class AptRepairSettings(BaseModel):
    """Knobs for the package state healer."""

    # Root prefix for /etc/apt and /var/lib/apt; tests point this at a tmp dir
    root: Path = Path("/")
    canonical_mirror: str = "http://archive.ubuntu.com"
    bad_mirrors: list[str] = Field(
        default_factory=lambda: ["http://in.archive.ubuntu.com"]
    )
    retired_repo_globs: list[str] = Field(
        default_factory=lambda: ["llvm-toolchain-xenial*"]
    )
    refresh_timeout: int = 600


class ProvisionConfig(BaseModel):
    """Everything a provisioning run needs to know."""

    workspace_root: Path = Field(default_factory=default_workspace_root)

    runtime_repo_url: str = "https://github.com/The-OpenROAD-Project/OpenLane.git"
    runtime_repo_dir: str = "OpenLane"
    container_image: str = DEFAULT_IMAGE
    container_mount: str = "/openlane"

    pdk: str = "sky130A"
    pdk_root: str = "/openlane/pdks"       # as seen inside the container
    sample_design: str = "inverter"

    base_packages: list[str] = Field(
        default_factory=lambda: [
            "git", "curl", "wget", "ca-certificates", "gnupg", "lsb-release",
            "build-essential", "make", "python3", "python3-venv",
            "tcllib", "xz-utils",
        ]
    )
    gui_packages: list[str] = Field(
        default_factory=lambda: ["magic", "klayout", "xschem"]
    )

    lock_paths: list[str] = Field(
        default_factory=lambda: [
            "/var/lib/dpkg/lock-frontend",
            "/var/lib/dpkg/lock",
        ]
    )
    lock_policy: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(
            max_attempts=1, backoff=Backoff.FIXED, delay=5.0, deadline=120.0,
        )
    )
    fetch_policy: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(
            max_attempts=3, backoff=Backoff.FIXED, delay=10.0,
            per_attempt_timeout=1800,
        )
    )

    apt: AptRepairSettings = Field(default_factory=AptRepairSettings)

    git_tuning: dict[str, str] = Field(
        default_factory=lambda: {
            "http.postBuffer": "524288000",
            "http.lowSpeedLimit": "0",
            "http.lowSpeedTime": "999999",
        }
    )

    runtime_install_url: str = "https://get.docker.com"
    runtime_group: str = "docker"
    probe_image: str = "hello-world"
    flow_timeout: int = 4 * 3600
    pdk_timeout: int = 3600

    @field_validator("workspace_root", mode="before")
    @classmethod
    def _expand_root(cls, value: object) -> object:
        if isinstance(value, str):
            return Path(value).expanduser()
        if isinstance(value, Path):
            return value.expanduser()
        return value

    @field_validator("container_image")
    @classmethod
    def _require_pinned_image(cls, value: str) -> str:
        if not image_is_pinned(value):
            raise ValueError(
                f"container image '{value}' is not pinned; "
                "use an explicit tag or @sha256 digest (not 'latest')"
            )
        return value
