"""
Environment models — host identity and container execution mode.

The profile is computed once per run by the environment profiler and
never persisted. The execution mode is chosen once per run by the
container runtime gate and passed explicitly to every later container
invocation.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class PlatformKind(StrEnum):
    """Which kind of host we are running on."""

    BARE_LINUX = "bare_linux"
    VIRTUALIZED_LINUX_GUEST = "virtualized_linux_guest"
    UNSUPPORTED = "unsupported"


class ExecutionMode(StrEnum):
    """Privilege level for container runtime calls."""

    UNPRIVILEGED = "unprivileged"
    ELEVATED = "elevated"


class EnvironmentProfile(BaseModel):
    """Immutable host facts for one run."""

    model_config = ConfigDict(frozen=True)

    platform_kind: PlatformKind
    has_container_runtime: bool = False
    is_elevated: bool = False

    # Additive facts, informational only
    kernel_release: str = ""
    has_display: bool = False
    user: str = ""
    reason: str = ""                # why this platform_kind was chosen

    @property
    def is_guest(self) -> bool:
        return self.platform_kind == PlatformKind.VIRTUALIZED_LINUX_GUEST

    @property
    def supported(self) -> bool:
        return self.platform_kind != PlatformKind.UNSUPPORTED
