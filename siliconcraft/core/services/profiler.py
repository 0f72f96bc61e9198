"""
Environment profiler — which kind of host is this?

Reads a ``HostProbe`` snapshot and classifies it. ``HostProbe.capture``
is the only part that touches the machine; ``profile_environment`` is a
pure function of the snapshot, so every branch is testable.
"""

from __future__ import annotations

import getpass
import os
import shutil
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from siliconcraft.core.models.environment import EnvironmentProfile, PlatformKind

# Kernel version substrings that identify a WSL guest
_GUEST_KERNEL_MARKERS = ("microsoft", "wsl")

# Environment variables only WSL sets
_GUEST_ENV_MARKERS = ("WSL_DISTRO_NAME", "WSL_INTEROP")

# WSLg runs its display compositor from here
_WSLG_DIR = Path("/mnt/wslg")

_PACKAGE_MANAGER = "apt-get"


@dataclass(frozen=True)
class HostProbe:
    """Raw host signals, captured once."""

    system: str
    kernel_version: str = ""
    env: Mapping[str, str] = field(default_factory=dict)
    commands: frozenset[str] = frozenset()
    euid: int | None = None
    wslg_present: bool = False
    user: str = ""

    @classmethod
    def capture(cls, runtime_binary: str = "docker") -> HostProbe:
        """Snapshot the current host."""
        try:
            kernel = Path("/proc/version").read_text(encoding="utf-8", errors="replace")
        except OSError:
            kernel = ""

        wanted = (_PACKAGE_MANAGER, runtime_binary, "systemctl", "klayout")
        commands = frozenset(c for c in wanted if shutil.which(c))

        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = os.environ.get("USER", "")

        return cls(
            system=sys.platform,
            kernel_version=kernel.strip(),
            env=dict(os.environ),
            commands=commands,
            euid=os.geteuid() if hasattr(os, "geteuid") else None,
            wslg_present=_WSLG_DIR.is_dir(),
            user=user,
        )

    def has_command(self, name: str) -> bool:
        return name in self.commands


def profile_environment(
    probe: HostProbe | None = None,
    runtime_binary: str = "docker",
) -> EnvironmentProfile:
    """Classify the host. Exactly one platform kind is always returned."""
    probe = probe or HostProbe.capture(runtime_binary)

    kind, reason = _classify(probe)
    has_display = bool(
        probe.env.get("DISPLAY") or probe.env.get("WAYLAND_DISPLAY") or probe.wslg_present
    )

    return EnvironmentProfile(
        platform_kind=kind,
        has_container_runtime=probe.has_command(runtime_binary),
        is_elevated=probe.euid == 0,
        kernel_release=probe.kernel_version.split("\n", 1)[0][:200],
        has_display=has_display,
        user=probe.user,
        reason=reason,
    )


def _classify(probe: HostProbe) -> tuple[PlatformKind, str]:
    if not probe.system.startswith("linux"):
        return PlatformKind.UNSUPPORTED, f"platform '{probe.system}' is not Linux"

    if not probe.has_command(_PACKAGE_MANAGER):
        return PlatformKind.UNSUPPORTED, f"'{_PACKAGE_MANAGER}' not found (Ubuntu/Debian required)"

    kernel = probe.kernel_version.lower()
    if any(marker in kernel for marker in _GUEST_KERNEL_MARKERS):
        return PlatformKind.VIRTUALIZED_LINUX_GUEST, "WSL kernel"
    if any(probe.env.get(name) for name in _GUEST_ENV_MARKERS):
        return PlatformKind.VIRTUALIZED_LINUX_GUEST, "WSL environment"
    if probe.wslg_present:
        return PlatformKind.VIRTUALIZED_LINUX_GUEST, "WSLg compositor"

    return PlatformKind.BARE_LINUX, "Linux host"
