"""
Package installs — query and install apt packages through the shell adapter.
"""

from __future__ import annotations

import logging

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import PackageStateError
from siliconcraft.core.models.action import Action

logger = logging.getLogger(__name__)

_INSTALLED = "install ok installed"


def missing_packages(registry: AdapterRegistry, names: list[str]) -> list[str]:
    """Packages from ``names`` that dpkg does not report as installed."""
    if not names:
        return []
    receipt = registry.execute_action(
        Action(
            id="apt.query",
            name="dpkg-query",
            adapter="shell",
            params={
                "argv": ["dpkg-query", "-W", "-f=${Package} ${Status}\n", *names],
                "timeout": 60,
            },
        )
    )
    # dpkg-query exits 1 when some names are unknown but still lists the rest
    installed = set()
    for line in receipt.output.splitlines():
        package, _, status = line.strip().partition(" ")
        if status == _INSTALLED:
            installed.add(package)
    return [n for n in names if n not in installed]


def install_packages(registry: AdapterRegistry, names: list[str], action_id: str = "apt.install") -> str:
    """``apt-get install -y`` the given packages.

    Raises:
        PackageStateError: If apt-get fails.
    """
    receipt = registry.execute_action(
        Action(
            id=action_id,
            name="apt-get install",
            adapter="shell",
            params={
                "argv": ["apt-get", "install", "-y", *names],
                "needs_sudo": True,
                "timeout": 3600,
                "env": {"DEBIAN_FRONTEND": "noninteractive"},
            },
        )
    )
    if not receipt.ok:
        raise PackageStateError(
            f"apt-get install failed for {', '.join(names)}: {receipt.error}",
            remediation=f"Run 'sudo apt-get install -y {' '.join(names)}' to see the full error.",
        )
    logger.info("Installed %s", ", ".join(names))
    return f"installed {len(names)} package(s)"
