"""
Container runtime gate — make sure workloads can actually run.

    Absent ─┬─ guest ──────────────────────────► HostSideInstallRequired
            └─ bare ── install once ── fail ───► RuntimeInstallFailed
                              │
    Verifying ◄───────────────┘
        hello (unprivileged) ── ok ────────────► UNPRIVILEGED
        [bare] enable service + join group
        hello (unprivileged) ── ok ────────────► UNPRIVILEGED
        hello (elevated) ────── ok ────────────► ELEVATED
                                fail ──────────► RuntimeUnusable

The selected mode is returned to the caller, which carries it on the
run context. Nothing here stores it anywhere else.
"""

from __future__ import annotations

import logging

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import (
    HostSideInstallRequired,
    RuntimeInstallFailed,
    RuntimeUnusable,
)
from siliconcraft.core.models.action import Action, Receipt
from siliconcraft.core.models.environment import EnvironmentProfile, ExecutionMode
from siliconcraft.core.models.settings import ProvisionConfig
from siliconcraft.core.persistence.run_log import RunLog

logger = logging.getLogger(__name__)


class ContainerRuntimeGate:
    """Install (where allowed) and verify the container runtime."""

    def __init__(
        self,
        registry: AdapterRegistry,
        config: ProvisionConfig,
        profile: EnvironmentProfile,
        run_log: RunLog,
    ):
        self._registry = registry
        self._config = config
        self._profile = profile
        self._run_log = run_log
        self.install_attempted = False

    def ensure_runtime_ready(self) -> ExecutionMode:
        """Return the execution mode every later container call must use.

        Raises:
            HostSideInstallRequired: Guest host without a runtime.
            RuntimeInstallFailed: The one install attempt failed.
            RuntimeUnusable: No mode can run the probe workload.
        """
        if not self._profile.has_container_runtime:
            if self._profile.is_guest:
                raise HostSideInstallRequired(
                    "no container runtime inside this WSL guest; "
                    "it has to come from Docker Desktop on the Windows host"
                )
            self._install()

        mode = self._verify()
        self._run_log.note(f"container execution mode: {mode.value}")
        if mode == ExecutionMode.ELEVATED:
            logger.warning(
                "Docker works only through sudo for this session; "
                "container calls will use sudo"
            )
        else:
            logger.info("Docker usable without sudo")
        return mode

    # ── States ──────────────────────────────────────────────────

    def _install(self) -> None:
        logger.info("Docker not found; installing from %s", self._config.runtime_install_url)
        self.install_attempted = True
        receipt = self._registry.execute_action(
            Action(
                id="runtime.install",
                name="install docker",
                adapter="shell",
                params={
                    "command": f"curl -fsSL {self._config.runtime_install_url} | sh",
                    "needs_sudo": True,
                    "timeout": 1800,
                },
            )
        )
        if not receipt.ok:
            raise RuntimeInstallFailed(f"docker installation failed: {_first_line(receipt)}")

    def _verify(self) -> ExecutionMode:
        if self._hello(ExecutionMode.UNPRIVILEGED).ok:
            return ExecutionMode.UNPRIVILEGED

        if not self._profile.is_guest:
            self._remediate_access()
            if self._hello(ExecutionMode.UNPRIVILEGED).ok:
                return ExecutionMode.UNPRIVILEGED

        last = self._hello(ExecutionMode.ELEVATED)
        if last.ok:
            return ExecutionMode.ELEVATED

        if self._profile.is_guest:
            raise RuntimeUnusable(
                f"docker cannot run containers from this WSL guest: {_first_line(last)}",
                remediation=HostSideInstallRequired.default_remediation,
            )
        raise RuntimeUnusable(f"docker cannot run containers: {_first_line(last)}")

    def _remediate_access(self) -> None:
        """Start the daemon and add the user to the runtime group.

        Group membership usually needs a new login session, so the
        retry after this is allowed to fail.
        """
        service = self._shell(
            "runtime.service",
            ["systemctl", "enable", "--now", "docker"],
        )
        if not service.ok:
            logger.warning("Could not enable the docker service: %s", service.error)

        user = self._profile.user
        if user and user != "root":
            group = self._shell(
                "runtime.group",
                ["usermod", "-aG", self._config.runtime_group, user],
            )
            if group.ok:
                self._run_log.note(f"added {user} to group {self._config.runtime_group}")
            else:
                logger.warning("Could not add %s to %s: %s", user, self._config.runtime_group, group.error)

    # ── Helpers ─────────────────────────────────────────────────

    def _hello(self, mode: ExecutionMode) -> Receipt:
        return self._registry.execute_action(
            Action(
                id="runtime.hello",
                name=f"docker run hello-world ({mode.value})",
                adapter="runtime",
                params={
                    "operation": "hello",
                    "mode": mode.value,
                    "image": self._config.probe_image,
                    "timeout": 300,
                },
            )
        )

    def _shell(self, action_id: str, argv: list[str]) -> Receipt:
        return self._registry.execute_action(
            Action(
                id=action_id,
                adapter="shell",
                params={"argv": argv, "needs_sudo": True, "timeout": 120},
            )
        )


def _first_line(receipt: Receipt) -> str:
    text = (receipt.error or receipt.output or "").strip()
    return text.splitlines()[0] if text else f"exit {receipt.return_code}"
