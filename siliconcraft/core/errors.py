"""
Error taxonomy — every way a provisioning run can fail.

Services raise these; only the orchestrator decides what a failure
means for the run. Each error knows its category, the process exit
code for that category, and a remediation hint for the user.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for categorized provisioning failures."""

    category = "internal"
    exit_code = 9
    default_remediation = ""

    def __init__(self, message: str, remediation: str | None = None):
        super().__init__(message)
        self.message = message
        self.remediation = remediation if remediation is not None else self.default_remediation

    def __str__(self) -> str:
        return self.message


class UnsupportedEnvironment(ProvisionError):
    category = "unsupported_environment"
    exit_code = 1
    default_remediation = (
        "Run on Ubuntu (22.04/24.04) or on WSL2 Ubuntu. On macOS use "
        "Docker Desktop with a manual OpenLane setup."
    )


class PackageStateError(ProvisionError):
    category = "package_state"
    exit_code = 2


class PackageStateUnrecoverable(PackageStateError):
    default_remediation = (
        "Fix the failing repository shown above (e.g. "
        "'sudo add-apt-repository --remove ppa:<name>'), make sure "
        "'sudo apt-get update' succeeds, then re-run."
    )


class ContainerRuntimeError(ProvisionError):
    category = "container_runtime"
    exit_code = 3


class HostSideInstallRequired(ContainerRuntimeError):
    default_remediation = (
        "Install Docker Desktop on Windows "
        "(https://docs.docker.com/desktop/install/windows/), enable "
        "Settings → Resources → WSL integration for this distro, run "
        "'wsl --shutdown' in PowerShell, reopen the terminal and re-run."
    )


class RuntimeInstallFailed(ContainerRuntimeError):
    default_remediation = (
        "Install Docker manually ('curl -fsSL https://get.docker.com | sudo sh') "
        "and re-run."
    )


class RuntimeUnusable(ContainerRuntimeError):
    default_remediation = (
        "Check 'sudo systemctl status docker' and 'sudo journalctl -u docker -n 200'. "
        "If you were just added to the docker group, log out and back in, then re-run."
    )


class LockTimeout(ProvisionError):
    category = "lock_timeout"
    exit_code = 5
    default_remediation = (
        "Free the package lock: close Software Updater or wait for the "
        "running apt/dpkg process ('sudo systemctl stop apt-daily.service "
        "apt-daily-upgrade.service'), then re-run."
    )


class FetchError(ProvisionError):
    category = "fetch"
    exit_code = 4


class NetworkExhausted(FetchError):
    default_remediation = "Check your internet connection or proxy settings and re-run."


class ToolFlowError(ProvisionError):
    category = "tool_flow"
    exit_code = 6


class WorkspaceError(ProvisionError):
    category = "workspace"
    exit_code = 8
