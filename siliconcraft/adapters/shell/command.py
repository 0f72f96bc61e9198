"""
Shell command adapter — run host commands and capture their output.

``run_process`` is the single place where subprocess.run is called.
The runtime and git adapters build their argv and delegate here, so
sudo handling, timeouts and receipt shaping are the same everywhere.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from pathlib import Path

from siliconcraft.adapters.base import Adapter, ExecutionContext
from siliconcraft.core.models.action import Receipt

logger = logging.getLogger(__name__)

def is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def with_sudo(argv: list[str], env: dict[str, str] | None = None) -> list[str]:
    """Prefix ``sudo`` unless we already run as root.

    sudo resets the environment, so ``env`` entries are passed as
    ``KEY=VALUE`` arguments for sudo to set on the command itself.
    """
    if is_root():
        return argv
    assignments = [f"{key}={value}" for key, value in (env or {}).items()]
    return ["sudo", *assignments, *argv]


def run_process(
    argv: list[str],
    *,
    adapter: str,
    action_id: str,
    timeout: float | None = 300,
    cwd: str | None = None,
    stdin: str | None = None,
    env_overrides: dict[str, str] | None = None,
    interactive: bool = False,
) -> Receipt:
    """Run one command and turn the result into a Receipt.

    Interactive commands inherit the terminal: nothing is captured and
    the receipt carries only the exit code.
    """
    command_str = shlex.join(argv)
    env = None
    if env_overrides:
        env = os.environ.copy()
        env.update(env_overrides)

    logger.debug("Executing: %s (cwd=%s)", command_str, cwd)
    start = time.monotonic()

    try:
        if interactive:
            result = subprocess.run(argv, cwd=cwd, env=env, timeout=timeout)
            stdout, stderr = "", ""
        else:
            result = subprocess.run(
                argv,
                cwd=cwd,
                env=env,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            stdout = result.stdout or ""
            stderr = result.stderr or ""
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command timed out after {timeout}s",
            metadata={"command": command_str, "timeout": timeout},
        )
    except FileNotFoundError as e:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command not found: {e.filename or argv[0]}",
            return_code=127,
            metadata={"command": command_str},
        )
    except OSError as e:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command execution error: {e}",
            metadata={"command": command_str},
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    # Streams kept exactly as captured for the run log
    metadata = {"command": command_str, "stdout": stdout, "stderr": stderr}

    if result.returncode == 0:
        return Receipt.success(
            adapter=adapter,
            action_id=action_id,
            output=stdout.strip(),
            duration_ms=elapsed_ms,
            return_code=0,
            metadata=metadata,
        )
    return Receipt.failure(
        adapter=adapter,
        action_id=action_id,
        error=stderr.strip() or f"Command exited with code {result.returncode}",
        output=stdout.strip(),
        duration_ms=elapsed_ms,
        return_code=result.returncode,
        metadata=metadata,
    )


class ShellCommandAdapter(Adapter):
    """Execute host commands and capture output.

    Action params:
        argv (list[str]): Command as an argument vector (preferred).
        command (str): Command string, run through ``sh -c``.
        needs_sudo (bool): Run with root privileges (default: False).
        stdin (str): Text fed to the command's standard input.
        timeout (int): Timeout in seconds (default: 300).
        cwd (str): Override working directory (default: context.working_dir).
        env (dict): Extra environment variables.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        if not params.get("argv") and not params.get("command"):
            return False, "Missing required param: 'argv' or 'command'"

        cwd = params.get("cwd", context.working_dir)
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        if params.get("argv"):
            argv = [str(a) for a in params["argv"]]
        else:
            argv = ["sh", "-c", params["command"]]
        if params.get("needs_sudo"):
            argv = with_sudo(argv, params.get("env"))

        return run_process(
            argv,
            adapter=self.name,
            action_id=context.action.id,
            timeout=params.get("timeout", 300),
            cwd=params.get("cwd", context.working_dir),
            stdin=params.get("stdin"),
            env_overrides=params.get("env"),
        )
