"""
Container runtime adapter — docker CLI calls under an explicit mode.

Every action must carry the ExecutionMode chosen by the runtime gate.
The adapter never decides privilege on its own: ``elevated`` means
``sudo docker``, ``unprivileged`` means plain ``docker``.
"""

from __future__ import annotations

import logging
import shutil
from typing import Any

from siliconcraft.adapters.base import Adapter, ExecutionContext
from siliconcraft.adapters.shell.command import run_process, with_sudo
from siliconcraft.core.models.action import Receipt
from siliconcraft.core.models.environment import ExecutionMode

logger = logging.getLogger(__name__)

VALID_OPERATIONS = {"version", "info", "hello", "run"}


def build_runtime_argv(params: dict[str, Any], binary: str = "docker") -> list[str]:
    """Build the full argv for a runtime action.

    Params:
        operation (str): 'version', 'info', 'hello' or 'run'.
        mode (str): ExecutionMode value.
        image (str): Image reference ('hello' and 'run').
        user (str): ``uid:gid`` to run as ('run').
        volumes (list[str]): ``host:container`` mounts ('run').
        workdir (str): Working directory inside the container ('run').
        env (dict[str, str]): Container environment ('run').
        command (list[str]): Command inside the container ('run').
        interactive (bool): Attach a TTY ('run').
    """
    operation = params["operation"]
    mode = ExecutionMode(params["mode"])

    if operation == "version":
        args = ["--version"]
    elif operation == "info":
        args = ["info"]
    elif operation == "hello":
        args = ["run", "--rm", params["image"]]
    else:
        args = ["run", "--rm"]
        if params.get("interactive"):
            args.append("-it")
        if params.get("user"):
            args += ["-u", params["user"]]
        for volume in params.get("volumes", []):
            args += ["-v", volume]
        if params.get("workdir"):
            args += ["-w", params["workdir"]]
        for key, value in params.get("env", {}).items():
            args += ["-e", f"{key}={value}"]
        args.append(params["image"])
        args += list(params.get("command", []))

    argv = [binary, *args]
    if mode == ExecutionMode.ELEVATED:
        argv = with_sudo(argv)
    return argv


class ContainerRuntimeAdapter(Adapter):
    """Docker CLI operations.

    Action params: see ``build_runtime_argv``; plus ``timeout`` (seconds).
    """

    def __init__(self, binary: str = "docker"):
        self._binary = binary

    @property
    def name(self) -> str:
        return "runtime"

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "")
        if operation not in VALID_OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(VALID_OPERATIONS))}"

        mode = params.get("mode")
        if mode not in {m.value for m in ExecutionMode}:
            return False, "Missing or invalid param: 'mode'"

        if operation in ("hello", "run") and not params.get("image"):
            return False, f"Missing required param: 'image' for {operation}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        argv = build_runtime_argv(params, self._binary)
        return run_process(
            argv,
            adapter=self.name,
            action_id=context.action.id,
            timeout=params.get("timeout", 300),
            cwd=context.working_dir,
            interactive=bool(params.get("interactive")),
        )
