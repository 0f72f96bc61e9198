"""
Git adapter — clone and global config through the git CLI.
"""

from __future__ import annotations

import logging
import shutil

from siliconcraft.adapters.base import Adapter, ExecutionContext
from siliconcraft.adapters.shell.command import run_process
from siliconcraft.core.models.action import Receipt

logger = logging.getLogger(__name__)

VALID_OPERATIONS = {"clone", "config-get", "config-set"}


class GitAdapter(Adapter):
    """Git operations used by the provisioner.

    Action params:
        operation (str): One of 'clone', 'config-get', 'config-set'.
        url (str): Remote URL (for 'clone').
        dest (str): Target directory (for 'clone').
        depth (int): Shallow clone depth (for 'clone', default: full).
        key (str): Config key (for 'config-get' / 'config-set').
        value (str): Config value (for 'config-set').
        timeout (int): Timeout in seconds (default: 30, clone: 1800).
    """

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "")
        if operation not in VALID_OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(VALID_OPERATIONS))}"

        if operation == "clone":
            if not params.get("url") or not params.get("dest"):
                return False, "Missing required params: 'url' and 'dest' for clone"
        elif not params.get("key"):
            return False, f"Missing required param: 'key' for {operation}"
        elif operation == "config-set" and "value" not in params:
            return False, "Missing required param: 'value' for config-set"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        operation = params["operation"]

        if operation == "clone":
            args = ["clone"]
            if params.get("depth"):
                args += ["--depth", str(params["depth"])]
            args += [params["url"], params["dest"]]
            timeout = params.get("timeout", 1800)
        elif operation == "config-get":
            args = ["config", "--global", "--get", params["key"]]
            timeout = params.get("timeout", 30)
        else:
            args = ["config", "--global", params["key"], str(params["value"])]
            timeout = params.get("timeout", 30)

        return run_process(
            ["git", *args],
            adapter=self.name,
            action_id=context.action.id,
            timeout=timeout,
            cwd=context.working_dir,
        )
