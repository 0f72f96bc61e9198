"""
Adapter registry — central dispatch for all external commands.

The registry is the single point of adapter management. Services never
talk to adapters directly. Every dispatched action is timed and, when
a run log is attached, recorded there with its verbatim output.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from siliconcraft.adapters.base import Adapter, ExecutionContext
from siliconcraft.core.models.action import Action, Receipt
from siliconcraft.core.persistence.run_log import RunLog

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters."""

    def __init__(self, workspace_root: str = ".", run_log: RunLog | None = None):
        self._adapters: dict[str, Adapter] = {}
        self._workspace_root = workspace_root
        self._run_log = run_log

    def attach_run_log(self, run_log: RunLog | None) -> None:
        """Send command transcripts to ``run_log`` from now on."""
        self._run_log = run_log

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def is_available(self, name: str) -> bool:
        """Whether the named adapter exists and its tool is installed."""
        adapter = self._adapters.get(name)
        if adapter is None:
            return False
        try:
            return adapter.is_available()
        except Exception:
            return False

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        return {
            name: {
                "name": name,
                "available": self.is_available(name),
                "type": adapter.__class__.__name__,
            }
            for name, adapter in self._adapters.items()
        }

    def execute_action(self, action: Action, cwd: str | None = None) -> Receipt:
        """Execute an action through the appropriate adapter.

        Resolves the adapter, validates, executes, times, logs.
        Returns a Receipt; never raises.
        """
        start_time = time.monotonic()

        context = ExecutionContext(
            action=action,
            workspace_root=self._workspace_root,
            cwd=cwd,
            params=action.params,
        )

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )
            self._record(action, receipt)
            return receipt

        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            is_valid, error_msg = False, f"Validation error: {e}"
        if not is_valid:
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )
            self._record(action, receipt)
            return receipt

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        self._record(action, receipt)

        marker = "✓" if receipt.ok else "✗"
        logger.info("%s %s (%dms)", marker, action.id, receipt.duration_ms)
        return receipt

    def _record(self, action: Action, receipt: Receipt) -> None:
        if self._run_log is None:
            return
        command = receipt.metadata.get("command") or action.name or action.id
        self._run_log.command(action.id, command, receipt.return_code, receipt.captured)
