"""
Mock adapter — scripted test double for any adapter name.

Returns success by default. Responses can be fixed per action ID or
scripted as a sequence (one receipt per call, the last one repeating).
"""

from __future__ import annotations

from siliconcraft.adapters.base import Adapter, ExecutionContext
from siliconcraft.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing."""

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, list[Receipt]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls(self, action_id: str) -> list[ExecutionContext]:
        """Calls made for one action ID."""
        return [c for c in self._call_log if c.action.id == action_id]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Always answer ``action_id`` with ``receipt``."""
        self._responses[action_id] = [receipt]

    def set_sequence(self, action_id: str, receipts: list[Receipt]) -> None:
        """Answer successive calls with ``receipts``; the last one repeats."""
        self._responses[action_id] = list(receipts)

    def set_failure(
        self,
        action_id: str,
        error: str = "Mock failure",
        return_code: int = 1,
    ) -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = [self.failure(action_id, error, return_code)]

    def failure(self, action_id: str, error: str = "Mock failure", return_code: int = 1) -> Receipt:
        return Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            return_code=return_code,
        )

    def success(self, action_id: str, output: str = "") -> Receipt:
        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=output or self._default_output,
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        queue = self._responses.get(action_id)
        if queue:
            receipt = queue.pop(0) if len(queue) > 1 else queue[0]
            return receipt.model_copy(deep=True)

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
