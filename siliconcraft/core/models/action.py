"""
Action and Receipt models — the execution contract.

An Action describes one external command a service wants run; the
adapter registry routes it and hands back a Receipt. Failures travel
in the Receipt, so a service decides for itself whether a non-zero
exit is an error, a probe answer ("lock not held") or a degraded step.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class Action(BaseModel):
    """A requested operation to be executed by an adapter.

    The ``id`` is stable per kind of operation (``apt.update``,
    ``runtime.hello``, ``git.clone``) so that run logs and test
    doubles can key on it.
    """

    id: str                         # stable operation identifier
    name: str = ""                  # human-readable label for the run log
    adapter: str                    # "shell", "runtime" or "git"
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Outcome of one executed Action."""

    adapter: str
    action_id: str
    status: Literal["ok", "failed"] = "ok"
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None

    # "command" holds the rendered command line; "stdout"/"stderr" the raw streams
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def transcript(self) -> str:
        """Stripped stdout and stderr joined, for signature matching."""
        parts = [self.output, self.error or self.metadata.get("stderr", "")]
        return "\n".join(p for p in parts if p)

    @property
    def captured(self) -> str:
        """Output exactly as the command wrote it, for the run log.

        Falls back to ``transcript`` for receipts built without raw streams.
        """
        if "stdout" not in self.metadata and "stderr" not in self.metadata:
            return self.transcript
        parts = [self.metadata.get("stdout", ""), self.metadata.get("stderr", "")]
        return "\n".join(p.rstrip("\n") for p in parts if p)

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        kwargs.setdefault("return_code", 0)
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)
