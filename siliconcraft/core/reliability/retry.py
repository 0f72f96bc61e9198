"""
Clock and bounded retry — the only ways the provisioner waits.

Every sleep in the pipeline goes through a ``Clock`` so that tests can
substitute a fake one and run retry/poll loops without real waiting.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, TypeVar

from siliconcraft.core.models.pipeline import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Real wall-clock time."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


@dataclass
class AttemptLog:
    """What happened across the attempts of one retried call."""

    attempts: int = 0
    errors: list[str] = field(default_factory=list)
    slept: list[float] = field(default_factory=list)


def retry_call(
    fn: Callable[[int], T | None],
    policy: RetryPolicy,
    clock: Clock,
    label: str = "operation",
    log: AttemptLog | None = None,
) -> T | None:
    """Call ``fn(attempt)`` until it returns non-None or attempts run out.

    ``fn`` signals a failed attempt by returning None (it may record a
    reason in ``log.errors``). Sleeps ``policy.delay_for(n)`` between
    attempts, never after the last one.

    Returns:
        The first non-None result, or None when every attempt failed.
    """
    log = log if log is not None else AttemptLog()
    for attempt in range(1, policy.max_attempts + 1):
        log.attempts = attempt
        result = fn(attempt)
        if result is not None:
            return result
        if attempt < policy.max_attempts:
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.0fs",
                label, attempt, policy.max_attempts, delay,
            )
            log.slept.append(delay)
            clock.sleep(delay)
    return None
