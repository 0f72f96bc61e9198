"""
Resource lock waiter — cooperative wait for the dpkg/apt locks.

Polls at a fixed interval and returns as soon as the lock is free.
Never kills or unlinks anything: a lock held by another process is
that process's business.
"""

from __future__ import annotations

import logging
from typing import Callable

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import LockTimeout
from siliconcraft.core.models.action import Action
from siliconcraft.core.models.pipeline import RetryPolicy
from siliconcraft.core.reliability.retry import Clock

logger = logging.getLogger(__name__)

LockProbe = Callable[[str], bool]


def fuser_probe(registry: AdapterRegistry) -> LockProbe:
    """Lock probe using ``fuser``: exit 0 means some process holds the file."""

    def is_held(lock_id: str) -> bool:
        receipt = registry.execute_action(
            Action(
                id="lock.probe",
                adapter="shell",
                params={"argv": ["fuser", lock_id], "needs_sudo": True, "timeout": 15},
            )
        )
        return receipt.ok

    return is_held


def wait_for_lock(
    lock_id: str,
    policy: RetryPolicy,
    is_held: LockProbe,
    clock: Clock,
    deadline: float | None = None,
) -> float:
    """Block until ``lock_id`` is free.

    ``deadline`` overrides ``policy.deadline`` with the budget left to
    this lock when several locks share one bound.

    Returns:
        Seconds spent waiting.

    Raises:
        LockTimeout: Once the elapsed wait reaches the deadline.
    """
    if deadline is None:
        deadline = policy.deadline if policy.deadline is not None else 0.0
    interval = policy.delay if policy.delay > 0 else 1.0
    start = clock.monotonic()
    announced = False

    while True:
        if not is_held(lock_id):
            waited = clock.monotonic() - start
            if announced:
                logger.info("Lock %s released after %.0fs", lock_id, waited)
            return waited

        elapsed = clock.monotonic() - start
        if elapsed >= deadline:
            raise LockTimeout(
                f"{lock_id} is still held after {elapsed:.0f}s "
                "(another apt/dpkg process is running)"
            )

        if not announced:
            logger.warning(
                "%s is held by another process; waiting up to %.0fs", lock_id, deadline
            )
            announced = True
        clock.sleep(min(interval, deadline - elapsed))


def wait_for_locks(
    lock_ids: list[str],
    policy: RetryPolicy,
    is_held: LockProbe,
    clock: Clock,
) -> float:
    """Wait on each lock in turn, all within one ``policy.deadline``.

    Returns the total time waited.
    """
    total = policy.deadline if policy.deadline is not None else 0.0
    start = clock.monotonic()
    for lock_id in lock_ids:
        remaining = max(total - (clock.monotonic() - start), 0.0)
        wait_for_lock(lock_id, policy, is_held, clock, deadline=remaining)
    return clock.monotonic() - start
