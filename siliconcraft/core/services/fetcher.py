"""
Network-resilient fetcher — clone the flow repository, bounded.

A destination is trusted only when it carries the fetch marker, which
is written after the clone checked out cleanly. Anything else found at
the destination is moved aside, never deleted.

Attempt 1 is a full clone; later attempts fall back to ``--depth 1``,
which moves far less data over a flaky link.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import NetworkExhausted, WorkspaceError
from siliconcraft.core.models.action import Action
from siliconcraft.core.models.pipeline import RetryPolicy
from siliconcraft.core.models.workspace import (
    FETCH_MARKER,
    checkout_has_structure,
    checkout_is_valid,
)
from siliconcraft.core.persistence.workspace import ensure_directory, set_aside
from siliconcraft.core.reliability.retry import AttemptLog, Clock, retry_call

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    dest: Path
    skipped: bool = False
    attempts: int = 0
    shallow: bool = False
    set_aside: list[Path] = field(default_factory=list)

    def summary(self) -> str:
        if self.skipped:
            return f"{self.dest.name} already fetched"
        kind = "shallow" if self.shallow else "full"
        return f"{kind} clone of {self.dest.name} after {self.attempts} attempt(s)"


class ResilientFetcher:
    """Clone a repository with bounded retry and a shallow fallback."""

    def __init__(self, registry: AdapterRegistry, clock: Clock):
        self._registry = registry
        self._clock = clock

    def fetch(self, resource_ref: str, dest: Path, policy: RetryPolicy) -> FetchResult:
        """Make ``dest`` a valid checkout of ``resource_ref``.

        Raises:
            NetworkExhausted: Every attempt failed.
            WorkspaceError: ``dest`` could not be prepared or marked.
        """
        result = FetchResult(dest=dest)

        if checkout_is_valid(dest):
            logger.info("%s already fetched; skipping clone", dest)
            result.skipped = True
            return result

        if dest.exists():
            result.set_aside.append(set_aside(dest, "backup"))
        ensure_directory(dest.parent)

        log = AttemptLog()

        def attempt(n: int) -> bool | None:
            if dest.exists():
                result.set_aside.append(set_aside(dest, "partial"))

            shallow = n > 1
            params: dict = {
                "operation": "clone",
                "url": resource_ref,
                "dest": str(dest),
            }
            if shallow:
                params["depth"] = 1
            if policy.per_attempt_timeout:
                params["timeout"] = policy.per_attempt_timeout

            receipt = self._registry.execute_action(
                Action(
                    id="git.clone",
                    name=f"git clone {'--depth 1 ' if shallow else ''}{resource_ref}",
                    adapter="git",
                    params=params,
                ),
                cwd=str(dest.parent),
            )
            if not receipt.ok:
                log.errors.append(receipt.error or f"exit {receipt.return_code}")
                return None
            if not checkout_has_structure(dest):
                log.errors.append("clone finished but the checkout is incomplete")
                return None
            return shallow

        shallow = retry_call(attempt, policy, self._clock, label=f"clone {resource_ref}", log=log)
        result.attempts = log.attempts

        if shallow is None:
            if dest.exists():
                result.set_aside.append(set_aside(dest, "partial"))
            last = log.errors[-1] if log.errors else "unknown error"
            raise NetworkExhausted(
                f"could not clone {resource_ref} after {log.attempts} attempt(s): {last}"
            )

        result.shallow = shallow
        _write_marker(dest, resource_ref, result)
        logger.info("Fetched %s (%s)", dest, result.summary())
        return result


def _write_marker(dest: Path, resource_ref: str, result: FetchResult) -> None:
    marker = dest / FETCH_MARKER
    payload = {
        "url": resource_ref,
        "shallow": result.shallow,
        "attempts": result.attempts,
        "fetched_at": datetime.now(UTC).isoformat(),
    }
    try:
        marker.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise WorkspaceError(f"Cannot write fetch marker {marker}: {e}") from e


def read_marker(dest: Path) -> dict | None:
    """The fetch marker's contents, or None when absent or unreadable."""
    marker = dest / FETCH_MARKER
    if not marker.is_file():
        return None
    try:
        return json.loads(marker.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Unreadable fetch marker %s: %s", marker, e)
        return None
