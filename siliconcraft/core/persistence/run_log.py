"""
Run log — append-only, human-readable record of one kind of run.

Lives at ``<workspace_root>/<run-id>.log``. Each run appends:

    2026-10-19T09:12:03+00:00 RUN    setup started
    2026-10-19T09:12:03+00:00 STAGE  package-index -> running
    2026-10-19T09:12:09+00:00 CMD    apt.update: sudo apt-get update (exit 100)
    | E: Failed to fetch http://in.archive.ubuntu.com/...
    2026-10-19T09:12:09+00:00 REPAIR normalize-mirrors: rewrote 2 file(s)
    2026-10-19T09:12:15+00:00 STAGE  package-index -> success (11.9s)

The file is opened in append mode for every write and never truncated.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

_KIND_WIDTH = 6


class RunLog:
    """Append-only run log writer.

    Write failures are logged and swallowed: losing a log line must
    never abort a provisioning run.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    # ── Record kinds ────────────────────────────────────────────

    def run(self, message: str) -> None:
        self._append("RUN", message)

    def stage(self, name: str, status: str, detail: str = "", duration_s: float | None = None) -> None:
        line = f"{name} -> {status}"
        if duration_s is not None:
            line += f" ({duration_s:.1f}s)"
        if detail:
            line += f" {detail}"
        self._append("STAGE", line)

    def repair(self, repair_id: str, detail: str) -> None:
        self._append("REPAIR", f"{repair_id}: {detail}")

    def command(self, action_id: str, command: str, return_code: int | None, output: str) -> None:
        """Record an external command and its verbatim captured output."""
        code = "?" if return_code is None else str(return_code)
        lines = [self._format("CMD", f"{action_id}: {command} (exit {code})")]
        for out_line in output.splitlines():
            lines.append(f"| {out_line}")
        self._write("\n".join(lines) + "\n")

    def note(self, message: str) -> None:
        self._append("NOTE", message)

    # ── Reading (status command, tests) ─────────────────────────

    def read_lines(self) -> list[str]:
        if not self._path.is_file():
            return []
        try:
            return self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.error("Failed to read run log %s: %s", self._path, e)
            return []

    def records(self, kind: str) -> list[str]:
        """All lines of one record kind, e.g. ``records("REPAIR")``."""
        marker = f" {kind.ljust(_KIND_WIDTH)} "
        return [line for line in self.read_lines() if marker in line]

    # ── Internals ───────────────────────────────────────────────

    def _format(self, kind: str, message: str) -> str:
        stamp = datetime.now(UTC).isoformat(timespec="seconds")
        return f"{stamp} {kind.ljust(_KIND_WIDTH)} {message}"

    def _append(self, kind: str, message: str) -> None:
        self._write(self._format(kind, message) + "\n")

    def _write(self, text: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            logger.error("Failed to write run log %s: %s", self._path, e)
