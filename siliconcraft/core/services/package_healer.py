"""
Package state healer — reactive, signature-matched apt repair.

    refresh ── ok ──────────────────────────────► done (no repairs)
       │
      fail ─► match signatures ── none ─────────► Unrecoverable
                     │
                apply matches in table order
                     │
                refresh once more ── ok ─────────► done
                     └────────────── fail ───────► Unrecoverable

Healing only ever touches apt/dpkg configuration and caches. Every
repair is an idempotent rewrite, so running it against an already
healed system changes nothing.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import PackageStateError, PackageStateUnrecoverable
from siliconcraft.core.models.action import Action, Receipt
from siliconcraft.core.models.settings import AptRepairSettings
from siliconcraft.core.persistence.run_log import RunLog
from siliconcraft.core.services.repair_signatures import (
    RepairSignature,
    build_signatures,
    match_signatures,
)

logger = logging.getLogger(__name__)

DEP11_CONF_NAME = "99no-dep11"
DEP11_CONF = """\
Acquire::IndexTargets {
  deb::DEP-11 {
    DefaultEnabled "false";
  };
};
"""

_CDROM_LINE = re.compile(r"^(\s*)(deb(?:-src)?\s+(?:\[[^\]]*\]\s+)?cdrom:.*)$")


@dataclass
class RepairRecord:
    repair_id: str
    detail: str


@dataclass
class HealReport:
    """What the healer did. ``repaired`` is False when apt was healthy."""

    refreshes: int = 0
    applied: list[RepairRecord] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.applied)

    def summary(self) -> str:
        if not self.applied:
            return "package index healthy"
        ids = ", ".join(r.repair_id for r in self.applied)
        return f"package index healed ({ids})"


class AptFiles:
    """File operations under the apt root.

    Writes go straight to disk when the directory is writable (root, or
    a test tree); otherwise through ``sudo`` via the shell adapter.
    """

    def __init__(self, registry: AdapterRegistry, root: Path):
        self._registry = registry
        self.root = root

    def path(self, relative: str) -> Path:
        return self.root / relative

    def source_files(self, include_deb822: bool = True) -> list[Path]:
        files = []
        main = self.path("etc/apt/sources.list")
        if main.is_file():
            files.append(main)
        parts = self.path("etc/apt/sources.list.d")
        if parts.is_dir():
            files.extend(sorted(parts.glob("*.list")))
            if include_deb822:
                files.extend(sorted(parts.glob("*.sources")))
        return files

    def _direct(self, path: Path) -> bool:
        return os.access(path.parent, os.W_OK)

    def write_text(self, path: Path, content: str) -> None:
        if self._direct(path):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            return
        self._sudo("apt.write", ["tee", str(path)], stdin=content)

    def copy(self, src: Path, dst: Path) -> None:
        if self._direct(dst):
            shutil.copy2(src, dst)
            return
        self._sudo("apt.backup", ["cp", "-p", str(src), str(dst)])

    def rename(self, src: Path, dst: Path) -> None:
        if self._direct(src):
            src.rename(dst)
            return
        self._sudo("apt.rename", ["mv", str(src), str(dst)])

    def clear_directory(self, directory: Path, keep: tuple[str, ...] = ()) -> int:
        """Remove every entry of ``directory`` except ``keep``. Returns the count."""
        if not directory.is_dir():
            return 0
        entries = [p for p in directory.iterdir() if p.name not in keep]
        if not entries:
            return 0
        if self._direct(entries[0]):
            for entry in entries:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            return len(entries)
        self._sudo("apt.purge-lists", ["rm", "-rf", *[str(e) for e in entries]])
        return len(entries)

    def _sudo(self, action_id: str, argv: list[str], stdin: str | None = None) -> Receipt:
        params: dict = {"argv": argv, "needs_sudo": True, "timeout": 60}
        if stdin is not None:
            params["stdin"] = stdin
        receipt = self._registry.execute_action(Action(id=action_id, adapter="shell", params=params))
        if not receipt.ok:
            raise PackageStateError(f"{' '.join(argv[:2])} failed: {receipt.error}")
        return receipt


class PackageStateHealer:
    """Detect and repair known-bad apt states."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: AptRepairSettings,
        run_log: RunLog,
    ):
        self._registry = registry
        self._settings = settings
        self._run_log = run_log
        self._files = AptFiles(registry, settings.root)
        self._signatures = build_signatures(settings)
        self._backed_up: set[Path] = set()
        self._repairs: dict[str, Callable[[], str]] = {
            "disable-cdrom": self.disable_cdrom,
            "normalize-mirrors": self.normalize_mirrors,
            "retire-repos": self.retire_repos,
            "disable-dep11": self.disable_dep11,
            "reconcile-dpkg": self.reconcile_dpkg,
            "purge-index-cache": self.purge_index_cache,
        }

    @property
    def signatures(self) -> tuple[RepairSignature, ...]:
        return self._signatures

    def refresh(self) -> Receipt:
        """Run the package index refresh once."""
        return self._registry.execute_action(
            Action(
                id="apt.update",
                name="apt-get update",
                adapter="shell",
                params={
                    "argv": ["apt-get", "update"],
                    "needs_sudo": True,
                    "timeout": self._settings.refresh_timeout,
                    "env": {"DEBIAN_FRONTEND": "noninteractive"},
                },
            )
        )

    def ensure_package_index_healthy(self) -> HealReport:
        """Refresh; on failure repair by signature and refresh exactly once more.

        Raises:
            PackageStateUnrecoverable: When no signature matches, or the
                refresh still fails after the repairs.
        """
        report = HealReport()

        first = self.refresh()
        report.refreshes = 1
        if first.ok:
            return report

        matched = match_signatures(self._signatures, first.transcript)
        if not matched:
            raise PackageStateUnrecoverable(
                "apt-get update failed with an error no known repair applies to: "
                f"{_last_error_line(first)}"
            )

        logger.warning(
            "apt-get update failed; applying %d repair(s): %s",
            len(matched), ", ".join(s.repair_id for s in matched),
        )
        for signature in matched:
            detail = self._repairs[signature.repair_id]()
            self._run_log.repair(signature.repair_id, detail)
            report.applied.append(RepairRecord(signature.repair_id, detail))

        second = self.refresh()
        report.refreshes = 2
        if not second.ok:
            raise PackageStateUnrecoverable(
                "apt-get update still fails after self-heal: "
                f"{_last_error_line(second)}"
            )
        return report

    # ── Repairs (each idempotent) ───────────────────────────────

    def disable_cdrom(self) -> str:
        changed_files = 0
        changed_lines = 0
        for path in self._files.source_files(include_deb822=False):
            lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
            out = []
            hits = 0
            for line in lines:
                m = _CDROM_LINE.match(line.rstrip("\n"))
                if m:
                    newline = "\n" if line.endswith("\n") else ""
                    out.append(f"{m.group(1)}# {m.group(2)}{newline}")
                    hits += 1
                else:
                    out.append(line)
            if hits:
                self._rewrite(path, "".join(out))
                changed_files += 1
                changed_lines += hits
        if not changed_files:
            return "no active cdrom entries"
        return f"commented {changed_lines} cdrom entr{'y' if changed_lines == 1 else 'ies'} in {changed_files} file(s)"

    def normalize_mirrors(self) -> str:
        canonical = self._settings.canonical_mirror.rstrip("/")
        changed = 0
        for path in self._files.source_files():
            content = path.read_text(encoding="utf-8")
            updated = content
            for bad in self._settings.bad_mirrors:
                updated = updated.replace(bad.rstrip("/"), canonical)
            if updated != content:
                self._rewrite(path, updated)
                changed += 1
        if not changed:
            return "no known-bad mirrors configured"
        return f"rewrote {changed} file(s) to {canonical}"

    def retire_repos(self) -> str:
        parts = self._files.path("etc/apt/sources.list.d")
        if not parts.is_dir():
            return "no supplementary repositories"
        retired = []
        for glob in self._settings.retired_repo_globs:
            for path in sorted(parts.glob(glob)):
                if path.suffix not in (".list", ".sources") or not path.is_file():
                    continue
                self._files.rename(path, path.with_name(path.name + ".retired"))
                retired.append(path.name)
        if not retired:
            return "no retired repositories present"
        return f"retired {', '.join(retired)}"

    def disable_dep11(self) -> str:
        conf = self._files.path(f"etc/apt/apt.conf.d/{DEP11_CONF_NAME}")
        if conf.is_file() and conf.read_text(encoding="utf-8") == DEP11_CONF:
            return "DEP-11 downloads already disabled"
        self._files.write_text(conf, DEP11_CONF)
        return f"wrote {conf}"

    def reconcile_dpkg(self) -> str:
        receipt = self._registry.execute_action(
            Action(
                id="dpkg.configure",
                name="dpkg --configure -a",
                adapter="shell",
                params={
                    "argv": ["dpkg", "--configure", "-a"],
                    "needs_sudo": True,
                    "timeout": 1800,
                    "env": {"DEBIAN_FRONTEND": "noninteractive"},
                },
            )
        )
        if receipt.ok:
            return "dpkg --configure -a completed"
        logger.warning("dpkg --configure -a failed: %s", receipt.error)
        return f"dpkg --configure -a failed (exit {receipt.return_code})"

    def purge_index_cache(self) -> str:
        lists_dir = self._files.path("var/lib/apt/lists")
        removed = self._files.clear_directory(lists_dir, keep=("lock", "partial"))
        receipt = self._registry.execute_action(
            Action(
                id="apt.clean",
                name="apt-get clean",
                adapter="shell",
                params={"argv": ["apt-get", "clean"], "needs_sudo": True, "timeout": 300},
            )
        )
        suffix = "" if receipt.ok else " (apt-get clean failed)"
        return f"removed {removed} cached index entr{'y' if removed == 1 else 'ies'}{suffix}"

    # ── Helpers ─────────────────────────────────────────────────

    def _rewrite(self, path: Path, content: str) -> None:
        """Write ``content`` to ``path``, backing it up once per run first."""
        if path not in self._backed_up:
            stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
            self._files.copy(path, path.with_name(f"{path.name}.bak.{stamp}"))
            self._backed_up.add(path)
        self._files.write_text(path, content)


def _last_error_line(receipt: Receipt) -> str:
    lines = [ln.strip() for ln in receipt.transcript.splitlines() if ln.strip()]
    for line in reversed(lines):
        if line.startswith("E:"):
            return line
    return lines[-1] if lines else f"exit {receipt.return_code}"
