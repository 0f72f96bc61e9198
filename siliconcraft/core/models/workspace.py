"""
Workspace layout — where everything lives on disk.

Everything the pipeline creates sits under one root directory::

    <root>/
        setup.log                   append-only run log
        run_<design>.log
        OpenLane/                   cloned flow repository
            .siliconcraft-fetch.json
            pdks/<pdk>/
            designs/<id>/
                config.tcl | config.json
                runs/.../*.gds

Validity is always decided by marker files, never by mere existence,
so a directory left behind by an interrupted run reads as invalid.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Written last by the fetcher, after the clone checked out cleanly
FETCH_MARKER = ".siliconcraft-fetch.json"

# Entries a usable flow checkout must contain (besides the marker)
REPO_REQUIRED_ENTRIES = (".git", "Makefile", "flow.tcl")

# A design directory needs at least one of these
DESIGN_CONFIG_FILES = ("config.tcl", "config.json")


@dataclass(frozen=True)
class WorkspaceLayout:
    """Resolved paths for one workspace root."""

    root: Path
    runtime_repo_name: str = "OpenLane"

    @property
    def runtime_repo_dir(self) -> Path:
        return self.root / self.runtime_repo_name

    @property
    def designs_dir(self) -> Path:
        return self.runtime_repo_dir / "designs"

    @property
    def pdks_dir(self) -> Path:
        return self.runtime_repo_dir / "pdks"

    @property
    def fetch_marker(self) -> Path:
        return self.runtime_repo_dir / FETCH_MARKER

    def design_dir(self, design_id: str) -> Path:
        return self.designs_dir / design_id

    def log_path(self, run_id: str) -> Path:
        return self.root / f"{run_id}.log"

    # ── Marker queries ──────────────────────────────────────────

    def repo_is_valid(self) -> bool:
        """Whether a prior fetch finished and left a usable checkout."""
        return checkout_is_valid(self.runtime_repo_dir)

    def design_is_valid(self, design_id: str) -> bool:
        d = self.design_dir(design_id)
        return d.is_dir() and any((d / name).is_file() for name in DESIGN_CONFIG_FILES)

    def pdk_present(self, pdk: str) -> bool:
        return (self.pdks_dir / pdk).is_dir()

    def find_gds(self, design_id: str, max_depth: int = 6) -> Path | None:
        """First GDS file under the design directory, newest first."""
        base = self.design_dir(design_id)
        if not base.is_dir():
            return None
        found: list[Path] = []
        for path in base.rglob("*.gds"):
            depth = len(path.relative_to(base).parts)
            if depth <= max_depth and path.is_file():
                found.append(path)
        if not found:
            return None
        return max(found, key=lambda p: p.stat().st_mtime)


def checkout_is_valid(path: Path) -> bool:
    """A checkout is valid when every required entry and the marker exist."""
    if not path.is_dir():
        return False
    if not (path / FETCH_MARKER).is_file():
        return False
    return checkout_has_structure(path)


def checkout_has_structure(path: Path) -> bool:
    return all((path / entry).exists() for entry in REPO_REQUIRED_ENTRIES)
