"""
Workspace persistence — creating and setting aside directories.

Nothing under the workspace is ever deleted. A directory that fails its
marker check is renamed with a timestamp suffix so the evidence of the
earlier run survives, and a fresh one takes its place.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from siliconcraft.core.errors import WorkspaceError

logger = logging.getLogger(__name__)


def _stamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def set_aside(path: Path, reason: str = "backup") -> Path:
    """Rename ``path`` to ``<path>_<reason>_<timestamp>`` and return the new path.

    A numeric suffix is added if two renames land in the same second.

    Raises:
        WorkspaceError: If the rename fails.
    """
    base = path.with_name(f"{path.name}_{reason}_{_stamp()}")
    target = base
    n = 1
    while target.exists():
        target = base.with_name(f"{base.name}_{n}")
        n += 1
    try:
        path.rename(target)
    except OSError as e:
        raise WorkspaceError(
            f"Cannot move {path} aside to {target}: {e}",
            remediation=f"Move or rename {path} yourself, then re-run.",
        ) from e
    logger.warning("Moved %s aside to %s", path, target)
    return target


def ensure_directory(path: Path) -> Path:
    """Create ``path`` (and parents) if missing.

    Raises:
        WorkspaceError: If it exists as a file or cannot be created.
    """
    if path.exists() and not path.is_dir():
        raise WorkspaceError(
            f"{path} exists but is not a directory",
            remediation=f"Rename {path} or choose another WORKSPACE_ROOT.",
        )
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceError(f"Cannot create {path}: {e}") from e
    return path
