"""
Repair signatures — known apt failure patterns, in priority order.

Each signature names one repair and the output patterns that call for
it. Matching is pure: regex search (case-insensitive) over the combined
output of the failed refresh. Order in the table is the order repairs
are applied; adding a signature never changes how the others match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from siliconcraft.core.models.settings import AptRepairSettings


@dataclass(frozen=True)
class RepairSignature:
    repair_id: str
    label: str
    patterns: tuple[str, ...]

    def matches(self, transcript: str) -> bool:
        for pattern in self.patterns:
            try:
                if re.search(pattern, transcript, re.IGNORECASE):
                    return True
            except re.error:
                continue
        return False


def _host(url: str) -> str:
    """``http://in.archive.ubuntu.com/ubuntu`` → ``in.archive.ubuntu.com``."""
    without_scheme = url.split("://", 1)[-1]
    return without_scheme.split("/", 1)[0]


def _glob_stem(glob: str) -> str:
    """Literal prefix of a filename glob, for matching it in apt output."""
    return re.split(r"[*?\[]", glob, maxsplit=1)[0].rstrip(".-_")


def build_signatures(settings: AptRepairSettings) -> tuple[RepairSignature, ...]:
    """The signature table for the given repair settings."""
    mirror_patterns = tuple(re.escape(_host(m)) for m in settings.bad_mirrors if _host(m))
    retired_patterns = tuple(
        re.escape(stem) for stem in (_glob_stem(g) for g in settings.retired_repo_globs) if stem
    )

    return (
        RepairSignature(
            repair_id="disable-cdrom",
            label="Disable local-media (CD-ROM) repositories",
            patterns=(r"cdrom:", r"apt-cdrom", r"Repository '[^']*cdrom"),
        ),
        RepairSignature(
            repair_id="normalize-mirrors",
            label="Switch known-bad mirrors to the canonical archive",
            patterns=mirror_patterns + (r"Mirror sync in progress",),
        ),
        RepairSignature(
            repair_id="retire-repos",
            label="Retire repository definitions that no longer exist",
            patterns=retired_patterns,
        ),
        RepairSignature(
            repair_id="disable-dep11",
            label="Stop downloading DEP-11 metadata",
            patterns=(r"DEP-11", r"dep11/", r"Components-[\w-]+\.yml", r"icons-\d+x\d+"),
        ),
        RepairSignature(
            repair_id="reconcile-dpkg",
            label="Finish an interrupted package installation",
            patterns=(r"dpkg was interrupted", r"dpkg --configure -a"),
        ),
        RepairSignature(
            repair_id="purge-index-cache",
            label="Purge cached package index data",
            patterns=(
                r"Hash Sum mismatch",
                r"File has unexpected size",
                r"is not valid yet",
                r"Encountered a section with no Package",
                r"Problem with MergeList",
                r"package lists or status file could not be parsed",
            ),
        ),
    )


def match_signatures(
    signatures: tuple[RepairSignature, ...],
    transcript: str,
) -> list[RepairSignature]:
    """Every matching signature, in table order."""
    return [sig for sig in signatures if sig.patterns and sig.matches(transcript)]
