"""Diff inspection utilities."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from ..logging import get_logger
from ..models import DiffStats, LargestFile, TruncatedDiff

_FILE_HEADER = re.compile(r"^diff --git a/(.+) b/(.+)$")
_UNKNOWN_EXTENSION = "unknown"


class DiffAnalyzer:
    """Derives statistics from unified diffs and bounds their size for prompting."""

    def __init__(self) -> None:
        self._logger = get_logger("git.diff")

    def compute_stats(self, diff_text: str, size_limit: Optional[int] = None) -> DiffStats:
        files: Set[str] = set()
        file_types: Dict[str, int] = {}
        added = deleted = 0
        largest = LargestFile()
        current: Optional[str] = None
        current_changes = 0

        for line in diff_text.splitlines():
            match = _FILE_HEADER.match(line)
            if match:
                largest = _track_largest(largest, current, current_changes)
                current = match.group(2)
                current_changes = 0
                if current not in files:
                    files.add(current)
                    extension = _extension(current)
                    file_types[extension] = file_types.get(extension, 0) + 1
                continue
            if line.startswith("+") and not line.startswith("+++"):
                added += 1
                current_changes += 1
            elif line.startswith("-") and not line.startswith("---"):
                deleted += 1
                current_changes += 1
        largest = _track_largest(largest, current, current_changes)

        chunked = size_limit is not None and len(diff_text) > size_limit
        stats = DiffStats(
            total_files=len(files),
            added_lines=added,
            deleted_lines=deleted,
            modified_files=len(files),
            file_types=file_types,
            largest_file=largest,
            processing_method="chunked" if chunked else "direct",
        )
        self._logger.debug(
            "Diff stats: %d files, +%d/-%d lines", stats.total_files, added, deleted
        )
        return stats

    def truncate(self, diff_text: str, limit: int) -> TruncatedDiff:
        """Cap *diff_text* at *limit* characters without looking for boundaries."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        if len(diff_text) <= limit:
            return TruncatedDiff(text=diff_text, was_truncated=False)
        self._logger.info(
            "Truncating diff from %d to %d characters", len(diff_text), limit
        )
        return TruncatedDiff(text=diff_text[:limit], was_truncated=True)

    def changed_files(self, diff_text: str) -> List[str]:
        """Files touched by *diff_text*, in first-seen order."""
        seen: List[str] = []
        for line in diff_text.splitlines():
            match = _FILE_HEADER.match(line)
            if match and match.group(2) not in seen:
                seen.append(match.group(2))
        return seen


def _track_largest(largest: LargestFile, name: Optional[str], changes: int) -> LargestFile:
    if name is not None and changes > largest.changes:
        return LargestFile(name=name, changes=changes)
    return largest


def _extension(path: str) -> str:
    basename = path.rsplit("/", 1)[-1]
    if "." not in basename:
        return _UNKNOWN_EXTENSION
    suffix = basename.rsplit(".", 1)[-1].lower()
    return suffix or _UNKNOWN_EXTENSION


__all__ = ["DiffAnalyzer"]
