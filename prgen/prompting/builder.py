"""Assembles template data from pull request details and diff statistics."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

from ..models import DiffStats, PullRequestMetadata

_UNKNOWN = "Unknown"
_NO_TITLE = "No title provided"
_NO_DESCRIPTION = "No description provided"
_NO_DIFF = "No diff available"


def build_template_data(
    metadata: PullRequestMetadata,
    diff_text: str,
    stats: DiffStats,
    *,
    repo_name: Optional[str] = None,
    commit_messages: Sequence[str] = (),
    files: Iterable[str] = (),
) -> Dict[str, str]:
    """Fill both primary and legacy placeholder keys.

    ``DIFF_CONTENT`` and ``diff`` carry the full diff; the orchestrator replaces
    both with the truncated text before rendering.
    """
    title = metadata.title or _NO_TITLE
    body = metadata.description or _NO_DESCRIPTION
    author = metadata.author or _UNKNOWN
    source = metadata.source_branch or _UNKNOWN
    destination = metadata.destination_branch or _UNKNOWN
    diff = diff_text or _NO_DIFF

    return {
        "BRANCH_NAME": source,
        "COMMIT_MESSAGES": "\n".join(f"- {message}" for message in commit_messages),
        "DIFF_SUMMARY": summarize_stats(stats),
        "PULL_REQUEST_TITLE": title,
        "PULL_REQUEST_BODY": body,
        "DIFF_CONTENT": diff,
        "AUTHOR": author,
        "REPO_NAME": repo_name or _UNKNOWN,
        "FILES_CHANGED": "\n".join(files),
        "title": title,
        "description": body,
        "author": author,
        "source_branch": source,
        "destination_branch": destination,
        "diff": diff,
    }


def summarize_stats(stats: DiffStats) -> str:
    if stats.total_files == 0:
        return "No file changes detected."
    types = ", ".join(
        f"{extension} ({count})"
        for extension, count in sorted(stats.file_types.items(), key=lambda item: (-item[1], item[0]))
    )
    lines = [
        f"{stats.total_files} file(s) changed, "
        f"{stats.added_lines} insertion(s), {stats.deleted_lines} deletion(s).",
        f"File types: {types}.",
    ]
    if stats.largest_file.name:
        lines.append(
            f"Largest change: {stats.largest_file.name} ({stats.largest_file.changes} lines)."
        )
    return "\n".join(lines)


__all__ = ["build_template_data", "summarize_stats"]
