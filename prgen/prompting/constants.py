"""Placeholder vocabulary and built-in prompt templates."""

from __future__ import annotations

PLACEHOLDERS: tuple[str, ...] = (
    "BRANCH_NAME",
    "COMMIT_MESSAGES",
    "DIFF_SUMMARY",
    "PULL_REQUEST_TITLE",
    "PULL_REQUEST_BODY",
    "DIFF_CONTENT",
    "AUTHOR",
    "REPO_NAME",
    "FILES_CHANGED",
)

# Older templates use ``{{name}}``; these names are accepted for compatibility.
LEGACY_PLACEHOLDERS: tuple[str, ...] = (
    "title",
    "description",
    "author",
    "source_branch",
    "destination_branch",
    "diff",
)

LEGACY_ALIASES: dict[str, str] = {
    "title": "PULL_REQUEST_TITLE",
    "description": "PULL_REQUEST_BODY",
    "author": "AUTHOR",
    "source_branch": "BRANCH_NAME",
    "diff": "DIFF_CONTENT",
}

DIFF_KEY = "DIFF_CONTENT"
LEGACY_DIFF_KEY = "diff"

DEFAULT_TEMPLATE = """\
You are an expert software engineer reviewing a pull request.
Write a clear, well-structured pull request description for the following change.

## Summary
Explain what the change does and why, in two or three sentences.

## Changes
List the most important modifications as bullet points.

## Testing
Describe how the change was or should be verified.

Keep the description concise and factual. Do not invent behaviour that is not
visible in the diff.

Diff:
{DIFF_CONTENT}
"""


__all__ = [
    "DEFAULT_TEMPLATE",
    "DIFF_KEY",
    "LEGACY_ALIASES",
    "LEGACY_DIFF_KEY",
    "LEGACY_PLACEHOLDERS",
    "PLACEHOLDERS",
]
