"""Diff analysis and diff/metadata suppliers."""

from .bitbucket import BitbucketClient, PullRequestRef, parse_pull_request_url
from .diff import DiffAnalyzer
from .local import LocalGitSource

__all__ = [
    "BitbucketClient",
    "DiffAnalyzer",
    "LocalGitSource",
    "PullRequestRef",
    "parse_pull_request_url",
]
