"""Diff and metadata supplier backed by a local Git checkout."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, List

from ..models import DiffPayload, PullRequestMetadata


class LocalGitSource:
    """Reads the diff and branch details between *base* and ``HEAD``."""

    def __init__(self, runner: Callable[..., str] | None = None) -> None:
        self._runner = runner or self._default_runner

    def fetch_diff(self, repo_path: str, base: str) -> DiffPayload:
        repo = self._repo(repo_path)
        text = self._run(["git", "diff", f"{base}...HEAD"], cwd=repo)
        return DiffPayload(text=text, size_bytes=len(text.encode("utf-8")))

    def fetch_metadata(self, repo_path: str, base: str) -> PullRequestMetadata:
        repo = self._repo(repo_path)
        branch = self._run(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=repo).strip()
        subject = self._run(["git", "log", "-1", "--format=%s"], cwd=repo).strip()
        body = self._run(["git", "log", "-1", "--format=%b"], cwd=repo).strip()
        author = self._run(["git", "log", "-1", "--format=%an"], cwd=repo).strip()
        return PullRequestMetadata(
            title=subject,
            description=body,
            author=author,
            source_branch=branch,
            destination_branch=base,
        )

    def commit_messages(self, repo_path: str, base: str) -> List[str]:
        repo = self._repo(repo_path)
        output = self._run(["git", "log", "--format=%s", f"{base}..HEAD"], cwd=repo)
        return [line.strip() for line in output.splitlines() if line.strip()]

    @staticmethod
    def _repo(repo_path: str) -> Path:
        repo = Path(repo_path)
        if not (repo / ".git").exists():
            raise RuntimeError(f"{repo_path} is not a Git repository")
        return repo

    def _run(self, args: Iterable[str], *, cwd: Path) -> str:
        return self._runner(args, cwd=cwd, capture_output=True)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        import subprocess

        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=capture_output,
        )
        return completed.stdout if capture_output else ""


__all__ = ["LocalGitSource"]
