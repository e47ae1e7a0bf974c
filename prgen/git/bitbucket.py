"""Bitbucket Cloud pull request diff and metadata supplier."""

from __future__ import annotations

import json
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlparse
from urllib.request import Request, urlopen

from ..logging import get_logger
from ..models import DiffPayload, PullRequestMetadata

API_BASE_URL = "https://api.bitbucket.org/2.0"
DEFAULT_TIMEOUT = 30.0

_PR_PATH = re.compile(r"^/([^/]+)/([^/]+)/pull-requests/(\d+)(?:/.*)?$")
_LOGGER = get_logger("git.bitbucket")


class BitbucketUrlErrorCode(str, Enum):
    INVALID_URL = "INVALID_URL"
    NOT_BITBUCKET_DOMAIN = "NOT_BITBUCKET_DOMAIN"
    INVALID_PR_PATH = "INVALID_PR_PATH"
    MISSING_WORKSPACE = "MISSING_WORKSPACE"
    MISSING_REPO = "MISSING_REPO"
    MISSING_PR_ID = "MISSING_PR_ID"
    INVALID_PR_ID = "INVALID_PR_ID"


class BitbucketUrlError(ValueError):
    def __init__(self, code: BitbucketUrlErrorCode, message: str, url: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.url = url


class BitbucketErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class BitbucketServiceError(RuntimeError):
    def __init__(
        self,
        code: BitbucketErrorCode,
        message: str,
        *,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


@dataclass(frozen=True)
class PullRequestRef:
    workspace: str
    repo: str
    pr_id: str
    url: str = ""


def parse_pull_request_url(url: str) -> PullRequestRef:
    """Parse ``https://bitbucket.org/<workspace>/<repo>/pull-requests/<id>``."""
    if not isinstance(url, str) or not url.strip():
        raise BitbucketUrlError(BitbucketUrlErrorCode.INVALID_URL, "PR URL cannot be empty")
    trimmed = url.strip()
    parsed = urlparse(trimmed)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.INVALID_URL, f"Invalid URL format: {trimmed}", trimmed
        )
    if "bitbucket.org" not in parsed.hostname:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.NOT_BITBUCKET_DOMAIN,
            f"Invalid domain: {parsed.hostname}. Expected bitbucket.org domain.",
            trimmed,
        )
    match = _PR_PATH.match(parsed.path)
    if not match:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.INVALID_PR_PATH,
            f"Invalid PR URL path: {parsed.path}. Expected format: /workspace/repo/pull-requests/id",
            trimmed,
        )
    workspace, repo, pr_id = (part.strip() for part in match.groups())
    if not workspace:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.MISSING_WORKSPACE, "Workspace cannot be empty", trimmed
        )
    if not repo:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.MISSING_REPO, "Repository name cannot be empty", trimmed
        )
    if not pr_id:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.MISSING_PR_ID, "PR ID cannot be empty", trimmed
        )
    if int(pr_id) <= 0:
        raise BitbucketUrlError(
            BitbucketUrlErrorCode.INVALID_PR_ID,
            f"Invalid PR ID: {pr_id}. PR ID must be a positive number.",
            trimmed,
        )
    return PullRequestRef(workspace=workspace, repo=repo, pr_id=pr_id, url=trimmed)


class BitbucketClient:
    """Minimal REST client for the pull request endpoints."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not token or not token.strip():
            raise BitbucketServiceError(
                BitbucketErrorCode.UNAUTHORIZED,
                "Bitbucket access token is required and cannot be empty",
            )
        self._token = token.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def fetch_diff(self, ref: PullRequestRef) -> DiffPayload:
        raw = self._get(f"{self._pr_path(ref)}/diff", accept="text/plain")
        text = raw.decode("utf-8", errors="replace")
        _LOGGER.info("Fetched diff for %s/%s#%s (%d bytes)", ref.workspace, ref.repo, ref.pr_id, len(raw))
        return DiffPayload(text=text, size_bytes=len(raw))

    def fetch_metadata(self, ref: PullRequestRef) -> PullRequestMetadata:
        raw = self._get(self._pr_path(ref), accept="application/json")
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BitbucketServiceError(
                BitbucketErrorCode.INVALID_RESPONSE, "Bitbucket returned invalid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise BitbucketServiceError(
                BitbucketErrorCode.INVALID_RESPONSE, "Bitbucket returned an unexpected payload"
            )
        return PullRequestMetadata(
            title=_text(payload.get("title")),
            description=_text(payload.get("description")),
            author=_text(_dig(payload, "author", "display_name")),
            source_branch=_text(_dig(payload, "source", "branch", "name")),
            destination_branch=_text(_dig(payload, "destination", "branch", "name")),
        )

    @staticmethod
    def _pr_path(ref: PullRequestRef) -> str:
        return (
            f"/repositories/{quote(ref.workspace, safe='')}/{quote(ref.repo, safe='')}"
            f"/pullrequests/{ref.pr_id}"
        )

    def _get(self, path: str, *, accept: str) -> bytes:
        request = Request(
            f"{self.base_url}{path}",
            headers={"Authorization": f"Bearer {self._token}", "Accept": accept},
            method="GET",
        )
        try:
            with urlopen(request, timeout=self.timeout) as response:  # type: ignore[arg-type]
                return response.read()
        except HTTPError as exc:
            raise _service_error(exc) from exc
        except (URLError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            if isinstance(reason, (socket.timeout, TimeoutError)) or isinstance(
                exc, (socket.timeout, TimeoutError)
            ):
                raise BitbucketServiceError(
                    BitbucketErrorCode.TIMEOUT,
                    "Request timed out. The Bitbucket API may be slow or unavailable.",
                ) from exc
            raise BitbucketServiceError(
                BitbucketErrorCode.NETWORK_ERROR,
                "Network error occurred. Please check your internet connection.",
            ) from exc


_STATUS_ERRORS = {
    401: (
        BitbucketErrorCode.UNAUTHORIZED,
        "Invalid or expired Bitbucket access token. Please check your token and try again.",
    ),
    403: (
        BitbucketErrorCode.FORBIDDEN,
        "Access denied. You may not have permission to access this repository or pull request.",
    ),
    404: (
        BitbucketErrorCode.NOT_FOUND,
        "Repository or pull request not found. Please check the URL and ensure it exists.",
    ),
    429: (
        BitbucketErrorCode.RATE_LIMITED,
        "Rate limit exceeded. Please wait a moment before trying again.",
    ),
}


def _service_error(exc: HTTPError) -> BitbucketServiceError:
    status = int(exc.code)
    if status in _STATUS_ERRORS:
        code, message = _STATUS_ERRORS[status]
        return BitbucketServiceError(code, message, status=status)
    message = f"HTTP {status} error occurred"
    try:
        body = json.loads(exc.read().decode("utf-8", errors="ignore") or "{}")
    except (OSError, AttributeError, json.JSONDecodeError):
        body = {}
    detail = _dig(body, "error", "message") if isinstance(body, dict) else None
    if isinstance(detail, str) and detail:
        message = detail
    return BitbucketServiceError(BitbucketErrorCode.UNKNOWN_ERROR, message, status=status)


def _dig(payload: Dict[str, Any], *keys: str) -> Any:
    current: Any = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


__all__ = [
    "BitbucketClient",
    "BitbucketErrorCode",
    "BitbucketServiceError",
    "BitbucketUrlError",
    "BitbucketUrlErrorCode",
    "PullRequestRef",
    "parse_pull_request_url",
]
