"""HTTP transport shared by the backend adapters.

Everything raised here is a *raw* vendor-level failure. Adapters let these
propagate untouched; ``prgen.errors.normalize_error`` turns them into the
closed error taxonomy.
"""

from __future__ import annotations

import json
import socket
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..cancellation import CancellationToken


class HTTPStatusError(RuntimeError):
    """Backend answered with a non-success HTTP status."""

    def __init__(
        self,
        status: int,
        message: str,
        *,
        error_types: Tuple[str, ...] = (),
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_types = error_types
        self.body = body


class TransportError(RuntimeError):
    """Connection-level failure (refused, DNS, reset, timeout)."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class StreamAbortedError(RuntimeError):
    """A streamed response stopped before its terminal event."""


class EmptyResponseError(RuntimeError):
    """Backend answered successfully but without any generated text."""


def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    cancel: CancellationToken | None = None,
) -> Dict[str, Any]:
    request = _build_request(url, payload, headers)
    return _decode_json(_read(request, timeout, cancel), url)


def get_json(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    cancel: CancellationToken | None = None,
) -> Dict[str, Any]:
    request = Request(url, headers=dict(headers or {}), method="GET")
    return _decode_json(_read(request, timeout, cancel), url)


def stream_lines(
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    cancel: CancellationToken | None = None,
) -> Iterator[str]:
    """POST *payload* and yield the non-empty response lines as they arrive."""
    request = _build_request(url, payload, headers)
    effective_timeout = _effective_timeout(timeout, cancel)
    try:
        response = urlopen(request, timeout=effective_timeout)  # type: ignore[arg-type]
    except HTTPError as exc:
        raise _status_error(exc) from exc
    except (URLError, OSError) as exc:
        raise _transport_error(exc) from exc

    with response:
        try:
            for raw in response:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    yield line
        except (URLError, OSError) as exc:
            raise _transport_error(exc) from exc


def _build_request(
    url: str, payload: Mapping[str, Any], headers: Mapping[str, str] | None
) -> Request:
    data = json.dumps(payload).encode("utf-8")
    merged = {"Content-Type": "application/json"}
    merged.update(headers or {})
    return Request(url, data=data, headers=merged, method="POST")


def _effective_timeout(
    timeout: float | None, cancel: CancellationToken | None
) -> float | None:
    if cancel is None:
        return timeout
    cancel.raise_if_cancelled()
    return cancel.remaining(timeout)


def _read(
    request: Request, timeout: float | None, cancel: CancellationToken | None
) -> bytes:
    effective_timeout = _effective_timeout(timeout, cancel)
    try:
        with urlopen(request, timeout=effective_timeout) as response:  # type: ignore[arg-type]
            raw = response.read()
    except HTTPError as exc:
        raise _status_error(exc) from exc
    except (URLError, OSError) as exc:
        raise _transport_error(exc) from exc
    if cancel is not None:
        cancel.raise_if_cancelled()
    return raw


def _decode_json(raw: bytes, url: str) -> Dict[str, Any]:
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EmptyResponseError(f"{url} returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise EmptyResponseError(f"{url} returned an unexpected JSON payload")
    return payload


def _status_error(exc: HTTPError) -> HTTPStatusError:
    try:
        body = exc.read().decode("utf-8", errors="ignore")
    except (OSError, AttributeError):
        body = ""
    error_types, message = parse_error_body(body)
    detail = message or str(exc.reason or "")
    return HTTPStatusError(
        int(exc.code),
        f"HTTP {exc.code}: {detail}".strip(),
        error_types=error_types,
        body=body,
    )


def _transport_error(exc: BaseException) -> TransportError:
    reason = getattr(exc, "reason", exc)
    timed_out = isinstance(reason, (socket.timeout, TimeoutError)) or isinstance(
        exc, (socket.timeout, TimeoutError)
    )
    if not timed_out and "timed out" in str(reason).lower():
        timed_out = True
    return TransportError(str(reason) or exc.__class__.__name__, timed_out=timed_out)


def parse_error_body(body: str) -> Tuple[Tuple[str, ...], str]:
    """Extract vendor error identifiers and message from an error payload.

    Understands ``{"error": {"type", "code", "message"}}`` (OpenAI style),
    ``{"type": "error", "error": {...}}`` (Anthropic style) and
    ``{"error": "text"}`` (Ollama style).
    """
    if not body.strip():
        return (), ""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return (), body.strip()[:500]
    if not isinstance(payload, dict):
        return (), ""

    error = payload.get("error")
    if isinstance(error, str):
        return (), error
    if not isinstance(error, dict):
        return (), str(payload.get("message") or "")

    types = []
    for key in ("type", "code"):
        value: Optional[Any] = error.get(key)
        if isinstance(value, str) and value:
            types.append(value)
    message = error.get("message")
    return tuple(types), message if isinstance(message, str) else ""


__all__ = [
    "EmptyResponseError",
    "HTTPStatusError",
    "StreamAbortedError",
    "TransportError",
    "get_json",
    "parse_error_body",
    "post_json",
    "stream_lines",
]
