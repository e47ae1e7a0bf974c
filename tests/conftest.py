from __future__ import annotations

import io
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError

import pytest


class FakeResponse:
    """Stand-in for the object returned by ``urlopen``."""

    def __init__(
        self,
        body: bytes = b"",
        *,
        lines: Optional[List[bytes]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self._body = body
        self._lines = lines or []
        self._error = error
        self.closed = False

    def read(self) -> bytes:
        return self._body

    def __iter__(self):
        for line in self._lines:
            yield line
        if self._error is not None:
            raise self._error

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.closed = True
        return False


@dataclass
class RecordedCall:
    url: str
    method: str
    headers: Dict[str, str]
    payload: Any
    timeout: Optional[float]


class FakeHTTP:
    """Queue of canned responses served in order to ``urlopen`` callers."""

    def __init__(self) -> None:
        self.calls: List[RecordedCall] = []
        self._queue: List[Any] = []

    def add_json(self, payload: Any) -> "FakeHTTP":
        self._queue.append(FakeResponse(json.dumps(payload).encode("utf-8")))
        return self

    def add_text(self, text: str) -> "FakeHTTP":
        self._queue.append(FakeResponse(text.encode("utf-8")))
        return self

    def add_stream(self, lines: List[str], *, error: Optional[BaseException] = None) -> "FakeHTTP":
        encoded = [f"{line}\n".encode("utf-8") for line in lines]
        self._queue.append(FakeResponse(lines=encoded, error=error))
        return self

    def add_status(self, status: int, body: Any = "") -> "FakeHTTP":
        text = body if isinstance(body, str) else json.dumps(body)
        self._queue.append(("status", status, text))
        return self

    def add_exception(self, exc: BaseException) -> "FakeHTTP":
        self._queue.append(exc)
        return self

    def __call__(self, request, timeout=None):
        payload = None
        if request.data:
            payload = json.loads(request.data.decode("utf-8"))
        self.calls.append(
            RecordedCall(
                url=request.full_url,
                method=request.get_method(),
                headers={key.lower(): value for key, value in request.header_items()},
                payload=payload,
                timeout=timeout,
            )
        )
        if not self._queue:
            raise AssertionError(f"Unexpected request to {request.full_url}")
        item = self._queue.pop(0)
        if isinstance(item, tuple) and item[0] == "status":
            _, status, text = item
            raise HTTPError(
                request.full_url, status, "error", {}, io.BytesIO(text.encode("utf-8"))
            )
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake_http(monkeypatch: pytest.MonkeyPatch) -> FakeHTTP:
    """Serve canned responses to the LLM transport."""
    http = FakeHTTP()
    monkeypatch.setattr("prgen.llm.transport.urlopen", http)
    return http


@pytest.fixture
def fake_bitbucket_http(monkeypatch: pytest.MonkeyPatch) -> FakeHTTP:
    http = FakeHTTP()
    monkeypatch.setattr("prgen.git.bitbucket.urlopen", http)
    return http


@pytest.fixture
def no_sleep() -> List[float]:
    """Collects backoff delays instead of sleeping."""
    return []
