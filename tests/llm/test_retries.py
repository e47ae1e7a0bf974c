from __future__ import annotations

from typing import List

import pytest

from prgen.cancellation import CancellationToken, RequestCancelledError
from prgen.errors import ErrorCode, ProviderError
from prgen.llm.base import BackendAdapter, ProviderConfig, estimate_tokens, require_api_key
from prgen.llm.transport import HTTPStatusError, TransportError
from prgen.models import AdapterResult, GenerationOptions, ProviderType


class _FlakyAdapter(BackendAdapter):
    """Fails with the queued errors, then succeeds."""

    provider_type = ProviderType.OPENAI

    def __init__(self, failures: List[BaseException], *, max_retries: int = 3) -> None:
        self.delays: List[float] = []
        super().__init__(ProviderConfig(model="m", max_retries=max_retries), sleep=self.delays.append)
        self.failures = list(failures)
        self.attempts = 0

    def execute(self, prompt, options, *, cancel=None):  # type: ignore[no-untyped-def]
        return self._call_with_retries(lambda: self._attempt(prompt), cancel)

    def probe(self, *, cancel=None):  # type: ignore[no-untyped-def]
        return None

    def _attempt(self, prompt: str) -> AdapterResult:
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)
        return AdapterResult(description=prompt, provider=self.provider_type, model=self.model)


def test_retryable_failures_back_off_exponentially() -> None:
    adapter = _FlakyAdapter([HTTPStatusError(429, "slow")] * 3)

    result = adapter.execute("done", GenerationOptions())

    assert result.description == "done"
    assert adapter.attempts == 4
    assert adapter.delays == [1.0, 2.0, 4.0]


def test_backoff_is_capped() -> None:
    adapter = _FlakyAdapter([TransportError("reset")] * 6, max_retries=6)

    adapter.execute("ok", GenerationOptions())

    assert adapter.delays == [1.0, 2.0, 4.0, 8.0, 16.0, 16.0]


def test_non_retryable_failure_is_not_retried() -> None:
    adapter = _FlakyAdapter([HTTPStatusError(401, "bad key")])

    with pytest.raises(HTTPStatusError):
        adapter.execute("p", GenerationOptions())

    assert adapter.attempts == 1
    assert adapter.delays == []


def test_retry_budget_is_respected() -> None:
    adapter = _FlakyAdapter([TransportError("timed out", timed_out=True)] * 5, max_retries=1)

    with pytest.raises(TransportError):
        adapter.execute("p", GenerationOptions())

    assert adapter.attempts == 2


def test_cancelled_token_stops_before_first_attempt() -> None:
    token = CancellationToken()
    token.cancel()
    adapter = _FlakyAdapter([])

    with pytest.raises(RequestCancelledError):
        adapter.execute("p", GenerationOptions(), cancel=token)

    assert adapter.attempts == 0


def test_cancellation_during_failure_is_not_retried() -> None:
    token = CancellationToken()

    class _CancellingAdapter(_FlakyAdapter):
        def _attempt(self, prompt: str) -> AdapterResult:
            self.attempts += 1
            token.cancel()
            raise TransportError("reset")

    adapter = _CancellingAdapter([])

    with pytest.raises(TransportError):
        adapter.execute("p", GenerationOptions(), cancel=token)

    assert adapter.attempts == 1


def test_negative_retry_budget_is_clamped() -> None:
    adapter = _FlakyAdapter([], max_retries=-4)

    assert adapter.max_retries == 0


def test_require_api_key() -> None:
    assert require_api_key("  key ", ProviderType.XAI) == "key"
    with pytest.raises(ProviderError) as excinfo:
        require_api_key(None, ProviderType.XAI)
    assert excinfo.value.code is ErrorCode.INVALID_API_KEY


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abc", "de") == 2
