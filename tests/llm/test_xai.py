from __future__ import annotations

import json

import pytest

from prgen.errors import ErrorCode, ProviderError
from prgen.llm.transport import StreamAbortedError
from prgen.llm.xai import XAIAdapter, XAIConfig
from prgen.models import GenerationOptions, ProviderType
from prgen.orchestrator import GenerationOrchestrator


def _delta(text: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]})


def _adapter(no_sleep, **overrides) -> XAIAdapter:
    return XAIAdapter(XAIConfig(api_key="xai-test", **overrides), sleep=no_sleep.append)


def test_stream_is_buffered_until_done(fake_http, no_sleep) -> None:
    fake_http.add_stream(
        [
            ": keep-alive",
            _delta("## Summary\n"),
            _delta("Adds "),
            _delta("caching."),
            "data: " + json.dumps({"choices": [{"delta": {}}], "usage": {"total_tokens": 77}}),
            "data: [DONE]",
        ]
    )

    result = _adapter(no_sleep).execute("Describe", GenerationOptions())

    assert result.description == "## Summary\nAdds caching."
    assert result.provider is ProviderType.XAI
    assert result.model == "grok-beta"
    assert result.tokens_used == 77
    assert result.metadata == {"streamed": True}
    call = fake_http.calls[0]
    assert call.url == "https://api.x.ai/v1/chat/completions"
    assert call.headers["authorization"] == "Bearer xai-test"
    assert call.headers["accept"] == "text/event-stream"
    assert call.payload["stream"] is True


def test_interrupted_stream_raises_stream_aborted(fake_http, no_sleep) -> None:
    fake_http.add_stream(
        [_delta("partial "), _delta("text")], error=ConnectionResetError("connection reset")
    )

    with pytest.raises(StreamAbortedError):
        _adapter(no_sleep, max_retries=0).execute("p", GenerationOptions())


def test_stream_without_done_event_is_aborted(fake_http, no_sleep) -> None:
    fake_http.add_stream([_delta("partial")])

    with pytest.raises(StreamAbortedError, match="without a completion event"):
        _adapter(no_sleep, max_retries=0).execute("p", GenerationOptions())


def test_malformed_event_aborts_stream(fake_http, no_sleep) -> None:
    fake_http.add_stream(["data: {not json"])

    with pytest.raises(StreamAbortedError, match="malformed"):
        _adapter(no_sleep, max_retries=0).execute("p", GenerationOptions())


def test_aborted_stream_is_retried_as_a_whole(fake_http, no_sleep) -> None:
    fake_http.add_stream([_delta("half")], error=ConnectionResetError("reset"))
    fake_http.add_stream([_delta("complete answer"), "data: [DONE]"])

    result = _adapter(no_sleep, max_retries=1).execute("p", GenerationOptions())

    assert result.description == "complete answer"
    assert len(fake_http.calls) == 2
    assert no_sleep == [1.0]


def test_orchestrator_reports_aborted_stream_as_network_error(fake_http, no_sleep) -> None:
    fake_http.add_stream([_delta("partial")], error=ConnectionResetError("reset"))
    adapter = _adapter(no_sleep, max_retries=0)

    with pytest.raises(ProviderError) as excinfo:
        GenerationOrchestrator().generate(adapter, GenerationOptions(), diff_content="+x\n")

    assert excinfo.value.code is ErrorCode.NETWORK_ERROR
    assert excinfo.value.retryable
    assert excinfo.value.provider is ProviderType.XAI
    assert isinstance(excinfo.value.__cause__, StreamAbortedError)


def test_probe_lists_models(fake_http) -> None:
    fake_http.add_json({"data": []})

    XAIAdapter(XAIConfig(api_key="k")).probe()

    assert fake_http.calls[0].url == "https://api.x.ai/v1/models"
    assert "accept" not in fake_http.calls[0].headers
