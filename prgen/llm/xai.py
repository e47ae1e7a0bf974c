"""xAI (Grok) adapter.

xAI is consumed as a server-sent event stream. The adapter buffers every
delta and only returns once the terminal ``[DONE]`` event arrives, so callers
see the same single-result contract as the other vendors. A stream that stops
early never produces a partial description.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..cancellation import CancellationToken, RequestCancelledError
from ..models import AdapterResult, GenerationOptions, ProviderType
from .base import BackendAdapter, ProviderConfig, require_api_key
from .transport import (
    EmptyResponseError,
    StreamAbortedError,
    TransportError,
    get_json,
    stream_lines,
)

DEFAULT_BASE_URL = "https://api.x.ai/v1"
_DATA_PREFIX = "data:"
_DONE = "[DONE]"


@dataclass
class XAIConfig(ProviderConfig):
    api_key: str = ""
    base_url: Optional[str] = None


class XAIAdapter(BackendAdapter):
    provider_type = ProviderType.XAI
    DEFAULT_MODEL = "grok-beta"
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_MAX_RETRIES = 3
    CONTEXT_WINDOW = 131072
    SUPPORTED_MODELS = ("grok-beta", "grok-vision-beta")
    SUPPORTS_STREAMING = True
    COST_PER_TOKEN = {"input": 0.000005, "output": 0.000015}
    RATE_LIMIT = {"requests_per_minute": 100, "tokens_per_minute": 10000}

    def __init__(self, config: XAIConfig, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.api_key = require_api_key(config.api_key, self.provider_type)
        self.base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")

    def execute(
        self,
        prompt: str,
        options: GenerationOptions,
        *,
        cancel: CancellationToken | None = None,
    ) -> AdapterResult:
        model = self._resolve_model(options)
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.effective_temperature,
            "max_tokens": options.effective_max_tokens,
            "stream": True,
        }
        self._logger.info("Streaming completion from %s (prompt %d chars)", model, len(prompt))
        text, tokens = self._call_with_retries(
            lambda: self._collect_stream(payload, cancel), cancel
        )
        if not text.strip():
            raise EmptyResponseError("xAI stream completed without any content")
        return AdapterResult(
            description=text.strip(),
            provider=self.provider_type,
            model=model,
            tokens_used=tokens,
            metadata={"streamed": True},
        )

    def probe(self, *, cancel: CancellationToken | None = None) -> None:
        get_json(
            f"{self.base_url}/models",
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            cancel=cancel,
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "text/event-stream"}

    def _collect_stream(
        self, payload: Mapping[str, Any], cancel: CancellationToken | None
    ) -> tuple[str, Optional[int]]:
        chunks: List[str] = []
        tokens: Optional[int] = None
        received = False
        lines = stream_lines(
            f"{self.base_url}/chat/completions",
            payload,
            headers=self._headers(),
            timeout=self.timeout,
            cancel=cancel,
        )
        try:
            for line in lines:
                received = True
                if not line.startswith(_DATA_PREFIX):
                    continue
                data = line[len(_DATA_PREFIX):].strip()
                if data == _DONE:
                    self._logger.debug("xAI stream finished after %d chunks", len(chunks))
                    return "".join(chunks), tokens
                event = _parse_event(data)
                chunks.append(_delta_text(event))
                usage = event.get("usage")
                if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
                    tokens = usage["total_tokens"]
        except (TransportError, RequestCancelledError) as exc:
            if not received:
                raise
            raise StreamAbortedError(
                f"xAI stream interrupted after {len(chunks)} chunks: {exc}"
            ) from exc
        finally:
            lines.close()
        raise StreamAbortedError(
            f"xAI stream ended without a completion event after {len(chunks)} chunks"
        )


def _parse_event(data: str) -> Dict[str, Any]:
    try:
        event = json.loads(data)
    except json.JSONDecodeError as exc:
        raise StreamAbortedError("xAI stream sent a malformed event") from exc
    if not isinstance(event, dict):
        raise StreamAbortedError("xAI stream sent an unexpected event")
    return event


def _delta_text(event: Mapping[str, Any]) -> str:
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if isinstance(delta, dict) and isinstance(delta.get("content"), str):
        return delta["content"]
    return ""


__all__ = ["XAIAdapter", "XAIConfig"]
