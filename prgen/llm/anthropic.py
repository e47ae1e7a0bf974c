"""Anthropic messages API adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..cancellation import CancellationToken
from ..models import AdapterResult, GenerationOptions, ProviderType
from .base import BackendAdapter, ProviderConfig, require_api_key
from .transport import EmptyResponseError, post_json

DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"


@dataclass
class AnthropicConfig(ProviderConfig):
    api_key: str = ""
    base_url: Optional[str] = None


class AnthropicAdapter(BackendAdapter):
    provider_type = ProviderType.ANTHROPIC
    DEFAULT_MODEL = "claude-3-sonnet-20240229"
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_MAX_RETRIES = 3
    CONTEXT_WINDOW = 200000
    SUPPORTED_MODELS = (
        "claude-3-haiku-20240307",
        "claude-3-sonnet-20240229",
        "claude-3-opus-20240229",
        "claude-3-5-sonnet-20241022",
    )
    SUPPORTS_STREAMING = True
    COST_PER_TOKEN = {"input": 0.00025 / 1000, "output": 0.00125 / 1000}
    RATE_LIMIT = {"requests_per_minute": 1000, "tokens_per_minute": 40000}

    def __init__(self, config: AnthropicConfig, **kwargs: Any) -> None:
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
            "max_tokens": options.effective_max_tokens,
            "temperature": options.effective_temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        self._logger.info("Requesting message from %s (prompt %d chars)", model, len(prompt))
        response = self._call_with_retries(
            lambda: self._post(payload, cancel), cancel
        )
        text = _extract_text(response)
        if not text:
            raise EmptyResponseError("Anthropic returned no text content")
        return AdapterResult(
            description=text.strip(),
            provider=self.provider_type,
            model=model,
            tokens_used=_total_tokens(response.get("usage")),
        )

    def probe(self, *, cancel: CancellationToken | None = None) -> None:
        # The messages endpoint has no free no-op; a one-token request is the cheapest check.
        self._post(
            {
                "model": self.model,
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "ping"}],
            },
            cancel,
        )

    def _post(
        self, payload: Mapping[str, Any], cancel: CancellationToken | None
    ) -> Dict[str, Any]:
        return post_json(
            f"{self.base_url}/v1/messages",
            payload,
            headers={"x-api-key": self.api_key, "anthropic-version": API_VERSION},
            timeout=self.timeout,
            cancel=cancel,
        )


def _extract_text(payload: Mapping[str, Any]) -> str:
    blocks = payload.get("content")
    if not isinstance(blocks, list):
        return ""
    parts = [
        block.get("text", "")
        for block in blocks
        if isinstance(block, dict) and block.get("type", "text") == "text"
    ]
    return "".join(part for part in parts if isinstance(part, str))


def _total_tokens(usage: Any) -> Optional[int]:
    if not isinstance(usage, dict):
        return None
    used = [usage.get("input_tokens"), usage.get("output_tokens")]
    counts = [value for value in used if isinstance(value, int)]
    return sum(counts) if counts else None


__all__ = ["AnthropicAdapter", "AnthropicConfig"]
