"""OpenAI chat-completions adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..cancellation import CancellationToken
from ..models import AdapterResult, GenerationOptions, ProviderType
from .base import BackendAdapter, ProviderConfig, require_api_key
from .transport import EmptyResponseError, get_json, post_json

DEFAULT_BASE_URL = "https://api.openai.com/v1"


@dataclass
class OpenAIConfig(ProviderConfig):
    api_key: str = ""
    organization_id: Optional[str] = None
    base_url: Optional[str] = None


class OpenAIAdapter(BackendAdapter):
    """Bearer-authenticated ``/chat/completions`` backend."""

    provider_type = ProviderType.OPENAI
    DEFAULT_MODEL = "gpt-3.5-turbo"
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_MAX_RETRIES = 3
    CONTEXT_WINDOW = 4096
    SUPPORTED_MODELS = (
        "gpt-3.5-turbo",
        "gpt-3.5-turbo-16k",
        "gpt-4",
        "gpt-4-turbo-preview",
        "gpt-4o",
        "gpt-4o-mini",
    )
    SUPPORTS_STREAMING = True
    COST_PER_TOKEN = {"input": 0.0015 / 1000, "output": 0.002 / 1000}
    RATE_LIMIT = {"requests_per_minute": 3500, "tokens_per_minute": 90000}

    def __init__(self, config: OpenAIConfig, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.api_key = require_api_key(config.api_key, self.provider_type)
        self.base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self.organization_id = config.organization_id

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
        }
        self._logger.info("Requesting completion from %s (prompt %d chars)", model, len(prompt))
        response = self._call_with_retries(
            lambda: post_json(
                f"{self.base_url}/chat/completions",
                payload,
                headers=self._headers(),
                timeout=self.timeout,
                cancel=cancel,
            ),
            cancel,
        )
        content = _extract_content(response)
        if not content:
            raise EmptyResponseError("OpenAI returned an empty completion")
        tokens = _total_tokens(response.get("usage"))
        self._logger.debug("OpenAI completion used %s tokens", tokens)
        return AdapterResult(
            description=content.strip(),
            provider=self.provider_type,
            model=model,
            tokens_used=tokens,
        )

    def probe(self, *, cancel: CancellationToken | None = None) -> None:
        get_json(
            f"{self.base_url}/models",
            headers=self._headers(),
            timeout=self.timeout,
            cancel=cancel,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self.organization_id:
            headers["OpenAI-Organization"] = self.organization_id
        return headers


def _extract_content(payload: Mapping[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    return ""


def _total_tokens(usage: Any) -> Optional[int]:
    if not isinstance(usage, dict):
        return None
    total = usage.get("total_tokens")
    if isinstance(total, int):
        return total
    prompt, completion = usage.get("prompt_tokens"), usage.get("completion_tokens")
    if isinstance(prompt, int) and isinstance(completion, int):
        return prompt + completion
    return None


__all__ = ["OpenAIAdapter", "OpenAIConfig"]
