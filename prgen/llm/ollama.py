"""Adapter for a self-hosted Ollama daemon."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

from ..cancellation import CancellationToken
from ..models import AdapterResult, GenerationOptions, ProviderType
from .base import BackendAdapter, ProviderConfig, estimate_tokens
from .transport import EmptyResponseError, HTTPStatusError, TransportError, get_json, post_json

DEFAULT_BASE_URL = "http://localhost:11434"


@dataclass
class OllamaConfig(ProviderConfig):
    base_url: str = DEFAULT_BASE_URL


class OllamaAdapter(BackendAdapter):
    """Local inference over ``/api/generate``.

    Ollama reports no usage, so ``tokens_used`` is a character-based estimate
    and the result metadata says so.
    """

    provider_type = ProviderType.OLLAMA
    DEFAULT_MODEL = "llama2"
    DEFAULT_TIMEOUT = 120.0
    DEFAULT_MAX_RETRIES = 2
    CONTEXT_WINDOW = 4096
    SUPPORTED_MODELS = (
        "llama2",
        "llama2:13b",
        "llama2:7b",
        "codellama",
        "codellama:13b",
        "codellama:7b",
        "mistral",
        "mistral:7b",
        "mixtral",
        "neural-chat",
        "starling-lm",
        "openchat",
        "dolphin-mistral",
        "phi",
        "orca-mini",
        "vicuna",
        "nous-hermes",
        "wizard-coder",
    )
    SUPPORTS_STREAMING = True
    COST_PER_TOKEN = {"input": 0.0, "output": 0.0}
    RATE_LIMIT = {"requests_per_minute": 60, "tokens_per_minute": 1000}

    def __init__(self, config: OllamaConfig, **kwargs: Any) -> None:
        if not (config.base_url or "").strip():
            raise ValueError("Ollama base URL is required and cannot be empty")
        if not (config.model or "").strip():
            raise ValueError("Ollama model name is required and cannot be empty")
        super().__init__(config, **kwargs)
        self.base_url = config.base_url.strip().rstrip("/")

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
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.effective_temperature,
                "num_predict": options.effective_max_tokens,
            },
        }
        self._logger.info("Requesting generation from %s at %s", model, self.base_url)
        response = self._call_with_retries(
            lambda: post_json(
                f"{self.base_url}/api/generate",
                payload,
                timeout=self.timeout,
                cancel=cancel,
            ),
            cancel,
        )
        text = response.get("response")
        if not isinstance(text, str) or not text.strip():
            raise EmptyResponseError("Ollama returned empty response")
        text = text.strip()
        return AdapterResult(
            description=text,
            provider=self.provider_type,
            model=model,
            tokens_used=estimate_tokens(prompt, text),
            metadata={"endpoint": self.base_url, "estimated_tokens": True},
        )

    def probe(self, *, cancel: CancellationToken | None = None) -> None:
        get_json(f"{self.base_url}/api/tags", timeout=self.timeout, cancel=cancel)

    def available_models(self) -> List[str]:
        try:
            payload = get_json(f"{self.base_url}/api/tags", timeout=self.timeout)
        except (HTTPStatusError, TransportError, EmptyResponseError) as exc:
            self._logger.debug("Could not list Ollama models: %s", exc)
            return super().available_models()
        models = payload.get("models")
        names = [
            entry["name"]
            for entry in models or []
            if isinstance(entry, dict) and isinstance(entry.get("name"), str)
        ]
        return names or super().available_models()


__all__ = ["OllamaAdapter", "OllamaConfig"]
