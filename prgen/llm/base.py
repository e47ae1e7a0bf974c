"""Contract shared by every backend adapter."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, TypeVar

from ..cancellation import CancellationToken
from ..errors import ErrorCode, ProviderError, normalize_error
from ..logging import get_logger
from ..models import AdapterResult, GenerationOptions, ProviderCapabilities, ProviderType

T = TypeVar("T")

BACKOFF_BASE_SECONDS = 1.0
BACKOFF_CAP_SECONDS = 16.0


@dataclass
class ProviderConfig:
    """Settings common to every vendor; ``None`` means the adapter default."""

    model: str = ""
    timeout: Optional[float] = None
    max_retries: Optional[int] = None


class BackendAdapter(ABC):
    """One vendor's implementation of the generation contract.

    Adapters raise raw transport errors; normalization happens in the
    orchestrator. The retry helper only consults the normalizer to decide
    whether a failure is worth another attempt.
    """

    provider_type: ProviderType
    DEFAULT_MODEL = ""
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_MAX_RETRIES = 3
    CONTEXT_WINDOW = 4096
    SUPPORTED_MODELS: tuple[str, ...] = ()
    SUPPORTS_STREAMING = False
    COST_PER_TOKEN: Optional[Dict[str, float]] = None
    RATE_LIMIT: Optional[Dict[str, int]] = None

    def __init__(
        self,
        config: ProviderConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._sleep = sleep
        self._logger = get_logger(f"llm.{self.provider_type.value}")

    @property
    def timeout(self) -> float:
        return self.config.timeout if self.config.timeout is not None else self.DEFAULT_TIMEOUT

    @property
    def max_retries(self) -> int:
        if self.config.max_retries is None:
            return self.DEFAULT_MAX_RETRIES
        return max(0, self.config.max_retries)

    @property
    def model(self) -> str:
        return self.config.model or self.DEFAULT_MODEL

    @abstractmethod
    def execute(
        self,
        prompt: str,
        options: GenerationOptions,
        *,
        cancel: CancellationToken | None = None,
    ) -> AdapterResult:
        """Send *prompt* to the vendor and return the generated description."""

    @abstractmethod
    def probe(self, *, cancel: CancellationToken | None = None) -> None:
        """Cheap connectivity/authentication check; raises on failure."""

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            context_window=self.CONTEXT_WINDOW,
            supported_models=list(self.SUPPORTED_MODELS),
            supports_streaming=self.SUPPORTS_STREAMING,
            cost_per_token=dict(self.COST_PER_TOKEN) if self.COST_PER_TOKEN else None,
            rate_limit=dict(self.RATE_LIMIT) if self.RATE_LIMIT else None,
        )

    def available_models(self) -> List[str]:
        return list(self.SUPPORTED_MODELS)

    def _resolve_model(self, options: GenerationOptions) -> str:
        return options.model or self.model

    def _call_with_retries(
        self,
        operation: Callable[[], T],
        cancel: CancellationToken | None = None,
    ) -> T:
        """Run *operation*, retrying retryable failures with exponential backoff."""
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                return operation()
            except Exception as exc:
                if cancel is not None and (cancel.cancelled or cancel.expired):
                    raise
                classified = normalize_error(exc, self.provider_type)
                if not classified.retryable or attempt == attempts - 1:
                    raise
                delay = min(BACKOFF_BASE_SECONDS * (2**attempt), BACKOFF_CAP_SECONDS)
                self._logger.warning(
                    "%s request failed with %s; retrying in %.1fs (attempt %d/%d)",
                    self.provider_type.value,
                    classified.code.value,
                    delay,
                    attempt + 2,
                    attempts,
                )
                if cancel is not None:
                    cancel.wait(delay)
                else:
                    self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover


def require_api_key(api_key: Optional[str], provider: ProviderType) -> str:
    if not api_key or not api_key.strip():
        raise ProviderError(
            ErrorCode.INVALID_API_KEY,
            f"{provider.value} API key is required",
            provider=provider,
        )
    return api_key.strip()


def estimate_tokens(*texts: str) -> int:
    """Rough token count (four characters per token)."""
    total = sum(len(text) for text in texts)
    return -(-total // 4)


__all__ = [
    "BackendAdapter",
    "ProviderConfig",
    "estimate_tokens",
    "require_api_key",
]
