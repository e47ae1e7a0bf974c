"""Core data models shared across prgen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

DEFAULT_DIFF_SIZE_LIMIT = 4000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000


class ProviderType(str, Enum):
    """Supported LLM backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    XAI = "xai"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: "str | ProviderType") -> "ProviderType":
        if isinstance(value, ProviderType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = ", ".join(member.value for member in cls)
            raise ValueError(
                f"Unsupported provider type '{value}'. Supported: {supported}"
            ) from None


@dataclass(frozen=True)
class Template:
    """User supplied prompt template."""

    content: str
    id: Optional[str] = None


@dataclass
class GenerationOptions:
    """Per-request generation settings."""

    model: str = ""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    diff_size_limit: int = DEFAULT_DIFF_SIZE_LIMIT
    template: Optional[Template] = None
    template_data: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        if isinstance(self.template, str):
            self.template = Template(content=self.template)
        if self.diff_size_limit <= 0:
            raise ValueError("diff_size_limit must be a positive number of characters")
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens is not None and self.max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")

    @property
    def effective_temperature(self) -> float:
        return DEFAULT_TEMPERATURE if self.temperature is None else self.temperature

    @property
    def effective_max_tokens(self) -> int:
        return DEFAULT_MAX_TOKENS if self.max_tokens is None else self.max_tokens


@dataclass(frozen=True)
class LargestFile:
    name: str = ""
    changes: int = 0


@dataclass(frozen=True)
class DiffStats:
    """Statistics derived from a unified diff; recomputed per request."""

    total_files: int
    added_lines: int
    deleted_lines: int
    modified_files: int
    file_types: Dict[str, int]
    largest_file: LargestFile
    processing_method: Literal["direct", "chunked"] = "direct"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_files": self.total_files,
            "added_lines": self.added_lines,
            "deleted_lines": self.deleted_lines,
            "modified_files": self.modified_files,
            "file_types": dict(self.file_types),
            "largest_file": {
                "name": self.largest_file.name,
                "changes": self.largest_file.changes,
            },
            "processing_method": self.processing_method,
        }


@dataclass(frozen=True)
class TruncatedDiff:
    text: str
    was_truncated: bool


@dataclass
class AdapterResult:
    """What a backend adapter returns; size metadata is added by the orchestrator."""

    description: str
    provider: ProviderType
    model: str
    tokens_used: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Final outcome of a generation request."""

    description: str
    provider: ProviderType
    model: str
    tokens_used: Optional[int]
    diff_size_truncated: bool
    original_diff_size: int
    truncated_diff_size: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "provider": self.provider.value,
            "model": self.model,
            "tokens_used": self.tokens_used,
            "diff_size_truncated": self.diff_size_truncated,
            "original_diff_size": self.original_diff_size,
            "truncated_diff_size": self.truncated_diff_size,
        }


@dataclass(frozen=True)
class ProviderCapabilities:
    """Capability metadata advertised by an adapter."""

    context_window: int
    supported_models: List[str]
    supports_streaming: bool = False
    cost_per_token: Optional[Dict[str, float]] = None
    rate_limit: Optional[Dict[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "context_window": self.context_window,
            "supported_models": list(self.supported_models),
            "supports_streaming": self.supports_streaming,
        }
        if self.cost_per_token is not None:
            payload["cost_per_token"] = dict(self.cost_per_token)
        if self.rate_limit is not None:
            payload["rate_limit"] = dict(self.rate_limit)
        return payload


@dataclass(frozen=True)
class PullRequestMetadata:
    """Pull request details supplied by a diff/metadata source."""

    title: str = ""
    description: str = ""
    author: str = ""
    source_branch: str = ""
    destination_branch: str = ""


@dataclass(frozen=True)
class DiffPayload:
    text: str
    size_bytes: int
