"""prgen: pull request descriptions from diffs with interchangeable LLM backends."""

from .cancellation import CancellationToken
from .errors import ErrorCode, ProviderError, TemplateValidationError, normalize_error
from .models import GenerationOptions, GenerationResult, ProviderType, Template
from .orchestrator import GenerationOrchestrator
from .registry import ProviderRegistry, create_adapter

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ErrorCode",
    "GenerationOptions",
    "GenerationOrchestrator",
    "GenerationResult",
    "ProviderError",
    "ProviderRegistry",
    "ProviderType",
    "Template",
    "TemplateValidationError",
    "create_adapter",
    "normalize_error",
]
