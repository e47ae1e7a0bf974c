"""Generation pipeline shared by every backend adapter."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .cancellation import CancellationToken
from .errors import TemplateValidationError, normalize_error
from .git.diff import DiffAnalyzer
from .llm.base import BackendAdapter
from .logging import get_logger
from .models import GenerationOptions, GenerationResult
from .prompting.constants import DEFAULT_TEMPLATE, DIFF_KEY, LEGACY_DIFF_KEY
from .prompting.template import TemplateEngine


class Stage(str, Enum):
    START = "start"
    TRUNCATE_DIFF = "truncate_diff"
    VALIDATE_TEMPLATE = "validate_template"
    RENDER_TEMPLATE = "render_template"
    DELEGATE_TO_ADAPTER = "delegate_to_adapter"
    ATTACH_METADATA = "attach_metadata"
    DONE = "done"
    ERROR = "error"


class GenerationOrchestrator:
    """Runs truncate, validate, render, delegate and annotate for one request.

    The orchestrator holds no per-request state, so one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        diff_analyzer: DiffAnalyzer | None = None,
        template_engine: TemplateEngine | None = None,
    ) -> None:
        self.diff_analyzer = diff_analyzer or DiffAnalyzer()
        self.template_engine = template_engine or TemplateEngine()
        self.logger = get_logger("orchestrator")

    def generate(
        self,
        adapter: BackendAdapter,
        options: GenerationOptions,
        *,
        diff_content: Optional[str] = None,
        cancel: CancellationToken | None = None,
    ) -> GenerationResult:
        provider = adapter.provider_type
        self._enter(Stage.START, provider.value)

        if diff_content is None:
            supplied = options.template_data or {}
            diff_content = supplied.get(DIFF_KEY) or supplied.get(LEGACY_DIFF_KEY) or ""

        self._enter(Stage.TRUNCATE_DIFF, provider.value)
        truncated = self.diff_analyzer.truncate(diff_content, options.diff_size_limit)

        self._enter(Stage.VALIDATE_TEMPLATE, provider.value)
        template = options.template.content if options.template else DEFAULT_TEMPLATE
        validation = self.template_engine.validate(template)
        if not validation.is_valid:
            self._enter(Stage.ERROR, provider.value)
            self.logger.warning(
                "Template rejected before contacting %s: %s",
                provider.value,
                "; ".join(validation.errors),
            )
            raise TemplateValidationError(validation.errors)

        self._enter(Stage.RENDER_TEMPLATE, provider.value)
        if options.template_data is None:
            self.logger.debug("No template data supplied; other placeholders render empty")
        data = dict(options.template_data or {})
        # Both diff keys carry the bounded text; legacy lookups read "diff" before its alias.
        data[DIFF_KEY] = truncated.text
        data[LEGACY_DIFF_KEY] = truncated.text
        prompt = self.template_engine.render(template, data)

        self._enter(Stage.DELEGATE_TO_ADAPTER, provider.value)
        self.logger.info(
            "Generating with %s (prompt %d chars, diff %d/%d chars)",
            provider.value,
            len(prompt),
            len(truncated.text),
            len(diff_content),
        )
        try:
            fragment = adapter.execute(prompt, options, cancel=cancel)
        except Exception as exc:
            self._enter(Stage.ERROR, provider.value)
            normalized = normalize_error(exc, provider)
            self.logger.warning(
                "%s generation failed: %s (retryable=%s)",
                provider.value,
                normalized.code.value,
                normalized.retryable,
            )
            if normalized is exc:
                raise
            raise normalized from exc

        self._enter(Stage.ATTACH_METADATA, provider.value)
        result = GenerationResult(
            description=fragment.description,
            provider=fragment.provider,
            model=fragment.model,
            tokens_used=fragment.tokens_used,
            diff_size_truncated=truncated.was_truncated,
            original_diff_size=len(diff_content),
            truncated_diff_size=len(truncated.text),
            metadata=dict(fragment.metadata),
        )
        self._enter(Stage.DONE, provider.value)
        self.logger.info(
            "%s returned %d chars (tokens=%s)",
            provider.value,
            len(result.description),
            result.tokens_used,
        )
        return result

    def _enter(self, stage: Stage, provider: str) -> None:
        self.logger.debug("[%s] stage=%s", provider, stage.value)


__all__ = ["GenerationOrchestrator", "Stage"]
