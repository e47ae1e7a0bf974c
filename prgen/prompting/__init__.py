"""Placeholder vocabulary, template engine and template data assembly."""

from .builder import build_template_data, summarize_stats
from .template import TemplateEngine, ValidationResult

__all__ = ["TemplateEngine", "ValidationResult", "build_template_data", "summarize_stats"]
