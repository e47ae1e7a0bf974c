"""Template validation and rendering.

Templates use ``{NAME}`` placeholders from a closed vocabulary. The older
``{{name}}`` form is still accepted for a small set of lower-case names.
Validation is the only place a template is rejected; rendering never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from ..logging import get_logger
from .constants import LEGACY_ALIASES, LEGACY_PLACEHOLDERS, PLACEHOLDERS

_DOUBLE = re.compile(r"\{\{([^{}]*)\}\}")
_SINGLE = re.compile(r"\{([^{}]*)\}")
_TOKEN = re.compile(r"\{\{(\w+)\}\}|\{(\w+)\}")
_NAME = re.compile(r"^\w+$")
_SCRIPT = re.compile(r"<\s*script", re.IGNORECASE)

_FORMAT_HINT = "Placeholders should be e.g. {PLACEHOLDER_NAME} (no spaces, no nesting)."


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


class TemplateEngine:
    """Validates templates against the placeholder vocabulary and renders them."""

    def __init__(self) -> None:
        self._logger = get_logger("prompting.template")
        self._primary = frozenset(PLACEHOLDERS)
        self._legacy = frozenset(LEGACY_PLACEHOLDERS)

    def validate(self, template: str) -> ValidationResult:
        errors: List[str] = []
        if not template:
            return ValidationResult(is_valid=True)

        if _SCRIPT.search(template):
            errors.append("Template contains script tags, which are not allowed.")

        for match in _DOUBLE.finditer(template):
            name = match.group(1)
            if name not in self._legacy:
                errors.append(f"Invalid placeholder format: {match.group(0)}. {_FORMAT_HINT}")
        remainder = _DOUBLE.sub("", template)

        if not _balanced(remainder):
            errors.append("Mismatched curly braces in template.")
        else:
            for match in _SINGLE.finditer(remainder):
                name = match.group(1)
                if not _NAME.match(name):
                    errors.append(f"Invalid placeholder format: {match.group(0)}. {_FORMAT_HINT}")
                elif name not in self._primary:
                    errors.append(f"Unknown placeholder: {match.group(0)}.")

        unique = list(dict.fromkeys(errors))
        if unique:
            self._logger.debug("Template rejected with %d error(s)", len(unique))
        return ValidationResult(is_valid=not unique, errors=unique)

    def render(
        self,
        template: str,
        data: Mapping[str, Optional[str]],
        *,
        fallback: str = "",
    ) -> str:
        """Substitute known placeholders in a single pass.

        Substituted values are never re-scanned, so a diff that itself contains
        ``{AUTHOR}`` is inserted verbatim. Unknown tokens are left untouched.
        """

        def replace(match: re.Match[str]) -> str:
            legacy, primary = match.group(1), match.group(2)
            if legacy is not None:
                if legacy not in self._legacy:
                    return match.group(0)
                return self._lookup(data, legacy, fallback)
            if primary not in self._primary:
                return match.group(0)
            return self._lookup(data, primary, fallback)

        return _TOKEN.sub(replace, template)

    def normalize_legacy(self, template: str) -> str:
        """Rewrite ``{{name}}`` tokens to their ``{NAME}`` equivalents where one exists."""

        def replace(match: re.Match[str]) -> str:
            alias = LEGACY_ALIASES.get(match.group(1))
            return f"{{{alias}}}" if alias else match.group(0)

        return _DOUBLE.sub(replace, template)

    @staticmethod
    def _lookup(data: Mapping[str, Optional[str]], name: str, fallback: str) -> str:
        value = data.get(name)
        if value is None and name in LEGACY_ALIASES:
            value = data.get(LEGACY_ALIASES[name])
        if value is None:
            return fallback
        return str(value)


def _balanced(text: str) -> bool:
    depth = 0
    for char in text:
        if char == "{":
            depth += 1
            if depth > 1:
                return False
        elif char == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


__all__ = ["TemplateEngine", "ValidationResult"]
