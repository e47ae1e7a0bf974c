"""Configuration loading for prgen (.prgen.yml and environment variables)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ProviderError
from .logging import get_logger
from .models import DEFAULT_DIFF_SIZE_LIMIT, ProviderType
from .registry import ProviderRegistry

CONFIG_FILENAME = ".prgen.yml"

_LOGGER = get_logger("config")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or applied."""


@dataclass
class ProviderSettings:
    """One ``providers`` entry from .prgen.yml (or derived from the environment)."""

    key: str
    type: ProviderType
    model: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    organization_id: Optional[str] = None
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    default: bool = False

    def resolve_api_key(self, environ: Mapping[str, str] | None = None) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            env = os.environ if environ is None else environ
            return env.get(self.api_key_env) or None
        return None

    def adapter_config(self, environ: Mapping[str, str] | None = None) -> Dict[str, Any]:
        values: Dict[str, Any] = {
            "model": self.model,
            "api_key": self.resolve_api_key(environ),
            "base_url": self.base_url,
            "organization_id": self.organization_id,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
        }
        return {key: value for key, value in values.items() if value is not None}


@dataclass
class GenerationSettings:
    """Request defaults from the ``generation`` section."""

    diff_size_limit: int = DEFAULT_DIFF_SIZE_LIMIT
    template_file: Optional[Path] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def load_template(self) -> Optional[str]:
        if self.template_file is None:
            return None
        try:
            return self.template_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read template file {self.template_file}: {exc}") from exc


@dataclass
class PrgenConfig:
    """Represents the settings defined in .prgen.yml."""

    root: Path
    providers: List[ProviderSettings] = field(default_factory=list)
    generation: GenerationSettings = field(default_factory=GenerationSettings)


def load_config(config_path: Path) -> PrgenConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return PrgenConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    raw_providers = data.get("providers") or []
    if not isinstance(raw_providers, list):
        raise ConfigError("'providers' must be a list")
    providers = [_parse_provider(item, index) for index, item in enumerate(raw_providers)]
    keys = [provider.key for provider in providers]
    duplicates = sorted({key for key in keys if keys.count(key) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate provider keys: {', '.join(duplicates)}")

    generation_data = _as_dict(data.get("generation"))
    generation = GenerationSettings()
    if generation_data:
        limit = _as_int(generation_data.get("diff_size_limit"))
        if limit is not None:
            if limit <= 0:
                raise ConfigError("generation.diff_size_limit must be positive")
            generation.diff_size_limit = limit
        template_file = _as_str(generation_data.get("template_file"))
        generation.template_file = root / template_file if template_file else None
        generation.temperature = _as_float(generation_data.get("temperature"))
        generation.max_tokens = _as_int(generation_data.get("max_tokens"))

    return PrgenConfig(root=root, providers=providers, generation=generation)


def providers_from_env(environ: Mapping[str, str] | None = None) -> List[ProviderSettings]:
    """Provider entries implied by well-known environment variables."""
    env = os.environ if environ is None else environ
    providers: List[ProviderSettings] = []
    if env.get("OPENAI_API_KEY"):
        providers.append(
            ProviderSettings(
                key="openai-default",
                type=ProviderType.OPENAI,
                model="gpt-3.5-turbo",
                api_key=env["OPENAI_API_KEY"],
                timeout=60.0,
                max_retries=3,
                default=True,
            )
        )
    if env.get("ANTHROPIC_API_KEY"):
        providers.append(
            ProviderSettings(
                key="anthropic-default",
                type=ProviderType.ANTHROPIC,
                model="claude-3-sonnet-20240229",
                api_key=env["ANTHROPIC_API_KEY"],
                timeout=60.0,
                max_retries=3,
            )
        )
    if env.get("XAI_API_KEY"):
        providers.append(
            ProviderSettings(
                key="xai-default",
                type=ProviderType.XAI,
                model="grok-beta",
                api_key=env["XAI_API_KEY"],
                timeout=60.0,
                max_retries=3,
            )
        )
    if env.get("OLLAMA_ENDPOINT"):
        providers.append(
            ProviderSettings(
                key="ollama-default",
                type=ProviderType.OLLAMA,
                model=env.get("OLLAMA_MODEL") or "llama2",
                base_url=env["OLLAMA_ENDPOINT"],
                timeout=120.0,
                max_retries=2,
            )
        )
    return providers


def build_registry(
    config: PrgenConfig | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    include_env: bool = True,
) -> ProviderRegistry:
    """Create a fresh registry from file settings plus environment providers.

    File entries win over environment entries with the same key, and an
    environment default never displaces a default declared in the file.
    """
    registry = ProviderRegistry()
    configured = list(config.providers) if config else []
    for settings in configured:
        _register(registry, settings, environ)

    if include_env:
        has_default = any(settings.default for settings in configured)
        for settings in providers_from_env(environ):
            if settings.key in registry:
                continue
            if has_default:
                settings.default = False
            _register(registry, settings, environ)

    if not len(registry):
        _LOGGER.warning(
            "No providers configured. Add providers to %s or set provider environment variables.",
            CONFIG_FILENAME,
        )
    return registry


def _register(
    registry: ProviderRegistry,
    settings: ProviderSettings,
    environ: Mapping[str, str] | None,
) -> None:
    try:
        registry.register(
            settings.key,
            settings.type,
            settings.adapter_config(environ),
            is_default=settings.default,
        )
    except (ProviderError, ValueError, TypeError) as exc:
        raise ConfigError(f"Provider '{settings.key}' is misconfigured: {exc}") from exc


def _parse_provider(item: Any, index: int) -> ProviderSettings:
    if not isinstance(item, dict):
        raise ConfigError(f"providers[{index}] must be a mapping")
    key = _as_str(item.get("key"))
    if not key:
        raise ConfigError(f"providers[{index}] is missing 'key'")
    type_name = _as_str(item.get("type"))
    if not type_name:
        raise ConfigError(f"Provider '{key}' is missing 'type'")
    try:
        provider_type = ProviderType.parse(type_name)
    except ValueError as exc:
        raise ConfigError(f"Provider '{key}': {exc}") from exc
    return ProviderSettings(
        key=key,
        type=provider_type,
        model=_as_str(item.get("model")),
        api_key=_as_str(item.get("api_key")),
        api_key_env=_as_str(item.get("api_key_env")),
        base_url=_as_str(item.get("base_url")),
        organization_id=_as_str(item.get("organization_id")),
        timeout=_as_float(item.get("timeout")),
        max_retries=_as_int(item.get("max_retries")),
        default=_as_bool(item.get("default")) or False,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "GenerationSettings",
    "PrgenConfig",
    "ProviderSettings",
    "build_registry",
    "load_config",
    "providers_from_env",
]
