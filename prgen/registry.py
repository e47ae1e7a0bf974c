"""Keyed collection of configured backend adapters."""

from __future__ import annotations

import threading
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Type

from .errors import NoProviderAvailableError
from .llm.anthropic import AnthropicAdapter, AnthropicConfig
from .llm.base import BackendAdapter, ProviderConfig
from .llm.ollama import OllamaAdapter, OllamaConfig
from .llm.openai import OpenAIAdapter, OpenAIConfig
from .llm.xai import XAIAdapter, XAIConfig
from .logging import get_logger
from .models import ProviderType

_ADAPTERS: Dict[ProviderType, tuple[Type[BackendAdapter], Type[ProviderConfig]]] = {
    ProviderType.OPENAI: (OpenAIAdapter, OpenAIConfig),
    ProviderType.ANTHROPIC: (AnthropicAdapter, AnthropicConfig),
    ProviderType.OLLAMA: (OllamaAdapter, OllamaConfig),
    ProviderType.XAI: (XAIAdapter, XAIConfig),
}


def config_class_for(provider_type: ProviderType | str) -> Type[ProviderConfig]:
    return _ADAPTERS[ProviderType.parse(provider_type)][1]


def create_adapter(
    provider_type: ProviderType | str,
    config: ProviderConfig | Mapping[str, Any],
    **kwargs: Any,
) -> BackendAdapter:
    """Build the adapter for *provider_type* from a config object or mapping."""
    kind = ProviderType.parse(provider_type)
    adapter_class, config_class = _ADAPTERS[kind]
    if isinstance(config, Mapping):
        allowed = {item.name for item in fields(config_class)}
        config = config_class(**{key: value for key, value in config.items() if key in allowed})
    elif not isinstance(config, config_class):
        raise TypeError(
            f"{kind.value} adapters require {config_class.__name__}, got {type(config).__name__}"
        )
    return adapter_class(config, **kwargs)


@dataclass(frozen=True)
class RegistryEntry:
    key: str
    adapter: BackendAdapter
    provider_type: ProviderType
    is_default: bool = False


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"healthy": self.healthy}
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ProviderRegistry:
    """Registry of adapters with a single default and type-based fallback.

    Writers swap in a fresh dict under a lock; readers work on whatever
    snapshot is current and never wait on each other or on writers.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("registry")

    def register(
        self,
        key: str,
        provider_type: ProviderType | str,
        config: ProviderConfig | Mapping[str, Any],
        *,
        is_default: bool = False,
    ) -> RegistryEntry:
        adapter = create_adapter(provider_type, config)
        return self.add(key, adapter, is_default=is_default)

    def add(self, key: str, adapter: BackendAdapter, *, is_default: bool = False) -> RegistryEntry:
        if not key or not key.strip():
            raise ValueError("Registry keys must be non-empty")
        entry = RegistryEntry(
            key=key,
            adapter=adapter,
            provider_type=adapter.provider_type,
            is_default=is_default,
        )
        with self._lock:
            updated = dict(self._entries)
            if is_default:
                for other_key, other in updated.items():
                    if other.is_default and other_key != key:
                        updated[other_key] = replace(other, is_default=False)
                        self.logger.info("Provider %s is no longer the default", other_key)
            if key in updated:
                self.logger.info("Replacing provider registered as %s", key)
            updated[key] = entry
            self._entries = updated
        self.logger.info(
            "Registered %s provider as %s%s",
            entry.provider_type.value,
            key,
            " (default)" if is_default else "",
        )
        return entry

    def unregister(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            updated = dict(self._entries)
            removed = updated.pop(key)
            self._entries = updated
        self.logger.info(
            "Unregistered provider %s%s", key, " (was default)" if removed.is_default else ""
        )
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
        self.logger.info("Cleared all providers")

    def get(self, key: str) -> Optional[BackendAdapter]:
        entry = self._entries.get(key)
        return entry.adapter if entry else None

    def get_entry(self, key: str) -> Optional[RegistryEntry]:
        return self._entries.get(key)

    def get_default(self) -> Optional[RegistryEntry]:
        for entry in self._entries.values():
            if entry.is_default:
                return entry
        return None

    def get_by_type(self, provider_type: ProviderType | str) -> List[RegistryEntry]:
        kind = ProviderType.parse(provider_type)
        return [entry for entry in self._entries.values() if entry.provider_type is kind]

    def keys(self) -> List[str]:
        return list(self._entries)

    def entries(self) -> List[RegistryEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get_with_fallback(
        self,
        preferred_key: Optional[str] = None,
        fallback_type: ProviderType | str | None = None,
    ) -> RegistryEntry:
        """Resolve the preferred entry, else the first entry of *fallback_type*.

        Without a fallback type the default entry is tried last.
        """
        snapshot = self._entries
        if preferred_key:
            entry = snapshot.get(preferred_key)
            if entry is not None:
                return entry
            self.logger.warning("Provider %s is not registered; trying fallback", preferred_key)

        if fallback_type is not None:
            kind = ProviderType.parse(fallback_type)
            for entry in snapshot.values():
                if entry.provider_type is kind:
                    self.logger.warning("Falling back to %s provider %s", kind.value, entry.key)
                    return entry
            raise NoProviderAvailableError(
                f"No provider registered for key {preferred_key!r} or type {kind.value!r}"
            )

        for entry in snapshot.values():
            if entry.is_default:
                if preferred_key:
                    self.logger.warning("Falling back to default provider %s", entry.key)
                return entry
        raise NoProviderAvailableError(
            f"No provider registered for key {preferred_key!r} and no default is configured"
        )

    def health_check(self) -> Dict[str, HealthStatus]:
        """Probe every adapter; failures are recorded per entry, never raised."""
        results: Dict[str, HealthStatus] = {}
        for entry in self._entries.values():
            try:
                entry.adapter.probe()
            except Exception as exc:
                self.logger.warning("Health check failed for %s: %s", entry.key, exc)
                results[entry.key] = HealthStatus(healthy=False, error=str(exc) or type(exc).__name__)
            else:
                results[entry.key] = HealthStatus(healthy=True)
        return results

    def discover_capabilities(self) -> Dict[str, Dict[str, Any]]:
        return {
            entry.key: {
                "type": entry.provider_type.value,
                "is_default": entry.is_default,
                "capabilities": entry.adapter.capabilities().to_dict(),
            }
            for entry in self._entries.values()
        }


__all__ = [
    "HealthStatus",
    "ProviderRegistry",
    "RegistryEntry",
    "config_class_for",
    "create_adapter",
]
