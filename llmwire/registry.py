"""
llmwire - Provider Registry

Maps a protocol identifier (``model.api``) to the pair of stream functions
that implement it.

Registrations carry metadata (source id, version, enabled flag, timestamps)
so plugins can be disabled or unregistered as a group. Every registered
function is wrapped with a check that the model's ``api`` matches; a
mismatch fails at call time, not at registration time.
"""

import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from .adapters.anthropic import stream_anthropic, stream_simple_anthropic
from .adapters.bedrock import stream_bedrock, stream_simple_bedrock
from .adapters.openai_completions import stream_openai_completions, stream_simple_openai_completions
from .adapters.openai_responses import stream_openai_responses, stream_simple_openai_responses
from .core.errors import RegistryError
from .core.models import Context, KnownApi, Model
from .observability.logging import get_logger
from .streaming.event_stream import AssistantMessageEventStream


logger = get_logger("llmwire.registry")

StreamFunction = Callable[[Model, Context, Any], AssistantMessageEventStream]

BUILTIN_SOURCE_ID = "llmwire:builtins"
BUILTIN_VERSION = "1"


@dataclass
class ApiProvider:
    """Stream functions implementing one protocol."""
    api: str
    stream: StreamFunction
    stream_simple: StreamFunction


@dataclass
class ProviderMetadata:
    """Bookkeeping attached to a registration."""
    source_id: Optional[str] = None
    version: Optional[str] = None
    enabled: bool = True
    registered_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


@dataclass
class RegisteredProvider:
    provider: ApiProvider
    metadata: ProviderMetadata


def _check_api(api: str, function: StreamFunction) -> StreamFunction:
    def checked(model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
        if model.api != api:
            raise RegistryError(f"Mismatched api: {model.api} expected {api}", api=api)
        return function(model, context, options)

    checked.__name__ = getattr(function, "__name__", "stream")
    checked.__wrapped__ = function
    return checked


def validate_provider(provider: Any) -> None:
    """
    Raises:
        RegistryError: if the provider is not registrable
    """
    if provider is None:
        raise RegistryError("Invalid API provider: provider object is required")
    api = getattr(provider, "api", None)
    if not api or not isinstance(api, str):
        raise RegistryError("Invalid API provider: api must be a non-empty string")
    if not callable(getattr(provider, "stream", None)):
        raise RegistryError(f"Invalid API provider ({api}): stream must be callable", api=api)
    if not callable(getattr(provider, "stream_simple", None)):
        raise RegistryError(f"Invalid API provider ({api}): stream_simple must be callable", api=api)


class ProviderRegistry:
    """
    Registry of protocol adapters.

    Safe to mutate from several threads; in-flight streams keep the
    functions they resolved.
    """

    def __init__(self):
        self._providers: Dict[str, RegisteredProvider] = {}
        self._lock = RLock()

    def register(
        self,
        provider: ApiProvider,
        source_id: Optional[str] = None,
        version: Optional[str] = None,
        enabled: bool = True,
    ) -> None:
        """
        Register (or replace) the adapter for ``provider.api``.

        Re-registering keeps the original ``registered_at``.

        Raises:
            RegistryError: if the provider is malformed
        """
        validate_provider(provider)
        now = time.time()
        with self._lock:
            existing = self._providers.get(provider.api)
            self._providers[provider.api] = RegisteredProvider(
                provider=ApiProvider(
                    api=provider.api,
                    stream=_check_api(provider.api, provider.stream),
                    stream_simple=_check_api(provider.api, provider.stream_simple),
                ),
                metadata=ProviderMetadata(
                    source_id=source_id,
                    version=version,
                    enabled=enabled,
                    registered_at=existing.metadata.registered_at if existing else now,
                    updated_at=now,
                ),
            )
        logger.debug("Registered API provider", api=provider.api, source_id=source_id)

    def get(self, api: str) -> Optional[ApiProvider]:
        """Enabled provider for ``api``, or None."""
        with self._lock:
            entry = self._providers.get(api)
            if entry is None or not entry.metadata.enabled:
                return None
            return entry.provider

    def get_with_metadata(self, api: str) -> Optional[RegisteredProvider]:
        with self._lock:
            return self._providers.get(api)

    def list(self, include_disabled: bool = False) -> List[ApiProvider]:
        with self._lock:
            return [
                entry.provider
                for entry in self._providers.values()
                if include_disabled or entry.metadata.enabled
            ]

    def enable(self, api: str) -> bool:
        return self._set_enabled(api, True)

    def disable(self, api: str) -> bool:
        return self._set_enabled(api, False)

    def _set_enabled(self, api: str, enabled: bool) -> bool:
        with self._lock:
            entry = self._providers.get(api)
            if entry is None:
                return False
            entry.metadata.enabled = enabled
            entry.metadata.updated_at = time.time()
            return True

    def unregister_by_source(self, source_id: str) -> None:
        with self._lock:
            for api in [api for api, entry in self._providers.items() if entry.metadata.source_id == source_id]:
                del self._providers[api]

    def clear(self) -> None:
        with self._lock:
            self._providers.clear()


provider_registry = ProviderRegistry()


# ============================================================
# Module-level helpers
# ============================================================

def register_api_provider(provider: ApiProvider, source_id: Optional[str] = None, **metadata) -> None:
    provider_registry.register(provider, source_id=source_id, **metadata)


def get_api_provider(api: str) -> Optional[ApiProvider]:
    return provider_registry.get(api)


def get_api_provider_with_metadata(api: str) -> Optional[RegisteredProvider]:
    return provider_registry.get_with_metadata(api)


def get_api_providers(include_disabled: bool = False) -> List[ApiProvider]:
    return provider_registry.list(include_disabled)


def enable_api_provider(api: str) -> bool:
    return provider_registry.enable(api)


def disable_api_provider(api: str) -> bool:
    return provider_registry.disable(api)


def unregister_api_providers(source_id: str) -> None:
    provider_registry.unregister_by_source(source_id)


def clear_api_providers() -> None:
    provider_registry.clear()


def builtin_providers() -> List[ApiProvider]:
    return [
        ApiProvider(KnownApi.ANTHROPIC_MESSAGES.value, stream_anthropic, stream_simple_anthropic),
        ApiProvider(KnownApi.OPENAI_RESPONSES.value, stream_openai_responses, stream_simple_openai_responses),
        ApiProvider(KnownApi.OPENAI_COMPLETIONS.value, stream_openai_completions, stream_simple_openai_completions),
        ApiProvider(KnownApi.BEDROCK_CONVERSE_STREAM.value, stream_bedrock, stream_simple_bedrock),
    ]


def register_builtin_providers() -> None:
    """Register the bundled adapters under ``llmwire:builtins``."""
    for provider in builtin_providers():
        provider_registry.register(provider, source_id=BUILTIN_SOURCE_ID, version=BUILTIN_VERSION)


def reset_api_providers() -> None:
    """Drop every registration and restore the builtins."""
    provider_registry.clear()
    register_builtin_providers()


register_builtin_providers()
