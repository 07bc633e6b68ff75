"""Adapter registry keyed by provider type."""

import logging
from typing import assert_never

import httpx

from grc_ai.config.settings import Settings
from grc_ai.core.errors import UnsupportedProviderTypeError
from grc_ai.providers.base import ChatAdapter, ProviderType
from grc_ai.providers.gemini import GeminiAdapter
from grc_ai.providers.glm import GLMAdapter
from grc_ai.storage.base import ProviderConfig

logger = logging.getLogger("grc.providers")


class AdapterRegistry:
    def __init__(self) -> None:
        self._adapters: dict[ProviderType, ChatAdapter] = {}

    def register(self, adapter: ChatAdapter) -> None:
        self._adapters[adapter.provider_type] = adapter
        logger.info(
            "adapter_registered",
            extra={"provider_type": adapter.provider_type.value},
        )

    def supports(self, raw_type: object) -> bool:
        provider_type = ProviderType.parse(raw_type)
        return provider_type is not None and provider_type in self._adapters

    def dispatch(self, config: ProviderConfig) -> ChatAdapter:
        """Return the adapter for the provider's type.

        Raises UnsupportedProviderTypeError before any network call when the
        type is outside the enumeration or has no registered adapter.
        """
        provider_type = ProviderType.parse(config.provider_type)
        if provider_type is None:
            raise UnsupportedProviderTypeError(str(config.provider_type))
        adapter = self._adapters.get(provider_type)
        if adapter is None:
            raise UnsupportedProviderTypeError(provider_type.value)
        return adapter


def build_adapter(
    provider_type: ProviderType,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatAdapter:
    match provider_type:
        case ProviderType.GLM:
            return GLMAdapter(
                timeout_s=settings.provider_timeout_s,
                default_temperature=settings.default_temperature,
                default_max_tokens=settings.default_max_tokens,
                transport=transport,
            )
        case ProviderType.GEMINI:
            return GeminiAdapter(
                timeout_s=settings.provider_timeout_s,
                default_temperature=settings.default_temperature,
                default_max_tokens=settings.default_max_tokens,
                transport=transport,
            )
        case _:
            assert_never(provider_type)


def build_adapter_registry(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> AdapterRegistry:
    registry = AdapterRegistry()
    for provider_type in ProviderType:
        registry.register(build_adapter(provider_type, settings, transport=transport))
    return registry
