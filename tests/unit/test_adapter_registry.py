import pytest

from grc_ai.config.settings import Settings
from grc_ai.core.errors import UnsupportedProviderTypeError
from grc_ai.providers.base import ProviderType
from grc_ai.providers.gemini import GeminiAdapter
from grc_ai.providers.glm import GLMAdapter
from grc_ai.providers.registry import AdapterRegistry, build_adapter_registry
from grc_ai.storage.base import ProviderConfig


def _config(provider_type: str) -> ProviderConfig:
    return ProviderConfig(
        id="p1",
        tenant_id=None,
        provider_type=provider_type,
        endpoint_url="https://example.test",
        model_name="m",
        api_key="k",
    )


def test_registry_covers_every_provider_type() -> None:
    registry = build_adapter_registry(Settings())
    assert isinstance(registry.dispatch(_config("glm")), GLMAdapter)
    assert isinstance(registry.dispatch(_config("gemini")), GeminiAdapter)
    for provider_type in ProviderType:
        assert registry.supports(provider_type.value)


def test_registry_dispatch_is_case_insensitive() -> None:
    registry = build_adapter_registry(Settings())
    assert isinstance(registry.dispatch(_config(" Gemini ")), GeminiAdapter)


def test_unknown_type_is_unsupported() -> None:
    registry = build_adapter_registry(Settings())
    assert registry.supports("llama") is False
    with pytest.raises(UnsupportedProviderTypeError, match="Unsupported provider type: llama"):
        registry.dispatch(_config("llama"))


def test_known_type_without_adapter_is_unsupported() -> None:
    registry = AdapterRegistry()
    registry.register(GLMAdapter())
    assert registry.supports("gemini") is False
    with pytest.raises(UnsupportedProviderTypeError):
        registry.dispatch(_config("gemini"))


def test_provider_type_parse() -> None:
    assert ProviderType.parse("GLM") is ProviderType.GLM
    assert ProviderType.parse("openai") is None
    assert ProviderType.parse(None) is None
