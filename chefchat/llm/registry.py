from typing import Optional

from ..config import get_config
from .base import LLMProvider
from .anthropic_provider import AnthropicProvider
from .gemini_provider import GeminiProvider
from .openai_provider import LocalLLMProvider, OpenAIProvider


ALL_PROVIDERS = [
    GeminiProvider,
    AnthropicProvider,
    OpenAIProvider,
    LocalLLMProvider,
]

_PROVIDER_KEY_MAP = {
    "gemini": "gemini_api_key",
    "anthropic": "anthropic_api_key",
    "openai": "openai_api_key",
}

_PROVIDER_CLASS_MAP = {cls.name: cls for cls in ALL_PROVIDERS}

_MODEL_TO_PROVIDER: dict[str, str] = {}

_providers: dict[str, LLMProvider] = {}


def _build_model_map() -> None:
    _MODEL_TO_PROVIDER.clear()
    config = get_config()
    for provider_cls in ALL_PROVIDERS:
        for model in config.llm.custom_models.get(provider_cls.name, []):
            _MODEL_TO_PROVIDER[model] = provider_cls.name


def _init_provider(provider_name: str) -> Optional[LLMProvider]:
    llm = get_config().llm

    # Local LLM uses base_url instead of just an API key
    if provider_name == "local":
        if not llm.local_llm_base_url:
            return None
        return LocalLLMProvider(
            api_key=llm.local_llm_api_key, base_url=llm.local_llm_base_url
        )

    key_attr = _PROVIDER_KEY_MAP.get(provider_name)
    if not key_attr:
        return None
    api_key = getattr(llm, key_attr, "")
    if not api_key:
        return None
    provider_cls = _PROVIDER_CLASS_MAP.get(provider_name)
    if not provider_cls:
        return None
    return provider_cls(api_key)


def get_provider_for_model(model: str) -> Optional[LLMProvider]:
    if not _MODEL_TO_PROVIDER:
        _build_model_map()
    provider_name = _MODEL_TO_PROVIDER.get(model)
    if not provider_name:
        return None
    if provider_name not in _providers:
        provider = _init_provider(provider_name)
        if provider is None:
            return None
        _providers[provider_name] = provider
    return _providers[provider_name]


def get_available_models() -> list[dict]:
    """Configured models whose provider has credentials."""
    models = []
    for model in get_config().llm.ai_models:
        provider = get_provider_for_model(model)
        if provider is not None:
            models.append({"id": model, "provider": provider.name})
    return models
