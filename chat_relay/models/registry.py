"""
Provider registry — resolves a provider/model pair and creates the adapter.

Supported providers:
  openai → OpenAIAdapter (api.openai.com, or base_url from config)
  gemini → GeminiAdapter (Google Gemini API)

Provider names and models are checked before any adapter is constructed;
the adapter then checks its own credential.
"""
from __future__ import annotations

from typing import Mapping, Optional

from chat_relay.config import ProviderConfig, RelayConfig, get_config, get_credentials
from chat_relay.errors import ValidationError
from chat_relay.models.base import StreamingChatProvider

SUPPORTED_PROVIDERS = ("openai", "gemini")


def resolve_provider(provider: Optional[str], config: Optional[RelayConfig] = None) -> ProviderConfig:
    cfg = config or get_config()
    name = provider or cfg.default_provider
    provider_cfg = cfg.get_provider(name) if name in SUPPORTED_PROVIDERS else None
    if provider_cfg is None:
        raise ValidationError(f"Unsupported provider: {name}")
    return provider_cfg


def resolve_model(provider_cfg: ProviderConfig, model: Optional[str] = None) -> str:
    name = model or provider_cfg.default_model
    if not name or not provider_cfg.accepts(name):
        raise ValidationError(f"Unknown model '{name}' for provider '{provider_cfg.name}'")
    return name


def get_adapter(
    provider_cfg: ProviderConfig,
    credentials: Optional[Mapping[str, Optional[str]]] = None,
) -> StreamingChatProvider:
    keys = credentials if credentials is not None else get_credentials()
    api_key = keys.get(provider_cfg.name)

    if provider_cfg.name == "gemini":
        from chat_relay.models.gemini import GeminiAdapter
        return GeminiAdapter(api_key=api_key)

    from chat_relay.models.openai_compat import OpenAIAdapter
    return OpenAIAdapter(api_key=api_key, base_url=provider_cfg.base_url)
