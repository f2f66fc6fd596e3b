"""
Configuration system — reads chat-relay.json + .env
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


# ── JSON schema models ───────────────────────────────────────────────────────

class ProviderConfig(BaseModel):
    name: str  # "openai" | "gemini"
    display_name: str
    default_model: str
    api_key_env: str
    base_url: Optional[str] = None
    models: list[str] = Field(default_factory=list)  # empty = accept any model name

    def accepts(self, model: str) -> bool:
        return not self.models or model in self.models or model == self.default_model


class StreamingConfig(BaseModel):
    # Buffered text is flushed once it reaches this many characters
    # or ends a sentence, whichever comes first.
    flush_min_chars: int = Field(default=4, ge=1)


def _default_providers() -> list[ProviderConfig]:
    return [
        ProviderConfig(
            name="openai",
            display_name="OpenAI",
            default_model="gpt-4o-mini",
            api_key_env="OPENAI_API_KEY",
        ),
        ProviderConfig(
            name="gemini",
            display_name="Gemini",
            default_model="gemini-2.0-flash",
            api_key_env="GEMINI_API_KEY",
        ),
    ]


class RelayConfig(BaseModel):
    version: str = "1.0"
    default_provider: str = "openai"
    providers: list[ProviderConfig] = Field(default_factory=_default_providers)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        for p in self.providers:
            if p.name == name:
                return p
        return None


# ── App settings (from .env) ─────────────────────────────────────────────────

class AppSettings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8000
    config_path: str = "./chat-relay.json"
    log_level: str = "INFO"
    environment: str = "development"
    # Comma-separated list of allowed origins. The consumer is a browser
    # extension, so everything is allowed unless narrowed here.
    cors_origins: str = "*"

    model_config = {"env_prefix": "CHAT_RELAY_", "env_file": ".env", "extra": "ignore"}

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]


# ── Singleton loaders ─────────────────────────────────────────────────────────

_config: Optional[RelayConfig] = None
_settings: Optional[AppSettings] = None
_credentials: Optional[Mapping[str, Optional[str]]] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def load_config(path: Optional[str] = None) -> RelayConfig:
    global _config
    settings = get_settings()
    config_file = Path(path or settings.config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        _config = RelayConfig(**data)
    else:
        _config = RelayConfig()

    return _config


def get_config() -> RelayConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def load_credentials(config: Optional[RelayConfig] = None) -> Mapping[str, Optional[str]]:
    """
    Snapshot every provider's API key from the environment.
    Called once at startup; the returned mapping is read-only.
    """
    global _credentials
    cfg = config or get_config()
    keys = {}
    for p in cfg.providers:
        value = os.environ.get(p.api_key_env, "").strip()
        keys[p.name] = value or None
    _credentials = MappingProxyType(keys)
    return _credentials


def get_credentials() -> Mapping[str, Optional[str]]:
    global _credentials
    if _credentials is None:
        _credentials = load_credentials()
    return _credentials
