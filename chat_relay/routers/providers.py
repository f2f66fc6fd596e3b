"""
Providers API router.
GET /providers — list configured providers and their default models (never the keys)
"""
from __future__ import annotations

from fastapi import APIRouter

from chat_relay.config import get_config, get_credentials

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("")
async def list_providers():
    cfg = get_config()
    credentials = get_credentials()
    return {
        "default_provider": cfg.default_provider,
        "providers": [
            {
                "name": p.name,
                "display_name": p.display_name,
                "default_model": p.default_model,
                "models": p.models,
                "has_api_key": bool(credentials.get(p.name)),
                "base_url": p.base_url,
            }
            for p in cfg.providers
        ],
    }
