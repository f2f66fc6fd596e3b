"""
Chat API router.
POST /chat — relay a conversation to the selected provider (returns SSE stream)
OPTIONS /chat — plain 200 for clients that check the route without CORS headers

Errors raised before the stream starts are rendered by the RelayError
handler in main.py as {"error": "..."} with a status code.
"""
from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse

from chat_relay.config import get_config, get_credentials
from chat_relay.errors import ValidationError
from chat_relay.models.registry import get_adapter
from chat_relay.pipeline.relay import prepare_relay

router = APIRouter(tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _read_json(request: Request):
    body = await request.body()
    try:
        return json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Request body must be valid JSON") from e


@router.post("/chat")
async def chat(request: Request):
    payload = await _read_json(request)

    relay = prepare_relay(payload, get_config(), get_credentials(), get_adapter)
    await relay.start()

    return StreamingResponse(
        relay.stream(request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.options("/chat")
async def chat_options():
    # CORS preflight (Origin + Access-Control-Request-Method) is answered by
    # CORSMiddleware before it gets here.
    return Response(status_code=200, headers={"Allow": "POST, OPTIONS"})
