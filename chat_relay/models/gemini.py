"""
Gemini adapter.
Uses the google-genai SDK async client.

Gemini only knows two conversational roles, so assistant and system turns
are sent as "model". With history a chat session is seeded and the current
turn sent into it; without history a one-shot generation call is made.
Images travel as inline bytes decoded from data URIs.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, AsyncIterator, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from chat_relay.conversation.assembler import parse_data_uri
from chat_relay.conversation.messages import ImagePart, Message, Role, TextPart
from chat_relay.errors import ChunkParseError, ImageDecodeError, UpstreamError
from chat_relay.models.base import (
    Delta,
    Error,
    StreamEvent,
    StreamingChatProvider,
    close_stream,
    field,
    first,
)

logger = logging.getLogger(__name__)

ROLE_MAPPING = {
    Role.USER: "user",
    Role.ASSISTANT: "model",
    Role.SYSTEM: "model",
}


def image_to_part(url: str) -> types.Part:
    uri = parse_data_uri(url)
    try:
        data = base64.b64decode(uri.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError("Invalid base64 image data") from e
    return types.Part.from_bytes(data=data, mime_type=uri.mime_type)


def to_gemini_parts(content: str | list) -> list[types.Part]:
    if isinstance(content, str):
        return [types.Part(text=content)]
    parts: list[types.Part] = []
    for block in content:
        if isinstance(block, TextPart):
            parts.append(types.Part(text=block.text))
        elif isinstance(block, ImagePart):
            parts.append(image_to_part(block.url))
    return parts


def to_gemini_history(history: list[Message]) -> list[types.Content]:
    return [
        types.Content(role=ROLE_MAPPING.get(msg.role, "user"), parts=to_gemini_parts(msg.content))
        for msg in history
    ]


def current_turn_parts(prompt: str, image: Optional[str] = None) -> list[types.Part]:
    parts = [types.Part(text=prompt)]
    if image:
        parts.append(image_to_part(image))
    return parts


class GeminiAdapter(StreamingChatProvider):
    name = "gemini"
    display_name = "Gemini"

    def __init__(self, api_key: Optional[str], client: Any = None):
        super().__init__(api_key)
        self._client = client or genai.Client(api_key=self._api_key)
        logger.info("Gemini adapter initialized")

    async def open(
        self,
        prompt: str,
        model: str,
        history: list[Message],
        image: Optional[str] = None,
    ) -> AsyncIterator[Any]:
        parts = current_turn_parts(prompt, image)
        logger.info(
            "Starting Gemini stream: model=%s history=%d image=%s",
            model, len(history), bool(image),
        )

        try:
            if history:
                chat = self._client.aio.chats.create(model=model, history=to_gemini_history(history))
                stream = await chat.send_message_stream(parts)
            else:
                stream = await self._client.aio.models.generate_content_stream(
                    model=model,
                    contents=[types.Content(role="user", parts=parts)],
                )
        except genai_errors.APIError as e:
            raise UpstreamError(f"Gemini API error: {e}") from e

        try:
            async for chunk in stream:
                yield chunk
        finally:
            await close_stream(stream)

        logger.info("Gemini stream completed: model=%s", model)

    def extract(self, chunk: Any) -> Optional[StreamEvent]:
        candidate = first(field(chunk, "candidates"))
        if candidate is None:
            reason = field(field(chunk, "prompt_feedback"), "block_reason")
            if reason:
                return Error(message=f"Response blocked: {getattr(reason, 'value', reason)}")
            return None
        part = first(field(field(candidate, "content"), "parts"))
        text = field(part, "text")
        if not text:
            return None
        if not isinstance(text, str):
            raise ChunkParseError(f"part text is {type(text).__name__}, expected str")
        return Delta(text=text)
