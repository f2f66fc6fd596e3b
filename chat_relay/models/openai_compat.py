"""
OpenAI adapter.
Works with api.openai.com and any OpenAI-compatible endpoint (via base_url).
Compatible with openai SDK v1.x/v2.x.

History messages are forwarded 1:1. The current turn is plain text, or a
two-part [text, image_url] content array when a screenshot is attached.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from chat_relay.conversation.messages import Message, image_part, text_part
from chat_relay.errors import ChunkParseError, UpstreamError
from chat_relay.models.base import Delta, StreamEvent, StreamingChatProvider, close_stream, field, first

logger = logging.getLogger(__name__)


def to_openai_messages(prompt: str, history: list[Message], image: Optional[str] = None) -> list[dict]:
    openai_messages = [msg.to_wire() for msg in history]

    if image:
        content: Any = [text_part(prompt).model_dump(), image_part(image).model_dump()]
    else:
        content = prompt
    openai_messages.append({"role": "user", "content": content})
    return openai_messages


class OpenAIAdapter(StreamingChatProvider):
    name = "openai"
    display_name = "OpenAI"

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None, client: Any = None):
        super().__init__(api_key)
        self._base_url = base_url
        self._client = client or AsyncOpenAI(api_key=self._api_key, base_url=base_url)
        logger.info("OpenAI adapter initialized (base_url=%s)", base_url or "default")

    async def open(
        self,
        prompt: str,
        model: str,
        history: list[Message],
        image: Optional[str] = None,
    ) -> AsyncIterator[Any]:
        messages = to_openai_messages(prompt, history, image)
        logger.info("Starting OpenAI stream: model=%s messages=%d image=%s", model, len(messages), bool(image))

        try:
            stream = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
            )
        except openai.AuthenticationError as e:
            raise UpstreamError("Invalid OpenAI API key") from e
        except openai.APIConnectionError as e:
            raise UpstreamError(f"Connection error: {e}") from e
        except openai.APIError as e:
            raise UpstreamError(f"OpenAI API error: {e}") from e

        try:
            async for chunk in stream:
                yield chunk
        finally:
            await close_stream(stream)

        logger.info("OpenAI stream completed: model=%s", model)

    def extract(self, chunk: Any) -> Optional[StreamEvent]:
        choice = first(field(chunk, "choices"))
        content = field(field(choice, "delta"), "content")
        if not content:
            return None
        if not isinstance(content, str):
            raise ChunkParseError(f"delta content is {type(content).__name__}, expected str")
        return Delta(text=content)
