"""
Client for the relay's event stream.

Used by callers that hold the conversation history themselves: send the
turns, read the streamed answer, then append it as an assistant turn.
"""
from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Iterable, Optional

import httpx

from chat_relay.errors import UpstreamError
from chat_relay.streaming.frames import ContentFrame, DoneFrame, ErrorFrame, OutboundFrame, decode

logger = logging.getLogger(__name__)


def parse_sse_lines(lines: Iterable[str]) -> list[OutboundFrame]:
    frames: list[OutboundFrame] = []
    for line in lines:
        try:
            frame = decode(line)
        except (json.JSONDecodeError, AttributeError, TypeError):
            logger.warning("Skipping unreadable stream line: %r", line)
            continue
        if frame is not None:
            frames.append(frame)
    return frames


def append_assistant(history: list[dict], text: str) -> list[dict]:
    """Return a copy of `history` with the assistant reply appended."""
    return [*history, {"role": "assistant", "content": text}]


class RelayClient:
    def __init__(self, base_url: str = "http://127.0.0.1:8000", timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def stream_chat(
        self,
        messages: list[dict],
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield text fragments as they arrive. Raises UpstreamError on failure."""
        body: dict = {"messages": messages}
        if provider:
            body["provider"] = provider
        if model:
            body["model"] = model

        async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout,
                                     transport=self._transport) as client:
            async with client.stream("POST", "/api/chat", json=body) as resp:
                if resp.status_code >= 400:
                    raw = await resp.aread()
                    try:
                        message = json.loads(raw).get("error", "")
                    except (json.JSONDecodeError, AttributeError):
                        message = raw.decode("utf-8", "replace")
                    raise UpstreamError(f"HTTP {resp.status_code}: {message}", status_code=resp.status_code)

                async for line in resp.aiter_lines():
                    for frame in parse_sse_lines([line]):
                        if isinstance(frame, ContentFrame):
                            yield frame.text
                        elif isinstance(frame, ErrorFrame):
                            raise UpstreamError(frame.message)
                        elif isinstance(frame, DoneFrame):
                            return

                # Body closed without [DONE] or an error frame: the answer is cut off.
                raise UpstreamError("Stream ended without a terminal frame")

    async def complete(
        self,
        messages: list[dict],
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        parts = []
        async for text in self.stream_chat(messages, provider, model):
            parts.append(text)
        return "".join(parts)
