"""
Relay orchestrator.

One ChatRelay per request:

    IDLE → VALIDATING → ADAPTER_SELECTED → STREAMING → FLUSHING → TERMINATED_OK
                 │               │              │
                 └───────────────┴──────────────┴──────────→ TERMINATED_ERR

`prepare` and `start` run before any byte is written, so their failures
surface as ordinary status-coded errors. Once `stream` has begun, failures
are reported in-band with a single error frame.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

from pydantic import BaseModel, StrictStr
from pydantic import ValidationError as PydanticValidationError

from chat_relay.config import ProviderConfig, RelayConfig, get_config, get_credentials
from chat_relay.conversation.assembler import AssembledTurn, assemble
from chat_relay.errors import RelayError, UpstreamError, ValidationError
from chat_relay.models.base import Delta, Done, Error, StreamEvent, StreamingChatProvider
from chat_relay.models.registry import get_adapter, resolve_model, resolve_provider
from chat_relay.streaming.buffer import OutputBuffer
from chat_relay.streaming.frames import DoneFrame, ErrorFrame, OutboundFrame, encode

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderConfig, Mapping[str, Optional[str]]], StreamingChatProvider]
DisconnectCheck = Callable[[], Awaitable[bool]]


class RelayState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    ADAPTER_SELECTED = "adapter_selected"
    STREAMING = "streaming"
    FLUSHING = "flushing"
    TERMINATED_OK = "terminated_ok"
    TERMINATED_ERR = "terminated_err"


TERMINAL_STATES = (RelayState.TERMINATED_OK, RelayState.TERMINATED_ERR)


class ChatRequest(BaseModel):
    messages: Any = None
    provider: Optional[StrictStr] = None
    model: Optional[StrictStr] = None


class ChatRelay:
    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self.config = config or get_config()
        self.credentials = credentials if credentials is not None else get_credentials()
        self._adapter_factory = adapter_factory or get_adapter
        self.state = RelayState.IDLE

        self.turn: Optional[AssembledTurn] = None
        self.provider: Optional[ProviderConfig] = None
        self.model: Optional[str] = None
        self.adapter: Optional[StreamingChatProvider] = None
        self.buffer = OutputBuffer(self.config.streaming.flush_min_chars)
        self.bytes_written = 0

        self._events: Optional[AsyncIterator[StreamEvent]] = None
        self._first: Optional[StreamEvent] = None

    @property
    def response_text(self) -> Optional[str]:
        """Full answer, available once the stream finished normally."""
        if self.state is not RelayState.TERMINATED_OK:
            return None
        return self.buffer.text

    # ── Pre-stream phase ──────────────────────────────────────────────────────

    def prepare(self, payload: Any) -> "ChatRelay":
        if self.state is not RelayState.IDLE:
            raise RuntimeError(f"Cannot prepare a relay in state {self.state.value}")
        self.state = RelayState.VALIDATING
        try:
            if not isinstance(payload, dict):
                raise ValidationError("Request body must be a JSON object")
            try:
                request = ChatRequest.model_validate(payload)
            except PydanticValidationError as e:
                raise ValidationError("Invalid request body") from e

            self.turn = assemble(request.messages)
            self.provider = resolve_provider(request.provider, self.config)
            self.model = resolve_model(self.provider, request.model)
        except RelayError:
            self.state = RelayState.TERMINATED_ERR
            raise

        self.state = RelayState.ADAPTER_SELECTED
        logger.info(
            "Relay prepared: provider=%s model=%s history=%d image=%s",
            self.provider.name, self.model, len(self.turn.history), bool(self.turn.image),
        )
        return self

    async def start(self) -> None:
        """Construct the adapter, open the upstream call and wait for its first event."""
        if self.state is not RelayState.ADAPTER_SELECTED:
            raise RuntimeError(f"Cannot start a relay in state {self.state.value}")
        try:
            self.adapter = self._adapter_factory(self.provider, self.credentials)
            self._events = self.adapter.events(
                self.turn.prompt, self.model, self.turn.history, self.turn.image
            )
            try:
                self._first = await self._events.__anext__()
            except StopAsyncIteration:
                self._first = Done()
            if isinstance(self._first, Error):
                raise UpstreamError(self._first.message)
        except BaseException:
            self.state = RelayState.TERMINATED_ERR
            await self._close_upstream()
            raise
        self.state = RelayState.STREAMING

    # ── Streaming phase ───────────────────────────────────────────────────────

    async def stream(self, is_disconnected: Optional[DisconnectCheck] = None) -> AsyncIterator[bytes]:
        """Yield encoded frames; exactly one of them is terminal."""
        if self.state in TERMINAL_STATES:
            return
        if self.state is RelayState.ADAPTER_SELECTED:
            try:
                await self.start()
            except RelayError as e:
                # The response is already committed; report in-band.
                yield self._write(ErrorFrame(message=e.message))
                return

        frames = self._frames()
        try:
            async for frame in frames:
                if is_disconnected is not None and await is_disconnected():
                    logger.info("Client disconnected after %d bytes; abandoning stream", self.bytes_written)
                    self.state = RelayState.TERMINATED_ERR
                    break
                yield self._write(frame)
        finally:
            await frames.aclose()
            await self._close_upstream()

        if self.state is RelayState.TERMINATED_OK:
            logger.info(
                "Relay finished: provider=%s model=%s chars=%d bytes=%d",
                self.provider.name, self.model, len(self.buffer.text), self.bytes_written,
            )

    def _write(self, frame: OutboundFrame) -> bytes:
        data = encode(frame)
        self.bytes_written += len(data)
        return data

    async def _frames(self) -> AsyncIterator[OutboundFrame]:
        event = self._first
        self._first = None
        try:
            while True:
                if isinstance(event, Delta):
                    frame = self.buffer.feed(event.text)
                    if frame is not None:
                        yield frame
                elif isinstance(event, Error):
                    self.state = RelayState.TERMINATED_ERR
                    logger.error("Upstream reported an error mid-stream: %s", event.message)
                    yield ErrorFrame(message=event.message)
                    return
                else:
                    break
                try:
                    event = await self._events.__anext__()
                except StopAsyncIteration:
                    break
        except RelayError as e:
            self.state = RelayState.TERMINATED_ERR
            logger.error("Relay failed mid-stream: %s", e.message)
            yield ErrorFrame(message=e.message)
            return
        except Exception as e:
            self.state = RelayState.TERMINATED_ERR
            logger.exception("Unexpected relay failure mid-stream")
            yield ErrorFrame(message=str(e))
            return

        self.state = RelayState.FLUSHING
        remainder = self.buffer.flush_remainder()
        if remainder is not None:
            yield remainder
        self.state = RelayState.TERMINATED_OK
        yield DoneFrame()

    async def _close_upstream(self) -> None:
        events, self._events = self._events, None
        if events is not None:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()


def prepare_relay(
    payload: Any,
    config: Optional[RelayConfig] = None,
    credentials: Optional[Mapping[str, Optional[str]]] = None,
    adapter_factory: Optional[AdapterFactory] = None,
) -> ChatRelay:
    return ChatRelay(config, credentials, adapter_factory).prepare(payload)
