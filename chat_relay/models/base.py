"""
Abstract provider adapter interface.
All adapters must implement `open` and `normalize`.
"""
from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, AsyncIterator, Literal, Optional, Union

from pydantic import BaseModel as PydanticModel
from pydantic import ConfigDict

from chat_relay.conversation.messages import Message
from chat_relay.errors import ChunkParseError, ConfigurationError, RelayError, UpstreamError

logger = logging.getLogger(__name__)


class Delta(PydanticModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["delta"] = "delta"
    text: str


class Done(PydanticModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["done"] = "done"


class Error(PydanticModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str


StreamEvent = Union[Delta, Done, Error]


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, (Done, Error))


def field(obj: Any, name: str) -> Any:
    """Read `name` from an SDK object or a plain mapping; None when absent."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def first(seq: Any) -> Any:
    if not seq:
        return None
    return seq[0]


async def close_stream(stream: Any) -> None:
    """Release an upstream stream (SDK stream object or async generator)."""
    for name in ("aclose", "close"):
        method = getattr(stream, name, None)
        if method is None:
            continue
        result = method()
        if inspect.isawaitable(result):
            await result
        return


class StreamingChatProvider(ABC):
    """Unified interface for all upstream LLM providers."""

    name: str
    display_name: str

    def __init__(self, api_key: Optional[str]):
        if not api_key:
            raise ConfigurationError(f"{self.display_name} API key not configured")
        self._api_key = api_key

    @abstractmethod
    def open(
        self,
        prompt: str,
        model: str,
        history: list[Message],
        image: Optional[str] = None,
    ) -> AsyncIterator[Any]:
        """
        Start the upstream streaming call and yield raw chunks in upstream order.
        Not replayable: a new call is needed to stream again.
        """

    @abstractmethod
    def extract(self, chunk: Any) -> Optional[StreamEvent]:
        """
        Pull a Delta (or Error) out of one raw chunk; None when it carries no text.
        Raises ChunkParseError when the chunk has the wrong shape.
        """

    def normalize(self, chunk: Any) -> Optional[StreamEvent]:
        try:
            return self.extract(chunk)
        except ChunkParseError as e:
            logger.warning("%s chunk could not be parsed: %s", self.display_name, e.message)
        except Exception as e:
            # Keepalive and partial frames show up occasionally; skip them.
            logger.warning("%s chunk could not be parsed: %s", self.display_name, e)
        return None

    async def events(
        self,
        prompt: str,
        model: str,
        history: list[Message],
        image: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Yield canonical events for one upstream call:
          - zero or more Delta
          - then exactly one Done, or one Error produced by a chunk
        Failures of the call itself are raised as UpstreamError.
        """
        chunks = self.open(prompt, model, history, image)
        try:
            async for chunk in chunks:
                event = self.normalize(chunk)
                if event is None:
                    continue
                yield event
                if is_terminal(event):
                    return
        except RelayError:
            raise
        except Exception as e:
            raise UpstreamError(f"{self.display_name} request failed: {e}") from e
        finally:
            await close_stream(chunks)
        yield Done()
