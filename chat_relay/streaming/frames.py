"""
Outbound wire frames and their event-stream encoding.

    data: {"content": "..."}\n\n     one per flush
    data: [DONE]\n\n                 normal end of stream
    data: {"error": "..."}\n\n       mid-stream failure, replaces [DONE]
"""
from __future__ import annotations

import json
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

DONE_MARKER = "[DONE]"


class ContentFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["content"] = "content"
    text: str


class DoneFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["done"] = "done"


class ErrorFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str


OutboundFrame = Union[ContentFrame, DoneFrame, ErrorFrame]


def _data_line(payload: str) -> bytes:
    return f"data: {payload}\n\n".encode("utf-8")


def encode(frame: OutboundFrame) -> bytes:
    if isinstance(frame, ContentFrame):
        return _data_line(json.dumps({"content": frame.text}, ensure_ascii=False))
    if isinstance(frame, DoneFrame):
        return _data_line(DONE_MARKER)
    if isinstance(frame, ErrorFrame):
        return _data_line(json.dumps({"error": frame.message}, ensure_ascii=False))
    raise TypeError(f"Not an outbound frame: {frame!r}")


def decode(line: str) -> OutboundFrame | None:
    """Parse one `data: ...` line back into a frame. Other lines yield None."""
    if not line.startswith("data:"):
        return None
    payload = line[5:].strip()
    if payload == DONE_MARKER:
        return DoneFrame()
    data = json.loads(payload)
    if "error" in data:
        return ErrorFrame(message=str(data["error"]))
    return ContentFrame(text=data.get("content", ""))
