"""
Output buffer.

Coalesces small upstream deltas into fewer outbound frames. Text is flushed
once the buffer holds `min_chars` characters, or as soon as it ends a
sentence so streamed answers still read naturally.
"""
from __future__ import annotations

import re
from typing import Optional

from chat_relay.streaming.frames import ContentFrame

_SENTENCE_END_RE = re.compile(r"[.!?]\s*$")


class OutputBuffer:
    def __init__(self, min_chars: int = 4):
        if min_chars < 1:
            raise ValueError("min_chars must be at least 1")
        self.min_chars = min_chars
        self._pending = ""
        self._flushed: list[str] = []

    @property
    def pending(self) -> str:
        return self._pending

    @property
    def text(self) -> str:
        """Everything flushed so far."""
        return "".join(self._flushed)

    def _should_flush(self) -> bool:
        return len(self._pending) >= self.min_chars or bool(_SENTENCE_END_RE.search(self._pending))

    def _flush(self) -> ContentFrame:
        frame = ContentFrame(text=self._pending)
        self._flushed.append(self._pending)
        self._pending = ""
        return frame

    def feed(self, delta: str) -> Optional[ContentFrame]:
        if not delta:
            return None
        self._pending += delta
        if self._should_flush():
            return self._flush()
        return None

    def flush_remainder(self) -> Optional[ContentFrame]:
        if not self._pending:
            return None
        return self._flush()
