"""
Conversation assembler.

Splits the caller-supplied list of turns into the current user turn
(prompt text + optional image) and the history that precedes it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from chat_relay.conversation.messages import ImagePart, Message, Role, TextPart
from chat_relay.errors import ImageDecodeError, ValidationError

logger = logging.getLogger(__name__)

INVALID_MESSAGES = "Invalid messages format"
NO_USER_MESSAGE = "No user message found"

_DATA_URI_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class DataUri:
    mime_type: str
    data: str  # base64 payload, still encoded


@dataclass
class AssembledTurn:
    prompt: str
    image: Optional[str] = None
    history: list[Message] = field(default_factory=list)


def parse_data_uri(url: str) -> DataUri:
    """Split `data:<mime>;base64,<payload>` into its mime type and payload."""
    match = _DATA_URI_RE.match(url)
    if not match:
        raise ImageDecodeError("Invalid data URL format")
    return DataUri(mime_type=match.group(1), data=match.group(2))


def parse_messages(turns: Any) -> list[Message]:
    if not isinstance(turns, list) or not turns:
        raise ValidationError(INVALID_MESSAGES)
    try:
        return [Message.model_validate(t) for t in turns]
    except PydanticValidationError as e:
        logger.info("Rejected messages payload: %d validation error(s)", e.error_count())
        raise ValidationError(INVALID_MESSAGES) from e


def assemble(turns: Any) -> AssembledTurn:
    messages = parse_messages(turns)

    current_idx = None
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == Role.USER:
            current_idx = idx
            break
    if current_idx is None:
        raise ValidationError(NO_USER_MESSAGE)

    current = messages[current_idx]
    history = messages[:current_idx]

    if isinstance(current.content, str):
        return AssembledTurn(prompt=current.content, history=history)

    prompt = next((p.text for p in current.content if isinstance(p, TextPart)), "")
    image = next((p.url for p in current.content if isinstance(p, ImagePart)), None)

    # Data URIs are checked now so a broken screenshot fails before streaming.
    if image is not None and image.startswith("data:"):
        parse_data_uri(image)

    return AssembledTurn(prompt=prompt, image=image, history=history)
