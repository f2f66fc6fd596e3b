"""
Canonical chat message model.

A message carries a role and either plain string content or an ordered list
of content parts. Parts are text or an image reference; image references
always ask vision models for the "high" detail level.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: StrictStr


class ImageUrl(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: StrictStr  # data URI or remote URL
    detail: Literal["high"] = "high"


class ImagePart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl

    @property
    def url(self) -> str:
        return self.image_url.url


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Union[StrictStr, list[ContentPart]]

    def text(self) -> str:
        """Concatenated text of the message, ignoring images."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    def images(self) -> list[str]:
        if isinstance(self.content, str):
            return []
        return [p.url for p in self.content if isinstance(p, ImagePart)]

    def to_wire(self) -> dict:
        """JSON-ready form, identical in shape to the inbound request."""
        return self.model_dump(mode="json")


def text_part(text: str) -> TextPart:
    return TextPart(text=text)


def image_part(url: str) -> ImagePart:
    return ImagePart(image_url=ImageUrl(url=url))
