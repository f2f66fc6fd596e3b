"""Gemini adapter: role remapping, session vs one-shot, image decoding."""

from __future__ import annotations

import asyncio
import base64

import pytest

from fakes import FakeGeminiClient, gemini_chunk

from chat_relay.conversation.messages import Message, Role, image_part, text_part
from chat_relay.errors import ConfigurationError, ImageDecodeError, UpstreamError
from chat_relay.models.base import Delta, Done, Error
from chat_relay.models.gemini import GeminiAdapter, to_gemini_history

RAW_IMAGE = b"\x89PNG\r\n\x1a\nfake"
PNG_URI = "data:image/png;base64," + base64.b64encode(RAW_IMAGE).decode()


async def _collect(agen) -> list:
    return [item async for item in agen]


def test_missing_key_fails_at_construction() -> None:
    with pytest.raises(ConfigurationError, match="Gemini API key not configured"):
        GeminiAdapter(api_key=None)


def test_roles_collapse_to_user_and_model() -> None:
    history = to_gemini_history([
        Message(role=Role.SYSTEM, content="Be brief."),
        Message(role=Role.USER, content="Hi"),
        Message(role=Role.ASSISTANT, content="Hello!"),
    ])
    assert [c.role for c in history] == ["model", "user", "model"]
    assert [c.parts[0].text for c in history] == ["Be brief.", "Hi", "Hello!"]


def test_history_list_content_maps_text_and_inline_image() -> None:
    history = to_gemini_history([Message(role=Role.USER, content=[text_part("look"), image_part(PNG_URI)])])
    parts = history[0].parts
    assert parts[0].text == "look"
    assert parts[1].inline_data.mime_type == "image/png"
    assert parts[1].inline_data.data == RAW_IMAGE


def test_no_history_uses_one_shot_generation() -> None:
    client = FakeGeminiClient([gemini_chunk("Four"), gemini_chunk(".")])
    adapter = GeminiAdapter(api_key="g-test", client=client)

    events = asyncio.run(_collect(adapter.events("2+2?", "gemini-2.0-flash", [])))

    assert events == [Delta(text="Four"), Delta(text="."), Done()]
    assert client.chats.created == []
    call = client.models.calls[0]
    assert call["model"] == "gemini-2.0-flash"
    content = call["contents"][0]
    assert content.role == "user"
    assert content.parts[0].text == "2+2?"


def test_history_opens_seeded_chat_session() -> None:
    client = FakeGeminiClient([gemini_chunk("Sure")])
    adapter = GeminiAdapter(api_key="g-test", client=client)
    history = [Message(role=Role.USER, content="Hi"), Message(role=Role.ASSISTANT, content="Hello!")]

    events = asyncio.run(_collect(adapter.events("More?", "gemini-2.0-flash", history)))

    assert events == [Delta(text="Sure"), Done()]
    assert client.models.calls == []
    created = client.chats.created[0]
    assert [c.role for c in created["history"]] == ["user", "model"]
    sent = client.chats.sessions[0].sent[0]
    assert sent[0].text == "More?"


def test_screenshot_sent_as_inline_bytes() -> None:
    client = FakeGeminiClient([gemini_chunk("A cat")])
    adapter = GeminiAdapter(api_key="g-test", client=client)

    asyncio.run(_collect(adapter.events("What is this?", "gemini-2.0-flash", [], PNG_URI)))

    parts = client.models.calls[0]["contents"][0].parts
    assert parts[0].text == "What is this?"
    assert parts[1].inline_data.mime_type == "image/png"
    assert parts[1].inline_data.data == RAW_IMAGE


@pytest.mark.parametrize("url", ["https://example.com/cat.png", "data:image/png;base64,@@@not-base64@@@"])
def test_unusable_image_raises_image_decode_error(url: str) -> None:
    client = FakeGeminiClient([gemini_chunk("x")])
    adapter = GeminiAdapter(api_key="g-test", client=client)

    with pytest.raises(ImageDecodeError):
        asyncio.run(_collect(adapter.events("What is this?", "gemini-2.0-flash", [], url)))
    assert client.models.calls == []


def test_chunks_without_text_are_absorbed() -> None:
    client = FakeGeminiClient([
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": None}]},
        gemini_chunk("ok"),
    ])
    adapter = GeminiAdapter(api_key="g-test", client=client)

    events = asyncio.run(_collect(adapter.events("hi", "gemini-2.0-flash", [])))
    assert events == [Delta(text="ok"), Done()]


def test_malformed_chunk_does_not_abort_stream() -> None:
    client = FakeGeminiClient([gemini_chunk("a"), {"candidates": 7}, gemini_chunk("b")])
    adapter = GeminiAdapter(api_key="g-test", client=client)

    events = asyncio.run(_collect(adapter.events("hi", "gemini-2.0-flash", [])))
    assert events == [Delta(text="a"), Delta(text="b"), Done()]


def test_blocked_prompt_is_terminal_error() -> None:
    client = FakeGeminiClient([
        {"candidates": [], "prompt_feedback": {"block_reason": "SAFETY"}},
        gemini_chunk("never"),
    ])
    adapter = GeminiAdapter(api_key="g-test", client=client)

    events = asyncio.run(_collect(adapter.events("hi", "gemini-2.0-flash", [])))
    assert events == [Error(message="Response blocked: SAFETY")]
    assert client.stream.closed


def test_dropped_connection_raises_upstream_error() -> None:
    client = FakeGeminiClient([gemini_chunk("a"), gemini_chunk("b")], fail_after=1)
    adapter = GeminiAdapter(api_key="g-test", client=client)

    with pytest.raises(UpstreamError, match="Gemini request failed"):
        asyncio.run(_collect(adapter.events("hi", "gemini-2.0-flash", [])))
