"""OpenAI adapter: request shape, chunk normalization and error wrapping."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from fakes import FakeOpenAIClient, openai_chunk

from chat_relay.conversation.messages import Message, Role
from chat_relay.errors import ChunkParseError, ConfigurationError, UpstreamError
from chat_relay.models.base import Delta, Done
from chat_relay.models.openai_compat import OpenAIAdapter, to_openai_messages

PNG_URI = "data:image/png;base64,iVBORw0KGgo="


async def _collect(agen) -> list:
    return [item async for item in agen]


def test_missing_key_fails_at_construction() -> None:
    with pytest.raises(ConfigurationError, match="OpenAI API key not configured"):
        OpenAIAdapter(api_key=None)
    with pytest.raises(ConfigurationError):
        OpenAIAdapter(api_key="")


def test_current_turn_text_only() -> None:
    assert to_openai_messages("2+2?", []) == [{"role": "user", "content": "2+2?"}]


def test_current_turn_with_image_is_two_part_array() -> None:
    messages = to_openai_messages("describe", [], PNG_URI)
    assert messages == [{
        "role": "user",
        "content": [
            {"type": "text", "text": "describe"},
            {"type": "image_url", "image_url": {"url": PNG_URI, "detail": "high"}},
        ],
    }]


def test_history_forwarded_one_to_one() -> None:
    history = [
        Message(role=Role.SYSTEM, content="Be brief."),
        Message(role=Role.USER, content="Hi"),
        Message(role=Role.ASSISTANT, content="Hello!"),
    ]
    messages = to_openai_messages("Again", history)
    assert messages[:3] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
    ]
    assert messages[3] == {"role": "user", "content": "Again"}


def test_events_stream_deltas_then_done() -> None:
    client = FakeOpenAIClient([openai_chunk("Hel"), {"choices": []}, openai_chunk("lo"), openai_chunk(None)])
    adapter = OpenAIAdapter(api_key="sk-test", client=client)

    events = asyncio.run(_collect(adapter.events("hi", "gpt-4o-mini", [])))

    assert events == [Delta(text="Hel"), Delta(text="lo"), Done()]
    call = client.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["stream"] is True
    assert call["messages"] == [{"role": "user", "content": "hi"}]
    assert client.stream.closed


def test_normalizer_reads_sdk_objects() -> None:
    adapter = OpenAIAdapter(api_key="sk-test", client=FakeOpenAIClient([]))
    chunk = SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="ok"))])
    assert adapter.normalize(chunk) == Delta(text="ok")
    assert adapter.normalize(SimpleNamespace(choices=[])) is None
    assert adapter.normalize(SimpleNamespace(choices=[SimpleNamespace(delta=None)])) is None


def test_malformed_chunk_is_absorbed(caplog: pytest.LogCaptureFixture) -> None:
    client = FakeOpenAIClient([
        openai_chunk("One"),
        {"choices": "garbage"},
        {"choices": [{"delta": {"content": ["not", "text"]}}]},
        openai_chunk("Two"),
    ])
    adapter = OpenAIAdapter(api_key="sk-test", client=client)

    with caplog.at_level("WARNING"):
        events = asyncio.run(_collect(adapter.events("hi", "gpt-4o-mini", [])))

    assert events == [Delta(text="One"), Delta(text="Two"), Done()]
    assert "OpenAI chunk could not be parsed: delta content is list, expected str" in caplog.text


def test_extract_rejects_non_text_content() -> None:
    adapter = OpenAIAdapter(api_key="sk-test", client=FakeOpenAIClient([]))

    with pytest.raises(ChunkParseError, match="delta content is int"):
        adapter.extract({"choices": [{"delta": {"content": 7}}]})


def test_failure_mid_stream_raises_upstream_error() -> None:
    client = FakeOpenAIClient([openai_chunk("Hello"), openai_chunk(" there")], fail_after=1)
    adapter = OpenAIAdapter(api_key="sk-test", client=client)

    async def run() -> list:
        seen = []
        with pytest.raises(UpstreamError, match="connection reset"):
            async for event in adapter.events("hi", "gpt-4o-mini", []):
                seen.append(event)
        return seen

    assert asyncio.run(run()) == [Delta(text="Hello")]
    assert client.stream.closed


def test_failure_opening_call_raises_upstream_error() -> None:
    client = FakeOpenAIClient([], create_error=RuntimeError("model not found"))
    adapter = OpenAIAdapter(api_key="sk-test", client=client)

    with pytest.raises(UpstreamError, match="model not found"):
        asyncio.run(_collect(adapter.events("hi", "gpt-4o-mini", [])))
