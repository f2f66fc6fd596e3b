"""Ensure the project root is importable and config singletons start clean."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chat_relay import config as config_module  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("CHAT_RELAY_CONFIG_PATH", str(tmp_path / "chat-relay.json"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setattr(config_module, "_settings", None)
    monkeypatch.setattr(config_module, "_config", None)
    monkeypatch.setattr(config_module, "_credentials", None)
    yield
