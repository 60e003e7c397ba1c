"""Shared fixtures for the relay tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from hue_chat import ChatConfig, ChatService
from hue_chat.ollama_client import BackendStatus, OllamaClient
from memory_store import MemoryStore


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    """Create a MemoryStore backed by a temporary SQLite database."""
    store = MemoryStore(f"sqlite:///{tmp_path / 'memory.db'}")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def ticking_clock():
    """Make every store timestamp one second later than the previous one."""
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = (start + timedelta(seconds=i) for i in range(10_000))
    with patch("memory_store.store.utcnow", side_effect=lambda: next(ticks)):
        yield start


@pytest.fixture
def client() -> MagicMock:
    """An OllamaClient stand-in whose backend is up with the model installed."""
    mock = MagicMock(spec=OllamaClient)
    mock.model = "hue"
    mock.check_status.return_value = BackendStatus(reachable=True, model_available=True)
    mock.complete.return_value = "  Hello there!  "
    mock.stream_complete.side_effect = lambda prompt, options=None: (c for c in ["Hel", "lo", " there"])
    return mock


@pytest.fixture
def service(client: MagicMock, store: MemoryStore) -> ChatService:
    return ChatService(ChatConfig(), client=client, store=store)
