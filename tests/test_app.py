"""Tests for assistant wiring."""

from pathlib import Path

import pytest

from keepsake.app import create_state_machine, create_store
from keepsake.config import Settings
from keepsake.llm import GroqLLMClient
from keepsake.memory import (
    DataType,
    Fact,
    LLMFactClassifier,
    ResilientFactStore,
    SQLiteFactStore,
)


class NullSender:
    async def send(self, sender_id: str, text: str) -> None:
        pass


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "facts.db", sessions_dir=tmp_path / "sessions")


def test_create_store(settings: Settings):
    store = create_store(settings)

    assert isinstance(store, ResilientFactStore)
    assert isinstance(store.primary, SQLiteFactStore)
    assert settings.db_path.exists()
    store.close()


def test_create_store_survives_bad_path(tmp_path: Path):
    """An unusable database path degrades to the in-memory fallback."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = create_store(Settings(db_path=blocker / "facts.db"))

    fact_id = store.put(Fact(sender_id="s1", data_type=DataType.NAME, content="Sam"))

    assert store.fallback.most_recent("s1", DataType.NAME).id == fact_id
    assert store.most_recent("s1", DataType.NAME).content == "Sam"
    store.close()


def test_rule_based_without_key(settings: Settings):
    machine = create_state_machine(settings, NullSender())

    assert machine.router.classifier is None
    assert machine.generator.client is None
    assert machine.sessions.config.sessions_dir == settings.sessions_dir
    machine.store.close()


def test_llm_with_key(settings: Settings):
    settings.groq_api_key = "test-key"
    settings.llm_timeout = 3.0

    machine = create_state_machine(settings, NullSender())

    assert isinstance(machine.router.classifier, LLMFactClassifier)
    assert isinstance(machine.generator.client, GroqLLMClient)
    assert machine.generator.client.timeout == 3.0
    machine.store.close()
