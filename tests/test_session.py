"""Tests for session manager."""

import json
import tempfile
import time
from pathlib import Path

import pytest

from keepsake.memory import ClassifiedFact, DataType
from keepsake.session import (
    ConversationState,
    PendingUpdate,
    SessionConfig,
    SessionManager,
    SessionState,
)


@pytest.fixture
def temp_sessions_dir():
    """Create a temporary sessions directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def session_manager(temp_sessions_dir: Path) -> SessionManager:
    config = SessionConfig(sessions_dir=temp_sessions_dir, history_size=3)
    return SessionManager(config)


def make_pending() -> PendingUpdate:
    return PendingUpdate(
        existing_id="abc",
        existing_content="1st May",
        proposed=ClassifiedFact(
            data_type=DataType.BIRTHDAY,
            subject="Adam",
            content="8th August",
            keywords=frozenset({"birthday", "august"}),
            source_date="8th aug",
            person="Adam",
        ),
    )


class TestSessionState:
    def test_create(self):
        state = SessionState(sender_id="test-123")
        assert state.sender_id == "test-123"
        assert state.state is ConversationState.AWAITING_NAME
        assert state.recent_utterances == []
        assert state.pending_update is None

    def test_touch_updates_activity(self):
        state = SessionState(sender_id="test")
        old_time = state.last_activity
        time.sleep(0.01)
        state.touch()
        assert state.last_activity > old_time

    def test_remember_evicts_oldest(self):
        state = SessionState(sender_id="test")
        for text in ("one", "two", "three", "four"):
            state.remember(text, limit=2)
        assert state.recent_utterances == ["three", "four"]

    def test_remember_zero_limit(self):
        state = SessionState(sender_id="test")
        state.remember("one", limit=0)
        assert state.recent_utterances == []

    def test_serialization(self):
        state = SessionState(
            sender_id="test",
            state=ConversationState.CONVERSING,
            display_name="Sam",
        )
        state.recent_utterances.append("hi")
        state.pending_update = make_pending()

        data = state.to_dict()
        restored = SessionState.from_dict(json.loads(json.dumps(data)))

        assert restored.sender_id == "test"
        assert restored.state is ConversationState.CONVERSING
        assert restored.display_name == "Sam"
        assert restored.recent_utterances == ["hi"]
        assert restored.pending_update == state.pending_update

    def test_pending_update_data_type(self):
        assert make_pending().data_type is DataType.BIRTHDAY


class TestSessionConfig:
    def test_defaults(self):
        config = SessionConfig()
        assert config.sessions_dir is None
        assert config.history_size == 5

    def test_negative_history_rejected(self):
        with pytest.raises(ValueError):
            SessionConfig(history_size=-1)


class TestSessionManager:
    def test_get_session_creates_new(self, session_manager: SessionManager):
        session = session_manager.get_session("new-sender")
        assert session.sender_id == "new-sender"

    def test_get_session_returns_same(self, session_manager: SessionManager):
        s1 = session_manager.get_session("sender")
        s2 = session_manager.get_session("sender")
        assert s1 is s2

    def test_add_utterance_bounded(self, session_manager: SessionManager):
        for text in ("a", "b", "c", "d"):
            session_manager.add_utterance("sender", text)

        assert session_manager.get_utterances("sender") == ["b", "c", "d"]

    def test_set_state(self, session_manager: SessionManager):
        session_manager.set_state("sender", ConversationState.CONVERSING)
        assert session_manager.get_session("sender").state is ConversationState.CONVERSING

    def test_save_and_reload(self, temp_sessions_dir: Path):
        config = SessionConfig(sessions_dir=temp_sessions_dir)
        manager1 = SessionManager(config)
        manager1.set_state("sender", ConversationState.AWAITING_NAME_REPLY)
        manager1.get_session("sender").pending_update = make_pending()
        manager1.save("sender")

        manager2 = SessionManager(config)
        session = manager2.get_session("sender")

        assert session.state is ConversationState.AWAITING_NAME_REPLY
        assert session.pending_update.proposed.person == "Adam"

    def test_in_memory_without_dir(self, tmp_path: Path):
        manager = SessionManager()
        manager.add_utterance("sender", "hi")
        manager.save("sender")

        assert list(tmp_path.glob("*.json")) == []
        assert manager.get_utterances("sender") == ["hi"]

    def test_safe_file_names(self, session_manager: SessionManager, temp_sessions_dir: Path):
        session_manager.get_session("+44 7700/900")
        session_manager.save("+44 7700/900")
        assert (temp_sessions_dir / "_44_7700_900.json").exists()

    def test_unreadable_file_ignored(self, session_manager: SessionManager, temp_sessions_dir: Path):
        (temp_sessions_dir / "broken.json").write_text("{not json")
        session = session_manager.get_session("broken")
        assert session.state is ConversationState.AWAITING_NAME

    def test_destroy_session(self, session_manager: SessionManager, temp_sessions_dir: Path):
        session_manager.set_state("sender", ConversationState.CONVERSING)
        session_manager.save("sender")

        session_manager.destroy_session("sender")

        assert not (temp_sessions_dir / "sender.json").exists()
        assert session_manager.get_session("sender").state is ConversationState.AWAITING_NAME

    def test_lock_per_sender(self, session_manager: SessionManager):
        assert session_manager.get_lock("a") is session_manager.get_lock("a")
        assert session_manager.get_lock("a") is not session_manager.get_lock("b")

    @pytest.mark.asyncio
    async def test_is_busy(self, session_manager: SessionManager):
        assert session_manager.is_busy("sender") is False
        async with session_manager.get_lock("sender"):
            assert session_manager.is_busy("sender") is True
        assert session_manager.is_busy("sender") is False
