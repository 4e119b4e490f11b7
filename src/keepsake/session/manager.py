"""Session manager for per-sender state and message ordering."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..memory.models import SELF, ClassifiedFact, DataType

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    """Where a sender is in the conversation."""

    AWAITING_NAME = "awaiting_name"
    AWAITING_NAME_REPLY = "awaiting_name_reply"
    CONVERSING = "conversing"


@dataclass(frozen=True)
class PendingUpdate:
    """A proposed overwrite waiting for a yes/no reply."""

    existing_id: str
    existing_content: str
    proposed: ClassifiedFact
    context: str = "data_update"

    @property
    def data_type(self) -> DataType:
        return self.proposed.data_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "existing_id": self.existing_id,
            "existing_content": self.existing_content,
            "context": self.context,
            "data_type": self.proposed.data_type.value,
            "subject": self.proposed.subject,
            "person": self.proposed.person,
            "content": self.proposed.content,
            "keywords": sorted(self.proposed.keywords),
            "source_date": self.proposed.source_date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingUpdate:
        proposed = ClassifiedFact(
            data_type=DataType.parse(data.get("data_type")),
            subject=data.get("subject") or SELF,
            content=data.get("content", ""),
            keywords=frozenset(data.get("keywords") or []),
            source_date=data.get("source_date"),
            person=data.get("person"),
        )
        return cls(
            existing_id=data["existing_id"],
            existing_content=data["existing_content"],
            proposed=proposed,
            context=data.get("context", "data_update"),
        )


@dataclass
class SessionState:
    """State for a single sender."""

    sender_id: str
    state: ConversationState = ConversationState.AWAITING_NAME
    display_name: str | None = None
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    recent_utterances: list[str] = field(default_factory=list)
    pending_update: PendingUpdate | None = None

    def touch(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = time.time()

    def remember(self, text: str, limit: int) -> None:
        """Append an utterance, evicting the oldest beyond ``limit``."""
        self.recent_utterances.append(text)
        if limit <= 0:
            self.recent_utterances.clear()
        elif len(self.recent_utterances) > limit:
            del self.recent_utterances[:-limit]
        self.touch()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sender_id": self.sender_id,
            "state": self.state.value,
            "display_name": self.display_name,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "recent_utterances": list(self.recent_utterances),
            "pending_update": (
                self.pending_update.to_dict() if self.pending_update else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        """Create from dictionary."""
        pending = data.get("pending_update")
        return cls(
            sender_id=data["sender_id"],
            state=ConversationState(data.get("state", ConversationState.AWAITING_NAME.value)),
            display_name=data.get("display_name"),
            created_at=data.get("created_at", time.time()),
            last_activity=data.get("last_activity", time.time()),
            recent_utterances=list(data.get("recent_utterances", [])),
            pending_update=PendingUpdate.from_dict(pending) if pending else None,
        )


@dataclass
class SessionConfig:
    """Configuration for session manager.

    Attributes:
        sessions_dir: Where sessions are saved as JSON; None keeps them in
            memory for the process lifetime.
        history_size: How many recent utterances a session keeps.
    """

    sessions_dir: Path | None = None
    history_size: int = 5

    def __post_init__(self) -> None:
        if self.history_size < 0:
            raise ValueError("history_size must not be negative")


class SessionManager:
    """Owns sessions and the per-sender locks that order their messages."""

    def __init__(self, config: SessionConfig | None = None) -> None:
        self.config = config or SessionConfig()
        self._sessions: dict[str, SessionState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        if self.config.sessions_dir is not None:
            self.config.sessions_dir.mkdir(parents=True, exist_ok=True)

    def _session_file(self, sender_id: str) -> Path | None:
        """Get the file path for a session, if sessions are persisted."""
        if self.config.sessions_dir is None:
            return None
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in sender_id)
        return self.config.sessions_dir / f"{safe_id}.json"

    def _load_session(self, sender_id: str) -> SessionState | None:
        """Load session from disk."""
        path = self._session_file(sender_id)
        if path is None or not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
                return SessionState.from_dict(data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {path}: {e}")
            return None

    def save(self, sender_id: str) -> None:
        """Save a session to disk, if sessions are persisted."""
        path = self._session_file(sender_id)
        session = self._sessions.get(sender_id)
        if path is None or session is None:
            return
        with open(path, "w", encoding="utf-8") as f:
            json.dump(session.to_dict(), f, indent=2, ensure_ascii=False)

    def get_session(self, sender_id: str) -> SessionState:
        """Get or create a session for sender_id."""
        if sender_id not in self._sessions:
            session = self._load_session(sender_id)
            if session is None:
                session = SessionState(sender_id=sender_id)
            self._sessions[sender_id] = session

        return self._sessions[sender_id]

    def get_lock(self, sender_id: str) -> asyncio.Lock:
        """Get the lock that serializes a sender's messages."""
        if sender_id not in self._locks:
            self._locks[sender_id] = asyncio.Lock()
        return self._locks[sender_id]

    def is_busy(self, sender_id: str) -> bool:
        """Check if a sender's message is currently being processed."""
        lock = self._locks.get(sender_id)
        return lock is not None and lock.locked()

    def add_utterance(self, sender_id: str, text: str) -> None:
        """Record an inbound utterance in the bounded history."""
        self.get_session(sender_id).remember(text, self.config.history_size)

    def get_utterances(self, sender_id: str) -> list[str]:
        """Recent utterances, oldest first."""
        return list(self.get_session(sender_id).recent_utterances)

    def set_state(self, sender_id: str, state: ConversationState) -> None:
        """Move a sender to a new conversation state."""
        session = self.get_session(sender_id)
        session.state = state
        session.touch()

    def destroy_session(self, sender_id: str) -> None:
        """Forget a sender's session."""
        self._sessions.pop(sender_id, None)
        lock = self._locks.get(sender_id)
        if lock is not None and not lock.locked():
            del self._locks[sender_id]

        path = self._session_file(sender_id)
        if path is not None and path.exists():
            path.unlink()
