"""Session management and persistence."""

from .manager import (
    ConversationState,
    PendingUpdate,
    SessionConfig,
    SessionManager,
    SessionState,
)

__all__ = [
    "ConversationState",
    "PendingUpdate",
    "SessionConfig",
    "SessionManager",
    "SessionState",
]
