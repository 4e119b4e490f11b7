"""Wiring of the assistant from settings."""

from __future__ import annotations

from groq import AsyncGroq

from .config import Settings
from .dialogue import ConversationStateMachine, IntentRouter, MessageSender
from .llm import GroqLLMClient, ResponseGenerator
from .logging import JSONLLogger, get_logger
from .memory import LLMFactClassifier, ResilientFactStore, SQLiteFactStore
from .session import SessionConfig, SessionManager


def create_store(settings: Settings, json_logger: JSONLLogger | None = None) -> ResilientFactStore:
    """SQLite store with the in-memory fallback behind it."""
    primary = SQLiteFactStore(settings.db_path, timeout=settings.db_timeout)
    store = ResilientFactStore(primary, json_logger=json_logger)
    # A broken database degrades to the fallback instead of failing startup
    store.init_db()
    return store


def create_state_machine(
    settings: Settings,
    sender: MessageSender,
    store: ResilientFactStore | None = None,
    json_logger: JSONLLogger | None = None,
) -> ConversationStateMachine:
    """Build the conversation state machine.

    Without a Groq API key the rule-based classifier and the reply
    templates are the only path.
    """
    json_logger = json_logger or get_logger()
    store = store or create_store(settings, json_logger)

    classifier = None
    generator = ResponseGenerator()
    if settings.groq_api_key:
        llm = GroqLLMClient(
            AsyncGroq(api_key=settings.groq_api_key),
            model=settings.model,
            timeout=settings.llm_timeout,
        )
        classifier = LLMFactClassifier(llm, json_logger=json_logger)
        generator = ResponseGenerator(llm)

    sessions = SessionManager(
        SessionConfig(
            sessions_dir=settings.sessions_dir,
            history_size=settings.history_size,
        )
    )
    return ConversationStateMachine(
        store,
        sender,
        sessions=sessions,
        router=IntentRouter(classifier),
        generator=generator,
        json_logger=json_logger,
    )
