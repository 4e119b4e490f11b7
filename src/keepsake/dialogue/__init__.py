"""Dialogue: intent routing, confirmations and the conversation loop."""

from .confirmation import (
    Confirmation,
    ConfirmationEngine,
    EngineState,
    Resolution,
    SubmitResult,
    SubmitStatus,
    acknowledgement,
    parse_confirmation,
)
from .conversation import ConversationStateMachine, MessageSender
from .intent import Intent, IntentRouter, RoutedIntent, route_intent
from .results import AskQuestion, NoAction, Outcome, Reply

__all__ = [
    "AskQuestion",
    "Confirmation",
    "ConfirmationEngine",
    "ConversationStateMachine",
    "EngineState",
    "Intent",
    "IntentRouter",
    "MessageSender",
    "NoAction",
    "Outcome",
    "Reply",
    "Resolution",
    "RoutedIntent",
    "SubmitResult",
    "SubmitStatus",
    "acknowledgement",
    "parse_confirmation",
    "route_intent",
]
