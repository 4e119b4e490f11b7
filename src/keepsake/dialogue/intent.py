"""Intent routing for inbound utterances.

Checks run in a fixed order and the first match wins: command, greeting,
data question, then statement. Fact classification only runs when none of
the cheaper checks matched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..memory.classifier import classify, is_placeholder, normalize_text
from ..memory.models import PERSONAL_DATA_TYPES, ClassifiedFact

if TYPE_CHECKING:
    from ..memory.classifier import LLMFactClassifier

DELETE_DATA = "delete_data"

COMMAND_PHRASES = {
    "delete all data": DELETE_DATA,
    "delete data": DELETE_DATA,
}

GREETING_PATTERN = re.compile(
    r"\b(?:hello|hi|hey|good morning|good afternoon|good evening|greetings)\b",
    re.IGNORECASE,
)

DATA_QUESTION_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"what(?:'?s| is)? my",
        r"when(?:'?s| is) my",
        r"who am i",
        r"tell me about myself",
        r"what do i\b",
        r"what are my",
        # Third-party lookups answered from the sender's own store
        r"(?:when|what)(?:'s| is) \w+'s\b",
    )
)


class Intent(str, Enum):
    """What an utterance is asking the bot to do."""

    GREETING = "greeting"
    DATA_QUESTION = "data_question"
    STATEMENT = "statement"
    COMMAND = "command"
    NONE = "none"


@dataclass(frozen=True)
class RoutedIntent:
    """Routing decision, with the command name or classified fact if any."""

    intent: Intent
    command: str | None = None
    fact: ClassifiedFact | None = None


def detect_command(text: str) -> str | None:
    lowered = text.lower()
    for phrase, command in COMMAND_PHRASES.items():
        if phrase in lowered:
            return command
    return None


def is_greeting(text: str) -> bool:
    return GREETING_PATTERN.search(text) is not None


def is_data_question(text: str) -> bool:
    return any(p.search(text) for p in DATA_QUESTION_PATTERNS)


def _route_without_fact(text: str) -> RoutedIntent | None:
    command = detect_command(text)
    if command is not None:
        return RoutedIntent(Intent.COMMAND, command=command)
    if is_greeting(text):
        return RoutedIntent(Intent.GREETING)
    if is_data_question(text):
        return RoutedIntent(Intent.DATA_QUESTION)
    return None


def _route_fact(fact: ClassifiedFact) -> RoutedIntent:
    # A topic without a value is never stored
    if fact.data_type in PERSONAL_DATA_TYPES and not is_placeholder(fact):
        return RoutedIntent(Intent.STATEMENT, fact=fact)
    return RoutedIntent(Intent.NONE)


def route_intent(text: str) -> RoutedIntent:
    """Route an utterance using the rule-based classifier only."""
    text = normalize_text(text)
    routed = _route_without_fact(text)
    if routed is not None:
        return routed
    return _route_fact(classify(text))


class IntentRouter:
    """Routes utterances, classifying statements with an optional LLM."""

    def __init__(self, classifier: LLMFactClassifier | None = None) -> None:
        self.classifier = classifier

    async def classify(
        self, text: str, history: list[str] | None = None
    ) -> ClassifiedFact:
        """Classify with the LLM when configured, else with the rule table."""
        if self.classifier is None:
            return classify(text)
        return await self.classifier.classify(text, history=history)

    async def route(self, text: str, history: list[str] | None = None) -> RoutedIntent:
        text = normalize_text(text)
        routed = _route_without_fact(text)
        if routed is not None:
            return routed
        return _route_fact(await self.classify(text, history=history))
