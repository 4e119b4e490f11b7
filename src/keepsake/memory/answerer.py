"""Answering questions about stored facts."""

from __future__ import annotations

import re
from typing import Callable

from .models import DataType, Fact
from .store import FactStore

# Connective phrasing stripped before a stored value is rendered.
# Longer prefixes come first so the most specific one is removed.
CONTENT_PREFIXES: dict[DataType, tuple[str, ...]] = {
    DataType.BIRTHDAY: (
        "my birthday is on",
        "my birthday is",
        "i was born on",
        "i was born",
    ),
    DataType.PHONE: ("my phone number is", "my number is", "my phone is"),
    DataType.NAME: ("my name is", "i am", "i'm"),
    DataType.PREFERENCE: ("i really like", "i like", "i love"),
    DataType.WORK: ("i work as an", "i work as a", "i work as", "i am an", "i am a", "i'm an", "i'm a"),
    DataType.IDENTITY: ("i am an", "i am a", "i'm an", "i'm a", "i am", "i'm"),
}

FIELD_ALIASES = {
    "bday": DataType.BIRTHDAY,
    "number": DataType.PHONE,
    "job": DataType.WORK,
    "like": DataType.PREFERENCE,
    "likes": DataType.PREFERENCE,
}

# Lookahead so "what's Adam's birthday" still yields the "Adam's" match
THIRD_PARTY_PATTERN = re.compile(r"(?=\b([A-Za-z]+)['’]s\s+([A-Za-z]+))")

# Words that look like "<Name>'s" in a question but aren't names.
NOT_NAMES = frozenset(
    {"what", "who", "when", "where", "how", "that", "it", "there", "here", "let", "he", "she"}
)

UNKNOWN_REPLY = (
    "I don't have that information. Please tell me about it so I can remember it for you."
)


def clean_content(data_type: DataType, content: str) -> str:
    """Strip a known connective prefix from a stored value, once."""
    text = content.strip()
    lowered = text.lower()
    for prefix in CONTENT_PREFIXES.get(data_type, ()):
        if lowered.startswith(prefix):
            return text[len(prefix):].strip()
    return text


def resolve_field(field: str) -> DataType:
    """Map a question's field word to a data type."""
    word = field.lower()
    if word in FIELD_ALIASES:
        return FIELD_ALIASES[word]
    return DataType.parse(word)


class QuestionAnswerer:
    """Renders answers to data questions from the fact store."""

    def __init__(self, store: FactStore) -> None:
        self.store = store
        # (trigger, handler) in dispatch order; first trigger wins
        self._self_branches: list[tuple[Callable[[str], bool], Callable[[str], str]]] = [
            (lambda q: "birthday" in q or "bday" in q, self._answer_birthday),
            (lambda q: "phone" in q or "number" in q, self._answer_phone),
            (lambda q: "name" in q, self._answer_name),
            (lambda q: "like" in q or "prefer" in q, self._answer_preferences),
            (lambda q: "work" in q or "job" in q, self._answer_work),
            (
                lambda q: "who" in q or "about myself" in q or "about me" in q,
                self._answer_identity,
            ),
        ]

    def answer(self, sender_id: str, question: str) -> str:
        """Answer a question about the sender's (or a third party's) data.

        Never raises for a missing fact: absence renders a "don't know" reply.
        """
        third_party = self._answer_third_party(sender_id, question)
        if third_party is not None:
            return third_party

        lowered = question.lower()
        for trigger, handler in self._self_branches:
            if trigger(lowered):
                return handler(sender_id)

        return self._answer_generic(sender_id, question)

    def _answer_third_party(self, sender_id: str, question: str) -> str | None:
        for match in THIRD_PARTY_PATTERN.finditer(question):
            name, field = match.group(1), match.group(2)
            if name.lower() in NOT_NAMES:
                continue
            data_type = resolve_field(field)
            fact = None
            if data_type != DataType.OTHER:
                fact = self.store.most_recent(sender_id, data_type, person=name)
            if fact is None:
                return f"I don't know {name}'s {field}. Please tell me..."
            return f"{name}'s {field} is {clean_content(data_type, fact.content)}"
        return None

    def _current(self, sender_id: str, data_type: DataType) -> str | None:
        fact = self.store.most_recent(sender_id, data_type)
        return clean_content(data_type, fact.content) if fact else None

    def _all(self, sender_id: str, data_type: DataType) -> list[str]:
        values: list[str] = []
        for fact in self.store.series(sender_id, data_type):
            value = clean_content(data_type, fact.content)
            if value not in values:
                values.append(value)
        return values

    def _answer_birthday(self, sender_id: str) -> str:
        value = self._current(sender_id, DataType.BIRTHDAY)
        if value is None:
            return "I don't know your birthday yet. Please tell me when it is!"
        return f"Your birthday is {value}."

    def _answer_phone(self, sender_id: str) -> str:
        value = self._current(sender_id, DataType.PHONE)
        if value is None:
            return "I don't know your phone number yet. Please tell me what it is!"
        return f"Your phone number is {value}."

    def _answer_name(self, sender_id: str) -> str:
        value = self._current(sender_id, DataType.NAME)
        if value is None:
            return "I don't know your name yet. Please tell me what it is!"
        return f"Your name is {value}."

    def _answer_preferences(self, sender_id: str) -> str:
        values = self._all(sender_id, DataType.PREFERENCE)
        if not values:
            return "I don't know what you like yet. Please tell me!"
        return f"You like {', '.join(values)}."

    def _answer_work(self, sender_id: str) -> str:
        value = self._current(sender_id, DataType.WORK)
        if value is None:
            return "I don't know what you do for work yet. Please tell me!"
        return f"You work as {value}."

    def _answer_identity(self, sender_id: str) -> str:
        values = self._all(sender_id, DataType.IDENTITY)
        if not values:
            return "I don't know much about you yet. Please tell me about yourself!"
        return f"You are {', '.join(values)}."

    def _answer_generic(self, sender_id: str, question: str) -> str:
        words = re.findall(r"[a-z0-9']+", question.lower())
        if not words:
            return UNKNOWN_REPLY
        first = words[0]
        matches = [
            fact.content
            for fact in self.store.list_facts(sender_id)
            if first in fact.content.lower() or first in fact.data_type.value
        ]
        if not matches:
            return UNKNOWN_REPLY
        return f"Based on what you've told me: {', '.join(matches)}"
