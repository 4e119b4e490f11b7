"""Read-only views over the fact store: profiles, listings and search."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from .answerer import clean_content
from .models import DataType, Fact
from .store import FactStore

CONTACT_TYPES = (DataType.BIRTHDAY, DataType.PHONE)
MULTI_VALUED_TYPES = (DataType.IDENTITY, DataType.EVENT, DataType.OTHER)


@dataclass
class UserProfile:
    """Aggregated view of what a sender has told the bot."""

    sender_id: str
    name: str | None = None
    preferences: list[str] = field(default_factory=list)
    contact_info: list[str] = field(default_factory=list)
    personal_info: list[str] = field(default_factory=list)
    people: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_profile(store: FactStore, sender_id: str) -> UserProfile:
    """Aggregate a sender's facts, current values first."""
    profile = UserProfile(sender_id=sender_id)
    seen_series: set[tuple[DataType, str | None]] = set()

    for fact in store.list_facts(sender_id):
        value = clean_content(fact.data_type, fact.content)
        if fact.person:
            key = (fact.data_type, fact.person.casefold())
            if key in seen_series:
                continue
            seen_series.add(key)
            profile.people.setdefault(fact.person, []).append(
                f"{fact.data_type.value}: {value}"
            )
            continue

        if fact.data_type == DataType.PREFERENCE:
            if value not in profile.preferences:
                profile.preferences.append(value)
            continue

        # Single-valued self series only contribute their current value
        key = (fact.data_type, None)
        if fact.data_type not in MULTI_VALUED_TYPES and key in seen_series:
            continue
        seen_series.add(key)

        if fact.data_type == DataType.NAME:
            profile.name = value
        elif fact.data_type in CONTACT_TYPES:
            profile.contact_info.append(f"{fact.data_type.value}: {value}")
        else:
            profile.personal_info.append(value)

    return profile


def list_facts(
    store: FactStore, sender_id: str, query: str | None = None, limit: int = 10
) -> list[Fact]:
    """A sender's raw facts, optionally filtered by a substring query."""
    if limit < 1:
        return []
    return store.list_facts(sender_id, query=query, limit=limit)


def search_facts(store: FactStore, query: str, limit: int = 5) -> list[Fact]:
    """Cross-sender search by query string.

    Raises:
        ValueError: If the query is empty.
    """
    if not query.strip():
        raise ValueError("query is required")
    if limit < 1:
        return []
    return store.search(query, limit=limit)
