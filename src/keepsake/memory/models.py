"""Data models for the fact memory."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

SELF = "self"


class DataType(str, Enum):
    """Kind of personal data a fact carries."""

    BIRTHDAY = "birthday"
    PHONE = "phone"
    NAME = "name"
    PREFERENCE = "preference"
    WORK = "work"
    IDENTITY = "identity"
    TRIP = "trip"
    EVENT = "event"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> DataType:
        """Parse a loose string into a DataType, defaulting to OTHER."""
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


# Types that count as personal data worth storing.
PERSONAL_DATA_TYPES = frozenset(
    {
        DataType.BIRTHDAY,
        DataType.PHONE,
        DataType.NAME,
        DataType.PREFERENCE,
        DataType.WORK,
        DataType.IDENTITY,
        DataType.TRIP,
        DataType.EVENT,
    }
)


def _check_subject(subject: str, person: str | None) -> None:
    if subject == SELF and person is not None:
        raise ValueError("person must be unset when subject is 'self'")
    if subject != SELF and not person:
        raise ValueError(f"person is required for subject {subject!r}")


@dataclass(frozen=True)
class ClassifiedFact:
    """Structured fact extracted from an utterance, not yet stored.

    Attributes:
        data_type: Kind of data.
        subject: 'self' or the third party's name.
        content: Normalized value (e.g. '15th September').
        keywords: Lowercase tokens for lightweight matching.
        source_date: Raw date substring as written by the user.
        person: Third party's name, set iff subject is not 'self'.
    """

    data_type: DataType
    subject: str = SELF
    content: str = ""
    keywords: frozenset[str] = frozenset()
    source_date: str | None = None
    person: str | None = None

    def __post_init__(self) -> None:
        _check_subject(self.subject, self.person)

    @property
    def is_self(self) -> bool:
        return self.subject == SELF

    def to_metadata(
        self,
        source: str = "user_input",
        context: str | None = None,
        confirmed: bool = False,
    ) -> FactMetadata:
        """Build the metadata record stored alongside this fact."""
        return FactMetadata(
            source=source,
            context=context,
            confirmed=confirmed,
            subject=self.subject,
            person=self.person,
            keywords=self.keywords,
            date=self.source_date,
        )


@dataclass(frozen=True)
class FactMetadata:
    """Metadata stored with a fact."""

    source: str = "user_input"
    context: str | None = None
    confirmed: bool = False
    subject: str = SELF
    person: str | None = None
    keywords: frozenset[str] = frozenset()
    date: str | None = None

    def __post_init__(self) -> None:
        _check_subject(self.subject, self.person)


@dataclass(frozen=True)
class Fact:
    """A stored fact about a sender or someone they mentioned.

    Attributes:
        sender_id: Opaque sender identifier (chat id, phone number).
        data_type: Kind of data.
        content: Normalized value.
        metadata: Subject, person, keywords and provenance.
        id: Assigned by the store, stable across in-place updates.
        created_at: ISO timestamp; the latest one in a series is current.
    """

    sender_id: str
    data_type: DataType
    content: str
    metadata: FactMetadata = field(default_factory=FactMetadata)
    id: str | None = None
    created_at: str | None = None

    @property
    def subject(self) -> str:
        return self.metadata.subject

    @property
    def person(self) -> str | None:
        return self.metadata.person

    @property
    def keywords(self) -> frozenset[str]:
        return self.metadata.keywords

    @property
    def source_date(self) -> str | None:
        return self.metadata.date

    def with_content(
        self, content: str, metadata: FactMetadata, created_at: str
    ) -> Fact:
        """Return a copy updated in place (same id)."""
        return replace(self, content=content, metadata=metadata, created_at=created_at)

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-friendly dict."""
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "data_type": self.data_type.value,
            "subject": self.subject,
            "person": self.person,
            "content": self.content,
            "keywords": sorted(self.keywords),
            "source_date": self.source_date,
            "source": self.metadata.source,
            "context": self.metadata.context,
            "confirmed": self.metadata.confirmed,
            "created_at": self.created_at,
        }


def storage_key(
    sender_id: str, data_type: DataType, subject: str = SELF, person: str | None = None
) -> str:
    """Series identifier for a sender, type and subject."""
    if subject == SELF:
        return f"{sender_id}_{data_type.value}"
    return f"{sender_id}_{data_type.value}_{person or subject}"
