"""Fact classification: utterance in, structured fact out.

Two strategies share one contract. ``classify`` is the deterministic,
rule-based extractor and is always available. ``LLMFactClassifier`` asks
an LLM for the same shape and falls back to ``classify`` on any failure.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from .models import SELF, ClassifiedFact, DataType

if TYPE_CHECKING:
    from ..llm import LLMClient
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

MONTHS = {
    "jan": "January",
    "feb": "February",
    "mar": "March",
    "apr": "April",
    "may": "May",
    "jun": "June",
    "jul": "July",
    "aug": "August",
    "sep": "September",
    "oct": "October",
    "nov": "November",
    "dec": "December",
}

DATE_PATTERN = re.compile(
    r"\b(\d{1,2})(st|nd|rd|th)?\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*",
    re.IGNORECASE,
)
OTHER_BIRTHDAY_PATTERN = re.compile(r"(\w+)['’]s\s+birthday", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"(\d{10,15})")
NAME_PATTERN = re.compile(r"(?:name is|i am|i'm)\s+([a-zA-Z\s]+)", re.IGNORECASE)
PREFERENCE_PATTERN = re.compile(r"(?:like|love)\s+([^.!?]+)", re.IGNORECASE)
WORK_PATTERN = re.compile(
    r"(?:work|job).*?as\s+([^.!?]+)"
    r"|i\s+(?:am|'m)\s+a\s+([^.!?]+)"
    r"|i\s+(?:am|'m)\s+an\s+([^.!?]+)",
    re.IGNORECASE,
)
TRIP_PATTERN = re.compile(r"(?:trip|travel).*?to\s+([^.!?]+)", re.IGNORECASE)

# Curly quotes from phone keyboards become the ASCII apostrophe
APOSTROPHES = str.maketrans({"\u2018": "'", "\u2019": "'"})

# Content used when a trigger fired but no value could be extracted
DATE_PLACEHOLDER = "date mentioned"
PHONE_PLACEHOLDER = "phone number mentioned"
NAME_PLACEHOLDER = "name mentioned"
PREFERENCE_PLACEHOLDER = "preference mentioned"
WORK_PLACEHOLDER = "work mentioned"
TRIP_PLACEHOLDER = "trip mentioned"
PLACEHOLDERS = frozenset(
    {
        DATE_PLACEHOLDER,
        PHONE_PLACEHOLDER,
        NAME_PLACEHOLDER,
        PREFERENCE_PLACEHOLDER,
        WORK_PLACEHOLDER,
        TRIP_PLACEHOLDER,
    }
)


def normalize_text(text: str) -> str:
    """Replace typographic apostrophes with ASCII ones."""
    return text.translate(APOSTROPHES)


def is_placeholder(fact: ClassifiedFact) -> bool:
    """True when the fact names a topic but carries no value."""
    return fact.content in PLACEHOLDERS


def normalize_date(raw: str) -> str:
    """Normalize '15th sept' to '15th September'."""
    match = DATE_PATTERN.search(raw)
    if not match:
        return raw.strip()
    day, suffix, month = match.groups()
    return f"{day}{(suffix or '').lower()} {MONTHS[month.lower()[:3]]}"


def _tokens(text: str) -> frozenset[str]:
    return frozenset(re.findall(r"[a-z0-9]+", text.lower()))


def _mentions_self_intro(lowered: str) -> bool:
    return "i am" in lowered or "i'm" in lowered


@dataclass(frozen=True)
class ExtractionRule:
    """One row of the rule table: a trigger and its extractor."""

    data_type: DataType
    trigger: Callable[[str], bool]
    extract: Callable[[str], ClassifiedFact]


def _extract_birthday(text: str) -> ClassifiedFact:
    date_match = DATE_PATTERN.search(text)
    raw_date = date_match.group(0) if date_match else None
    content = normalize_date(raw_date) if raw_date else DATE_PLACEHOLDER
    keywords = frozenset({"birthday"}) | _tokens(content)

    other = OTHER_BIRTHDAY_PATTERN.search(text)
    if other:
        name = other.group(1)
        name = name[:1].upper() + name[1:]
        return ClassifiedFact(
            data_type=DataType.BIRTHDAY,
            subject=name,
            content=content,
            keywords=keywords,
            source_date=raw_date,
            person=name,
        )

    return ClassifiedFact(
        data_type=DataType.BIRTHDAY,
        content=content,
        keywords=keywords,
        source_date=raw_date,
    )


def _extract_phone(text: str) -> ClassifiedFact:
    match = PHONE_PATTERN.search(text)
    return ClassifiedFact(
        data_type=DataType.PHONE,
        content=match.group(1) if match else PHONE_PLACEHOLDER,
        keywords=frozenset({"phone", "number"}),
    )


def _extract_name(text: str) -> ClassifiedFact:
    match = NAME_PATTERN.search(text)
    name = match.group(1).strip() if match else ""
    return ClassifiedFact(
        data_type=DataType.NAME,
        content=name or NAME_PLACEHOLDER,
        keywords=frozenset({"name"}),
    )


def _extract_preference(text: str) -> ClassifiedFact:
    match = PREFERENCE_PATTERN.search(text)
    preference = match.group(1).strip() if match else ""
    return ClassifiedFact(
        data_type=DataType.PREFERENCE,
        content=preference or PREFERENCE_PLACEHOLDER,
        keywords=frozenset({"like", "love"}),
    )


def _is_work(lowered: str) -> bool:
    if "work" in lowered or "job" in lowered:
        return True
    return _mentions_self_intro(lowered) and "a " not in lowered and "an " not in lowered


def _extract_work(text: str) -> ClassifiedFact:
    match = WORK_PATTERN.search(text)
    work = ""
    if match:
        work = (match.group(1) or match.group(2) or match.group(3) or "").strip()
    return ClassifiedFact(
        data_type=DataType.WORK,
        content=work or WORK_PLACEHOLDER,
        keywords=frozenset({"work", "job"}),
    )


def _extract_trip(text: str) -> ClassifiedFact:
    match = TRIP_PATTERN.search(text)
    destination = match.group(1).strip() if match else ""
    return ClassifiedFact(
        data_type=DataType.TRIP,
        content=destination or TRIP_PLACEHOLDER,
        keywords=frozenset({"trip", "travel"}),
    )


# Order is precedence: the first rule whose trigger fires wins.
RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(
        DataType.BIRTHDAY,
        lambda t: "birthday" in t or "born" in t,
        _extract_birthday,
    ),
    ExtractionRule(
        DataType.PHONE,
        lambda t: "phone" in t or "number" in t,
        _extract_phone,
    ),
    ExtractionRule(
        DataType.NAME,
        lambda t: "name is" in t or _mentions_self_intro(t),
        _extract_name,
    ),
    ExtractionRule(
        DataType.PREFERENCE,
        lambda t: "like" in t or "love" in t,
        _extract_preference,
    ),
    ExtractionRule(DataType.WORK, _is_work, _extract_work),
    ExtractionRule(
        DataType.TRIP,
        lambda t: "trip" in t or "travel" in t,
        _extract_trip,
    ),
)


def classify(text: str) -> ClassifiedFact:
    """Classify an utterance with the rule table.

    Pure and total: unmatched text becomes an ``other`` fact holding the
    text, with apostrophes normalized.
    """
    text = normalize_text(text)
    lowered = text.lower()
    for rule in RULES:
        if rule.trigger(lowered):
            return rule.extract(text)
    return ClassifiedFact(data_type=DataType.OTHER, content=text)


EXTRACTION_PROMPT = """Extract structured data from this message: "{message}"

Return ONLY a JSON object with this shape:
{{
  "dataType": "birthday|phone|name|preference|work|identity|trip|event|other",
  "subject": "self|<other person's name>",
  "extractedData": "clean extracted value",
  "keywords": ["key", "words"],
  "date": "extracted date if any, else null",
  "person": "other person's name if the message is about someone else, else null"
}}

Rules:
1. If it's about the user (me/my/I), set subject to "self" and person to null
2. If it's about someone else (Adam's, John's), set subject and person to that name
3. Extract only the meaningful value, never the full sentence
4. Birthdays: just the date, month written in full ("15th September")
5. Preferences: just the thing they like
6. Work: just the job title or role
7. Names: just the name
8. Keywords are lowercase

Examples:
- "my birthday is on 15th sept" -> {{"dataType": "birthday", "subject": "self", "extractedData": "15th September", "keywords": ["birthday", "15th", "september"], "date": "15th September", "person": null}}
- "Adam's birthday is on 8th august" -> {{"dataType": "birthday", "subject": "Adam", "extractedData": "8th August", "keywords": ["birthday", "8th", "august"], "date": "8th August", "person": "Adam"}}
- "I like pineapple" -> {{"dataType": "preference", "subject": "self", "extractedData": "pineapple", "keywords": ["like", "pineapple"], "date": null, "person": null}}
"""


class LLMFactClassifier:
    """Classifies facts with an LLM, falling back to the rule table."""

    def __init__(
        self,
        client: LLMClient,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            client: LLM client used for completions.
            json_logger: Optional structured logger for fallback events.
        """
        self.client = client
        self.json_logger = json_logger

    async def classify(
        self, text: str, history: list[str] | None = None
    ) -> ClassifiedFact:
        """Classify an utterance. Never raises.

        Args:
            text: The utterance to classify.
            history: Recent utterances, passed to the model as context only.

        Returns:
            The structured fact from the model, or the rule-based one when
            the call fails or the reply is malformed.
        """
        prompt = EXTRACTION_PROMPT.format(message=text.replace('"', "'"))
        if history:
            context = "\n".join(f"- {line}" for line in history)
            prompt += f"\nRecent messages (context only, do not extract from them):\n{context}\n"

        try:
            content = await self.client.complete(prompt)
        except Exception as e:
            logger.warning(f"LLM classification failed: {e!r}")
            return self._fallback(text, str(e) or type(e).__name__)

        fact = self._parse_response(content)
        if fact is None:
            return self._fallback(text, "unparseable response")
        return fact

    def _fallback(self, text: str, reason: str) -> ClassifiedFact:
        if self.json_logger is not None:
            self.json_logger.log("classifier_fallback", error=reason)
        return classify(text)

    def _parse_response(self, content: str) -> ClassifiedFact | None:
        """Parse the model reply into a ClassifiedFact.

        Args:
            content: The raw LLM response.

        Returns:
            The parsed fact, or None when the reply doesn't match the shape.
        """
        json_str = content.strip()
        if json_str.startswith("```"):
            # Drop markdown fences around the payload
            lines = [line for line in json_str.split("\n") if not line.startswith("```")]
            json_str = "\n".join(lines)

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse classification response: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning("Invalid classification response: not an object")
            return None

        value = _clean_str(data.get("extractedData"))
        if not value:
            logger.warning("Invalid classification response: missing extractedData")
            return None

        data_type = DataType.parse(data.get("dataType"))
        person = _clean_str(data.get("person"))
        subject = _clean_str(data.get("subject")) or SELF
        if subject.lower() == SELF:
            subject = SELF
        if person is None and subject != SELF:
            person = subject
        subject = person or SELF

        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            keywords = []

        return ClassifiedFact(
            data_type=data_type,
            subject=subject,
            content=value,
            keywords=frozenset(str(k).lower() for k in keywords if str(k).strip()),
            source_date=_clean_str(data.get("date")),
            person=person,
        )


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none"):
        return None
    return text
