"""Conflict detection and the yes/no confirmation that gates overwrites.

A newly classified fact is committed straight away when its series is
empty. When the series already holds a different value, the engine parks a
``PendingUpdate`` on the session and asks the sender to confirm; the next
reply is resolved against it. Identical re-statements are acknowledged
without writing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..llm import confirmation_template
from ..memory.models import ClassifiedFact, DataType, Fact, storage_key
from ..session import PendingUpdate, SessionState

if TYPE_CHECKING:
    from ..llm import ResponseGenerator
    from ..logging import JSONLLogger
    from ..memory.store import FactStore

logger = logging.getLogger(__name__)

YES_WORDS = frozenset({"yes", "y", "yeah", "sure", "ok", "okay"})
NO_WORDS = frozenset({"no", "n", "nope", "nah"})

LABELS = {DataType.PHONE: "phone number"}


def label_for(data_type: DataType) -> str:
    return LABELS.get(data_type, data_type.value)


class Confirmation(str, Enum):
    """A sender's answer to a confirmation prompt."""

    YES = "yes"
    NO = "no"
    UNCLEAR = "unclear"


def parse_confirmation(text: str) -> Confirmation:
    """Match a reply against the strict yes/no lexicon."""
    word = text.strip().lower().strip(" .!?,")
    if word in YES_WORDS:
        return Confirmation.YES
    if word in NO_WORDS:
        return Confirmation.NO
    return Confirmation.UNCLEAR


class EngineState(str, Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class SubmitStatus(str, Enum):
    COMMITTED = "committed"
    UNCHANGED = "unchanged"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


@dataclass(frozen=True)
class SubmitResult:
    """What happened to a submitted fact, and the reply to send."""

    status: SubmitStatus
    reply: str
    fact_id: str | None = None


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a reply against a pending update."""

    answer: Confirmation
    reply: str
    pending: PendingUpdate
    fact_id: str | None = None


def acknowledgement(fact: ClassifiedFact) -> str:
    """'gotcha, ...' reply for a stored statement."""
    value = fact.content
    if fact.is_self:
        templates = {
            DataType.BIRTHDAY: f"gotcha, your birthday is {value}",
            DataType.PHONE: f"gotcha, your phone number is {value}",
            DataType.NAME: f"gotcha, your name is {value}",
            DataType.PREFERENCE: f"gotcha, you like {value}",
            DataType.TRIP: f"gotcha, your trip is to {value}",
            DataType.WORK: f"gotcha, you work as {value}",
            DataType.IDENTITY: f"gotcha, you're {value}",
        }
        return templates.get(fact.data_type, f"gotcha, {value}")

    person = fact.person
    templates = {
        DataType.BIRTHDAY: f"gotcha, {person}'s birthday is {value}",
        DataType.PHONE: f"gotcha, {person}'s phone number is {value}",
        DataType.NAME: f"gotcha, {person}'s name is {value}",
        DataType.PREFERENCE: f"gotcha, {person} likes {value}",
    }
    return templates.get(fact.data_type, f"gotcha, {person}'s {fact.data_type.value} is {value}")


def _owner(fact: ClassifiedFact) -> str:
    return "your" if fact.is_self else f"{fact.person}'s"


class ConfirmationEngine:
    """Commits facts, or parks them until the sender confirms."""

    def __init__(
        self,
        store: FactStore,
        generator: ResponseGenerator | None = None,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.json_logger = json_logger

    def state(self, session: SessionState) -> EngineState:
        if session.pending_update is None:
            return EngineState.IDLE
        return EngineState.AWAITING_CONFIRMATION

    def _log(self, event: str, sender_id: str, fact: ClassifiedFact, fact_id: str | None) -> None:
        if self.json_logger is None:
            return
        self.json_logger.log_fact(
            event,
            sender_id,
            fact.data_type.value,
            fact_id,
            series=storage_key(sender_id, fact.data_type, fact.subject, fact.person),
        )

    def _put(
        self, sender_id: str, fact: ClassifiedFact, context: str, confirmed: bool = False
    ) -> str:
        fact_id = self.store.put(
            Fact(
                sender_id=sender_id,
                data_type=fact.data_type,
                content=fact.content,
                metadata=fact.to_metadata(context=context, confirmed=confirmed),
            )
        )
        self._log("fact_stored", sender_id, fact, fact_id)
        return fact_id

    async def _confirmation_prompt(self, existing: str, fact: ClassifiedFact) -> str:
        label = label_for(fact.data_type)
        if self.generator is None:
            return confirmation_template(label, existing, fact.content, fact.person)
        return await self.generator.update_confirmation(
            label, existing, fact.content, fact.person
        )

    async def submit(
        self,
        session: SessionState,
        fact: ClassifiedFact,
        *,
        context: str = "personal_information",
        update_context: str = "data_update",
    ) -> SubmitResult:
        """Commit a fact, or ask to confirm replacing the current value.

        Args:
            session: The sender's session; receives the pending update.
            fact: The classified fact.
            context: Metadata context for a direct write.
            update_context: Metadata context recorded if an update is confirmed.
        """
        sender_id = session.sender_id
        existing = self.store.most_recent(sender_id, fact.data_type, fact.person)

        if existing is None:
            fact_id = self._put(sender_id, fact, context)
            return SubmitResult(SubmitStatus.COMMITTED, acknowledgement(fact), fact_id)

        if existing.content.strip() == fact.content.strip():
            return SubmitResult(SubmitStatus.UNCHANGED, acknowledgement(fact), existing.id)

        prompt = await self._confirmation_prompt(existing.content, fact)
        assert existing.id is not None
        session.pending_update = PendingUpdate(
            existing_id=existing.id,
            existing_content=existing.content,
            proposed=fact,
            context=update_context,
        )
        if self.json_logger is not None:
            self.json_logger.log(
                "confirmation_requested",
                sender_id=sender_id,
                data_type=fact.data_type.value,
                fact_id=existing.id,
            )
        return SubmitResult(SubmitStatus.AWAITING_CONFIRMATION, prompt, existing.id)

    def resolve(self, session: SessionState, text: str) -> Resolution:
        """Resolve a reply against the session's pending update.

        Raises:
            ValueError: If the session has no pending update.
        """
        pending = session.pending_update
        if pending is None:
            raise ValueError(f"No pending update for {session.sender_id}")

        fact = pending.proposed
        label = label_for(fact.data_type)
        owner = _owner(fact)
        answer = parse_confirmation(text)

        if answer is Confirmation.UNCLEAR:
            return Resolution(
                answer,
                f'Please reply with "yes" to update or "no" to keep {owner} current {label}.',
                pending,
            )

        session.pending_update = None
        fact_id: str | None = None

        if answer is Confirmation.YES:
            fact_id = self._apply(session.sender_id, pending)
            subject = "Your" if fact.is_self else f"{fact.person}'s"
            reply = f"✅ Updated! {subject} {label} has been changed to {fact.content}."
        else:
            reply = f"👍 No problem! I'll keep {owner} current {label} as is."

        if self.json_logger is not None:
            self.json_logger.log(
                "confirmation_resolved",
                sender_id=session.sender_id,
                data_type=fact.data_type.value,
                fact_id=fact_id or pending.existing_id,
                answer=answer.value,
            )
        return Resolution(answer, reply, pending, fact_id)

    def _apply(self, sender_id: str, pending: PendingUpdate) -> str:
        fact = pending.proposed
        metadata = fact.to_metadata(context=pending.context, confirmed=True)
        if self.store.overwrite(pending.existing_id, fact.content, metadata):
            self._log("fact_updated", sender_id, fact, pending.existing_id)
            return pending.existing_id

        logger.warning(
            f"Fact {pending.existing_id} vanished before update, storing a new one"
        )
        return self._put(sender_id, fact, pending.context, confirmed=True)
