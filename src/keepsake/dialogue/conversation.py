"""Per-sender conversation state machine.

States run ``awaiting_name -> awaiting_name_reply -> conversing``. Each
inbound message is handled under the sender's lock, so one sender's
messages are processed strictly in arrival order while different senders
proceed independently.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Protocol

from ..llm import ResponseGenerator
from ..logging import JSONLLogger, get_logger
from ..memory.answerer import QuestionAnswerer
from ..memory.classifier import is_placeholder, normalize_text
from ..memory.models import ClassifiedFact, DataType
from ..memory.store import FactStore
from ..session import ConversationState, SessionManager, SessionState
from .confirmation import Confirmation, ConfirmationEngine, SubmitStatus
from .intent import DELETE_DATA, Intent, IntentRouter
from .results import AskQuestion, NoAction, Outcome, Reply

logger = logging.getLogger(__name__)

DELETED_REPLY = "🗑️ All your data has been deleted successfully!"
ASK_NAME_AGAIN_REPLY = "👍 No problem! Please tell me your name."


class MessageSender(Protocol):
    """Delivers replies to a sender. Failures propagate to the caller."""

    async def send(self, sender_id: str, text: str) -> None: ...


class ConversationStateMachine:
    """Sequences name collection, confirmations, questions and statements."""

    def __init__(
        self,
        store: FactStore,
        sender: MessageSender,
        sessions: SessionManager | None = None,
        router: IntentRouter | None = None,
        generator: ResponseGenerator | None = None,
        answerer: QuestionAnswerer | None = None,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.sender = sender
        self.sessions = sessions or SessionManager()
        self.router = router or IntentRouter()
        self.generator = generator or ResponseGenerator()
        self.answerer = answerer or QuestionAnswerer(store)
        self.json_logger = json_logger or get_logger()
        self.engine = ConfirmationEngine(store, self.generator, self.json_logger)

    async def handle_message(
        self, sender_id: str, text: str, display_name: str | None = None
    ) -> Outcome:
        """Handle one inbound message and send the reply, if any.

        Args:
            sender_id: Opaque sender identifier.
            text: The message text.
            display_name: The sender's name as shown by the transport.

        Returns:
            The reply that was sent, or NoAction.

        Raises:
            Exception: Whatever the MessageSender raises when delivery fails.
        """
        text = normalize_text(text)
        async with self.sessions.get_lock(sender_id):
            started = time.monotonic()
            session = self.sessions.get_session(sender_id)
            if display_name:
                session.display_name = display_name

            self.json_logger.log_message(
                sender_id, session.state.value, message_length=len(text)
            )
            history = self.sessions.get_utterances(sender_id)
            self.sessions.add_utterance(sender_id, text)

            outcome = await self._dispatch(session, text, history)
            if isinstance(outcome, AskQuestion):
                outcome = Reply(self.answerer.answer(sender_id, outcome.question))

            self.sessions.save(sender_id)

            if isinstance(outcome, Reply):
                try:
                    await self.sender.send(sender_id, outcome.text)
                except Exception as e:
                    self.json_logger.log("delivery_failed", sender_id=sender_id, error=str(e))
                    raise

            self.json_logger.log(
                "message_handled",
                sender_id=sender_id,
                state=session.state.value,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )
            return outcome

    async def _dispatch(
        self, session: SessionState, text: str, history: list[str]
    ) -> Outcome:
        if session.state is ConversationState.AWAITING_NAME:
            prompt = await self.generator.name_prompt()
            self.sessions.set_state(session.sender_id, ConversationState.AWAITING_NAME_REPLY)
            return Reply(prompt)

        if session.state is ConversationState.AWAITING_NAME_REPLY:
            return await self._handle_name_reply(session, text, history)

        return await self._handle_conversation(session, text, history)

    async def _handle_name_reply(
        self, session: SessionState, text: str, history: list[str]
    ) -> Outcome:
        if session.pending_update is not None:
            resolution = self.engine.resolve(session, text)
            if resolution.answer is Confirmation.YES:
                self.sessions.set_state(session.sender_id, ConversationState.CONVERSING)
            elif resolution.answer is Confirmation.NO:
                return Reply(ASK_NAME_AGAIN_REPLY)
            return Reply(resolution.reply)

        name = await self._extract_name(text, history)
        result = await self.engine.submit(
            session, name, context="name_collection", update_context="name_update"
        )
        if result.status is SubmitStatus.AWAITING_CONFIRMATION:
            return Reply(result.reply)

        self.sessions.set_state(session.sender_id, ConversationState.CONVERSING)
        return Reply(await self.generator.greeting(name.content, text))

    async def _handle_conversation(
        self, session: SessionState, text: str, history: list[str]
    ) -> Outcome:
        sender_id = session.sender_id
        if session.pending_update is not None:
            return Reply(self.engine.resolve(session, text).reply)

        routed = await self.router.route(text, history=history)
        self.json_logger.log("intent_routed", sender_id=sender_id, intent=routed.intent.value)

        if routed.intent is Intent.COMMAND and routed.command == DELETE_DATA:
            count = self.store.delete_all(sender_id)
            self.json_logger.log("data_deleted", sender_id=sender_id, count=count)
            return Reply(DELETED_REPLY)

        if routed.intent is Intent.GREETING:
            return Reply(await self.generator.greeting(self._name_for(session), text))

        if routed.intent is Intent.DATA_QUESTION:
            return AskQuestion(text)

        if routed.intent is Intent.STATEMENT and routed.fact is not None:
            result = await self.engine.submit(session, routed.fact)
            return Reply(result.reply)

        return NoAction()

    async def _extract_name(self, text: str, history: list[str]) -> ClassifiedFact:
        fact = await self.router.classify(text, history=history)
        name = ""
        if fact.data_type is DataType.NAME and not is_placeholder(fact):
            name = fact.content
        if not name:
            name = re.sub(r"[^\w\s'-]", "", text).strip() or text.strip()
        return ClassifiedFact(
            data_type=DataType.NAME,
            content=name,
            keywords=frozenset({"name"}),
        )

    def _name_for(self, session: SessionState) -> str:
        fact = self.store.most_recent(session.sender_id, DataType.NAME)
        if fact is not None:
            return fact.content
        return session.display_name or "there"
