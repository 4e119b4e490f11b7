"""Tests for the conflict and confirmation engine."""

from unittest.mock import AsyncMock, Mock

import pytest

from keepsake.dialogue import (
    Confirmation,
    ConfirmationEngine,
    EngineState,
    SubmitStatus,
    acknowledgement,
    parse_confirmation,
)
from keepsake.llm import confirmation_template
from keepsake.memory import ClassifiedFact, DataType, InMemoryFactStore
from keepsake.session import SessionState


def birthday(content: str, person: str | None = None) -> ClassifiedFact:
    return ClassifiedFact(
        data_type=DataType.BIRTHDAY,
        subject=person or "self",
        content=content,
        keywords=frozenset({"birthday"}),
        person=person,
    )


@pytest.fixture
def store() -> InMemoryFactStore:
    return InMemoryFactStore()


@pytest.fixture
def json_logger() -> Mock:
    return Mock()


@pytest.fixture
def engine(store: InMemoryFactStore, json_logger: Mock) -> ConfirmationEngine:
    return ConfirmationEngine(store, json_logger=json_logger)


@pytest.fixture
def session() -> SessionState:
    return SessionState(sender_id="s1")


class TestParseConfirmation:
    def test_yes_lexicon(self):
        for text in ("yes", "Y", "yeah", "sure", "ok", " Okay. ", "YES!"):
            assert parse_confirmation(text) is Confirmation.YES, text

    def test_no_lexicon(self):
        for text in ("no", "n", "Nope", "nah"):
            assert parse_confirmation(text) is Confirmation.NO, text

    def test_anything_else_unclear(self):
        for text in ("maybe", "yes please", "my birthday is 1st Jan", ""):
            assert parse_confirmation(text) is Confirmation.UNCLEAR, text


class TestAcknowledgement:
    def test_self(self):
        assert acknowledgement(birthday("15th September")) == "gotcha, your birthday is 15th September"

    def test_third_party(self):
        assert (
            acknowledgement(birthday("8th August", person="Adam"))
            == "gotcha, Adam's birthday is 8th August"
        )

    def test_third_party_preference(self):
        fact = ClassifiedFact(
            data_type=DataType.PREFERENCE, subject="Mia", content="jazz", person="Mia"
        )
        assert acknowledgement(fact) == "gotcha, Mia likes jazz"

    def test_other_type(self):
        fact = ClassifiedFact(data_type=DataType.EVENT, content="wedding on Saturday")
        assert acknowledgement(fact) == "gotcha, wedding on Saturday"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_new_series_commits(
        self,
        engine: ConfirmationEngine,
        store: InMemoryFactStore,
        session: SessionState,
        json_logger: Mock,
    ):
        result = await engine.submit(session, birthday("26th February"))

        assert result.status is SubmitStatus.COMMITTED
        assert result.reply == "gotcha, your birthday is 26th February"
        stored = store.most_recent("s1", DataType.BIRTHDAY)
        assert stored.id == result.fact_id
        assert stored.metadata.context == "personal_information"
        assert stored.metadata.confirmed is False
        assert engine.state(session) is EngineState.IDLE
        json_logger.log_fact.assert_called_once_with(
            "fact_stored", "s1", "birthday", result.fact_id, series="s1_birthday"
        )

    @pytest.mark.asyncio
    async def test_identical_content_skips_confirmation(
        self, engine: ConfirmationEngine, store: InMemoryFactStore, session: SessionState
    ):
        first = await engine.submit(session, birthday("26th February"))
        again = await engine.submit(session, birthday("26th February "))

        assert again.status is SubmitStatus.UNCHANGED
        assert again.fact_id == first.fact_id
        assert again.reply == "gotcha, your birthday is 26th February"
        assert len(store.series("s1", DataType.BIRTHDAY)) == 1
        assert session.pending_update is None

    @pytest.mark.asyncio
    async def test_conflict_parks_update(
        self,
        engine: ConfirmationEngine,
        store: InMemoryFactStore,
        session: SessionState,
        json_logger: Mock,
    ):
        first = await engine.submit(session, birthday("26th February"))
        result = await engine.submit(session, birthday("2nd June"))

        assert result.status is SubmitStatus.AWAITING_CONFIRMATION
        assert result.reply == confirmation_template("birthday", "26th February", "2nd June")
        assert engine.state(session) is EngineState.AWAITING_CONFIRMATION
        assert session.pending_update.existing_id == first.fact_id
        assert session.pending_update.existing_content == "26th February"
        assert session.pending_update.proposed.content == "2nd June"
        # Nothing is written until the sender confirms
        assert store.most_recent("s1", DataType.BIRTHDAY).content == "26th February"
        json_logger.log.assert_called_with(
            "confirmation_requested",
            sender_id="s1",
            data_type="birthday",
            fact_id=first.fact_id,
        )

    @pytest.mark.asyncio
    async def test_self_and_third_party_do_not_conflict(
        self, engine: ConfirmationEngine, session: SessionState
    ):
        await engine.submit(session, birthday("15th September"))
        result = await engine.submit(session, birthday("8th August", person="Adam"))

        assert result.status is SubmitStatus.COMMITTED
        assert session.pending_update is None

    @pytest.mark.asyncio
    async def test_uses_generator_for_prompt(
        self, store: InMemoryFactStore, session: SessionState
    ):
        generator = Mock()
        generator.update_confirmation = AsyncMock(return_value="Update Adam's birthday?")
        engine = ConfirmationEngine(store, generator)

        await engine.submit(session, birthday("1st May", person="Adam"))
        result = await engine.submit(session, birthday("8th August", person="Adam"))

        assert result.reply == "Update Adam's birthday?"
        generator.update_confirmation.assert_awaited_once_with(
            "birthday", "1st May", "8th August", "Adam"
        )

    @pytest.mark.asyncio
    async def test_failed_prompt_leaves_no_pending_update(
        self, store: InMemoryFactStore, session: SessionState
    ):
        generator = Mock()
        generator.update_confirmation = AsyncMock(side_effect=RuntimeError("boom"))
        engine = ConfirmationEngine(store, generator)
        await engine.submit(session, birthday("26th February"))

        with pytest.raises(RuntimeError):
            await engine.submit(session, birthday("2nd June"))

        assert session.pending_update is None
        assert engine.state(session) is EngineState.IDLE


async def park_update(engine: ConfirmationEngine, session: SessionState) -> str:
    """Park a birthday update; returns the existing fact id."""
    first = await engine.submit(session, birthday("26th February"))
    await engine.submit(session, birthday("2nd June"))
    return first.fact_id


class TestResolve:
    @pytest.mark.asyncio
    async def test_yes_overwrites_in_place(
        self,
        engine: ConfirmationEngine,
        store: InMemoryFactStore,
        session: SessionState,
    ):
        pending = await park_update(engine, session)
        resolution = engine.resolve(session, "yes")

        assert resolution.answer is Confirmation.YES
        assert resolution.reply == "✅ Updated! Your birthday has been changed to 2nd June."
        assert resolution.fact_id == pending
        current = store.most_recent("s1", DataType.BIRTHDAY)
        assert current.id == pending
        assert current.content == "2nd June"
        assert current.metadata.confirmed is True
        assert current.metadata.context == "data_update"
        assert len(store.series("s1", DataType.BIRTHDAY)) == 1
        assert session.pending_update is None

    @pytest.mark.asyncio
    async def test_no_keeps_value(
        self,
        engine: ConfirmationEngine,
        store: InMemoryFactStore,
        session: SessionState,
    ):
        await park_update(engine, session)
        resolution = engine.resolve(session, "nope")

        assert resolution.answer is Confirmation.NO
        assert resolution.reply == "👍 No problem! I'll keep your current birthday as is."
        assert store.most_recent("s1", DataType.BIRTHDAY).content == "26th February"
        assert session.pending_update is None

    @pytest.mark.asyncio
    async def test_unclear_reprompts(
        self, engine: ConfirmationEngine, session: SessionState
    ):
        await park_update(engine, session)
        parked = session.pending_update

        resolution = engine.resolve(session, "maybe later")

        assert resolution.answer is Confirmation.UNCLEAR
        assert resolution.reply == (
            'Please reply with "yes" to update or "no" to keep your current birthday.'
        )
        assert session.pending_update is parked

    @pytest.mark.asyncio
    async def test_vanished_fact_is_stored_anew(
        self,
        engine: ConfirmationEngine,
        store: InMemoryFactStore,
        session: SessionState,
    ):
        await park_update(engine, session)
        store.delete_all("s1")

        resolution = engine.resolve(session, "yes")

        current = store.most_recent("s1", DataType.BIRTHDAY)
        assert current.content == "2nd June"
        assert resolution.fact_id == current.id

    @pytest.mark.asyncio
    async def test_third_party_wording(
        self, engine: ConfirmationEngine, session: SessionState
    ):
        await engine.submit(session, birthday("1st May", person="Adam"))
        await engine.submit(session, birthday("8th August", person="Adam"))

        assert engine.resolve(session, "hm").reply == (
            'Please reply with "yes" to update or "no" to keep Adam\'s current birthday.'
        )
        assert engine.resolve(session, "yes").reply == (
            "✅ Updated! Adam's birthday has been changed to 8th August."
        )

    @pytest.mark.asyncio
    async def test_phone_label(self, engine: ConfirmationEngine, session: SessionState):
        phone = ClassifiedFact(data_type=DataType.PHONE, content="9876543210")
        await engine.submit(session, phone)
        await engine.submit(session, ClassifiedFact(data_type=DataType.PHONE, content="1234567890"))

        assert engine.resolve(session, "no").reply == (
            "👍 No problem! I'll keep your current phone number as is."
        )

    def test_without_pending_raises(self, engine: ConfirmationEngine, session: SessionState):
        with pytest.raises(ValueError):
            engine.resolve(session, "yes")
