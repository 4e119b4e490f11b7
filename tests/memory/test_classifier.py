"""Tests for fact classification."""

from unittest.mock import AsyncMock, Mock

import pytest

from keepsake.memory import ClassifiedFact, DataType, LLMFactClassifier, classify
from keepsake.memory.classifier import RULES, is_placeholder, normalize_date, normalize_text


class TestNormalizeDate:
    def test_abbreviated_month(self):
        assert normalize_date("15th sept") == "15th September"

    def test_without_suffix(self):
        assert normalize_date("3 MAR") == "3 March"

    def test_no_date_returns_input(self):
        assert normalize_date(" soon ") == "soon"


class TestNormalizeText:
    def test_curly_apostrophes(self):
        assert normalize_text("What‘s Adam’s birthday") == "What's Adam's birthday"

    def test_plain_text_unchanged(self):
        assert normalize_text("I'm Sam") == "I'm Sam"


class TestRuleTable:
    def test_precedence_order(self):
        """Rules are checked birthday first, trip last."""
        assert [rule.data_type for rule in RULES] == [
            DataType.BIRTHDAY,
            DataType.PHONE,
            DataType.NAME,
            DataType.PREFERENCE,
            DataType.WORK,
            DataType.TRIP,
        ]


class TestClassify:
    def test_third_party_birthday(self):
        fact = classify("Adam's birthday is on 8th August")

        assert fact.data_type is DataType.BIRTHDAY
        assert fact.subject == "Adam"
        assert fact.person == "Adam"
        assert fact.content == "8th August"
        assert fact.source_date == "8th August"

    def test_self_birthday(self):
        fact = classify("my birthday is on 15th sept")

        assert fact.data_type is DataType.BIRTHDAY
        assert fact.subject == "self"
        assert fact.person is None
        assert fact.content == "15th September"
        assert fact.source_date == "15th sept"
        assert {"birthday", "15th", "september"} <= fact.keywords

    def test_born_triggers_birthday(self):
        fact = classify("I was born on 2nd June")
        assert fact.data_type is DataType.BIRTHDAY
        assert fact.content == "2nd June"

    def test_birthday_without_date(self):
        fact = classify("my birthday is coming up")
        assert fact.content == "date mentioned"
        assert is_placeholder(fact)

    def test_extracted_value_is_not_placeholder(self):
        assert not is_placeholder(classify("my birthday is on 15th sept"))

    def test_third_party_name_is_capitalized(self):
        fact = classify("adam's birthday is 8th aug")
        assert fact.person == "Adam"

    def test_phone(self):
        fact = classify("my phone number is 9876543210")
        assert fact.data_type is DataType.PHONE
        assert fact.content == "9876543210"
        assert fact.keywords == frozenset({"phone", "number"})

    def test_phone_without_digits(self):
        fact = classify("do you want my number")
        assert fact.content == "phone number mentioned"

    def test_name(self):
        fact = classify("my name is John")
        assert fact.data_type is DataType.NAME
        assert fact.content == "John"

    def test_name_from_intro(self):
        assert classify("I'm Sarah").content == "Sarah"

    def test_curly_apostrophe_intro(self):
        fact = classify("I’m Sam")
        assert fact.data_type is DataType.NAME
        assert fact.content == "Sam"

    def test_curly_apostrophe_third_party(self):
        fact = classify("Adam’s birthday is on 8th August")
        assert fact.person == "Adam"
        assert fact.content == "8th August"

    def test_intro_with_article_is_still_a_name(self):
        """The name rule fires before the work rule for 'I am a ...'."""
        fact = classify("I am a teacher")
        assert fact.data_type is DataType.NAME
        assert fact.content == "a teacher"

    def test_preference(self):
        fact = classify("I like pineapple")
        assert fact.data_type is DataType.PREFERENCE
        assert fact.subject == "self"
        assert fact.content == "pineapple"

    def test_preference_stops_at_punctuation(self):
        assert classify("I love hiking. It's fun").content == "hiking"

    def test_work(self):
        fact = classify("I work as a software engineer")
        assert fact.data_type is DataType.WORK
        assert fact.content == "a software engineer"

    def test_work_without_role(self):
        assert classify("work is busy").content == "work mentioned"

    def test_trip(self):
        fact = classify("planning a trip to Paris")
        assert fact.data_type is DataType.TRIP
        assert fact.content == "Paris"

    def test_unmatched_is_other_verbatim(self):
        fact = classify("the sky is blue today")
        assert fact == ClassifiedFact(data_type=DataType.OTHER, content="the sky is blue today")

    def test_birthday_beats_phone(self):
        fact = classify("my birthday is 1st Jan and my number is 9876543210")
        assert fact.data_type is DataType.BIRTHDAY

    def test_phone_beats_preference(self):
        assert classify("I love my phone").data_type is DataType.PHONE

    def test_deterministic(self):
        texts = [
            "Adam's birthday is on 8th August",
            "I like pineapple",
            "my phone number is 9876543210",
            "random chatter",
        ]
        for text in texts:
            assert classify(text) == classify(text)


@pytest.fixture
def client() -> AsyncMock:
    """Create a mock LLM client."""
    return AsyncMock()


@pytest.fixture
def json_logger() -> Mock:
    return Mock()


@pytest.fixture
def classifier(client: AsyncMock, json_logger: Mock) -> LLMFactClassifier:
    return LLMFactClassifier(client, json_logger=json_logger)


class TestLLMFactClassifier:
    @pytest.mark.asyncio
    async def test_parses_response(self, classifier: LLMFactClassifier, client: AsyncMock):
        client.complete = AsyncMock(
            return_value=(
                '{"dataType": "birthday", "subject": "Adam", "extractedData": "8th August", '
                '"keywords": ["Birthday", "August"], "date": "8th August", "person": "Adam"}'
            )
        )

        fact = await classifier.classify("Adam's bday is aug 8")

        assert fact.data_type is DataType.BIRTHDAY
        assert fact.subject == "Adam"
        assert fact.person == "Adam"
        assert fact.content == "8th August"
        assert fact.keywords == frozenset({"birthday", "august"})
        assert fact.source_date == "8th August"

    @pytest.mark.asyncio
    async def test_strips_markdown_fences(
        self, classifier: LLMFactClassifier, client: AsyncMock
    ):
        client.complete = AsyncMock(
            return_value=(
                "```json\n"
                '{"dataType": "preference", "subject": "self", "extractedData": "pineapple", '
                '"keywords": ["like"], "date": null, "person": null}\n'
                "```"
            )
        )

        fact = await classifier.classify("pineapple is my favourite")

        assert fact.data_type is DataType.PREFERENCE
        assert fact.subject == "self"
        assert fact.person is None
        assert fact.content == "pineapple"

    @pytest.mark.asyncio
    async def test_subject_without_person_becomes_person(
        self, classifier: LLMFactClassifier, client: AsyncMock
    ):
        client.complete = AsyncMock(
            return_value='{"dataType": "phone", "subject": "Mia", "extractedData": "5551234567"}'
        )

        fact = await classifier.classify("Mia's number is 5551234567")

        assert fact.subject == "Mia"
        assert fact.person == "Mia"

    @pytest.mark.asyncio
    async def test_unknown_type_is_other(
        self, classifier: LLMFactClassifier, client: AsyncMock
    ):
        client.complete = AsyncMock(
            return_value='{"dataType": "mood", "subject": "self", "extractedData": "happy"}'
        )

        fact = await classifier.classify("I'm feeling happy")
        assert fact.data_type is DataType.OTHER

    @pytest.mark.asyncio
    async def test_history_is_context(self, classifier: LLMFactClassifier, client: AsyncMock):
        client.complete = AsyncMock(
            return_value='{"dataType": "name", "subject": "self", "extractedData": "Sam"}'
        )

        await classifier.classify("Sam", history=["hello there"])

        prompt = client.complete.await_args.args[0]
        assert "- hello there" in prompt
        assert '"Sam"' in prompt

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(
        self, classifier: LLMFactClassifier, client: AsyncMock, json_logger: Mock
    ):
        """A failing LLM still satisfies the rule-based contract."""
        client.complete = AsyncMock(side_effect=ConnectionError("down"))

        other = await classifier.classify("Adam's birthday is on 8th August")
        own = await classifier.classify("my birthday is on 15th sept")

        assert other == classify("Adam's birthday is on 8th August")
        assert other.person == "Adam"
        assert own.content == "15th September"
        assert own.subject == "self"
        json_logger.log.assert_called_with("classifier_fallback", error="down")

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, classifier: LLMFactClassifier, client: AsyncMock):
        client.complete = AsyncMock(side_effect=TimeoutError())

        fact = await classifier.classify("I like pineapple")
        assert fact.content == "pineapple"

    @pytest.mark.asyncio
    async def test_malformed_json_falls_back(
        self, classifier: LLMFactClassifier, client: AsyncMock, json_logger: Mock
    ):
        client.complete = AsyncMock(return_value="sure! it's a birthday")

        fact = await classifier.classify("my birthday is on 15th sept")

        assert fact == classify("my birthday is on 15th sept")
        json_logger.log.assert_called_once_with(
            "classifier_fallback", error="unparseable response"
        )

    @pytest.mark.asyncio
    async def test_missing_value_falls_back(
        self, classifier: LLMFactClassifier, client: AsyncMock
    ):
        client.complete = AsyncMock(
            return_value='{"dataType": "preference", "extractedData": null}'
        )

        fact = await classifier.classify("I like pineapple")
        assert fact == classify("I like pineapple")

    @pytest.mark.asyncio
    async def test_non_object_falls_back(
        self, classifier: LLMFactClassifier, client: AsyncMock
    ):
        client.complete = AsyncMock(return_value='["birthday"]')

        fact = await classifier.classify("the sky is blue")
        assert fact.data_type is DataType.OTHER
