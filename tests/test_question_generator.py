"""Tests for question_generator: response parsing, retries and provider fallback."""

import json

import pytest

import config
import question_generator
from errors import UpstreamGenerationError
from models import GenerationRequest
from question_generator import (
    AnthropicProvider,
    GenerationProvider,
    QuestionGenerator,
    _RetryableError,
    build_user_prompt,
    create_provider,
    parse_generated_questions,
)


class _Fatal(Exception):
    pass


class ScriptedProvider(GenerationProvider):
    """Plays back a list of responses; exceptions in the list are raised."""

    name = "scripted"
    fatal_errors = (_Fatal,)

    def __init__(self, script, name="scripted"):
        super().__init__(api_key="test", model="test-model", timeout=1)
        self.name = name
        self.script = list(script)
        self.calls = 0

    def _send(self, system_prompt, user_prompt):
        self.calls += 1
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


def _questions_json(count):
    return json.dumps({"questions": [
        {"type": "multiple", "question": f"Question {i}?", "options": ["A", "B", "C", "D"],
         "correctAnswer": "B", "explanation": "Because."}
        for i in range(count)
    ]})


@pytest.fixture(autouse=True)
def no_waiting(monkeypatch):
    sleeps = []
    monkeypatch.setattr(config, "RATE_LIMIT_SECONDS", 0)
    monkeypatch.setattr(config, "MAX_RETRIES", 3)
    monkeypatch.setattr(config, "RETRY_BACKOFF_SECONDS", 2.0)
    monkeypatch.setattr(question_generator.time, "sleep", sleeps.append)
    return sleeps


@pytest.fixture
def request_of_five():
    return GenerationRequest(topic="Volcanoes", number_of_questions=5,
                             difficulty="beginner", question_types=["multiple"])


class TestParseGeneratedQuestions:

    def test_valid_response(self):
        questions = parse_generated_questions(_questions_json(5), requested=5)
        assert len(questions) == 5
        assert questions[0].correct_answer == "B"
        assert len({q.id for q in questions}) == 5

    def test_model_ids_are_replaced(self):
        text = json.dumps({"questions": [
            {"id": "1", "type": "text", "question": "Q?", "correctAnswer": "x"},
            {"id": "1", "type": "text", "question": "Q2?", "correctAnswer": "y"},
        ]})
        questions = parse_generated_questions(text, requested=2)
        assert questions[0].id != "1"
        assert questions[0].id != questions[1].id

    def test_code_fences_are_stripped(self):
        text = "```json\n" + _questions_json(5) + "\n```"
        assert len(parse_generated_questions(text, requested=5)) == 5

    def test_extra_questions_are_dropped(self):
        assert len(parse_generated_questions(_questions_json(8), requested=5)) == 5

    def test_short_batch_is_kept(self):
        assert len(parse_generated_questions(_questions_json(3), requested=5)) == 3

    def test_malformed_json(self):
        with pytest.raises(UpstreamGenerationError, match="Invalid JSON"):
            parse_generated_questions("not json at all", requested=5, provider="openai")

    @pytest.mark.parametrize("text", ['{"questions": []}', "[]", '{"items": [1]}'])
    def test_no_questions(self, text):
        with pytest.raises(UpstreamGenerationError, match="No questions"):
            parse_generated_questions(text, requested=5)

    def test_one_invalid_question_rejects_the_batch(self):
        data = json.loads(_questions_json(4))
        data["questions"].append({"type": "ranking", "question": "Order", "correctAnswer": "A"})
        with pytest.raises(UpstreamGenerationError, match="questions.4.correctAnswer"):
            parse_generated_questions(json.dumps(data), requested=5)


class TestPrompt:

    def test_prompt_mentions_request(self, request_of_five):
        prompt = build_user_prompt(request_of_five)
        assert 'Generate 5 quiz questions about "Volcanoes"' in prompt
        assert "beginner" in prompt
        assert "Multiple choice" in prompt


class TestProviderRetries:

    def test_transient_error_is_retried(self, no_waiting):
        provider = ScriptedProvider([_RetryableError("overloaded"), "ok"])
        assert provider.complete("sys", "user") == "ok"
        assert provider.calls == 2
        assert no_waiting == [2.0]

    def test_backoff_is_exponential_without_trailing_sleep(self, no_waiting):
        provider = ScriptedProvider([_RetryableError("busy")] * 3)
        with pytest.raises(UpstreamGenerationError, match="failed after 3 retries"):
            provider.complete("sys", "user")
        assert provider.calls == 3
        assert no_waiting == [2.0, 4.0]

    def test_fatal_error_is_not_retried(self, no_waiting):
        provider = ScriptedProvider([_Fatal("bad key"), "never"])
        with pytest.raises(UpstreamGenerationError, match="rejected") as exc:
            provider.complete("sys", "user")
        assert provider.calls == 1
        assert exc.value.provider == "scripted"
        assert no_waiting == []

    def test_empty_response(self):
        provider = ScriptedProvider(["   "])
        with pytest.raises(UpstreamGenerationError, match="empty response"):
            provider.complete("sys", "user")


class TestQuestionGenerator:

    def test_first_provider_wins(self, request_of_five):
        first = ScriptedProvider([_questions_json(5)], name="first")
        second = ScriptedProvider([_questions_json(5)], name="second")
        questions = QuestionGenerator([first, second]).generate_questions(request_of_five)
        assert len(questions) == 5
        assert second.calls == 0

    def test_falls_back_on_failure(self, request_of_five):
        first = ScriptedProvider(["not json"], name="first")
        second = ScriptedProvider([_questions_json(5)], name="second")
        questions = QuestionGenerator([first, second]).generate_questions(request_of_five)
        assert len(questions) == 5
        assert (first.calls, second.calls) == (1, 1)

    def test_last_error_is_raised_when_all_fail(self, request_of_five):
        first = ScriptedProvider([_Fatal("denied")], name="first")
        second = ScriptedProvider(['{"questions": []}'], name="second")
        with pytest.raises(UpstreamGenerationError, match="No questions") as exc:
            QuestionGenerator([first, second]).generate_questions(request_of_five)
        assert exc.value.provider == "second"

    def test_no_providers(self, request_of_five):
        generator = QuestionGenerator([])
        assert not generator.available
        with pytest.raises(UpstreamGenerationError, match="No AI provider"):
            generator.generate_questions(request_of_five)

    def test_from_config_skips_providers_without_keys(self, monkeypatch):
        monkeypatch.setattr(config, "AI_PROVIDER", "openai")
        monkeypatch.setattr(config, "AI_FALLBACK", True)
        monkeypatch.setattr(config, "PROVIDER_API_KEYS",
                            {"anthropic": "sk-ant", "openai": "", "gemini": ""})
        generator = QuestionGenerator.from_config()
        assert [p.name for p in generator.providers] == ["anthropic"]

    def test_from_config_without_fallback(self, monkeypatch):
        monkeypatch.setattr(config, "AI_PROVIDER", "openai")
        monkeypatch.setattr(config, "AI_FALLBACK", False)
        monkeypatch.setattr(config, "PROVIDER_API_KEYS",
                            {"anthropic": "sk-ant", "openai": "", "gemini": ""})
        assert QuestionGenerator.from_config().providers == []


class TestCreateProvider:

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown AI provider"):
            create_provider("mistral", api_key="x")

    def test_missing_key(self):
        with pytest.raises(UpstreamGenerationError, match="OPENAI_API_KEY"):
            create_provider("openai", api_key="")

    def test_anthropic_defaults(self):
        provider = create_provider("anthropic", api_key="sk-ant-test")
        assert isinstance(provider, AnthropicProvider)
        assert provider.model == config.ANTHROPIC_MODEL
        assert provider.timeout == config.GENERATION_TIMEOUT_SECONDS
