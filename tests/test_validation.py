"""Tests for validation of quiz, generation, submission, user and group payloads."""

import pytest

from errors import ValidationError
from models import Quiz
from validation import (
    apply_quiz_updates,
    parse_answers,
    parse_generation_request,
    parse_group,
    parse_question,
    parse_quiz,
    parse_time_spent,
    parse_user,
    question_errors,
)


def _quiz_payload(**overrides):
    payload = {
        "title": "Capitals",
        "questions": [
            {"type": "multiple", "question": "Capital of France?",
             "options": ["Paris", "Rome"], "correctAnswer": "Paris"},
        ],
    }
    payload.update(overrides)
    return payload


class TestQuestions:

    def test_camel_case_keys_are_accepted(self):
        q = parse_question({"type": "text", "question": "Longest river?",
                            "correctAnswer": " Nile ", "timeLimit": 30})
        assert q.correct_answer == "Nile"
        assert q.time_limit == 30
        assert q.id

    def test_truefalse_gets_default_options(self):
        q = parse_question({"type": "truefalse", "question": "Water is wet?",
                            "correct_answer": "True"})
        assert q.options == ["True", "False"]

    def test_ranking_needs_a_list(self):
        errors = question_errors({"type": "ranking", "question": "Order these",
                                  "correctAnswer": "A,B"})
        assert "correctAnswer" in errors

    def test_multiple_choice_needs_options(self):
        errors = question_errors({"type": "multiple", "question": "Pick",
                                  "options": ["only"], "correctAnswer": "only"})
        assert "options" in errors

    def test_unknown_type(self):
        assert "type" in question_errors({"type": "essay", "question": "?", "correctAnswer": "x"})

    def test_negative_points(self):
        errors = question_errors({"type": "text", "question": "?", "correctAnswer": "x",
                                  "points": -1})
        assert "points" in errors


class TestQuiz:

    def test_valid_payload_gets_defaults(self):
        quiz = parse_quiz(_quiz_payload())
        assert quiz.title == "Capitals"
        assert quiz.theme == "purple"
        assert quiz.difficulty == "intermediate"
        assert quiz.is_public is True
        assert quiz.id is None

    def test_all_field_errors_are_reported_together(self):
        with pytest.raises(ValidationError) as exc:
            parse_quiz({"title": " ", "questions": [], "theme": "black", "category": "Cooking"})
        assert set(exc.value.fields) == {"title", "questions", "theme", "category"}

    def test_question_errors_are_prefixed(self):
        payload = _quiz_payload(questions=[{"type": "text", "question": ""}])
        with pytest.raises(ValidationError) as exc:
            parse_quiz(payload)
        assert "questions.0.question" in exc.value.fields
        assert "questions.0.correctAnswer" in exc.value.fields

    def test_duplicate_question_ids_are_rejected(self):
        question = {"id": "dup", "type": "text", "question": "Q?", "correctAnswer": "x"}
        payload = _quiz_payload(questions=[question, dict(question, question="Q2?")])
        with pytest.raises(ValidationError) as exc:
            parse_quiz(payload)
        assert "questions.1.id" in exc.value.fields

    def test_questions_without_ids_get_distinct_ones(self):
        question = {"type": "text", "question": "Q?", "correctAnswer": "x"}
        quiz = parse_quiz(_quiz_payload(questions=[question, dict(question)]))
        assert quiz.questions[0].id != quiz.questions[1].id

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            parse_quiz(["title"])


class TestQuizUpdates:

    def test_update_keeps_identity(self):
        quiz = parse_quiz(_quiz_payload())
        quiz.id, quiz.user_id, quiz.plays = "quiz-1", "user-1", 4
        updated = apply_quiz_updates(quiz, {"title": "World capitals", "isPublic": False})
        assert updated.title == "World capitals"
        assert updated.is_public is False
        assert (updated.id, updated.user_id, updated.plays) == ("quiz-1", "user-1", 4)
        assert updated.questions[0].id == quiz.questions[0].id

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            apply_quiz_updates(Quiz(id="q"), {"plays": 100})
        assert "plays" in exc.value.fields

    def test_update_is_revalidated(self):
        quiz = parse_quiz(_quiz_payload())
        with pytest.raises(ValidationError):
            apply_quiz_updates(quiz, {"difficulty": "impossible"})


class TestGenerationRequest:

    def test_defaults(self):
        request = parse_generation_request({"topic": " Volcanoes "})
        assert request.topic == "Volcanoes"
        assert request.number_of_questions == 10
        assert request.question_types == ["multiple", "truefalse"]

    @pytest.mark.parametrize("count", [4, 21, "10", True])
    def test_question_count_bounds(self, count):
        with pytest.raises(ValidationError) as exc:
            parse_generation_request({"topic": "Volcanoes", "numberOfQuestions": count})
        assert "numberOfQuestions" in exc.value.fields

    @pytest.mark.parametrize("count", [5, 20])
    def test_question_count_limits_are_inclusive(self, count):
        assert parse_generation_request({"topic": "x", "number_of_questions": count}) \
            .number_of_questions == count

    def test_duplicate_types_are_collapsed(self):
        request = parse_generation_request({"topic": "x", "questionTypes": ["text", "text", "ranking"]})
        assert request.question_types == ["text", "ranking"]

    def test_unknown_type(self):
        with pytest.raises(ValidationError) as exc:
            parse_generation_request({"topic": "x", "questionTypes": ["essay"]})
        assert "questionTypes" in exc.value.fields


class TestSubmission:

    def test_answers_accept_strings_and_lists(self):
        assert parse_answers({"q1": "Paris", "q2": ["A", "B"]}) == {"q1": "Paris", "q2": ["A", "B"]}

    def test_answers_reject_other_values(self):
        with pytest.raises(ValidationError) as exc:
            parse_answers({"q1": 3})
        assert "answers.q1" in exc.value.fields

    @pytest.mark.parametrize("value", [-1, "12", None, False, float("nan"), float("inf")])
    def test_time_spent_rejects_bad_values(self, value):
        with pytest.raises(ValidationError):
            parse_time_spent(value)

    def test_time_spent_is_float(self):
        assert parse_time_spent(42) == 42.0


class TestUsersAndGroups:

    def test_user_is_normalized(self):
        assert parse_user(" alice ", "Alice@Example.com") == {
            "username": "alice", "email": "alice@example.com"}

    def test_user_errors(self):
        with pytest.raises(ValidationError) as exc:
            parse_user("al", "not-an-email")
        assert set(exc.value.fields) == {"username", "email"}

    def test_group_defaults(self):
        group = parse_group({"name": "Book club"}, creator_id="user-1")
        assert (group.visibility, group.join_type, group.creator_id) == ("public", "open", "user-1")

    def test_group_needs_creator(self):
        with pytest.raises(ValidationError) as exc:
            parse_group({"name": "Book club", "joinType": "closed"}, creator_id=None)
        assert set(exc.value.fields) == {"creatorId", "joinType"}

    def test_error_message_lists_fields(self):
        err = ValidationError("Invalid", {"b": "bad", "a": "worse"})
        assert str(err) == "Invalid (a: worse; b: bad)"
