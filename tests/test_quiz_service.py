"""Tests for QuizService with a mocked Database and generator."""

import dataclasses
from unittest.mock import MagicMock

import pytest

from database import Database
from errors import NotFoundError, UpstreamGenerationError, ValidationError
from models import Group, GroupMember, GroupStats, Question, User, UserStats
from question_generator import QuestionGenerator
from quiz_service import QuizService
from stats import apply_result


def _quiz_payload():
    return {
        "title": "Capitals",
        "questions": [{"type": "multiple", "question": "Capital of France?",
                       "options": ["Paris", "Rome"], "correctAnswer": "Paris"}],
    }


@pytest.fixture
def db():
    db = MagicMock(spec=Database)
    db.get_user.return_value = User(id="user-1", username="ana", email="ana@example.com")
    db.get_user_by_username.return_value = None
    db.get_results.return_value = []
    return db


@pytest.fixture
def generator():
    return MagicMock(spec=QuestionGenerator)


@pytest.fixture
def service(db, generator, catalog, group_catalog):
    return QuizService(db, generator, catalog=catalog, group_catalog=group_catalog)


class TestUsers:

    def test_create_user(self, service, db):
        db.create_user.return_value = User(id="u2", username="bo", email="bo@example.com")
        service.create_user("bo", "Bo@Example.com")
        db.create_user.assert_called_once_with("bo", "bo@example.com")

    def test_duplicate_username(self, service, db):
        db.get_user_by_username.return_value = User(id="u2", username="ana")
        with pytest.raises(ValidationError) as exc:
            service.create_user("Ana", "ana2@example.com")
        assert "username" in exc.value.fields
        db.create_user.assert_not_called()

    def test_unknown_user(self, service, db):
        db.get_user.return_value = None
        with pytest.raises(NotFoundError):
            service.get_user("ghost")


class TestQuizzes:

    def test_create_quiz_sets_author(self, service, db):
        db.create_quiz.side_effect = lambda quiz: quiz
        quiz = service.create_quiz("user-1", _quiz_payload())
        assert quiz.user_id == "user-1"
        db.create_quiz.assert_called_once()

    def test_invalid_quiz_is_rejected_before_any_lookup(self, service, db):
        with pytest.raises(ValidationError):
            service.create_quiz("user-1", {"title": ""})
        db.get_user.assert_not_called()
        db.create_quiz.assert_not_called()

    def test_delete_unknown_quiz(self, service, db):
        db.delete_quiz.return_value = False
        with pytest.raises(NotFoundError):
            service.delete_quiz("missing")

    def test_update_unknown_quiz(self, service, db):
        db.get_quiz.return_value = None
        with pytest.raises(NotFoundError):
            service.update_quiz("missing", {"title": "New"})
        db.update_quiz.assert_not_called()


class TestGeneration:

    def test_generated_quiz_is_saved(self, service, db, generator):
        generator.generate_questions.return_value = [
            Question(id=f"g{i}", type="truefalse", question=f"Fact {i}?",
                     options=["True", "False"], correct_answer="True")
            for i in range(5)
        ]
        db.create_quiz.side_effect = lambda quiz: quiz

        quiz = service.generate_quiz("user-1", {"topic": "volcanoes", "numberOfQuestions": 5})

        assert quiz.title == "Volcanoes"
        assert len(quiz.questions) == 5
        assert quiz.tags == ["volcanoes"]

    def test_failed_generation_writes_nothing(self, service, db, generator):
        generator.generate_questions.side_effect = UpstreamGenerationError("timeout", "openai")
        with pytest.raises(UpstreamGenerationError):
            service.generate_quiz("user-1", {"topic": "volcanoes"})
        db.create_quiz.assert_not_called()

    def test_bad_request_never_reaches_generator(self, service, generator):
        with pytest.raises(ValidationError):
            service.generate_questions({"topic": "x", "numberOfQuestions": 50})
        generator.generate_questions.assert_not_called()

    def test_no_generator_configured(self, db):
        service = QuizService(db)
        with pytest.raises(UpstreamGenerationError):
            service.generate_questions({"topic": "volcanoes"})


class TestSubmit:

    @pytest.fixture
    def recording_db(self, db, three_question_quiz):
        db.get_quiz.return_value = three_question_quiz

        def record(user_id, quiz, result):
            saved = dataclasses.replace(result, id="r-new")
            before = UserStats(user_id=user_id)
            return saved, before, apply_result(before, saved, quiz)

        db.record_submission.side_effect = record
        return db

    def test_first_submission_unlocks_badges(self, service, recording_db):
        answers = {"q1": "Paris", "q2": "True", "q3": ["A", "B", "C"]}
        outcome = service.submit("user-1", "quiz-1", answers, 42)

        assert outcome.result.id == "r-new"
        assert outcome.result.score == 30
        assert outcome.stats.total_quizzes == 1
        assert {"quizzes_1", "first_quiz", "first_perfect", "speed_60"} <= outcome.new_badges
        assert outcome.new_badges <= outcome.earned_badges

    def test_replay_does_not_reannounce_result_badges(self, service, db, three_question_quiz):
        db.get_quiz.return_value = three_question_quiz
        state = {"stats": UserStats(user_id="user-1"), "results": []}

        def record(user_id, quiz, result):
            saved = dataclasses.replace(result, id=f"r{len(state['results']) + 1}")
            before = state["stats"]
            state["stats"] = apply_result(before, saved, quiz)
            state["results"].insert(0, saved)
            return saved, before, state["stats"]

        db.record_submission.side_effect = record
        db.get_results.side_effect = lambda user_id: list(state["results"])
        answers = {"q1": "Paris", "q2": "True", "q3": ["A", "B", "C"]}

        first = service.submit("user-1", "quiz-1", answers, 42)
        second = service.submit("user-1", "quiz-1", answers, 42)

        assert {"first_perfect", "speed_perfect", "speed_60"} <= first.new_badges
        assert not {"first_perfect", "speed_perfect", "speed_60", "speed_600"} & second.new_badges
        assert {"first_perfect", "speed_60"} <= second.earned_badges
        assert "quizzes_2" in second.new_badges

    def test_unknown_quiz(self, service, db):
        db.get_quiz.return_value = None
        with pytest.raises(NotFoundError):
            service.submit("user-1", "missing", {}, 10)
        db.record_submission.assert_not_called()

    def test_unknown_user(self, service, db):
        db.get_user.return_value = None
        with pytest.raises(NotFoundError):
            service.submit("ghost", "quiz-1", {}, 10)
        db.record_submission.assert_not_called()

    def test_malformed_submission_is_rejected_first(self, service, db):
        with pytest.raises(ValidationError):
            service.submit("user-1", "quiz-1", {"q1": 7}, 10)
        with pytest.raises(ValidationError):
            service.submit("user-1", "quiz-1", {}, -5)
        db.get_user.assert_not_called()
        db.get_quiz.assert_not_called()


class TestGroups:

    def test_invite_only_group_cannot_be_joined(self, service, db):
        db.get_group.return_value = Group(id="g1", name="Club", creator_id="u0",
                                          join_type="invite_only")
        with pytest.raises(ValidationError):
            service.join_group("g1", "user-1")
        db.join_group.assert_not_called()

    def test_admin_can_add_member(self, service, db):
        db.get_group.return_value = Group(id="g1", name="Club", creator_id="u0",
                                          join_type="invite_only")
        db.get_member.return_value = GroupMember(group_id="g1", user_id="u0", role="admin")
        db.join_group.return_value = True
        assert service.add_member("g1", "u0", "user-1") is True

    def test_plain_member_cannot_add_members(self, service, db):
        db.get_group.return_value = Group(id="g1", name="Club", creator_id="u0")
        db.get_member.return_value = GroupMember(group_id="g1", user_id="u3", role="member")
        with pytest.raises(ValidationError):
            service.add_member("g1", "u3", "user-1")

    def test_creator_cannot_leave(self, service, db):
        db.get_group.return_value = Group(id="g1", name="Club", creator_id="user-1")
        db.get_member.return_value = GroupMember(group_id="g1", user_id="user-1", role="creator")
        with pytest.raises(ValidationError):
            service.leave_group("g1", "user-1")
        db.leave_group.assert_not_called()

    def test_non_member_cannot_share(self, service, db):
        db.get_group.return_value = Group(id="g1", name="Club", creator_id="u0")
        db.get_member.return_value = None
        with pytest.raises(ValidationError):
            service.share_quiz("g1", "quiz-1", "user-1")
        db.share_quiz.assert_not_called()

    def test_group_badges(self, service, db):
        db.get_group_stats.return_value = GroupStats(group_id="g1", member_count=5, rank=1)
        earned = service.get_group_badges("g1")
        assert {"group_first", "group_members_5", "group_legend"} <= earned

    def test_group_badges_for_unknown_group(self, service, db):
        db.get_group_stats.return_value = None
        with pytest.raises(NotFoundError):
            service.get_group_badges("missing")
