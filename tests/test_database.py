"""Tests for database: transactions and row mapping, against a mocked psycopg2 connection."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from database import Database
from errors import PersistenceError
from models import UserStats
from tests.conftest import make_result


def _stats_row(**overrides):
    row = {
        "user_id": "user-1", "total_quizzes": 2, "total_questions": 6, "correct_answers": 4,
        "total_points": 40, "level": 1, "xp": 40, "current_streak": 2, "best_streak": 2,
        "perfect_scores": 0, "perfect_streak": 0, "daily_streak": 1, "weekly_streak": 1,
        "monthly_streak": 1, "created_quizzes": 0, "category_quizzes": {"geography": 2},
        "difficulty_quizzes": {}, "theme_quizzes": {}, "time_quizzes": {},
        "question_type_stats": {}, "last_played_at": None, "quiz_history": ["r0"],
    }
    row.update(overrides)
    return row


def _group_row(**overrides):
    row = {
        "id": "g1", "name": "Book club", "description": None, "badge": None,
        "creator_id": "user-1", "visibility": "public", "join_type": "open",
        "member_count": 3, "total_quizzes": 2, "average_score": 75, "total_points": 900,
        "plays": 4, "created_at": None, "updated_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def conn():
    with patch("database.psycopg2.connect") as connect:
        connection = MagicMock()
        connect.return_value = connection
        yield connection


@pytest.fixture
def cursor(conn):
    return conn.cursor.return_value


@pytest.fixture
def db(conn):
    return Database("postgresql://test/quiz")


class TestTransaction:

    def test_commit_on_success(self, db, conn, cursor):
        with db.transaction() as cur:
            cur.execute("SELECT 1")
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        cursor.close.assert_called_once()

    def test_driver_error_becomes_persistence_error(self, db, conn, cursor):
        cursor.execute.side_effect = psycopg2.Error("connection reset")
        with pytest.raises(PersistenceError) as exc:
            db.get_user("user-1")
        assert "connection reset" not in str(exc.value)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_failed_rollback_still_raises_persistence_error(self, db, conn, cursor):
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")
        with pytest.raises(PersistenceError):
            db.get_user("user-1")
        conn.rollback.assert_called_once()

    def test_other_errors_roll_back_and_propagate(self, db, conn):
        with pytest.raises(KeyError):
            with db.transaction():
                raise KeyError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_initialize_runs_every_statement_in_one_transaction(self, db, conn, cursor):
        db.initialize()
        assert cursor.execute.call_count == 7
        conn.commit.assert_called_once()


class TestStats:

    def test_missing_row_reads_as_zeros(self, db, cursor):
        cursor.fetchone.return_value = None
        assert db.get_stats("user-9") == UserStats(user_id="user-9")

    def test_row_mapping(self, db, cursor):
        cursor.fetchone.return_value = _stats_row()
        stats = db.get_stats("user-1")
        assert stats.total_quizzes == 2
        assert stats.category_quizzes == {"geography": 2}
        assert stats.quiz_history == ["r0"]

    def test_record_submission_is_one_transaction(self, db, conn, cursor, three_question_quiz):
        cursor.fetchone.return_value = _stats_row()
        result = make_result(id=None, answers={"q1": "Paris", "q2": "True"})

        saved, before, after = db.record_submission("user-1", three_question_quiz, result)

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        assert saved.id
        assert saved.user_id == "user-1"
        assert before.total_quizzes == 2
        assert after.total_quizzes == 3
        assert after.total_points == 60
        assert after.category_quizzes == {"geography": 3}
        assert after.quiz_history == ["r0", saved.id]

    def test_failed_stats_write_rolls_back_the_result(self, db, conn, cursor, three_question_quiz):
        cursor.fetchone.return_value = _stats_row()
        cursor.execute.side_effect = [None, None, None, psycopg2.Error("deadlock")]
        with pytest.raises(PersistenceError):
            db.record_submission("user-1", three_question_quiz, make_result(id=None))
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_leaderboard_ranks_and_accuracy(self, db, cursor):
        cursor.fetchall.return_value = [
            {"username": "ana", "total_points": 300, "total_quizzes": 5,
             "correct_answers": 2, "total_questions": 3},
            {"username": "bo", "total_points": 100, "total_quizzes": 2,
             "correct_answers": 0, "total_questions": 0},
        ]
        board = db.get_leaderboard()
        assert [(e.rank, e.name, e.accuracy) for e in board] == [(1, "ana", 67), (2, "bo", 0)]


class TestQuizzes:

    def test_delete_reports_missing_quiz(self, db, cursor):
        cursor.rowcount = 0
        assert db.delete_quiz("nope") is False

    def test_create_credits_the_author(self, db, conn, cursor, three_question_quiz):
        cursor.fetchone.return_value = {
            "id": "quiz-1", "title": "Mixed bag", "description": None,
            "questions": [{"id": "q1", "type": "text", "question": "Q?", "options": None,
                           "correct_answer": "x", "explanation": None, "points": 10,
                           "time_limit": None}],
            "theme": "green", "difficulty": "beginner", "time_limit": None,
            "category": "Geography", "tags": [], "is_public": True, "shared_with_groups": [],
            "user_id": "user-1", "created_at": None, "updated_at": None,
            "plays": 0, "average_score": 0,
        }
        three_question_quiz.user_id = "user-1"
        quiz = db.create_quiz(three_question_quiz)

        assert quiz.questions[0].correct_answer == "x"
        assert cursor.execute.call_count == 2
        assert "created_quizzes" in cursor.execute.call_args_list[1][0][0]
        conn.commit.assert_called_once()


class TestGroups:

    def test_join_counts_only_new_members(self, db, cursor):
        cursor.rowcount = 0
        assert db.join_group("g1", "user-2") is False
        assert cursor.execute.call_count == 1

    def test_group_stats_include_rank(self, db, cursor):
        cursor.fetchone.side_effect = [_group_row(), {"rank": 3}]
        stats = db.get_group_stats("g1")
        assert stats.rank == 3
        assert stats.total_points == 900
        assert stats.member_count == 3

    def test_group_stats_for_unknown_group(self, db, cursor):
        cursor.fetchone.return_value = None
        assert db.get_group_stats("missing") is None
