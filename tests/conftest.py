"""Shared fixtures: quizzes, results and stats snapshots."""

import pytest

from badges import build_badge_catalog
from group_badges import build_group_badge_catalog
from models import Question, Quiz, QuizResult, UserStats


def make_question(qid, qtype="multiple", correct="Paris", options=None, points=10):
    if options is None and qtype == "multiple":
        options = ["London", "Paris", "Rome", "Berlin"]
    if options is None and qtype == "truefalse":
        options = ["True", "False"]
    return Question(id=qid, type=qtype, question=f"Question {qid}?", options=options,
                    correct_answer=correct, points=points)


def make_result(**overrides):
    values = dict(
        id="r1", quiz_id="quiz-1", user_id="user-1", score=20, total_points=30,
        correct_answers=2, total_questions=3, time_spent=95.0, streak=1,
        answers={}, completed_at="2025-03-10T09:30:00",
    )
    values.update(overrides)
    return QuizResult(**values)


@pytest.fixture
def three_question_quiz():
    """Multiple choice, true/false and ranking, 10 points each."""
    return Quiz(
        id="quiz-1",
        title="Mixed bag",
        questions=[
            make_question("q1", "multiple", "Paris"),
            make_question("q2", "truefalse", "True"),
            make_question("q3", "ranking", ["A", "B", "C"], options=["C", "A", "B"]),
        ],
        category="Geography",
        difficulty="beginner",
        theme="green",
    )


@pytest.fixture
def empty_stats():
    return UserStats(user_id="user-1")


@pytest.fixture
def catalog():
    return build_badge_catalog()


@pytest.fixture
def group_catalog():
    return build_group_badge_catalog()
