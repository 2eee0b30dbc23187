"""Scoring engine: per-question correctness, points, streaks and accuracy."""

import math
from datetime import datetime
from typing import Dict, List, Optional

from models import AnswerValue, Question, Quiz, QuizResult


def accuracy_percent(correct: int, total: int) -> int:
    """Rounded percentage of correct answers; 0 when nothing was answered.

    Halves round up (80.5 -> 81), matching how percentages are shown to players.
    """
    if total <= 0:
        return 0
    return int(math.floor(correct * 100 / total + 0.5))


def is_answer_correct(correct_answer: AnswerValue, submitted: Optional[AnswerValue]) -> bool:
    """Compare one submitted answer with the question key.

    Ranking keys (lists) need the exact same order. Otherwise an exact string
    match wins, then a trimmed case-insensitive match for free-text answers.
    Missing or blank answers are always wrong.
    """
    if isinstance(correct_answer, list):
        return isinstance(submitted, list) and list(submitted) == list(correct_answer)

    if not isinstance(submitted, str) or not submitted.strip():
        return False
    if submitted == correct_answer:
        return True
    return submitted.strip().lower() == correct_answer.strip().lower()


def score_submission(
    quiz: Quiz,
    answers: Dict[str, AnswerValue],
    time_spent: float,
    completed_at: Optional[str] = None,
    user_id: Optional[str] = None,
) -> QuizResult:
    """Score one playthrough of ``quiz``.

    Questions are walked in stored order. A correct answer adds the question's
    points and extends the running streak; a wrong or missing one resets the
    running streak but keeps the best run seen so far.
    """
    correct_answers = 0
    earned = 0
    current_streak = 0
    max_streak = 0

    for question in quiz.questions:
        if is_answer_correct(question.correct_answer, answers.get(question.id)):
            correct_answers += 1
            earned += question.points
            current_streak += 1
            max_streak = max(max_streak, current_streak)
        else:
            current_streak = 0

    return QuizResult(
        quiz_id=quiz.id,
        user_id=user_id,
        score=earned,
        total_points=sum(q.points for q in quiz.questions),
        correct_answers=correct_answers,
        total_questions=len(quiz.questions),
        time_spent=time_spent,
        streak=max_streak,
        answers=dict(answers),
        completed_at=completed_at or datetime.now().isoformat(),
    )


def correct_by_type(questions: List[Question], answers: Dict[str, AnswerValue]) -> Dict[str, int]:
    """Count correctly answered questions per question type.

    Returns: {"multiple": 3, "ranking": 1, ...} (types with no correct answer
    are omitted).
    """
    counts: Dict[str, int] = {}
    for q in questions:
        if is_answer_correct(q.correct_answer, answers.get(q.id)):
            counts[q.type] = counts.get(q.type, 0) + 1
    return counts
