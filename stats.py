"""Stats aggregate updates: level derivation, period streaks, counters."""

import dataclasses
from datetime import date, datetime, timedelta
from typing import Dict, Optional

import config
from models import Group, GroupStats, Quiz, QuizResult, UserStats
from scoring import accuracy_percent, correct_by_type


def level_for_xp(xp: int) -> int:
    """Each level needs XP_PER_LEVEL more cumulative XP than the last."""
    return max(0, xp) // config.XP_PER_LEVEL + 1


def time_slot(moment: datetime) -> str:
    for slot, (start, end) in config.TIME_SLOT_HOURS.items():
        if start <= moment.hour < end:
            return slot
    return "night"


def _parse_moment(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


# ------------------------------------------------------------------
# Period streaks
# ------------------------------------------------------------------

def _days_apart(previous: date, current: date) -> int:
    return (current - previous).days


def _weeks_apart(previous: date, current: date) -> int:
    prev_monday = previous - timedelta(days=previous.weekday())
    cur_monday = current - timedelta(days=current.weekday())
    return (cur_monday - prev_monday).days // 7


def _months_apart(previous: date, current: date) -> int:
    return (current.year * 12 + current.month) - (previous.year * 12 + previous.month)


def advance_streak(streak: int, periods_apart: Optional[int]) -> int:
    """Next value of a day/week/month streak.

    Same period keeps the streak (at least 1), the following period extends
    it, anything else restarts it.
    """
    if periods_apart is None or periods_apart < 0 or periods_apart > 1:
        return 1
    if periods_apart == 0:
        return max(streak, 1)
    return streak + 1


def _period_streaks(stats: UserStats, played_at: datetime) -> Dict[str, int]:
    last = _parse_moment(stats.last_played_at)
    if last is None:
        return {"daily_streak": 1, "weekly_streak": 1, "monthly_streak": 1}
    prev, cur = last.date(), played_at.date()
    return {
        "daily_streak": advance_streak(stats.daily_streak, _days_apart(prev, cur)),
        "weekly_streak": advance_streak(stats.weekly_streak, _weeks_apart(prev, cur)),
        "monthly_streak": advance_streak(stats.monthly_streak, _months_apart(prev, cur)),
    }


# ------------------------------------------------------------------
# Applying a quiz result
# ------------------------------------------------------------------

def _bump(counter: Dict[str, int], key: Optional[str], amount: int = 1) -> Dict[str, int]:
    updated = dict(counter)
    if key and amount:
        updated[key] = updated.get(key, 0) + amount
    return updated


def apply_result(stats: UserStats, result: QuizResult, quiz: Quiz) -> UserStats:
    """Return the aggregate after one submission. ``stats`` is not modified.

    Counters only ever grow, except the running streaks which restart when the
    player breaks them.
    """
    played_at = _parse_moment(result.completed_at) or datetime.now()
    xp = stats.xp + result.score

    question_types = dict(stats.question_type_stats)
    for qtype, count in correct_by_type(quiz.questions, result.answers).items():
        question_types = _bump(question_types, qtype, count)

    history = list(stats.quiz_history)
    if result.id:
        history.append(result.id)
    history = history[-config.QUIZ_HISTORY_LIMIT:]

    return dataclasses.replace(
        stats,
        total_quizzes=stats.total_quizzes + 1,
        total_questions=stats.total_questions + result.total_questions,
        correct_answers=stats.correct_answers + result.correct_answers,
        total_points=stats.total_points + result.score,
        xp=xp,
        level=level_for_xp(xp),
        current_streak=stats.current_streak + 1 if result.streak > 0 else 0,
        best_streak=max(stats.best_streak, result.streak),
        perfect_scores=stats.perfect_scores + (1 if result.is_perfect else 0),
        perfect_streak=stats.perfect_streak + 1 if result.is_perfect else 0,
        category_quizzes=_bump(
            stats.category_quizzes, config.category_key(quiz.category) if quiz.category else None
        ),
        difficulty_quizzes=_bump(stats.difficulty_quizzes, quiz.difficulty),
        theme_quizzes=_bump(stats.theme_quizzes, quiz.theme),
        time_quizzes=_bump(stats.time_quizzes, time_slot(played_at)),
        question_type_stats=question_types,
        last_played_at=played_at.isoformat(),
        quiz_history=history,
        **_period_streaks(stats, played_at),
    )


def result_accuracy(result: QuizResult) -> int:
    return accuracy_percent(result.correct_answers, result.total_questions)


def group_stats(group: Group, rank: Optional[int] = None) -> GroupStats:
    return GroupStats(
        group_id=group.id,
        member_count=group.member_count,
        total_quizzes=group.total_quizzes,
        total_points=group.total_points,
        average_score=group.average_score,
        rank=rank,
    )
