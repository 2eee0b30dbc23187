"""Badge definitions and check logic for gamification.

The catalog is generated from tier tables: every threshold in a family becomes
one rule whose id is ``{family}_{threshold}``. Base and extended tables are
merged before generation so an id can never be emitted twice.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import config
from models import QuizResult, UserStats
from scoring import accuracy_percent

logger = logging.getLogger(__name__)

Condition = Callable[[UserStats, Optional[QuizResult]], bool]

BADGE_CATEGORIES = (
    "quizzes", "questions", "streak", "perfect", "speed", "level", "xp",
    "accuracy", "creator", "category", "daily", "weekly", "monthly", "special",
)

BADGE_ICONS = (
    "Trophy", "Star", "Flame", "Zap", "Award", "Clock", "Sparkles", "Brain",
    "Target", "TrendingUp", "CheckCircle", "BarChart3", "Activity", "Timer",
    "Medal", "Crown", "Gem", "Shield", "Sword", "Book", "GraduationCap",
    "Rocket", "Lightbulb", "Heart", "Diamond", "Coins", "Gift",
)


@dataclass(frozen=True)
class BadgeRule:
    id: str
    category: str
    name: str
    description: str
    icon: str
    condition: Condition = field(compare=False, repr=False)
    tier: Optional[int] = None


class BadgeCatalog:
    """Immutable, ordered collection of rules indexed by id."""

    def __init__(self, rules: Iterable[BadgeRule]):
        self._rules: Tuple[BadgeRule, ...] = tuple(rules)
        self._by_id: Dict[str, BadgeRule] = {}
        for rule in self._rules:
            if rule.id in self._by_id:
                raise ValueError(f"Duplicate badge id: {rule.id}")
            self._by_id[rule.id] = rule

    def __iter__(self) -> Iterator[BadgeRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, badge_id: object) -> bool:
        return badge_id in self._by_id

    def get(self, badge_id: str) -> Optional[BadgeRule]:
        return self._by_id.get(badge_id)

    def ids(self) -> List[str]:
        return [r.id for r in self._rules]

    def by_category(self, category: str) -> List[BadgeRule]:
        return [r for r in self._rules if r.category == category]


# ---------------------------------------------------------------------------
# Tier tables
# ---------------------------------------------------------------------------

BADGE_TIERS: Dict[str, List[int]] = {
    "quizzes": [1, 2, 3, 5, 7, 10, 15, 20, 25, 30, 40, 50, 75, 100, 150, 200, 250, 500, 750, 1000],
    "questions": [5, 10, 15, 20, 25, 30, 40, 50, 75, 100, 150, 200, 250, 300, 400, 500, 750, 1000, 2500, 5000],
    "correct_answers": [5, 10, 15, 20, 25, 30, 40, 50, 75, 100, 150, 200, 250, 300, 400, 500, 750, 1000, 2500, 5000],
    "streak": [2, 3, 4, 5, 6, 7, 8, 9, 10, 12, 15, 18, 20, 25, 30, 35, 40, 50, 75, 100],
    "perfect_scores": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 15, 20, 25, 50, 100],
    "speed": [600, 480, 360, 300, 240, 180, 150, 120, 105, 90, 75, 60, 50, 45, 40, 35, 30, 25, 20, 15],
    "level": [2, 3, 4, 5, 6, 7, 8, 9, 10, 12, 15, 18, 20, 25, 30, 35, 40, 45, 50, 60, 70, 80, 90, 100, 150],
    "xp": [100, 250, 500, 750, 1000, 1500, 2000, 2500, 3000, 4000, 5000, 7500, 10000, 15000, 20000,
           25000, 30000, 40000, 50000, 75000, 100000, 150000, 200000, 250000, 500000],
    "accuracy": [40, 45, 50, 55, 60, 65, 70, 75, 80, 82, 85, 87, 90, 92, 95, 96, 97, 98, 99, 100],
    "created_quizzes": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 15, 20, 25, 30, 40, 50, 75, 100, 250, 500],
    "total_points": [100, 250, 500, 750, 1000, 1500, 2000, 2500, 3000, 4000, 5000, 7500, 10000,
                     15000, 20000, 25000, 30000, 40000, 50000, 100000],
    "daily_streak": [1, 2, 3, 4, 5, 6, 7, 10, 14, 21, 30, 60, 90, 180, 365],
    "weekly_streak": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10],
    "monthly_streak": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10],
}

EXTENDED_TIERS: Dict[str, List[int]] = {
    "quizzes": [1500, 2000, 2500, 3000, 3500, 4000, 4500, 5000, 6000, 7000, 8000, 9000, 10000],
    "questions": [7500, 10000, 15000, 20000, 25000, 30000, 40000, 50000, 75000, 100000],
    "level": [200, 250, 300, 350, 400, 450, 500, 600, 700, 800, 900, 1000, 1250, 1500],
    "perfect_scores": [150, 200, 250, 300, 400, 500, 750, 1000],
    "streak": [125, 150, 200, 250, 300, 400, 500, 750, 1000],
    "speed": [12, 10, 8, 6, 5, 4, 3, 2, 1],
    "xp": [750000, 1000000, 1500000, 2000000, 2500000, 3000000, 4000000, 5000000, 7500000, 10000000],
}

CATEGORY_COUNTS = [1, 2, 3, 5, 7, 10, 12, 15, 20, 25, 30, 40, 50, 75, 100]
DIFFICULTY_COUNTS = [1, 3, 5, 10, 15, 20, 25, 30, 40, 50]
THEME_COUNTS = [1, 3, 5, 10, 15, 20, 25, 30]
TIME_SLOT_COUNTS = [1, 3, 5, 10, 15, 20, 25, 30]
QUESTION_TYPE_COUNTS = [1, 5, 10, 25, 50, 100, 250, 500]
SCORE_MILESTONES = [50, 75, 100, 125, 150, 175, 200, 250, 300, 350, 400, 450, 500, 600, 700, 800, 900, 1000]

CATEGORY_ICONS: Dict[str, Tuple[str, ...]] = {
    "quizzes": ("Trophy", "Award", "Medal", "Crown"),
    "questions": ("Target", "CheckCircle", "Brain", "Book"),
    "streak": ("Flame", "Zap", "TrendingUp", "Rocket"),
    "perfect": ("Star", "Gem", "Diamond", "Crown"),
    "speed": ("Clock", "Timer", "Zap", "Rocket"),
    "level": ("GraduationCap", "TrendingUp", "Crown", "Award"),
    "xp": ("Coins", "Gem", "Diamond", "Crown"),
    "accuracy": ("Target", "CheckCircle", "Star", "Medal"),
    "creator": ("Sparkles", "Lightbulb", "Rocket", "Gift"),
    "category": ("Book", "Target", "Star", "Award"),
    "daily": ("CheckCircle", "Star", "Trophy", "Award"),
    "weekly": ("TrendingUp", "Award", "Crown", "Medal"),
    "monthly": ("Crown", "Gem", "Diamond", "Trophy"),
    "special": ("Gift", "Heart", "Sparkles", "Crown"),
}

TIER_NAMES: Dict[str, Tuple[str, ...]] = {
    "quizzes": ("First Steps", "Getting Started", "Quiz Enthusiast", "Quiz Lover", "Quiz Master",
                "Quiz Expert", "Quiz Legend", "Quiz Champion", "Quiz God"),
    "questions": ("Beginner", "Learner", "Student", "Scholar", "Expert", "Master", "Grandmaster",
                  "Legend", "Mythic"),
    "streak": ("Warm Up", "On Fire", "Unstoppable", "Inferno", "Blazing", "Volcanic", "Legendary",
               "Mythical", "Divine"),
    "perfect": ("Perfect Start", "Flawless", "Impeccable", "Perfect Master", "Perfectionist",
                "Perfect Legend", "Perfect God"),
    "speed": ("Quick", "Fast", "Rapid", "Swift", "Lightning", "Sonic", "Instant"),
    "level": ("Rising Star", "Rising Talent", "Rising Expert", "Rising Master", "Rising Legend",
              "Rising Champion", "Elite", "Elite Master", "Elite Legend", "Elite God"),
    "xp": ("XP Collector", "XP Hunter", "XP Gatherer", "XP Master", "XP Expert", "XP Legend",
           "XP Champion", "XP God", "XP Deity"),
    "accuracy": ("Aim True", "Precise", "Accurate", "Sharpshooter", "Marksman", "Sniper",
                 "Perfect Aim", "Divine Aim", "Godlike Aim"),
    "creator": ("Creator", "Content Creator", "Quiz Builder", "Quiz Architect", "Quiz Designer",
                "Quiz Mastermind", "Quiz Genius", "Quiz Deity"),
}


def merge_tiers(base: Sequence[int], extended: Sequence[int] = (), descending: bool = False) -> List[int]:
    """Union of two threshold tables, ordered from easiest to hardest."""
    return sorted(set(base) | set(extended), reverse=descending)


def _plural(n: int, word: str, suffix: str = "s") -> str:
    return f"{n:,} {word}{suffix if n != 1 else ''}"


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

def _at_least(getter: Callable[[UserStats], int], threshold: int) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        return getter(stats) >= threshold
    return check


def _counter_at_least(counter: str, key: str, threshold: int) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        return getattr(stats, counter).get(key, 0) >= threshold
    return check


def _faster_than(seconds: float) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        return result is not None and result.time_spent < seconds
    return check


def _single_quiz_score(points: int) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        return result is not None and result.score >= points
    return check


def _accuracy_at_least(percent: int) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        if stats.total_questions <= 0:
            return False
        return accuracy_percent(stats.correct_answers, stats.total_questions) >= percent
    return check


def _covers_all(counter: str, keys: Sequence[str]) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        values = getattr(stats, counter)
        return all(values.get(k, 0) > 0 for k in keys)
    return check


def _perfect_result(under_seconds: Optional[float] = None) -> Condition:
    def check(stats: UserStats, result: Optional[QuizResult] = None) -> bool:
        if result is None or not result.is_perfect:
            return False
        return under_seconds is None or result.time_spent < under_seconds
    return check


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def _tier_rules(
    prefix: str,
    category: str,
    thresholds: Sequence[int],
    condition: Callable[[int], Condition],
    label: Callable[[int], str],
    description: Callable[[int], str],
    names_key: Optional[str] = None,
) -> List[BadgeRule]:
    """One rule per threshold; tier = position in the sequence (1-based)."""
    names = TIER_NAMES.get(names_key or "", ())
    icons = CATEGORY_ICONS[category]
    rules = []
    for index, threshold in enumerate(thresholds):
        rules.append(BadgeRule(
            id=f"{prefix}_{threshold}",
            category=category,
            name=names[index] if index < len(names) else label(threshold),
            description=description(threshold),
            icon=icons[index % len(icons)],
            condition=condition(threshold),
            tier=index + 1,
        ))
    return rules


def _counter_rules(
    family: str,
    category: str,
    counter: str,
    keys: Sequence[str],
    counts: Sequence[int],
    label: Callable[[str, int], str],
    description: Callable[[str, int], str],
    key_of: Callable[[str], str] = lambda k: k,
) -> List[BadgeRule]:
    """Per-key progressions such as ``category_science_10``."""
    icons = CATEGORY_ICONS[category]
    rules = []
    for display in keys:
        key = key_of(display)
        for index, count in enumerate(counts):
            rules.append(BadgeRule(
                id=f"{family}_{key}_{count}",
                category=category,
                name=label(display, index + 1),
                description=description(display, count),
                icon=icons[index % len(icons)],
                condition=_counter_at_least(counter, key, count),
                tier=index + 1,
            ))
    return rules


def _progression_rules() -> List[BadgeRule]:
    t, ext = BADGE_TIERS, EXTENDED_TIERS
    rules: List[BadgeRule] = []

    rules += _tier_rules(
        "quizzes", "quizzes", merge_tiers(t["quizzes"], ext["quizzes"]),
        lambda n: _at_least(lambda s: s.total_quizzes, n),
        lambda n: f"Completed {n:,} Quizzes",
        lambda n: f"Complete {_plural(n, 'quiz', 'zes')}",
        names_key="quizzes",
    )
    rules += _tier_rules(
        "questions", "questions", merge_tiers(t["questions"], ext["questions"]),
        lambda n: _at_least(lambda s: s.total_questions, n),
        lambda n: f"Answered {n:,} Questions",
        lambda n: f"Answer {_plural(n, 'question')}",
        names_key="questions",
    )
    rules += _tier_rules(
        "correct", "questions", merge_tiers(t["correct_answers"]),
        lambda n: _at_least(lambda s: s.correct_answers, n),
        lambda n: f"{n:,} Correct Answers",
        lambda n: f"Get {_plural(n, 'answer')} correct",
        names_key="questions",
    )
    rules += _tier_rules(
        "streak", "streak", merge_tiers(t["streak"], ext["streak"]),
        lambda n: _at_least(lambda s: s.best_streak, n),
        lambda n: f"{n:,} Streak",
        lambda n: f"Get {_plural(n, 'correct answer')} in a row",
        names_key="streak",
    )
    rules += _tier_rules(
        "perfect", "perfect", merge_tiers(t["perfect_scores"], ext["perfect_scores"]),
        lambda n: _at_least(lambda s: s.perfect_scores, n),
        lambda n: f"{_plural(n, 'Perfect Score')}",
        lambda n: f"Get {_plural(n, 'perfect score')}",
        names_key="perfect",
    )
    rules += _tier_rules(
        "speed", "speed", merge_tiers(t["speed"], ext["speed"], descending=True),
        _faster_than,
        lambda n: f"Complete in {n}s",
        lambda n: f"Complete a quiz in under {_plural(n, 'second')}",
        names_key="speed",
    )
    rules += _tier_rules(
        "level", "level", merge_tiers(t["level"], ext["level"]),
        lambda n: _at_least(lambda s: s.level, n),
        lambda n: f"Level {n:,}",
        lambda n: f"Reach level {n:,}",
        names_key="level",
    )
    rules += _tier_rules(
        "xp", "xp", merge_tiers(t["xp"], ext["xp"]),
        lambda n: _at_least(lambda s: s.xp, n),
        lambda n: f"{n:,} XP",
        lambda n: f"Earn {n:,} XP",
        names_key="xp",
    )
    rules += _tier_rules(
        "accuracy", "accuracy", merge_tiers(t["accuracy"]),
        _accuracy_at_least,
        lambda n: f"{n}% Accuracy",
        lambda n: f"Maintain {n}% accuracy",
        names_key="accuracy",
    )
    rules += _tier_rules(
        "creator", "creator", merge_tiers(t["created_quizzes"]),
        lambda n: _at_least(lambda s: s.created_quizzes, n),
        lambda n: f"Created {_plural(n, 'Quiz', 'zes')}",
        lambda n: f"Create {_plural(n, 'quiz', 'zes')}",
        names_key="creator",
    )
    rules += _tier_rules(
        "points", "xp", merge_tiers(t["total_points"]),
        lambda n: _at_least(lambda s: s.total_points, n),
        lambda n: f"{n:,} Points",
        lambda n: f"Earn {n:,} total points",
    )
    rules += _tier_rules(
        "daily", "daily", merge_tiers(t["daily_streak"]),
        lambda n: _at_least(lambda s: s.daily_streak, n),
        lambda n: f"{_plural(n, 'Day')} Streak",
        lambda n: f"Play for {_plural(n, 'consecutive day')}",
    )
    rules += _tier_rules(
        "weekly", "weekly", merge_tiers(t["weekly_streak"]),
        lambda n: _at_least(lambda s: s.weekly_streak, n),
        lambda n: f"{_plural(n, 'Week')} Streak",
        lambda n: f"Play for {_plural(n, 'consecutive week')}",
    )
    rules += _tier_rules(
        "monthly", "monthly", merge_tiers(t["monthly_streak"]),
        lambda n: _at_least(lambda s: s.monthly_streak, n),
        lambda n: f"{_plural(n, 'Month')} Streak",
        lambda n: f"Play for {_plural(n, 'consecutive month')}",
    )
    rules += _tier_rules(
        "score", "special", SCORE_MILESTONES,
        _single_quiz_score,
        lambda n: f"{n:,} Point Club",
        lambda n: f"Score {_plural(n, 'point')} in a single quiz",
    )
    return rules


def _dimension_rules() -> List[BadgeRule]:
    rules: List[BadgeRule] = []
    rules += _counter_rules(
        "category", "category", "category_quizzes", config.QUIZ_CATEGORIES, CATEGORY_COUNTS,
        lambda name, tier: f"{name} Expert {tier}",
        lambda name, n: f"Complete {_plural(n, name + ' quiz', 'zes')}",
        key_of=config.category_key,
    )
    rules += _counter_rules(
        "difficulty", "special", "difficulty_quizzes", config.DIFFICULTY_LEVELS, DIFFICULTY_COUNTS,
        lambda name, tier: f"{name.title()} Master {tier}",
        lambda name, n: f"Complete {_plural(n, name + ' quiz', 'zes')}",
    )
    rules += _counter_rules(
        "theme", "special", "theme_quizzes", config.QUIZ_THEMES, THEME_COUNTS,
        lambda name, tier: f"{name.title()} Enthusiast {tier}",
        lambda name, n: f"Complete {_plural(n, name + ' themed quiz', 'zes')}",
    )
    rules += _counter_rules(
        "time", "daily", "time_quizzes", config.TIME_SLOTS, TIME_SLOT_COUNTS,
        lambda name, tier: f"{name.title()} Player {tier}",
        lambda name, n: f"Play {_plural(n, 'quiz', 'zes')} in the {name}",
    )
    rules += _counter_rules(
        "type", "questions", "question_type_stats", config.QUESTION_TYPES, QUESTION_TYPE_COUNTS,
        lambda name, tier: f"{config.QUESTION_TYPE_DISPLAY.get(name, name.title())} Master {tier}",
        lambda name, n: f"Answer {_plural(n, name + ' question')} correctly",
    )
    return rules


def _named_rules() -> List[BadgeRule]:
    """One-off achievements.

    Reaching level 50/100/500 is already covered by the level progression, so
    those achievements are not repeated here.
    """
    def named(badge_id, category, name, description, icon, condition):
        return BadgeRule(badge_id, category, name, description, icon, condition)

    return [
        named("speed_perfect", "special", "Perfect Speed",
              "Get a perfect score in under 2 minutes", "Zap", _perfect_result(under_seconds=120)),
        named("streak_perfect", "special", "Perfect Streak",
              "Get 10 perfect scores in a row", "Star", _at_least(lambda s: s.perfect_streak, 10)),
        named("all_categories", "special", "Category Master",
              "Complete quizzes in all categories", "Crown",
              _covers_all("category_quizzes", [config.category_key(c) for c in config.QUIZ_CATEGORIES])),
        named("all_difficulties", "special", "Difficulty Master",
              "Complete quizzes in all difficulty levels", "Award",
              _covers_all("difficulty_quizzes", config.DIFFICULTY_LEVELS)),
        named("all_themes", "special", "Theme Master",
              "Complete quizzes in all themes", "Sparkles",
              _covers_all("theme_quizzes", config.QUIZ_THEMES)),
        named("all_question_types", "special", "Question Type Master",
              "Answer all question types correctly", "Target",
              _covers_all("question_type_stats", config.QUESTION_TYPES)),
        named("century_club", "special", "Century Club",
              "Complete 100 quizzes", "Trophy", _at_least(lambda s: s.total_quizzes, 100)),
        named("thousand_questions", "special", "Thousand Questions",
              "Answer 1000 questions", "Target", _at_least(lambda s: s.total_questions, 1000)),
        named("perfect_week", "special", "Perfect Week",
              "Play every day for a week", "CheckCircle", _at_least(lambda s: s.daily_streak, 7)),
        named("perfect_month", "special", "Perfect Month",
              "Play every day for a month", "CheckCircle", _at_least(lambda s: s.daily_streak, 30)),
        named("perfect_year", "special", "Perfect Year",
              "Play every day for a year", "Crown", _at_least(lambda s: s.daily_streak, 365)),
        named("million_xp", "special", "Million XP",
              "Earn 1,000,000 XP", "Gem", _at_least(lambda s: s.xp, 1_000_000)),
        named("ten_million_xp", "special", "Ten Million XP",
              "Earn 10,000,000 XP", "Diamond", _at_least(lambda s: s.xp, 10_000_000)),
        named("hundred_perfect", "special", "Hundred Perfect",
              "Get 100 perfect scores", "Star", _at_least(lambda s: s.perfect_scores, 100)),
        named("thousand_streak", "special", "Thousand Streak",
              "Get 1000 correct answers in a row", "Flame", _at_least(lambda s: s.best_streak, 1000)),
        named("speed_demon", "special", "Speed Demon",
              "Complete a quiz in under 5 seconds", "Zap", _faster_than(5)),
        named("instant_master", "special", "Instant Master",
              "Complete a quiz in under 1 second", "Rocket", _faster_than(1)),
        named("first_quiz", "special", "First Steps",
              "Complete your first quiz", "Trophy", _at_least(lambda s: s.total_quizzes, 1)),
        named("first_perfect", "perfect", "Perfect!",
              "Get 100% on a quiz", "Star", _perfect_result()),
        named("first_creator", "creator", "Creator",
              "Create your first quiz", "Sparkles", _at_least(lambda s: s.created_quizzes, 1)),
    ]


def build_badge_catalog() -> BadgeCatalog:
    """Generate a fresh catalog. Deterministic: no randomness, no I/O."""
    return BadgeCatalog(_progression_rules() + _dimension_rules() + _named_rules())


@lru_cache(maxsize=1)
def get_badge_catalog() -> BadgeCatalog:
    """Process-wide catalog, built on first use."""
    return build_badge_catalog()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate_badges(
    stats: UserStats,
    result: Optional[QuizResult] = None,
    catalog: Optional[BadgeCatalog] = None,
) -> Set[str]:
    """Return the ids of every badge whose condition holds for ``stats``.

    A condition that raises counts as not earned.
    """
    if catalog is None:
        catalog = get_badge_catalog()
    earned = set()
    for rule in catalog:
        try:
            if rule.condition(stats, result):
                earned.add(rule.id)
        except Exception:
            logger.warning("Badge rule %s failed to evaluate", rule.id, exc_info=True)
    return earned


def new_badges(before: Set[str], after: Set[str]) -> Set[str]:
    return set(after) - set(before)


def badge_board(earned: Set[str], catalog: Optional[BadgeCatalog] = None) -> List[Tuple[BadgeRule, bool]]:
    """Every rule in catalog order, paired with whether it is earned."""
    if catalog is None:
        catalog = get_badge_catalog()
    return [(rule, rule.id in earned) for rule in catalog]
