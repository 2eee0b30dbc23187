"""Collective badges earned by groups (member count, shared quizzes, points, average)."""

import logging
from functools import lru_cache
from typing import List, Optional, Set

import config
from badges import BadgeCatalog, BadgeRule
from models import GroupStats, QuizResult

logger = logging.getLogger(__name__)

GROUP_BADGE_TIERS = {
    "members": [1, 5, 10, 15, 20, 25, 30, 40, 50, 75, 100, 150, 200],
    "quizzes": [1, 5, 10, 25, 50, 100, 250, 500, 1000],
    "points": [1000, 5000, 10000, 25000, 50000, 100000, 250000, 500000, 1000000],
    "score": [50, 60, 70, 75, 80, 85, 90, 95, 98, 100],
}

GROUP_ICONS = {
    "members": ("Users", "Trophy", "Award", "Crown"),
    "quizzes": ("Target", "CheckCircle", "Book", "Star"),
    "points": ("Coins", "Gem", "Diamond", "Crown"),
    "score": ("Target", "Star", "Medal", "Crown"),
}

# The last name is reused for every higher tier
GROUP_TIER_NAMES = {
    "members": ("Small Group", "Active Group", "Big Guild", "Legendary Guild", "Empire"),
    "quizzes": ("Beginners", "Apprentices", "Experts", "Masters", "Legends"),
    "points": ("Collectors", "Hunters", "Gatherers", "Masters", "Legends"),
    "score": ("Precise", "Accurate", "Sharpshooters", "Marksmen", "Flawless"),
}

_DESCRIPTIONS = {
    "members": lambda n: f"Have {n:,} member{'s' if n != 1 else ''} in the group",
    "quizzes": lambda n: f"Share {n:,} quiz{'zes' if n != 1 else ''} with the group",
    "points": lambda n: f"Earn {n:,} points together",
    "score": lambda n: f"Keep a {n}% group average",
}

_FIELDS = {
    "members": "member_count",
    "quizzes": "total_quizzes",
    "points": "total_points",
    "score": "average_score",
}


def _field_at_least(field_name: str, threshold: int):
    def check(group: GroupStats, result: Optional[QuizResult] = None) -> bool:
        return (getattr(group, field_name) or 0) >= threshold
    return check


def _in_top_ranks(group: GroupStats, result: Optional[QuizResult] = None) -> bool:
    return group.rank is not None and 1 <= group.rank <= config.GROUP_LEGEND_RANK


def build_group_badge_catalog() -> BadgeCatalog:
    """Group rules share the player rule signature; the result argument is unused."""
    rules: List[BadgeRule] = []
    for family, thresholds in GROUP_BADGE_TIERS.items():
        names = GROUP_TIER_NAMES[family]
        icons = GROUP_ICONS[family]
        for index, threshold in enumerate(thresholds):
            rules.append(BadgeRule(
                id=f"group_{family}_{threshold}",
                category=family,
                name=names[min(index, len(names) - 1)],
                description=_DESCRIPTIONS[family](threshold),
                icon=icons[index % len(icons)],
                condition=_field_at_least(_FIELDS[family], threshold),
                tier=index + 1,
            ))

    rules += [
        BadgeRule("group_first", "special", "First Group", "Create a group", "Trophy",
                  lambda group, result=None: True),
        BadgeRule("group_elite", "special", "Elite", "Average of 90% or more with 50+ members",
                  "Crown",
                  lambda group, result=None: group.average_score >= 90 and group.member_count >= 50),
        BadgeRule("group_legend", "special", "Legend",
                  f"Be in the top {config.GROUP_LEGEND_RANK} groups by points", "Crown",
                  _in_top_ranks),
        BadgeRule("group_invincible", "special", "Invincible", "Share 1,000 quizzes together",
                  "Shield", _field_at_least("total_quizzes", 1000)),
        BadgeRule("group_creators", "special", "Creators", "Share 50 quizzes created by members",
                  "Sparkles", _field_at_least("total_quizzes", 50)),
    ]
    return BadgeCatalog(rules)


@lru_cache(maxsize=1)
def get_group_badge_catalog() -> BadgeCatalog:
    return build_group_badge_catalog()


def evaluate_group_badges(group: GroupStats, catalog: Optional[BadgeCatalog] = None) -> Set[str]:
    if catalog is None:
        catalog = get_group_badge_catalog()
    earned = set()
    for rule in catalog:
        try:
            if rule.condition(group):
                earned.add(rule.id)
        except Exception:
            logger.warning("Group badge rule %s failed to evaluate", rule.id, exc_info=True)
    return earned
