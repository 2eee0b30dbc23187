"""Tests for badges: catalog generation and evaluation."""

import copy
from collections import defaultdict

import pytest

import config
from badges import (
    BadgeCatalog,
    BadgeRule,
    badge_board,
    build_badge_catalog,
    evaluate_badges,
    get_badge_catalog,
    merge_tiers,
    new_badges,
)
from models import UserStats
from tests.conftest import make_result


@pytest.fixture
def seasoned_stats():
    return UserStats(
        user_id="user-1",
        total_quizzes=12,
        total_questions=480,
        correct_answers=400,
        total_points=5200,
        xp=5200,
        level=6,
        best_streak=14,
        perfect_scores=6,
        created_quizzes=3,
        daily_streak=8,
        weekly_streak=3,
        monthly_streak=2,
        category_quizzes={"science": 7, "general_knowledge": 2},
        difficulty_quizzes={"beginner": 4},
        theme_quizzes={"purple": 12},
        time_quizzes={"morning": 5},
        question_type_stats={"multiple": 30},
    )


def _families(catalog):
    families = defaultdict(list)
    for rule in catalog:
        if rule.tier is not None:
            families[rule.id.rsplit("_", 1)[0]].append(rule)
    return families


class TestCatalogGeneration:

    def test_ids_are_unique(self, catalog):
        ids = catalog.ids()
        assert len(ids) == len(set(ids))

    def test_generation_is_deterministic(self):
        first, second = build_badge_catalog(), build_badge_catalog()
        assert first.ids() == second.ids()
        assert len(first) == len(second)

    def test_memoized_catalog_is_shared(self):
        assert get_badge_catalog() is get_badge_catalog()

    def test_duplicate_id_is_rejected(self):
        rule = BadgeRule("dup", "special", "Dup", "", "Gift", lambda s, r=None: True)
        with pytest.raises(ValueError, match="dup"):
            BadgeCatalog([rule, rule])

    def test_base_and_extended_tiers_are_merged(self, catalog):
        quiz_ids = [r.id for r in catalog if r.id.startswith("quizzes_")]
        assert len(quiz_ids) == 33
        assert "quizzes_1000" in catalog
        assert "quizzes_1500" in catalog
        assert "quizzes_10000" in catalog

    def test_level_milestones_appear_once(self, catalog):
        for badge_id in ("level_50", "level_100", "level_500"):
            assert catalog.ids().count(badge_id) == 1

    def test_speed_tiers_run_from_slowest_to_fastest(self, catalog):
        speed = [r for r in catalog if r.id.startswith("speed_") and r.tier]
        thresholds = [int(r.id.split("_")[1]) for r in speed]
        assert thresholds == sorted(thresholds, reverse=True)
        assert thresholds[0] == 600
        assert thresholds[-1] == 1

    def test_curated_names_then_synthesized_labels(self, catalog):
        assert catalog.get("quizzes_1").name == "First Steps"
        assert catalog.get("quizzes_1500").name == "Completed 1,500 Quizzes"
        assert catalog.get("level_200").name == "Level 200"

    def test_icons_cycle_through_category_list(self, catalog):
        assert catalog.get("quizzes_1").icon == "Trophy"
        assert catalog.get("quizzes_2").icon == "Award"
        assert catalog.get("quizzes_7").icon == "Trophy"

    def test_every_category_has_a_progression(self, catalog):
        for category in config.QUIZ_CATEGORIES:
            assert f"category_{config.category_key(category)}_1" in catalog

    def test_merge_tiers_deduplicates(self):
        assert merge_tiers([1, 5, 10], [10, 20]) == [1, 5, 10, 20]
        assert merge_tiers([60, 30], [30, 10], descending=True) == [60, 30, 10]


class TestEvaluation:

    def test_monotonic_within_each_family(self, catalog, seasoned_stats):
        result = make_result(score=130, time_spent=50)
        earned = evaluate_badges(seasoned_stats, result, catalog)
        for family, rules in _families(catalog).items():
            flags = [r.id in earned for r in sorted(rules, key=lambda r: r.tier)]
            assert flags == sorted(flags, reverse=True), family

    def test_twelve_quizzes_earn_lower_tiers(self, catalog, seasoned_stats):
        earned = evaluate_badges(seasoned_stats, catalog=catalog)
        assert {"quizzes_5", "quizzes_10"} <= earned
        assert "quizzes_15" not in earned

    def test_evaluation_is_idempotent(self, catalog, seasoned_stats):
        snapshot = copy.deepcopy(seasoned_stats)
        first = evaluate_badges(seasoned_stats, catalog=catalog)
        second = evaluate_badges(seasoned_stats, catalog=catalog)
        assert first == second
        assert seasoned_stats == snapshot

    def test_accuracy_with_no_questions_is_not_earned(self, catalog, empty_stats):
        earned = evaluate_badges(empty_stats, catalog=catalog)
        assert not any(b.startswith("accuracy_") for b in earned)

    def test_accuracy_rule_guards_zero_denominator(self, catalog, empty_stats):
        rule = catalog.get("accuracy_40")
        assert rule.condition(empty_stats, None) is False

    def test_speed_rules_without_result_are_false(self, catalog, seasoned_stats):
        for rule in catalog:
            if rule.id.startswith("speed_"):
                assert rule.condition(seasoned_stats, None) is False
        earned = evaluate_badges(seasoned_stats, catalog=catalog)
        assert not {"speed_demon", "instant_master", "speed_600"} & earned

    def test_speed_threshold_is_strict(self, catalog, empty_stats):
        earned = evaluate_badges(empty_stats, make_result(time_spent=50), catalog)
        assert "speed_60" in earned
        assert "speed_50" not in earned

    def test_perfect_result(self, catalog, empty_stats):
        perfect = make_result(correct_answers=3, total_questions=3)
        assert "first_perfect" in evaluate_badges(empty_stats, perfect, catalog)
        empty = make_result(correct_answers=0, total_questions=0)
        assert "first_perfect" not in evaluate_badges(empty_stats, empty, catalog)

    def test_single_quiz_score(self, catalog, empty_stats):
        earned = evaluate_badges(empty_stats, make_result(score=130), catalog)
        assert {"score_50", "score_125"} <= earned
        assert "score_150" not in earned

    def test_all_categories_needs_every_category(self, catalog):
        keys = [config.category_key(c) for c in config.QUIZ_CATEGORIES]
        stats = UserStats(category_quizzes={k: 1 for k in keys})
        assert "all_categories" in evaluate_badges(stats, catalog=catalog)
        stats.category_quizzes.pop(keys[-1])
        assert "all_categories" not in evaluate_badges(stats, catalog=catalog)

    def test_failing_rule_counts_as_not_earned(self):
        catalog = BadgeCatalog([
            BadgeRule("boom", "special", "Boom", "", "Gift", lambda s, r=None: 1 / 0),
            BadgeRule("ok", "special", "Ok", "", "Gift", lambda s, r=None: True),
        ])
        assert evaluate_badges(UserStats(), catalog=catalog) == {"ok"}

    def test_new_badges_is_the_difference(self):
        assert new_badges({"a", "b"}, {"a", "b", "c"}) == {"c"}
        assert new_badges({"a"}, {"a"}) == set()

    def test_badge_board_keeps_catalog_order(self, catalog):
        board = badge_board({"quizzes_1"}, catalog)
        assert [r.id for r, _ in board] == catalog.ids()
        assert dict((r.id, ok) for r, ok in board)["quizzes_1"] is True
