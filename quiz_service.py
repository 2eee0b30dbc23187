"""Request-level operations shared by the terminal and Streamlit clients.

Validation happens before any write, and lookups of unknown ids raise
NotFoundError. Every other error comes from the generator or the database and
propagates to the client unchanged.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Set

from badges import BadgeCatalog, evaluate_badges, get_badge_catalog, new_badges
from database import Database
from errors import NotFoundError, UpstreamGenerationError, ValidationError
from group_badges import evaluate_group_badges, get_group_badge_catalog
from models import (
    Group,
    GroupMember,
    LeaderboardEntry,
    Question,
    Quiz,
    QuizResult,
    SubmissionOutcome,
    User,
    UserStats,
)
from question_generator import QuestionGenerator
from scoring import score_submission
from validation import (
    apply_quiz_updates,
    parse_answers,
    parse_generation_request,
    parse_group,
    parse_quiz,
    parse_time_spent,
    parse_user,
)

logger = logging.getLogger(__name__)

MANAGER_ROLES = ("creator", "admin")


class QuizService:
    def __init__(
        self,
        db: Database,
        generator: Optional[QuestionGenerator] = None,
        catalog: Optional[BadgeCatalog] = None,
        group_catalog: Optional[BadgeCatalog] = None,
    ):
        self.db = db
        self.generator = generator
        self.catalog = catalog if catalog is not None else get_badge_catalog()
        self.group_catalog = group_catalog if group_catalog is not None else get_group_badge_catalog()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def _require_user(self, user_id: str) -> User:
        user = self.db.get_user(user_id) if user_id else None
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def _require_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.db.get_quiz(quiz_id) if quiz_id else None
        if quiz is None:
            raise NotFoundError("Quiz", quiz_id)
        return quiz

    def _require_group(self, group_id: str) -> Group:
        group = self.db.get_group(group_id) if group_id else None
        if group is None:
            raise NotFoundError("Group", group_id)
        return group

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def create_user(self, username: str, email: str) -> User:
        fields = parse_user(username, email)
        if self.db.get_user_by_username(fields["username"]):
            raise ValidationError("Invalid user data", {"username": "is already taken"})
        user = self.db.create_user(fields["username"], fields["email"])
        logger.info("Created user %s (%s)", user.username, user.id)
        return user

    def get_user(self, user_id: str) -> User:
        return self._require_user(user_id)

    def list_users(self) -> List[User]:
        return self.db.list_users()

    # ------------------------------------------------------------------
    # Quizzes
    # ------------------------------------------------------------------
    def create_quiz(self, user_id: str, payload: Dict[str, Any]) -> Quiz:
        quiz = parse_quiz(payload)
        self._require_user(user_id)
        quiz.user_id = user_id
        saved = self.db.create_quiz(quiz)
        logger.info("Created quiz %r (%s) with %d questions", saved.title, saved.id, len(saved.questions))
        return saved

    def generate_questions(self, payload: Dict[str, Any]) -> List[Question]:
        request = parse_generation_request(payload)
        if self.generator is None:
            raise UpstreamGenerationError("AI question generation is not configured")
        return self.generator.generate_questions(request)

    def generate_quiz(self, user_id: str, payload: Dict[str, Any]) -> Quiz:
        """Generate questions for a topic and save them as a new quiz.

        Nothing is written unless generation and validation both succeed.
        """
        request = parse_generation_request(payload)
        self._require_user(user_id)
        if self.generator is None:
            raise UpstreamGenerationError("AI question generation is not configured")

        questions = self.generator.generate_questions(request)
        quiz_payload = {
            "title": payload.get("title") or request.topic.title(),
            "description": payload.get("description")
            or f"AI-generated quiz about {request.topic}",
            "questions": [dataclasses.asdict(q) for q in questions],
            "difficulty": request.difficulty,
            "theme": payload.get("theme"),
            "category": payload.get("category"),
            "tags": payload.get("tags") or [request.topic],
            "is_public": payload.get("is_public", payload.get("isPublic", True)),
        }
        return self.create_quiz(user_id, quiz_payload)

    def get_quiz(self, quiz_id: str) -> Quiz:
        return self._require_quiz(quiz_id)

    def list_quizzes(self, user_id: Optional[str] = None) -> List[Quiz]:
        if user_id:
            self._require_user(user_id)
            return self.db.list_quizzes_for_user(user_id)
        return self.db.list_quizzes()

    def update_quiz(self, quiz_id: str, updates: Dict[str, Any]) -> Quiz:
        quiz = self._require_quiz(quiz_id)
        updated = self.db.update_quiz(apply_quiz_updates(quiz, updates))
        if updated is None:
            raise NotFoundError("Quiz", quiz_id)
        return updated

    def delete_quiz(self, quiz_id: str) -> None:
        if not self.db.delete_quiz(quiz_id):
            raise NotFoundError("Quiz", quiz_id)
        logger.info("Deleted quiz %s", quiz_id)

    def duplicate_quiz(self, quiz_id: str, user_id: Optional[str] = None) -> Quiz:
        if user_id:
            self._require_user(user_id)
        copy = self.db.duplicate_quiz(quiz_id, user_id)
        if copy is None:
            raise NotFoundError("Quiz", quiz_id)
        return copy

    # ------------------------------------------------------------------
    # Playing
    # ------------------------------------------------------------------
    def submit(self, user_id: str, quiz_id: str, answers: Any, time_spent: Any) -> SubmissionOutcome:
        """Score a playthrough, record it and work out which badges it unlocked."""
        answers = parse_answers(answers)
        time_spent = parse_time_spent(time_spent)
        self._require_user(user_id)
        quiz = self._require_quiz(quiz_id)

        result = score_submission(quiz, answers, time_spent, user_id=user_id)
        history = self.db.get_results(user_id)
        saved, before, after = self.db.record_submission(user_id, quiz, result)

        earned_before = self._earned(before, history)
        earned_after = self._earned(after, list(history) + [saved])
        unlocked = new_badges(earned_before, earned_after)
        if unlocked:
            logger.info("User %s unlocked %d badge(s): %s", user_id, len(unlocked),
                        ", ".join(sorted(unlocked)))
        return SubmissionOutcome(
            result=saved, stats=after, earned_badges=earned_after, new_badges=unlocked
        )

    def get_stats(self, user_id: str) -> UserStats:
        self._require_user(user_id)
        return self.db.get_stats(user_id)

    def get_results(self, user_id: str) -> List[QuizResult]:
        self._require_user(user_id)
        return self.db.get_results(user_id)

    def get_result(self, result_id: str) -> QuizResult:
        result = self.db.get_result(result_id)
        if result is None:
            raise NotFoundError("Result", result_id)
        return result

    def get_earned_badges(self, user_id: str) -> Set[str]:
        """Badges earned from the stats, plus result-based ones from recent quizzes."""
        stats = self.get_stats(user_id)
        return self._earned(stats, self.db.get_results(user_id))

    def _earned(self, stats: UserStats, results: List[QuizResult]) -> Set[str]:
        earned = evaluate_badges(stats, catalog=self.catalog)
        for result in results:
            earned |= evaluate_badges(stats, result, catalog=self.catalog)
        return earned

    def leaderboard(self) -> List[LeaderboardEntry]:
        return self.db.get_leaderboard()

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------
    def create_group(self, user_id: str, payload: Dict[str, Any]) -> Group:
        group = parse_group(payload, user_id)
        self._require_user(user_id)
        saved = self.db.create_group(group)
        logger.info("User %s created group %r (%s)", user_id, saved.name, saved.id)
        return saved

    def get_group(self, group_id: str) -> Group:
        return self._require_group(group_id)

    def list_groups(self, user_id: Optional[str] = None) -> List[Group]:
        if user_id:
            return self.db.list_groups_for_user(user_id)
        return self.db.list_groups()

    def join_group(self, group_id: str, user_id: str) -> bool:
        group = self._require_group(group_id)
        self._require_user(user_id)
        if group.join_type == "invite_only":
            raise ValidationError("Cannot join group", {"group": "this group is invite only"})
        return self.db.join_group(group_id, user_id)

    def add_member(self, group_id: str, manager_id: str, user_id: str) -> bool:
        """Add a user to a group on behalf of its creator or an admin."""
        self._require_group(group_id)
        self._require_user(user_id)
        manager = self.db.get_member(group_id, manager_id)
        if manager is None or manager.role not in MANAGER_ROLES:
            raise ValidationError("Cannot add member", {"role": "only the creator or an admin can add members"})
        return self.db.join_group(group_id, user_id)

    def leave_group(self, group_id: str, user_id: str) -> None:
        self._require_group(group_id)
        member = self.db.get_member(group_id, user_id)
        if member is None:
            raise NotFoundError("Group member", user_id)
        if member.role == "creator":
            raise ValidationError("Cannot leave group", {"role": "the creator cannot leave their group"})
        self.db.leave_group(group_id, user_id)

    def share_quiz(self, group_id: str, quiz_id: str, user_id: str) -> bool:
        self._require_group(group_id)
        self._require_quiz(quiz_id)
        if self.db.get_member(group_id, user_id) is None:
            raise ValidationError("Cannot share quiz", {"group": "only members can share quizzes"})
        return self.db.share_quiz(group_id, quiz_id, user_id)

    def group_members(self, group_id: str) -> List[GroupMember]:
        self._require_group(group_id)
        return self.db.get_group_members(group_id)

    def group_quizzes(self, group_id: str) -> List[Quiz]:
        self._require_group(group_id)
        return self.db.get_group_quizzes(group_id)

    def group_leaderboard(self, group_id: str) -> List[LeaderboardEntry]:
        self._require_group(group_id)
        return self.db.get_group_leaderboard(group_id)

    def group_ranking(self) -> List[Group]:
        return self.db.get_group_ranking()

    def get_group_badges(self, group_id: str) -> Set[str]:
        stats = self.db.get_group_stats(group_id)
        if stats is None:
            raise NotFoundError("Group", group_id)
        return evaluate_group_badges(stats, catalog=self.group_catalog)
