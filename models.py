from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Union

from config import DEFAULT_DIFFICULTY, DEFAULT_QUESTION_POINTS, DEFAULT_THEME

AnswerValue = Union[str, List[str]]


class QuestionType(str, Enum):
    MULTIPLE = "multiple"
    TRUE_FALSE = "truefalse"
    TEXT = "text"
    RANKING = "ranking"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"


class GroupRole(str, Enum):
    CREATOR = "creator"
    ADMIN = "admin"
    MEMBER = "member"


@dataclass
class User:
    id: Optional[str] = None
    username: str = ""
    email: str = ""
    created_at: Optional[str] = None


@dataclass
class Question:
    id: str = ""
    type: str = QuestionType.MULTIPLE.value
    question: str = ""
    options: Optional[List[str]] = None
    correct_answer: AnswerValue = ""  # list only for ranking questions
    explanation: Optional[str] = None
    points: int = DEFAULT_QUESTION_POINTS
    time_limit: Optional[int] = None


@dataclass
class Quiz:
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    questions: List[Question] = field(default_factory=list)
    theme: str = DEFAULT_THEME
    difficulty: str = DEFAULT_DIFFICULTY
    time_limit: Optional[int] = None
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_public: bool = True
    shared_with_groups: List[str] = field(default_factory=list)
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    plays: int = 0
    average_score: int = 0


@dataclass(frozen=True)
class QuizResult:
    """Outcome of one playthrough. Immutable once scored."""
    id: Optional[str] = None
    quiz_id: Optional[str] = None
    user_id: Optional[str] = None
    score: int = 0
    total_points: int = 0
    correct_answers: int = 0
    total_questions: int = 0
    time_spent: float = 0.0  # seconds
    streak: int = 0          # longest run of correct answers in this attempt
    answers: Dict[str, AnswerValue] = field(default_factory=dict)
    completed_at: Optional[str] = None

    @property
    def is_perfect(self) -> bool:
        return self.total_questions > 0 and self.correct_answers == self.total_questions


@dataclass
class UserStats:
    """Aggregate counters for one user; the only input to badge evaluation.

    Every counter is a non-negative integer. A key missing from one of the
    nested counters reads as zero.
    """
    user_id: Optional[str] = None
    total_quizzes: int = 0
    total_questions: int = 0
    correct_answers: int = 0
    total_points: int = 0
    level: int = 1
    xp: int = 0
    current_streak: int = 0
    best_streak: int = 0
    perfect_scores: int = 0
    perfect_streak: int = 0
    daily_streak: int = 0
    weekly_streak: int = 0
    monthly_streak: int = 0
    created_quizzes: int = 0
    category_quizzes: Dict[str, int] = field(default_factory=dict)
    difficulty_quizzes: Dict[str, int] = field(default_factory=dict)
    theme_quizzes: Dict[str, int] = field(default_factory=dict)
    time_quizzes: Dict[str, int] = field(default_factory=dict)
    question_type_stats: Dict[str, int] = field(default_factory=dict)
    last_played_at: Optional[str] = None
    quiz_history: List[str] = field(default_factory=list)


@dataclass
class Group:
    id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    badge: Optional[str] = None
    creator_id: str = ""
    visibility: str = "public"
    join_type: str = "open"
    member_count: int = 0
    total_quizzes: int = 0
    average_score: int = 0
    total_points: int = 0
    plays: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class GroupMember:
    group_id: str = ""
    user_id: str = ""
    role: str = GroupRole.MEMBER.value
    joined_at: Optional[str] = None
    contributed_quizzes: int = 0
    contributed_points: int = 0
    username: str = ""


@dataclass(frozen=True)
class GroupStats:
    """Group-level aggregate evaluated by the group badge rules."""
    group_id: Optional[str] = None
    member_count: int = 0
    total_quizzes: int = 0
    total_points: int = 0
    average_score: int = 0
    rank: Optional[int] = None  # position among all groups by points


@dataclass
class LeaderboardEntry:
    rank: int = 0
    name: str = ""
    score: int = 0
    quizzes: int = 0
    accuracy: int = 0


@dataclass
class GenerationRequest:
    topic: str = ""
    number_of_questions: int = 10
    difficulty: str = DEFAULT_DIFFICULTY
    question_types: List[str] = field(default_factory=lambda: ["multiple", "truefalse"])


@dataclass
class SubmissionOutcome:
    result: QuizResult
    stats: UserStats
    earned_badges: Set[str] = field(default_factory=set)
    new_badges: Set[str] = field(default_factory=set)
