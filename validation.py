"""Schema validation for quizzes, questions and generation requests.

Payloads arrive either from a client form or from an LLM response, so both
snake_case and camelCase keys are accepted (``correct_answer`` or
``correctAnswer``). Every check collects field errors first and raises a single
ValidationError, so the caller can show all problems at once.
"""

import dataclasses
import math
import uuid
from typing import Any, Dict, Optional

import config
from errors import ValidationError
from models import AnswerValue, GenerationRequest, Group, Question, Quiz


def _pick(data: Dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------

def question_errors(data: Any, prefix: str = "") -> Dict[str, str]:
    """Return field -> message for everything wrong with one question dict."""
    if not isinstance(data, dict):
        return {prefix.rstrip(".") or "question": "must be an object"}

    errors: Dict[str, str] = {}
    qtype = _pick(data, "type", default=config.QUESTION_TYPES[0])
    text = _pick(data, "question", default="")
    options = _pick(data, "options")
    correct = _pick(data, "correct_answer", "correctAnswer")
    points = _pick(data, "points", default=config.DEFAULT_QUESTION_POINTS)

    if qtype not in config.QUESTION_TYPES:
        errors[prefix + "type"] = f"must be one of {', '.join(config.QUESTION_TYPES)}"
    if not isinstance(text, str) or not text.strip():
        errors[prefix + "question"] = "is required"
    if options is not None and not _is_str_list(options):
        errors[prefix + "options"] = "must be a list of strings"

    if correct is None:
        errors[prefix + "correctAnswer"] = "is required"
    elif qtype == "ranking":
        if not _is_str_list(correct) or len(correct) < 2:
            errors[prefix + "correctAnswer"] = "ranking answers must be a list of at least 2 items"
    elif not isinstance(correct, str) or not correct.strip():
        errors[prefix + "correctAnswer"] = "must be a non-empty string"

    if qtype == "multiple" and (not _is_str_list(options) or len(options) < 2):
        errors[prefix + "options"] = "multiple choice questions need at least 2 options"

    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        errors[prefix + "points"] = "must be a non-negative integer"

    return errors


def parse_question(data: Dict, prefix: str = "") -> Question:
    errors = question_errors(data, prefix)
    if errors:
        raise ValidationError("Invalid question", errors)
    return _build_question(data)


def _build_question(data: Dict) -> Question:
    qtype = _pick(data, "type", default=config.QUESTION_TYPES[0])
    options = _pick(data, "options")
    if qtype == "truefalse" and not options:
        options = list(config.TRUE_FALSE_OPTIONS)
    correct = _pick(data, "correct_answer", "correctAnswer")
    if isinstance(correct, list):
        correct = list(correct)
    else:
        correct = correct.strip()
    return Question(
        id=str(_pick(data, "id", default="") or uuid.uuid4()),
        type=qtype,
        question=data["question"].strip(),
        options=list(options) if options is not None else None,
        correct_answer=correct,
        explanation=_pick(data, "explanation"),
        points=_pick(data, "points", default=config.DEFAULT_QUESTION_POINTS),
        time_limit=_pick(data, "time_limit", "timeLimit"),
    )


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------

def parse_quiz(data: Any) -> Quiz:
    """Validate a quiz creation payload and return an unsaved Quiz."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid quiz data", {"quiz": "must be an object"})

    errors: Dict[str, str] = {}
    title = _pick(data, "title", default="")
    questions = _pick(data, "questions", default=[])
    theme = _pick(data, "theme", default=config.DEFAULT_THEME)
    difficulty = _pick(data, "difficulty", default=config.DEFAULT_DIFFICULTY)
    category = _pick(data, "category")
    tags = _pick(data, "tags", default=[])
    time_limit = _pick(data, "time_limit", "timeLimit")
    is_public = _pick(data, "is_public", "isPublic", default=True)

    if not isinstance(title, str) or not title.strip():
        errors["title"] = "is required"
    if not isinstance(questions, list) or not questions:
        errors["questions"] = "a quiz needs at least one question"
    else:
        seen = set()
        for i, qd in enumerate(questions):
            errors.update(question_errors(qd, prefix=f"questions.{i}."))
            # answers are matched by id, so ids must be unique within a quiz
            qid = str(_pick(qd, "id", default="")) if isinstance(qd, dict) else ""
            if qid and qid in seen:
                errors[f"questions.{i}.id"] = "duplicates the id of an earlier question"
            seen.add(qid)
    if theme not in config.QUIZ_THEMES:
        errors["theme"] = f"must be one of {', '.join(config.QUIZ_THEMES)}"
    if difficulty not in config.DIFFICULTY_LEVELS:
        errors["difficulty"] = f"must be one of {', '.join(config.DIFFICULTY_LEVELS)}"
    if category is not None and category not in config.QUIZ_CATEGORIES:
        errors["category"] = "unknown category"
    if not _is_str_list(tags):
        errors["tags"] = "must be a list of strings"
    if time_limit is not None and (not isinstance(time_limit, int) or time_limit <= 0):
        errors["timeLimit"] = "must be a positive number of seconds"
    if not isinstance(is_public, bool):
        errors["isPublic"] = "must be true or false"

    if errors:
        raise ValidationError("Invalid quiz data", errors)

    return Quiz(
        title=title.strip(),
        description=_pick(data, "description"),
        questions=[_build_question(qd) for qd in questions],
        theme=theme,
        difficulty=difficulty,
        time_limit=time_limit,
        category=category,
        tags=list(tags),
        is_public=is_public,
    )


# Fields a client may change through update_quiz
UPDATABLE_QUIZ_FIELDS = (
    "title", "description", "questions", "theme", "difficulty",
    "time_limit", "category", "tags", "is_public",
)


def apply_quiz_updates(quiz: Quiz, updates: Dict) -> Quiz:
    """Return a validated copy of ``quiz`` with ``updates`` applied."""
    merged = {
        "title": quiz.title,
        "description": quiz.description,
        "questions": [dataclasses.asdict(q) for q in quiz.questions],
        "theme": quiz.theme,
        "difficulty": quiz.difficulty,
        "time_limit": quiz.time_limit,
        "category": quiz.category,
        "tags": quiz.tags,
        "is_public": quiz.is_public,
    }
    camel = {"timeLimit": "time_limit", "isPublic": "is_public"}
    for key, value in updates.items():
        key = camel.get(key, key)
        if key not in UPDATABLE_QUIZ_FIELDS:
            raise ValidationError("Invalid quiz update", {key: "cannot be updated"})
        merged[key] = value

    updated = parse_quiz(merged)
    updated.id = quiz.id
    updated.user_id = quiz.user_id
    updated.created_at = quiz.created_at
    updated.plays = quiz.plays
    updated.average_score = quiz.average_score
    updated.shared_with_groups = list(quiz.shared_with_groups)
    return updated


# ---------------------------------------------------------------------------
# Generation requests
# ---------------------------------------------------------------------------

def parse_generation_request(data: Any) -> GenerationRequest:
    if not isinstance(data, dict):
        raise ValidationError("Invalid generation request", {"request": "must be an object"})

    errors: Dict[str, str] = {}
    topic = _pick(data, "topic", default="")
    count = _pick(data, "number_of_questions", "numberOfQuestions",
                  default=config.DEFAULT_GENERATED_QUESTIONS)
    difficulty = _pick(data, "difficulty", default=config.DEFAULT_DIFFICULTY)
    types = _pick(data, "question_types", "questionTypes",
                  default=list(config.DEFAULT_QUESTION_TYPES))

    if not isinstance(topic, str) or not topic.strip():
        errors["topic"] = "is required"
    if isinstance(count, bool) or not isinstance(count, int) or not (
        config.MIN_GENERATED_QUESTIONS <= count <= config.MAX_GENERATED_QUESTIONS
    ):
        errors["numberOfQuestions"] = (
            f"must be between {config.MIN_GENERATED_QUESTIONS} "
            f"and {config.MAX_GENERATED_QUESTIONS}"
        )
    if difficulty not in config.DIFFICULTY_LEVELS:
        errors["difficulty"] = f"must be one of {', '.join(config.DIFFICULTY_LEVELS)}"
    if not _is_str_list(types) or not types:
        errors["questionTypes"] = "at least one question type is required"
    elif any(t not in config.QUESTION_TYPES for t in types):
        errors["questionTypes"] = f"must be drawn from {', '.join(config.QUESTION_TYPES)}"

    if errors:
        raise ValidationError("Invalid generation request", errors)

    return GenerationRequest(
        topic=topic.strip(),
        number_of_questions=count,
        difficulty=difficulty,
        question_types=list(dict.fromkeys(types)),
    )


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------

def parse_answers(answers: Any) -> Dict[str, AnswerValue]:
    if not isinstance(answers, dict):
        raise ValidationError("Invalid submission", {"answers": "must map question ids to answers"})
    bad = [k for k, v in answers.items() if not (isinstance(v, str) or _is_str_list(v))]
    if bad:
        raise ValidationError(
            "Invalid submission",
            {f"answers.{k}": "must be a string or a list of strings" for k in bad},
        )
    return {str(k): (list(v) if isinstance(v, list) else v) for k, v in answers.items()}


def parse_time_spent(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) \
            or not math.isfinite(value) or value < 0:
        raise ValidationError("Invalid submission", {"timeSpent": "must be a non-negative number"})
    return float(value)


# ---------------------------------------------------------------------------
# Users and groups
# ---------------------------------------------------------------------------

def parse_user(username: Any, email: Any) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not isinstance(username, str) or not (3 <= len(username.strip()) <= 20):
        errors["username"] = "must be 3-20 characters"
    if not isinstance(email, str) or "@" not in email or "." not in email.split("@")[-1]:
        errors["email"] = "must be a valid email address"
    if errors:
        raise ValidationError("Invalid user data", errors)
    return {"username": username.strip(), "email": email.strip().lower()}


def parse_group(data: Any, creator_id: Optional[str]) -> Group:
    if not isinstance(data, dict):
        raise ValidationError("Invalid group data", {"group": "must be an object"})

    errors: Dict[str, str] = {}
    name = _pick(data, "name", default="")
    visibility = _pick(data, "visibility", default=config.GROUP_VISIBILITIES[0])
    join_type = _pick(data, "join_type", "joinType", default=config.GROUP_JOIN_TYPES[0])

    if not isinstance(name, str) or not (1 <= len(name.strip()) <= 50):
        errors["name"] = "must be 1-50 characters"
    if visibility not in config.GROUP_VISIBILITIES:
        errors["visibility"] = f"must be one of {', '.join(config.GROUP_VISIBILITIES)}"
    if join_type not in config.GROUP_JOIN_TYPES:
        errors["joinType"] = f"must be one of {', '.join(config.GROUP_JOIN_TYPES)}"
    if not creator_id:
        errors["creatorId"] = "is required"
    if errors:
        raise ValidationError("Invalid group data", errors)

    return Group(
        name=name.strip(),
        description=_pick(data, "description"),
        badge=_pick(data, "badge"),
        creator_id=creator_id,
        visibility=visibility,
        join_type=join_type,
    )
