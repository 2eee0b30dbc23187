import logging
import os
from pathlib import Path
from typing import Dict, Tuple

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).parent / ".env")


# ---------------------------------------------------------------------------
# Helper: read from Streamlit secrets if available, else os.getenv
# ---------------------------------------------------------------------------
def _get_secret(key: str, default: str = "") -> str:
    """Try st.secrets first (Streamlit Cloud), then env vars."""
    try:
        import streamlit as st
        if hasattr(st, "secrets") and key in st.secrets:
            return str(st.secrets[key])
    except Exception:
        pass
    return os.getenv(key, default)


# ---------------------------------------------------------------------------
# Environment-driven settings
# ---------------------------------------------------------------------------
DATABASE_URL: str = _get_secret("QUIZ_DATABASE_URL", "postgresql://localhost:5432/quizjeux")
LOG_LEVEL: str = _get_secret("QUIZ_LOG_LEVEL", "INFO").upper()

AI_PROVIDER: str = _get_secret("QUIZ_AI_PROVIDER", "anthropic").lower()
AI_FALLBACK: bool = _get_secret("QUIZ_AI_FALLBACK", "true").lower() == "true"
GENERATION_TIMEOUT_SECONDS: float = float(_get_secret("QUIZ_GENERATION_TIMEOUT", "60"))

ANTHROPIC_API_KEY: str = _get_secret("ANTHROPIC_API_KEY", "")
OPENAI_API_KEY: str = _get_secret("OPENAI_API_KEY", "")
GOOGLE_API_KEY: str = _get_secret("GOOGLE_API_KEY", "")

ANTHROPIC_MODEL: str = _get_secret("QUIZ_ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
OPENAI_MODEL: str = _get_secret("QUIZ_OPENAI_MODEL", "gpt-5")
GEMINI_MODEL: str = _get_secret("QUIZ_GEMINI_MODEL", "gemini-2.5-flash")

# Order in which providers are tried when fallback is enabled
PROVIDER_ORDER: Tuple[str, ...] = ("anthropic", "openai", "gemini")

PROVIDER_API_KEYS: Dict[str, str] = {
    "anthropic": ANTHROPIC_API_KEY,
    "openai": OPENAI_API_KEY,
    "gemini": GOOGLE_API_KEY,
}

PROVIDER_KEY_NAMES: Dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}

# ---------------------------------------------------------------------------
# Quiz domain constants
# ---------------------------------------------------------------------------
QUESTION_TYPES: Tuple[str, ...] = ("multiple", "truefalse", "text", "ranking")
DIFFICULTY_LEVELS: Tuple[str, ...] = ("beginner", "intermediate", "expert")
QUIZ_THEMES: Tuple[str, ...] = ("purple", "green", "orange", "pink", "blue")
QUIZ_CATEGORIES: Tuple[str, ...] = (
    "Science",
    "History",
    "Geography",
    "Mathematics",
    "Literature",
    "Sports",
    "Technology",
    "Art",
    "Music",
    "General Knowledge",
)
TIME_SLOTS: Tuple[str, ...] = ("morning", "afternoon", "evening", "night")
GROUP_ROLES: Tuple[str, ...] = ("creator", "admin", "member")
GROUP_VISIBILITIES: Tuple[str, ...] = ("public", "private")
GROUP_JOIN_TYPES: Tuple[str, ...] = ("open", "invite_only")

DEFAULT_THEME = "purple"
DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_QUESTION_TYPES: Tuple[str, ...] = ("multiple", "truefalse")
TRUE_FALSE_OPTIONS = ["True", "False"]

# Mapping from question type to user-friendly display name
QUESTION_TYPE_DISPLAY = {
    "multiple": "Multiple Choice",
    "truefalse": "True / False",
    "text": "Short Answer",
    "ranking": "Ranking",
}


def category_key(category: str) -> str:
    """'General Knowledge' -> 'general_knowledge'."""
    return "_".join(category.lower().split())


# ---------------------------------------------------------------------------
# Scoring / progression
# ---------------------------------------------------------------------------
DEFAULT_QUESTION_POINTS = 10
XP_PER_LEVEL = 1000          # level = xp // XP_PER_LEVEL + 1
QUIZ_HISTORY_LIMIT = 50      # result ids kept on the stats row
LEADERBOARD_LIMIT = 100
GROUP_LEGEND_RANK = 10       # top N groups by points earn the legend badge

# Hour ranges (start inclusive, end exclusive) for time-of-day badges
TIME_SLOT_HOURS = {
    "morning": (5, 12),
    "afternoon": (12, 17),
    "evening": (17, 22),
}

# ---------------------------------------------------------------------------
# Question generation
# ---------------------------------------------------------------------------
MIN_GENERATED_QUESTIONS = 5
MAX_GENERATED_QUESTIONS = 20
DEFAULT_GENERATED_QUESTIONS = 10
RATE_LIMIT_SECONDS = 1.0     # min delay between API calls
MAX_RETRIES = 3              # retries on transient API errors
RETRY_BACKOFF_SECONDS = 2.0  # base of the exponential backoff
MAX_TOKENS = 4096            # max tokens for question generation response


def setup_logging(level: str = "") -> None:
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
