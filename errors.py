"""Error kinds raised at the validation, generation and persistence boundaries."""

from typing import Dict, Optional


class QuizAppError(Exception):
    """Base class for errors the clients translate into user messages."""


class ValidationError(QuizAppError):
    """Malformed request shape. Raised before any side effect."""

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields: Dict[str, str] = dict(fields or {})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.fields:
            return base
        details = "; ".join(f"{k}: {v}" for k, v in sorted(self.fields.items()))
        return f"{base} ({details})"


class NotFoundError(QuizAppError):
    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class UpstreamGenerationError(QuizAppError):
    """The question-generation provider failed or returned unusable output."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class PersistenceError(QuizAppError):
    """Storage read/write failure. The message never carries driver internals."""

    def __init__(self, message: str = "A storage error occurred. Please try again."):
        super().__init__(message)
