# archetype_quiz/errors.py
from typing import Optional


class QuizError(Exception):
    """Base class for quiz lifecycle errors."""
    def __init__(self, message="Quiz error occurred", code="QUIZ_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class QuizValidationError(QuizError):
    """Raised when a required input (answers, email, name) is absent."""
    def __init__(self, message="Missing required fields", code="VALIDATION_ERROR"):
        super().__init__(message, code)


class DuplicateSubmissionError(QuizError):
    """Raised when a completed submission already exists for an email."""
    def __init__(self, message="Email already used for quiz", code="DUPLICATE_SUBMISSION"):
        super().__init__(message, code)


class RateLimitExceeded(QuizError):
    """
    Raised when a client identity has used up its submission attempts.

    `reset_at` is the epoch time (seconds) at which the oldest attempt in the
    window expires, when known.
    """
    def __init__(
        self,
        message="Too many requests. Please try again later.",
        code="RATE_LIMIT_EXCEEDED",
        reset_at: Optional[float] = None,
        retry_after: Optional[int] = None,
    ):
        self.reset_at = reset_at
        self.retry_after = retry_after
        super().__init__(message, code)


class AdminUnauthorized(QuizError):
    """Raised when admin credentials are missing or do not match."""
    def __init__(self, message="Invalid credentials", code="AUTH_004"):
        super().__init__(message, code)


class StorageUnavailable(QuizError):
    """Raised when the storage backend cannot complete an operation."""
    def __init__(self, message="Storage backend unavailable", code="STORAGE_UNAVAILABLE"):
        super().__init__(message, code)
