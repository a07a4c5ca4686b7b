from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import Field

from archetype_quiz.scoring.models import CamelModel, Confidence, ScoreResult


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionRecord(CamelModel):
    """A finalized quiz result. One per email, never updated after creation."""
    email: str
    name: str
    archetype: str
    description: str
    scores: Dict[str, int]
    confidence: Confidence
    completion_time: str
    answers: Dict[str, Any] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=utcnow)
    ip_address: Optional[str] = None

    @classmethod
    def from_result(
        cls,
        result: ScoreResult,
        *,
        email: str,
        name: str,
        answers: Dict[str, Any],
        ip_address: Optional[str],
        completed_at: Optional[datetime] = None,
    ) -> "SubmissionRecord":
        return cls(
            email=email,
            name=name,
            answers=answers,
            ip_address=ip_address,
            completed_at=completed_at or utcnow(),
            **result.model_dump(),
        )


class SessionRecord(CamelModel):
    """In-progress quiz state, keyed by email."""
    email: str
    progress: int = 0
    answers: Dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utcnow)
    ip_address: Optional[str] = None


class AdminAccount(CamelModel):
    username: str
    email: Optional[str] = None
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)
