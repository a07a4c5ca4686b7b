from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from archetype_quiz.scoring.models import CamelModel, QuestionOption
from archetype_quiz.schemas.records import SubmissionRecord


# --- Requests ---
# Fields are optional so missing values reach the lifecycle manager and come
# back as a 400 rather than a schema-level 422.

class SubmitRequest(BaseModel):
    answers: Optional[Dict[str, Any]] = None  # question_id -> chosen archetype
    email: Optional[str] = None
    name: Optional[str] = None


class SessionRequest(BaseModel):
    email: Optional[str] = None
    progress: Optional[int] = None
    answers: Optional[Dict[str, Any]] = None


class ResetRequest(BaseModel):
    email: Optional[str] = None


# --- Responses ---

class QuestionOut(BaseModel):
    id: int
    text: str
    options: List[QuestionOption]


class ArchetypeShare(BaseModel):
    archetype: str
    count: int
    percentage: int


class AnalyticsResponse(CamelModel):
    total_submissions: int
    archetype_distribution: List[ArchetypeShare] = Field(default_factory=list)
    recent_submissions: List[SubmissionRecord] = Field(default_factory=list)


class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionRecord]
    analytics: AnalyticsResponse
