from enum import Enum
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes snake_case fields as camelCase for clients."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Quiz definition (loaded from YAML) ---

class ArchetypeDefinition(BaseModel):
    name: str
    description: str
    weights: Dict[int, Literal[1, 2, 3]]  # question_id -> weight


class QuestionOption(BaseModel):
    text: str
    archetype: str


class Question(BaseModel):
    id: int = Field(..., ge=1)
    text: str
    options: List[QuestionOption]


class QuizDefinition(BaseModel):
    version: str
    name: str
    archetypes: List[ArchetypeDefinition] = Field(..., min_length=1)
    questions: List[Question] = Field(..., min_length=1)


# --- Scoring output ---

class Confidence(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ArchetypeRanking(BaseModel):
    """One row of the ranked archetype table, mostly useful for tracing."""
    archetype: str
    raw: int
    max_possible: int
    percentage: int


class ScoreResult(CamelModel):
    archetype: str
    description: str
    scores: Dict[str, int]
    confidence: Confidence
    completion_time: str  # display only, never used for ranking
