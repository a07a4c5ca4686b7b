"""
Archetype Scoring Engine
"""
import logging
import random
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

from archetype_quiz.config import app_settings
from archetype_quiz.scoring.loader import load_quiz_definition_from_file
from archetype_quiz.scoring.models import (
    ArchetypeRanking,
    Confidence,
    QuizDefinition,
    ScoreResult,
)

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 80
MEDIUM_CONFIDENCE_THRESHOLD = 55


def percentage_of(part: int, whole: int) -> int:
    """
    Integer percentage of part/whole, rounded half-up.

    Uses integer arithmetic so that exact halves (12.5, 37.5, ...) always
    round up instead of depending on float representation. Returns 0 when
    `whole` is not positive.
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def confidence_for(percentage: int) -> Confidence:
    """Bands the winning percentage. Boundaries are exclusive: 80 is Medium, 55 is Low."""
    if percentage > HIGH_CONFIDENCE_THRESHOLD:
        return Confidence.HIGH
    if percentage > MEDIUM_CONFIDENCE_THRESHOLD:
        return Confidence.MEDIUM
    return Confidence.LOW


def _random_completion_time() -> str:
    return f"{random.randint(0, 2)}:{random.randint(0, 59):02d}"


class ArchetypeEngine:
    """
    Scores answer sets against the archetype weight table of a quiz definition.
    """
    def __init__(self, definition: QuizDefinition):
        self.definition = definition
        self._build_lookup_maps()

    @classmethod
    def from_file(cls, config_path: str) -> "ArchetypeEngine":
        """
        Builds an engine from a YAML quiz definition.

        Raises:
            DefinitionValidationError: If the file is missing or inconsistent.
            pydantic.ValidationError: If the file does not match the schema.
        """
        definition = load_quiz_definition_from_file(config_path)
        logger.info(
            f"Loaded quiz definition '{definition.name}' v{definition.version} from {config_path}: "
            f"{len(definition.archetypes)} archetypes, {len(definition.questions)} questions"
        )
        return cls(definition)

    def _build_lookup_maps(self):
        self.question_ids: List[int] = [q.id for q in self.definition.questions]
        self.descriptions: Dict[str, str] = {a.name: a.description for a in self.definition.archetypes}
        # Missing weights count as zero
        self.weights: Dict[str, Dict[int, int]] = {
            a.name: {qid: int(a.weights.get(qid, 0)) for qid in self.question_ids}
            for a in self.definition.archetypes
        }
        self.max_possible: Dict[str, int] = {
            name: sum(weights.values()) for name, weights in self.weights.items()
        }

    @property
    def archetype_names(self) -> List[str]:
        return [a.name for a in self.definition.archetypes]

    def get_questions(self) -> List[Dict[str, Any]]:
        """Returns the question bank in presentation order."""
        return [
            {
                "id": q.id,
                "text": q.text,
                "options": [option.model_dump() for option in q.options],
            }
            for q in self.definition.questions
        ]

    @staticmethod
    def _normalize_answers(answers: Optional[Mapping[Any, Any]]) -> Dict[int, str]:
        """Keeps only answers keyed by a question id (int or its exact decimal string) with a string value."""
        normalized: Dict[int, str] = {}
        if not answers:
            return normalized
        for key, value in answers.items():
            if not isinstance(value, str):
                continue
            if isinstance(key, bool):
                continue
            if isinstance(key, int):
                question_id = key
            elif isinstance(key, str) and key.isascii() and key.isdigit() and key == str(int(key)):
                question_id = int(key)
            else:
                continue
            normalized[question_id] = value
        return normalized

    def rank(self, answers: Optional[Mapping[Any, Any]]) -> List[ArchetypeRanking]:
        """
        Computes raw and percentage scores for every archetype and ranks them.

        Ordering: percentage desc, then raw score desc, then name asc.
        Unknown question ids and unknown archetype values contribute nothing.
        """
        chosen = self._normalize_answers(answers)

        rankings = []
        for name, weights in self.weights.items():
            raw = sum(weight for qid, weight in weights.items() if chosen.get(qid) == name)
            max_possible = self.max_possible[name]
            rankings.append(ArchetypeRanking(
                archetype=name,
                raw=raw,
                max_possible=max_possible,
                percentage=percentage_of(raw, max_possible),
            ))

        rankings.sort(key=lambda r: (-r.percentage, -r.raw, r.archetype))
        return rankings

    def calculate_scores(self, answers: Optional[Mapping[Any, Any]]) -> ScoreResult:
        """
        Scores an answer set.

        Args:
            answers: Mapping of question id (str or int) to the chosen archetype name.

        Returns:
            ScoreResult with the winning archetype, its description, the
            percentage for every archetype, and the confidence band.
        """
        rankings = self.rank(answers)
        winner = rankings[0]
        by_name = {r.archetype: r for r in rankings}

        return ScoreResult(
            archetype=winner.archetype,
            description=self.descriptions[winner.archetype],
            scores={name: by_name[name].percentage for name in self.archetype_names},
            confidence=confidence_for(winner.percentage),
            completion_time=_random_completion_time(),
        )


@lru_cache(maxsize=1)
def get_default_engine() -> ArchetypeEngine:
    """Process-wide engine for the configured definition file, loaded once."""
    return ArchetypeEngine.from_file(app_settings.definition_path)


def score(answers: Optional[Mapping[Any, Any]]) -> ScoreResult:
    """Scores answers with the default engine."""
    return get_default_engine().calculate_scores(answers)
