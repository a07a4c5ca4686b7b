# This file makes the 'scoring' directory a Python package.

from .engine import ArchetypeEngine, get_default_engine, score, percentage_of
from .models import Confidence, ScoreResult

__all__ = [
    "ArchetypeEngine",
    "get_default_engine",
    "score",
    "percentage_of",
    "Confidence",
    "ScoreResult",
]
