"""leitnercore - Leitner box flashcard scheduling with a DuckDB store."""

from .models import (
    BoxProgress,
    CardMedia,
    CardStatistics,
    CardType,
    Deck,
    Flashcard,
    StudySession,
    Subject,
)
from .constants import BOX_INTERVALS, EXPORT_VERSION
from .db import FlashcardDatabase
from .scheduler import LeitnerScheduler, LeitnerSchedulerConfig
from .review_manager import AnswerResult, ReviewSessionManager, ReviewState
from .service import LeitnerService, OperationResult

__all__ = [
    "BoxProgress",
    "CardMedia",
    "CardStatistics",
    "CardType",
    "Deck",
    "Flashcard",
    "StudySession",
    "Subject",
    "BOX_INTERVALS",
    "EXPORT_VERSION",
    "FlashcardDatabase",
    "LeitnerScheduler",
    "LeitnerSchedulerConfig",
    "AnswerResult",
    "ReviewSessionManager",
    "ReviewState",
    "LeitnerService",
    "OperationResult",
]
