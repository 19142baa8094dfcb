"""
Leitner scheduling and exchange-format constants.

Pure constants only; runtime configuration lives in leitnercore.config.
"""
from typing import Dict

# Box bounds. Box 4 is terminal ("mastered").
MIN_BOX: int = 1
MAX_BOX: int = 4

# Days until the next review for a card that has just landed in each box.
BOX_INTERVALS: Dict[int, int] = {
    1: 1,   # daily
    2: 3,   # every 3 days
    3: 7,   # weekly
    4: 30,  # monthly
}

# Exchange document format.
EXPORT_VERSION: str = "1.0"
DEFAULT_EXPORT_SOURCE: str = "Leitner Flashcards"

EXPORT_TYPE_FULL_BACKUP: str = "full-backup"
EXPORT_TYPE_SINGLE_SUBJECT: str = "single-subject"
