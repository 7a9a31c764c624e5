"""
Recovery helpers for users who get stuck mid-booking.

Detects requests to go back a step, to start over, or to have the
current question explained.
"""

import re
from enum import Enum
from typing import Optional


class RecoveryAction(str, Enum):
    GO_BACK = "go_back"
    RESTART = "restart"
    CLARIFY = "clarify"


_RECOVERY_PATTERNS: tuple[tuple[re.Pattern, RecoveryAction], ...] = (
    (re.compile(r"\b(start over|restart|begin again|from the beginning)\b", re.IGNORECASE),
     RecoveryAction.RESTART),
    (re.compile(r"\b(go back|previous (question|step)|undo)\b", re.IGNORECASE),
     RecoveryAction.GO_BACK),
    (re.compile(
        r"what\s+(do you mean|did you say|was that)|can you repeat|say that again"
        r"|\bpardon\b|i don'?t understand|i'?m confused",
        re.IGNORECASE,
    ), RecoveryAction.CLARIFY),
)


def detect_recovery(message: str) -> Optional[RecoveryAction]:
    """Return the first recovery action whose pattern matches ``message``."""
    for pattern, action in _RECOVERY_PATTERNS:
        if pattern.search(message):
            return action
    return None
