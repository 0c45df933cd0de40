"""
Importance Scorer - Score a fact 1-5 from its type, content and age.

Score = type weight * 3.0          (max 3.0)
      + content bonus              (max 1.5)
      + recency bonus              (max 0.5)
rounded half-up and clamped to [1, 5].

The coefficients below are the scoring contract; ImportanceScorer takes
overrides for deployments that want to tune them.
"""
import math
from datetime import datetime
from typing import Dict, Optional, Sequence, Union

from ..conversation_types import FactType, as_utc, utc_now

TYPE_WEIGHTS: Dict[FactType, float] = {
    FactType.BLOCKER: 1.0,       # Highest priority
    FactType.DECISION: 0.9,      # Architectural choices
    FactType.DEPENDENCY: 0.7,
    FactType.TODO: 0.6,
    FactType.INSIGHT: 0.5,
    FactType.FILE_CHANGE: 0.4,   # Implementation details
}
TYPE_SCALE = 3.0

HIGH_VALUE_KEYWORDS = ("critical", "breaking", "urgent", "security", "bug", "crash", "error")
MEDIUM_VALUE_KEYWORDS = ("important", "major", "refactor", "optimize", "performance")
HIGH_VALUE_BONUS = 0.3
MEDIUM_VALUE_BONUS = 0.2
MAX_CONTENT_BONUS = 1.5

# (max age in hours, bonus), checked in order
RECENCY_BONUSES = (
    (1, 0.5),
    (24, 0.3),
    (24 * 7, 0.1),
)

MIN_SCORE = 1
MAX_SCORE = 5


class ImportanceScorer:
    """Heuristic importance scoring for extracted facts."""

    def __init__(self, weights: Optional[Dict[FactType, float]] = None,
                 high_value: Sequence[str] = HIGH_VALUE_KEYWORDS,
                 medium_value: Sequence[str] = MEDIUM_VALUE_KEYWORDS):
        self.weights = dict(TYPE_WEIGHTS if weights is None else weights)
        self.high_value = tuple(high_value)
        self.medium_value = tuple(medium_value)

    def calculate_importance(self, fact_type: Union[FactType, str], content: str,
                             created_at: datetime, now: Optional[datetime] = None) -> int:
        score = 0.0

        kind = FactType.coerce(fact_type)
        if kind is not None:
            score += self.weights.get(kind, 0.0) * TYPE_SCALE

        score += self.content_bonus(content)
        score += self.recency_bonus(created_at, now)

        # Round half away from zero; score is never negative
        normalized = int(math.floor(score + 0.5))
        return max(MIN_SCORE, min(MAX_SCORE, normalized))

    def content_bonus(self, content: str) -> float:
        lowered = (content or "").lower()
        score = 0.0

        for keyword in self.high_value:
            if keyword in lowered:
                score += HIGH_VALUE_BONUS

        for keyword in self.medium_value:
            if keyword in lowered:
                score += MEDIUM_VALUE_BONUS

        # Longer content is usually more detailed
        if len(lowered) > 100:
            score += 0.3
        elif len(lowered) > 50:
            score += 0.2

        return min(score, MAX_CONTENT_BONUS)

    def recency_bonus(self, created_at: datetime, now: Optional[datetime] = None) -> float:
        age_hours = (as_utc(now or utc_now()) - as_utc(created_at)).total_seconds() / 3600
        for max_hours, bonus in RECENCY_BONUSES:
            if age_hours < max_hours:
                return bonus
        return 0.0
