"""
Stale Detector - Decide whether a stored fact is still relevant.

A pure predicate: callers set the stale flag on their own records.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional, Union

from ..conversation_types import FactType, as_utc, utc_now

STALE_DAYS: Dict[FactType, int] = {
    FactType.BLOCKER: 3,        # Resolved quickly or abandoned
    FactType.TODO: 7,           # Done or deprioritized
    FactType.FILE_CHANGE: 14,
    FactType.DEPENDENCY: 30,    # Stable after install
    FactType.DECISION: 90,
    FactType.INSIGHT: 60,
}
DEFAULT_STALE_DAYS = 30

# Content that marks a fact as resolved regardless of age
RESOLUTION_KEYWORDS: Dict[FactType, str] = {
    FactType.BLOCKER: "resolved",
    FactType.TODO: "done",
}


class StaleDetector:

    def __init__(self, stale_days: Optional[Dict[FactType, int]] = None,
                 default_days: int = DEFAULT_STALE_DAYS):
        self.stale_days = dict(STALE_DAYS if stale_days is None else stale_days)
        self.default_days = default_days

    def threshold_for(self, fact_type: Union[FactType, str]) -> timedelta:
        kind = FactType.coerce(fact_type)
        days = self.stale_days.get(kind, self.default_days) if kind is not None else self.default_days
        return timedelta(days=days)

    def is_stale(self, fact_type: Union[FactType, str], created_at: datetime, content: str,
                 now: Optional[datetime] = None) -> bool:
        kind = FactType.coerce(fact_type)

        keyword = RESOLUTION_KEYWORDS.get(kind) if kind is not None else None
        if keyword and keyword in (content or "").lower():
            return True

        age = as_utc(now or utc_now()) - as_utc(created_at)
        return age > self.threshold_for(fact_type)
