"""
Context Compressor - Keep the most important live facts of each type.

Stale facts are dropped, the rest are grouped by type and each group is cut
to the top N by importance (newest first on ties). Order across groups is
not meaningful.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from ..conversation_types import Fact, FactType, as_utc, utc_now

DEFAULT_MAX_FACTS_PER_TYPE = 10


@dataclass
class CompressibleFact:
    """Read-side shape of a persisted fact."""
    type: FactType
    content: str
    importance: int
    created: datetime = field(default_factory=utc_now)
    stale: bool = False

    @classmethod
    def from_fact(cls, fact: Fact, stale: bool = False) -> "CompressibleFact":
        return cls(
            type=fact.type,
            content=fact.content,
            importance=fact.importance,
            created=fact.timestamp,
            stale=stale,
        )

    def to_fact(self) -> Fact:
        return Fact(type=self.type, content=self.content,
                    importance=self.importance, timestamp=self.created)

    @property
    def key(self) -> str:
        return f"{self.type.value}:{self.content}"


class ContextCompressor:

    def __init__(self, max_facts_per_type: int = DEFAULT_MAX_FACTS_PER_TYPE):
        if max_facts_per_type < 0:
            raise ValueError("max_facts_per_type must not be negative")
        self.max_facts_per_type = max_facts_per_type

    def compress(self, facts: List[CompressibleFact]) -> List[CompressibleFact]:
        grouped: Dict[FactType, List[CompressibleFact]] = defaultdict(list)
        for fact in facts:
            if not fact.stale:
                grouped[fact.type].append(fact)

        compressed: List[CompressibleFact] = []
        for type_facts in grouped.values():
            ranked = sorted(type_facts, key=lambda f: (f.importance, as_utc(f.created)), reverse=True)
            compressed.extend(ranked[:self.max_facts_per_type])
        return compressed
