"""
Smart context features.

Provides:
- ImportanceScorer: Score facts 1-5
- StaleDetector: Decide whether a fact is still relevant
- ContextCompressor: Keep the top facts per type
- PreCompactDetector: Signal a handoff before the context fills up
- DiffGenerator: Compare two session snapshots
"""

from .context_compressor import CompressibleFact, ContextCompressor
from .importance_scorer import ImportanceScorer
from .precompact import PreCompactDetector
from .session_diff import Diff, DiffGenerator, SessionSnapshot
from .stale_detector import StaleDetector

__all__ = [
    "ImportanceScorer",
    "StaleDetector",
    "CompressibleFact",
    "ContextCompressor",
    "PreCompactDetector",
    "SessionSnapshot",
    "Diff",
    "DiffGenerator",
]
