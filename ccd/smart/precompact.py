"""
PreCompact Detector - Signal a handoff before the context window fills up.

Stateless over its input: rate limiting is the caller's job.
"""

DEFAULT_COMPACT_THRESHOLD = 170000
WARNING_FRACTION = 0.85


class PreCompactDetector:

    def __init__(self, threshold: int = DEFAULT_COMPACT_THRESHOLD):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = threshold
        self.warning_fraction = WARNING_FRACTION

    @property
    def warning_tokens(self) -> float:
        return self.threshold * self.warning_fraction

    def should_create_handoff(self, current_tokens: int) -> bool:
        """True once usage reaches 85% of the threshold."""
        return current_tokens >= self.warning_tokens

    def time_until_compact(self, current_tokens: int) -> int:
        """Tokens left before the threshold, never negative."""
        return max(0, self.threshold - current_tokens)
