"""
Session Diff - Compare two session snapshots.

Facts are keyed by "type:content". A key only in the current snapshot is
added, a key only in the previous one is removed. Importance changes on the
same key are not reported; there is no "modified" detection.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from ..conversation_types import utc_now
from .context_compressor import CompressibleFact


@dataclass
class SessionSnapshot:
    session_id: str
    timestamp: datetime = field(default_factory=utc_now)
    facts: List[CompressibleFact] = field(default_factory=list)
    token_count: int = 0
    file_changes: List[str] = field(default_factory=list)


@dataclass
class Diff:
    added: List[CompressibleFact] = field(default_factory=list)
    removed: List[CompressibleFact] = field(default_factory=list)
    summary: str = ""
    token_delta: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed and self.token_delta == 0


def _index(facts: List[CompressibleFact]) -> Dict[str, CompressibleFact]:
    return {fact.key: fact for fact in facts}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


class DiffGenerator:

    def generate_diff(self, previous: SessionSnapshot, current: SessionSnapshot) -> Diff:
        previous_index = _index(previous.facts)
        current_index = _index(current.facts)

        diff = Diff(
            added=[f for key, f in current_index.items() if key not in previous_index],
            removed=[f for key, f in previous_index.items() if key not in current_index],
            token_delta=current.token_count - previous.token_count,
        )
        diff.summary = self.generate_summary(diff)
        return diff

    def generate_summary(self, diff: Diff) -> str:
        parts = []
        if diff.added:
            parts.append(_plural(len(diff.added), "new fact"))
        if diff.removed:
            parts.append(f"{len(diff.removed)} resolved")
        if diff.token_delta > 0:
            parts.append(f"+{diff.token_delta} tokens")
        elif diff.token_delta < 0:
            parts.append(f"{diff.token_delta} tokens")

        if not parts:
            return "No significant changes"
        return ", ".join(parts)

    def format_diff(self, diff: Diff, previous: SessionSnapshot, current: SessionSnapshot) -> str:
        """Render a diff as a markdown document."""
        lines = [
            "# Session Diff",
            "",
            f"**Previous**: {previous.session_id} ({previous.timestamp.isoformat()})",
            f"**Current**: {current.session_id} ({current.timestamp.isoformat()})",
            "",
            f"**Summary**: {diff.summary}",
            "",
        ]

        if diff.added:
            lines += ["## Added Facts", ""]
            lines += [f"- **[{f.type.value}]** {f.content} (importance: {f.importance})"
                      for f in diff.added]
            lines.append("")

        if diff.removed:
            lines += ["## Removed/Resolved Facts", ""]
            lines += [f"- **[{f.type.value}]** {f.content}" for f in diff.removed]
            lines.append("")

        if diff.token_delta != 0:
            lines += ["## Token Usage", "", f"Change: {diff.token_delta:+d} tokens", ""]

        return "\n".join(lines)
