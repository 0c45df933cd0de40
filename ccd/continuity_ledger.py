"""
Continuity Ledger - Append-only daily journal of session state.

Layout under the repository root:
    thoughts/ledgers/CONTINUITY_YYYY-MM-DD.jsonl   one LedgerEntry per line (UTC date)
    thoughts/shared/handoffs/handoff_<session>_<YYYYmmdd_HHMMSS>[_N].md

One daemon per project writes the ledger. Appends are a single
open-append-close and are not locked.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import handoff_dir, ledger_dir
from .conversation_types import Fact, FactType, format_timestamp, parse_timestamp, utc_now
from .smart.context_compressor import CompressibleFact
from .smart.session_diff import SessionSnapshot

logger = logging.getLogger(__name__)

LEDGER_PREFIX = "CONTINUITY_"
LEDGER_GLOB = f"{LEDGER_PREFIX}*.jsonl"


class LedgerError(LookupError):
    """The ledger has no entry to return."""


@dataclass
class LedgerEntry:
    """
    Snapshot of one processing cycle.

    decisions / next_steps / blockers / file_changes are always derived
    from facts and are written out for readers of the raw file.
    """
    timestamp: datetime
    session_id: str
    project_id: str
    token_count: int
    facts: List[Fact] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    def contents_of(self, fact_type: FactType) -> List[str]:
        return [f.content for f in self.facts if f.type is fact_type]

    @property
    def decisions(self) -> List[str]:
        return self.contents_of(FactType.DECISION)

    @property
    def next_steps(self) -> List[str]:
        return self.contents_of(FactType.TODO)

    @property
    def blockers(self) -> List[str]:
        return self.contents_of(FactType.BLOCKER)

    @property
    def file_changes(self) -> List[str]:
        return self.contents_of(FactType.FILE_CHANGE)

    def to_dict(self) -> Dict:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "session_id": self.session_id,
            "project_id": self.project_id,
            "token_count": self.token_count,
            "facts": [f.to_dict() for f in self.facts],
            "context": self.context,
            "decisions": self.decisions,
            "next_steps": self.next_steps,
            "blockers": self.blockers,
            "file_changes": self.file_changes,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LedgerEntry":
        timestamp = parse_timestamp(data.get("timestamp"))
        if timestamp is None:
            raise ValueError("Ledger entry has no valid timestamp")
        return cls(
            timestamp=timestamp,
            session_id=data.get("session_id", ""),
            project_id=data.get("project_id", ""),
            token_count=int(data.get("token_count", 0)),
            facts=[Fact.from_dict(f) for f in data.get("facts") or []],
            context=data.get("context") or {},
        )

    def to_snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            timestamp=self.timestamp,
            facts=[CompressibleFact.from_fact(f) for f in self.facts],
            token_count=self.token_count,
            file_changes=self.file_changes,
        )


class ContinuityLedger:

    def __init__(self, project_id: str, repo_path, clock: Callable[[], datetime] = utc_now):
        self.project_id = project_id
        self.clock = clock
        self.ledger_path = ledger_dir(repo_path)
        self.handoff_path = handoff_dir(repo_path)

        # Failing to create either directory is fatal
        self.ledger_path.mkdir(parents=True, exist_ok=True)
        self.handoff_path.mkdir(parents=True, exist_ok=True)

    def _ledger_files(self) -> List[Path]:
        return sorted(self.ledger_path.glob(LEDGER_GLOB))

    def append_entry(self, entry: LedgerEntry) -> Path:
        """Append one entry to today's ledger file and return the file path."""
        path = self.ledger_path / f"{LEDGER_PREFIX}{self.clock().strftime('%Y-%m-%d')}.jsonl"
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        return path

    def get_latest_entry(self) -> LedgerEntry:
        """
        Return the last entry of the newest ledger file.

        Raises:
            LedgerError: no ledger files, or the newest one is empty
            ValueError: the last line is not a valid entry
        """
        files = self._ledger_files()
        if not files:
            raise LedgerError(f"No ledger files in {self.ledger_path}")

        latest_file = files[-1]
        lines = [line for line in latest_file.read_text(encoding="utf-8").split("\n") if line.strip()]
        if not lines:
            raise LedgerError(f"Empty ledger file: {latest_file.name}")

        return LedgerEntry.from_dict(json.loads(lines[-1]))

    def get_recent_entries(self, limit: int = 2) -> List[LedgerEntry]:
        """Return up to `limit` newest entries across day files, oldest first."""
        entries: List[LedgerEntry] = []
        for path in reversed(self._ledger_files()):
            lines = [line for line in path.read_text(encoding="utf-8").split("\n") if line.strip()]
            for line in reversed(lines):
                if len(entries) >= limit:
                    break
                try:
                    entries.append(LedgerEntry.from_dict(json.loads(line)))
                except ValueError as e:
                    logger.debug("Skipping unreadable ledger line in %s: %s", path.name, e)
            if len(entries) >= limit:
                break
        entries.reverse()
        return entries

    def create_handoff(self, session_id: str, summary: str, facts: List[Fact]) -> Path:
        """
        Write a handoff document and return its path.

        Existing documents are never overwritten: a second handoff in the
        same second gets a _2, _3, ... suffix.
        """
        now = self.clock()
        stem = f"handoff_{session_id}_{now.strftime('%Y%m%d_%H%M%S')}"
        text = self.render_handoff(session_id, summary, facts, now)

        attempt = 1
        while True:
            suffix = "" if attempt == 1 else f"_{attempt}"
            path = self.handoff_path / f"{stem}{suffix}.md"
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(text)
                return path
            except FileExistsError:
                attempt += 1

    def render_handoff(self, session_id: str, summary: str, facts: List[Fact],
                       now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        lines = [
            "# Session Handoff",
            "",
            f"**Session ID**: {session_id}",
            f"**Timestamp**: {now.isoformat()}",
            f"**Project**: {self.project_id}",
            "",
            "## Summary",
            summary,
            "",
            "## Key Facts",
        ]
        lines += [f"- [{f.type.value}] {f.content} (importance: {f.importance})" for f in facts]

        lines += ["", "## Next Steps"]
        lines += [f"- [ ] {f.content}" for f in facts if f.type is FactType.TODO]

        lines += ["", "## Blockers"]
        lines += [f"- ⚠️ {f.content}" for f in facts if f.type is FactType.BLOCKER]

        return "\n".join(lines) + "\n"
