"""
Conversation and Fact Type Definitions

A Conversation only lives for one parse cycle. Facts are created by the
extractor, scored once, then copied into the ledger and the record store.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return value with naive datetimes taken as UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (a trailing Z is accepted). Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    return as_utc(parsed)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Role(Enum):
    """Speaker of a conversation message"""
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def coerce(cls, value: Any) -> Optional["Role"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class FactType(Enum):
    """The six kinds of fact the extractor knows about"""
    DECISION = "decision"
    BLOCKER = "blocker"
    TODO = "todo"
    FILE_CHANGE = "file_change"
    DEPENDENCY = "dependency"
    INSIGHT = "insight"

    @classmethod
    def coerce(cls, value: Union["FactType", str, None]) -> Optional["FactType"]:
        """Map a stored string to a FactType; unknown strings give None."""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    timestamp: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict) -> Optional["Message"]:
        """Build a message from a log record; records with an unknown role give None."""
        role = Role.coerce(data.get("role"))
        if role is None:
            return None
        content = data.get("content")
        return cls(
            role=role,
            content=content if isinstance(content, str) else "",
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass
class Conversation:
    messages: List[Message] = field(default_factory=list)

    def assistant_messages(self) -> List[Message]:
        return [m for m in self.messages if m.role is Role.ASSISTANT]


@dataclass
class Fact:
    """
    A typed snippet extracted from one assistant message.

    importance starts at the extractor's per-type default and is
    overwritten once by the importance scorer.
    """
    type: FactType
    content: str
    importance: int
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "content": self.content,
            "importance": self.importance,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Fact":
        fact_type = FactType.coerce(data.get("type"))
        if fact_type is None:
            raise ValueError(f"Unknown fact type: {data.get('type')!r}")
        return cls(
            type=fact_type,
            content=data.get("content", ""),
            importance=int(data.get("importance", 1)),
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
        )
