"""
Fact Extractor - Pull typed facts out of assistant messages.

Only assistant messages are scanned: the assistant's stated decisions,
blockers, todos, file changes, dependencies and insights are what a later
session needs. Each fact type is checked independently, so one message can
yield several facts.

Content is the first "."-separated sentence containing a trigger. A trigger
that itself contains a period passes the message-level check but matches no
sentence; such facts are still emitted, with empty content. None of the
built-in triggers contain a period.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from .conversation_types import Conversation, Fact, FactType, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerRule:
    fact_type: FactType
    triggers: Tuple[str, ...]
    default_importance: int
    # A second phrase set that must also be present somewhere in the message
    requires: Tuple[str, ...] = ()


FILE_EXTENSIONS = (
    ".ts", ".tsx", ".js", ".jsx", ".go", ".py", ".java",
    ".rs", ".rb", ".md", ".json", ".yaml", ".yml", ".toml",
)

RULES: Tuple[TriggerRule, ...] = (
    TriggerRule(FactType.DECISION, ("decided to", "chose to", "going with", "will use"), 4),
    TriggerRule(FactType.BLOCKER, ("blocked by", "can't proceed", "error:", "failed to"), 5),
    TriggerRule(FactType.TODO, ("todo:", "need to", "should", "must"), 3),
    TriggerRule(FactType.FILE_CHANGE, ("created", "modified", "updated", "deleted"), 2,
                requires=FILE_EXTENSIONS),
    TriggerRule(FactType.DEPENDENCY, ("installed", "added dependency", "npm install", "pip install",
                                      "go get", "yarn add", "cargo add", "poetry add"), 3),
    TriggerRule(FactType.INSIGHT, ("discovered", "found that", "interesting", "note that"), 3),
)


def contains_any(text: str, phrases: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(phrase.lower() in lowered for phrase in phrases)


def extract_sentence(text: str, phrases: Iterable[str]) -> str:
    """Return the first '.'-separated sentence containing a phrase, stripped, or ''."""
    phrases = tuple(phrases)
    for sentence in text.split("."):
        if contains_any(sentence, phrases):
            return sentence.strip()
    return ""


class FactExtractor:
    """Scan a conversation for trigger phrases and emit unscored facts."""

    def __init__(self, rules: Tuple[TriggerRule, ...] = RULES):
        self.rules = rules

    def extract_facts(self, conversation: Conversation,
                      now: Optional[datetime] = None) -> List[Fact]:
        timestamp = now or utc_now()
        facts: List[Fact] = []

        for message in conversation.assistant_messages():
            content = message.content
            for rule in self.rules:
                if not contains_any(content, rule.triggers):
                    continue
                if rule.requires and not contains_any(content, rule.requires):
                    continue

                snippet = extract_sentence(content, rule.triggers)
                if not snippet:
                    logger.debug("Trigger for %s matched but no sentence did", rule.fact_type.value)
                facts.append(Fact(
                    type=rule.fact_type,
                    content=snippet,
                    importance=rule.default_importance,
                    timestamp=timestamp,
                ))

        return facts


def extract_facts(conversation: Conversation) -> List[Fact]:
    return FactExtractor().extract_facts(conversation)
