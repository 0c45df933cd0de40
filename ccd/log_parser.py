"""
Log Parser - Turn raw conversation log text into a Conversation.

Structured logs are a single JSON object {"messages": [{role, content, timestamp}]}.
Anything that is not a JSON object falls back to a line scanner that looks for
"User:" / "Assistant:" prefixes. Parsing never raises; an empty Conversation
is a valid result.
"""
import json
import logging
from typing import List, Optional

from .conversation_types import Conversation, Message, Role

logger = logging.getLogger(__name__)

ROLE_PREFIXES = (
    ("user:", Role.USER),
    ("assistant:", Role.ASSISTANT),
)


class LogParser:
    """Parse conversation logs, JSON first, then plain text."""

    def parse(self, data: str) -> Conversation:
        conversation = self._parse_json(data)
        if conversation is None:
            conversation = self._parse_text(data)
        return conversation

    def _parse_json(self, data: str) -> Optional[Conversation]:
        try:
            payload = json.loads(data)
        except (ValueError, TypeError, RecursionError):
            # RecursionError: nesting deeper than the decoder can follow
            return None
        if not isinstance(payload, dict):
            return None

        raw_messages = payload.get("messages")
        if not isinstance(raw_messages, list):
            return Conversation()

        messages = []
        for raw in raw_messages:
            if not isinstance(raw, dict):
                continue
            message = Message.from_dict(raw)
            if message is None:
                logger.debug("Skipping message with unknown role: %r", raw.get("role"))
                continue
            messages.append(message)
        return Conversation(messages=messages)

    def _parse_text(self, data: str) -> Conversation:
        messages: List[Message] = []
        current_role: Optional[Role] = None
        current_content: List[str] = []

        def flush():
            if current_role is not None:
                messages.append(Message(role=current_role, content="\n".join(current_content)))

        for raw_line in data.split("\n"):
            line = raw_line.strip()
            if not line:
                continue

            role, remainder = _match_role(line)
            if role is not None:
                flush()
                current_role = role
                current_content = [remainder] if remainder else []
            elif current_role is not None:
                current_content.append(line)

        flush()
        return Conversation(messages=messages)


def _match_role(line: str):
    lowered = line.lower()
    for prefix, role in ROLE_PREFIXES:
        if lowered.startswith(prefix):
            return role, line[len(prefix):].strip()
    return None, ""


# ============== TOKEN ESTIMATION ==============
CHARS_PER_TOKEN = 4


def count_tokens(conversation: Conversation) -> int:
    """
    Estimate the token count of a conversation.

    This is floor(len(content) / 4) summed per message. It is an
    approximation only; thresholds compared against it are approximate too.
    """
    return sum(len(message.content) // CHARS_PER_TOKEN for message in conversation.messages)
