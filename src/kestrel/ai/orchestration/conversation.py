"""Normalization of inbound chat messages into model-runtime input."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping, Sequence, Union

from ...errors import ConversationError
from .. import prompts
from ..tools.types import ToolSpec

__all__ = [
    "Role",
    "TextContent",
    "StructuredContent",
    "MessageContent",
    "ConversationMessage",
    "ConversationAdapter",
    "canonical_json",
]

LOGGER = logging.getLogger(__name__)

Role = Literal["user", "assistant", "system", "tool"]
_ROLES: frozenset[str] = frozenset({"user", "assistant", "system", "tool"})
_SUBMITTED_ROLE: Mapping[str, str] = {
    "user": "user",
    "assistant": "assistant",
    "system": "system",
    "tool": "assistant",
}


def canonical_json(value: Any) -> str:
    """Deterministic JSON text: sorted keys, compact separators, unicode kept."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass(slots=True, frozen=True)
class TextContent:
    text: str

    def as_text(self) -> str:
        return self.text


@dataclass(slots=True, frozen=True)
class StructuredContent:
    record: Mapping[str, Any]

    def as_text(self) -> str:
        return canonical_json(self.record)


MessageContent = Union[TextContent, StructuredContent]


@dataclass(slots=True, frozen=True)
class ConversationMessage:
    """A single message of the inbound conversation, oldest first."""

    role: Role
    content: MessageContent
    id: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ConversationMessage":
        role = payload.get("role")
        if role not in _ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        raw = payload.get("content")
        if isinstance(raw, str):
            content: MessageContent = TextContent(raw)
        elif isinstance(raw, Mapping):
            content = StructuredContent(dict(raw))
        else:
            raise ValueError("Message content must be a string or an object")
        message_id = payload.get("id")
        return cls(role=role, content=content, id=str(message_id) if message_id is not None else None)

    @property
    def text(self) -> str:
        return self.content.as_text()


class ConversationAdapter:
    """Turns raw inbound messages into the chat payload sent to the model.

    ``tool`` messages are resubmitted as ``assistant`` text and a single
    system instruction describing the available tools is prepended.
    """

    def __init__(self, specs: Iterable[ToolSpec] | None = None, *, instruction: str | None = None) -> None:
        self._instruction = instruction if instruction is not None else prompts.system_instruction(specs)

    @property
    def instruction(self) -> str:
        return self._instruction

    def normalize(self, raw_messages: Sequence[Mapping[str, Any] | ConversationMessage]) -> list[ConversationMessage]:
        """Parse and check the conversation.

        Raises:
            ConversationError: If the list is empty or does not end with a user message.
        """
        messages = [
            item if isinstance(item, ConversationMessage) else ConversationMessage.from_mapping(item)
            for item in raw_messages
        ]
        if not messages or messages[-1].role != "user":
            LOGGER.debug("Rejecting conversation of %s message(s) not ending with a user turn", len(messages))
            raise ConversationError()
        return messages

    def build(self, raw_messages: Sequence[Mapping[str, Any] | ConversationMessage]) -> list[dict[str, str]]:
        """Normalized conversation as chat-completion messages, system instruction first."""
        messages = self.normalize(raw_messages)
        payload = [{"role": "system", "content": self._instruction}]
        payload.extend({"role": _SUBMITTED_ROLE[message.role], "content": message.text} for message in messages)
        return payload
