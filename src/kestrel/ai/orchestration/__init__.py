"""Conversation shaping, the model tool loop and stream translation."""

from .conversation import ConversationAdapter, ConversationMessage, StructuredContent, TextContent
from .runtime import ModelRuntime, ToolLoopRuntime
from .translator import (
    GENERIC_STREAM_ERROR,
    DoneEvent,
    ErrorEvent,
    StreamTranslator,
    TextDeltaEvent,
    ToolResultEvent,
    TranslatorState,
    encode_sse,
)
from .types import RuntimeEvent

__all__ = [
    "ConversationAdapter",
    "ConversationMessage",
    "StructuredContent",
    "TextContent",
    "ModelRuntime",
    "ToolLoopRuntime",
    "GENERIC_STREAM_ERROR",
    "DoneEvent",
    "ErrorEvent",
    "StreamTranslator",
    "TextDeltaEvent",
    "ToolResultEvent",
    "TranslatorState",
    "encode_sse",
    "RuntimeEvent",
]
