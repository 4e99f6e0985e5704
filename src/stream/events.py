"""
Typed events decoded from the agent backend stream.

Each event mirrors one raw chunk shape emitted by the backend. Events are
ephemeral: they are folded into the message log as soon as they are decoded
and are never stored.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Discriminator values for decoded events."""

    INIT = "init"
    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    TOOL_ACTIVITY = "tool_activity"
    RESULT = "result"
    ERROR = "error"
    DEBUG = "debug"
    DONE = "done"
    UNHANDLED = "unhandled"


DONE_SENTINEL = "[DONE]"


class Usage(BaseModel):
    """Token usage reported with a result."""

    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: Optional[int] = None
    cache_creation_input_tokens: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class InitEvent(BaseModel):
    type: Literal[EventType.INIT] = EventType.INIT
    session_id: Optional[str] = None
    model: Optional[str] = None
    tools: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "init",
            "sessionId": self.session_id,
            "model": self.model,
            "tools": list(self.tools),
        }


class TextEvent(BaseModel):
    """A text chunk; ``full_text`` is authoritative when present."""

    type: Literal[EventType.TEXT] = EventType.TEXT
    text: Optional[str] = None
    full_text: Optional[str] = None
    message_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": "text"}
        if self.text is not None:
            payload["text"] = self.text
        if self.full_text is not None:
            payload["fullText"] = self.full_text
        if self.message_id is not None:
            payload["messageId"] = self.message_id
        return payload


class ToolUseEvent(BaseModel):
    type: Literal[EventType.TOOL_USE] = EventType.TOOL_USE
    invocation_id: Optional[str] = None
    name: str
    input: Any = None

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": "tool_use", "tool": self.name, "input": self.input}
        if self.invocation_id is not None:
            payload["id"] = self.invocation_id
        return payload


class ToolResultEvent(BaseModel):
    type: Literal[EventType.TOOL_RESULT] = EventType.TOOL_RESULT
    invocation_id: Optional[str] = None
    name: Optional[str] = None
    content: Any = None
    is_error: bool = False

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": "tool_result",
            "result": self.content,
            "is_error": self.is_error,
        }
        if self.invocation_id is not None:
            payload["tool_use_id"] = self.invocation_id
        if self.name is not None:
            payload["tool"] = self.name
        return payload


class ToolActivityEvent(BaseModel):
    """Tool activity recovered from inside a generic ``debug`` envelope."""

    type: Literal[EventType.TOOL_ACTIVITY] = EventType.TOOL_ACTIVITY
    items: List[Union[ToolUseEvent, ToolResultEvent]] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        # Re-emit the original envelope so consumers decode it the same way.
        return {"type": "debug", "data": self.data}


class ResultEvent(BaseModel):
    type: Literal[EventType.RESULT] = EventType.RESULT
    success: bool = True
    duration: Optional[float] = None
    cost: Optional[float] = None
    usage: Optional[Usage] = None

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": "result", "success": self.success}
        if self.duration is not None:
            payload["duration"] = self.duration
        if self.cost is not None:
            payload["cost"] = self.cost
        if self.usage is not None:
            payload["usage"] = self.usage.model_dump(exclude_none=True)
        return payload


class ErrorEvent(BaseModel):
    type: Literal[EventType.ERROR] = EventType.ERROR
    error: str = "Unknown error occurred"

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "error", "error": self.error}


class DebugEvent(BaseModel):
    """A ``debug`` envelope that carried no tool activity."""

    type: Literal[EventType.DEBUG] = EventType.DEBUG
    data: Any = None

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "debug", "data": self.data}


class DoneEvent(BaseModel):
    """Terminal sentinel (``data: [DONE]``)."""

    type: Literal[EventType.DONE] = EventType.DONE

    def to_wire(self) -> str:
        return DONE_SENTINEL


class UnhandledEvent(BaseModel):
    """Top-level type the decoder does not know; kept for auditability."""

    type: Literal[EventType.UNHANDLED] = EventType.UNHANDLED
    raw_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return dict(self.payload)


Event = Union[
    InitEvent,
    TextEvent,
    ToolUseEvent,
    ToolResultEvent,
    ToolActivityEvent,
    ResultEvent,
    ErrorEvent,
    DebugEvent,
    DoneEvent,
    UnhandledEvent,
]

TERMINAL_EVENT_TYPES = frozenset({EventType.RESULT, EventType.ERROR, EventType.DONE})
