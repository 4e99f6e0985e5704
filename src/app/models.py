"""
Application-level data models for the relay.

Defines the session, the message log entries projected from the event
stream, and the pending tool invocation records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from stream.events import Usage


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TurnStatus(str, Enum):
    """Turn state of a session."""

    IDLE = "idle"
    STREAMING = "streaming"


class MessageType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    INIT = "init"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    RESULT = "result"
    DEBUG = "debug"
    ERROR = "error"


class BaseMessage(BaseModel):
    id: str
    timestamp: datetime = Field(default_factory=utc_now)


class UserMessage(BaseMessage):
    type: Literal[MessageType.USER] = MessageType.USER
    content: str


class AssistantMessage(BaseMessage):
    """Assistant text, updated in place while the turn streams."""

    type: Literal[MessageType.ASSISTANT] = MessageType.ASSISTANT
    content: str = ""
    streaming_message_id: Optional[str] = None
    is_streaming: bool = True


class InitMessage(BaseMessage):
    type: Literal[MessageType.INIT] = MessageType.INIT
    backend_session_id: Optional[str] = None
    model: Optional[str] = None
    tools: List[str] = Field(default_factory=list)


class ToolUseMessage(BaseMessage):
    type: Literal[MessageType.TOOL_USE] = MessageType.TOOL_USE
    tool_id: str
    tool_name: str
    tool_input: Any = None


class ToolResultMessage(BaseMessage):
    type: Literal[MessageType.TOOL_RESULT] = MessageType.TOOL_RESULT
    tool_id: Optional[str] = None
    tool_name: str
    tool_input: Any = None
    tool_result: Any = None
    is_error: bool = False
    error: Optional[str] = None


class ResultMessage(BaseMessage):
    type: Literal[MessageType.RESULT] = MessageType.RESULT
    content: str = "Execution completed"
    success: bool = True
    duration: Optional[float] = None
    cost: Optional[float] = None
    usage: Optional[Usage] = None
    error: Optional[str] = None


class DebugMessage(BaseMessage):
    type: Literal[MessageType.DEBUG] = MessageType.DEBUG
    event_type: str
    data: Any = None


class ErrorMessage(BaseMessage):
    type: Literal[MessageType.ERROR] = MessageType.ERROR
    error: str


Message = Annotated[
    Union[
        UserMessage,
        AssistantMessage,
        InitMessage,
        ToolUseMessage,
        ToolResultMessage,
        ResultMessage,
        DebugMessage,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]


class ToolInvocation(BaseModel):
    """A tool call waiting for its result."""

    invocation_id: str
    tool_name: str
    input: Any = None
    start_time: datetime = Field(default_factory=utc_now)
    completion_time: Optional[datetime] = None
    result: Any = None
    is_error: bool = False

    @property
    def is_complete(self) -> bool:
        return self.completion_time is not None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completion_time is None:
            return None
        return (self.completion_time - self.start_time).total_seconds()


class Session(BaseModel):
    """A conversation for one project, spanning many turns."""

    session_id: str
    project_id: str
    status: TurnStatus = TurnStatus.IDLE

    created_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)

    messages: List[Message] = Field(default_factory=list)

    # Identity reported by the backend, handed back on the next turn
    backend_session_id: Optional[str] = None
    model: Optional[str] = None

    turn_count: int = 0
    total_cost: float = 0.0
    total_tokens: int = 0

    metadata: Dict[str, Any] = Field(default_factory=dict)

    def find_message(self, message_id: str) -> Optional[BaseMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None
