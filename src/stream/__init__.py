"""
Stream Wire Layer

Turns a text/event-stream into typed events:
- FrameBuffer reassembles records split across reads
- StreamTransport opens one stream per turn and yields raw records
- EventDecoder parses records into the Event union
"""

from .decoder import EventDecoder
from .events import (
    DONE_SENTINEL,
    DebugEvent,
    DoneEvent,
    ErrorEvent,
    Event,
    EventType,
    InitEvent,
    ResultEvent,
    TextEvent,
    ToolActivityEvent,
    ToolResultEvent,
    ToolUseEvent,
    UnhandledEvent,
    Usage,
)
from .framing import FrameBuffer
from .transport import SESSION_HEADER, FrameStream, StreamTransport, TransportError

__all__ = [
    "DONE_SENTINEL",
    "SESSION_HEADER",
    "DebugEvent",
    "DoneEvent",
    "ErrorEvent",
    "Event",
    "EventDecoder",
    "EventType",
    "FrameBuffer",
    "FrameStream",
    "InitEvent",
    "ResultEvent",
    "StreamTransport",
    "TextEvent",
    "ToolActivityEvent",
    "ToolResultEvent",
    "ToolUseEvent",
    "TransportError",
    "UnhandledEvent",
    "Usage",
]
