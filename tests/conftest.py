#!/usr/bin/env python3
"""
Pytest configuration and fixtures for PA relay testing
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import logfire
import pytest

# Add the src directory to the path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from app.assembler import MessageAssembler
from app.correlation import ToolCorrelationTable
from app.session import SessionRegistry
from engine import BaseEngine, TurnRequest
from stream.decoder import EventDecoder

# Spans and logs stay local during tests
logfire.configure(send_to_logfire=False, console=False)


def sse(payload: Any) -> str:
    """Build one raw record as the backend sends it (without separator)."""
    if isinstance(payload, str):
        return f"data: {payload}"
    return f"data: {json.dumps(payload)}"


def sse_body(*payloads: Any) -> str:
    """Build a text/event-stream body from payloads."""
    return "".join(f"{sse(payload)}\n\n" for payload in payloads)


def tool_use_envelope(blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "debug", "data": {"type": "assistant", "message": {"content": blocks}}}


def tool_result_envelope(blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "debug", "data": {"type": "user", "message": {"content": blocks}}}


class ScriptedEngine(BaseEngine):
    """
    Engine that replays scripted records, one script per turn.

    A script item may be a record string, an Exception (raised at that
    point) or an asyncio.Event (waited on before continuing).
    """

    def __init__(self, *scripts: List[Any]):
        self.scripts = list(scripts)
        self.requests: List[TurnRequest] = []
        self.closed_streams = 0
        self.aclosed = False

    async def stream_turn(self, request: TurnRequest):
        self.requests.append(request)
        script = self.scripts.pop(0) if self.scripts else []
        try:
            for item in script:
                if isinstance(item, asyncio.Event):
                    await item.wait()
                elif isinstance(item, Exception):
                    raise item
                else:
                    yield item
        finally:
            self.closed_streams += 1

    async def aclose(self) -> None:
        self.aclosed = True


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def correlation():
    return ToolCorrelationTable(completed_history=8)


@pytest.fixture
def assembler(registry, correlation):
    return MessageAssembler(registry, correlation)


@pytest.fixture
def decoder():
    return EventDecoder()


@pytest.fixture
def session(registry):
    """A fresh session for a demo project."""
    return registry.get_or_create(None, "/projects/demo")


def decode_all(decoder: EventDecoder, records: List[str]) -> List[Any]:
    events = [decoder.decode(record) for record in records]
    return [event for event in events if event is not None]


def message_ids(messages: List[Any]) -> List[str]:
    return [message.id for message in messages]


def find(messages: List[Any], message_id: str) -> Optional[Any]:
    for message in messages:
        if message.id == message_id:
            return message
    return None
