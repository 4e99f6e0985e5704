#!/usr/bin/env python3
"""
Test the HTTP surface end to end over ASGI
"""

import logging

import httpx
import pytest
import pytest_asyncio

from conftest import ScriptedEngine, decode_all, sse
from app.client import RelayClient
from config import Settings
from server import RelayServer
from stream.decoder import EventDecoder
from stream.events import DoneEvent, InitEvent, ResultEvent, TextEvent
from stream.framing import FrameBuffer
from stream.transport import SESSION_HEADER, StreamTransport

PROJECT = "/projects/demo"

CHAT_TURN = [
    sse({"type": "init", "sessionId": "backend-1", "model": "m", "tools": ["Read"]}),
    sse({"type": "text", "text": "Hi", "fullText": "Hi", "messageId": "m1"}),
    sse({"type": "result", "success": True, "duration": 120}),
    "data: [DONE]",
]


def make_server(*scripts) -> RelayServer:
    settings = Settings(_env_file=None)
    return RelayServer(logging.getLogger("test"), settings, engine=ScriptedEngine(*scripts))


@pytest_asyncio.fixture
async def server():
    return make_server(CHAT_TURN, CHAT_TURN)


@pytest_asyncio.fixture
async def http(server):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=server.app), base_url="http://relay.test"
    ) as client:
        yield client


def parse_stream(body: str):
    return decode_all(EventDecoder(), FrameBuffer().feed(body))


@pytest.mark.asyncio
async def test_chat_streams_events_and_done(http, server):
    response = await http.post("/chat", json={"projectPath": PROJECT, "message": "hello"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    session_id = response.headers[SESSION_HEADER]
    events = parse_stream(response.text)
    assert [type(e) for e in events] == [InitEvent, TextEvent, ResultEvent, DoneEvent]
    assert response.text.rstrip().endswith("data: [DONE]")

    session = server.registry.get(session_id)
    assert [m.id for m in session.messages] == ["user-1", "init-1", "assistant-1-m1", "result-1"]
    assert not server.registry.is_busy(session_id)


@pytest.mark.asyncio
async def test_chat_requires_project_and_message(http):
    response = await http.post("/chat", json={"message": "hello"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields: projectPath and message"}


@pytest.mark.asyncio
async def test_chat_rejects_second_turn_on_busy_session(http, server):
    handle = server.coordinator.start_turn(PROJECT, "first")

    response = await http.post(
        "/chat", json={"projectPath": PROJECT, "message": "second", "sessionId": handle.session_id}
    )

    assert response.status_code == 409
    assert "already has a turn in progress" in response.json()["error"]


@pytest.mark.asyncio
async def test_get_session_returns_log(http):
    chat = await http.post("/chat", json={"projectPath": PROJECT, "message": "hello"})
    session_id = chat.headers[SESSION_HEADER]

    response = await http.get(f"/sessions/{session_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["session_id"] == session_id
    assert body["backend_session_id"] == "backend-1"
    assert [m["type"] for m in body["messages"]] == ["user", "init", "assistant", "result"]


@pytest.mark.asyncio
async def test_unknown_session_is_404(http):
    assert (await http.get("/sessions/nope")).status_code == 404
    assert (await http.post("/sessions/nope/clear")).status_code == 404
    assert (await http.post("/sessions/nope/cancel")).status_code == 404


@pytest.mark.asyncio
async def test_clear_and_cancel_idle_session(http, server):
    chat = await http.post("/chat", json={"projectPath": PROJECT, "message": "hello"})
    session_id = chat.headers[SESSION_HEADER]

    cleared = await http.post(f"/sessions/{session_id}/clear")
    cancelled = await http.post(f"/sessions/{session_id}/cancel")

    assert cleared.json() == {"session_id": session_id, "cleared": 4}
    assert server.registry.get(session_id).messages == []
    assert cancelled.json() == {"session_id": session_id, "cancelled": False}


@pytest.mark.asyncio
async def test_list_sessions(http):
    await http.post("/chat", json={"projectPath": PROJECT, "message": "hello"})

    response = await http.get("/sessions", params={"projectPath": PROJECT})

    body = response.json()
    assert body["count"] == 1
    assert body["sessions"][0]["message_count"] == 4


@pytest.mark.asyncio
async def test_health(http):
    response = await http.get("/health")

    body = response.json()
    assert body["status"] == "ok"
    assert body["engine_type"] == "anthropic"
    assert "session_count" in body["metrics"]


@pytest.mark.asyncio
async def test_relay_client_converges_with_server_log(server):
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=server.app))
    client = RelayClient(StreamTransport(base_url="http://relay.test", client=http))

    messages = await client.send(PROJECT, "hello")
    await client.aclose()
    await http.aclose()

    session = server.registry.get(client.session_id)
    local = [m.model_dump(exclude={"timestamp"}) for m in messages]
    remote = [m.model_dump(exclude={"timestamp"}) for m in session.messages]
    assert local == remote
