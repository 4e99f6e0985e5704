#!/usr/bin/env python3
"""
Test the consumer-side log against the relay's own log
"""

from conftest import decode_all, message_ids, sse, tool_result_envelope, tool_use_envelope
from app.models import ErrorMessage, TurnStatus
from app.reconciler import ClientReconciler
from app.streaming import encode_event
from stream.decoder import EventDecoder
from stream.events import DoneEvent

TURN = [
    sse({"type": "init", "sessionId": "s1", "model": "m", "tools": ["Bash", "TodoWrite"]}),
    sse({"type": "text", "text": "Let me ", "fullText": "Let me ", "messageId": "m1"}),
    sse({"type": "text", "text": "check", "fullText": "Let me check", "messageId": "m1"}),
    sse(tool_use_envelope([
        {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
        {"type": "tool_use", "id": "t2", "name": "TodoWrite",
         "input": {"todos": [{"content": "ship", "status": "pending"}]}},
    ])),
    sse({"type": "status", "phase": "tools"}),
    sse(tool_result_envelope([
        {"type": "tool_result", "tool_use_id": "t1", "content": "a.txt"},
        {"type": "tool_result", "tool_use_id": "t2", "content": "ok"},
    ])),
    sse({"type": "tool_result", "tool": "Grep", "result": "no pending grep"}),
    sse({"type": "result", "success": True, "duration": 900, "cost": 0.02,
         "usage": {"input_tokens": 100, "output_tokens": 20}}),
    "data: [DONE]",
]


def snapshot(messages):
    return [message.model_dump(exclude={"timestamp"}) for message in messages]


def relay(assembler, decoder, session_id, records):
    """Fold records on the relay side and return what it sends to consumers."""
    assembler.begin_turn(session_id)
    wire = []
    for event in decode_all(decoder, records):
        assembler.apply(session_id, event)
        wire.append(f"data: {encode_event(event)}")
    return wire


def test_consumer_log_converges_with_relay_log(assembler, decoder, session):
    wire = relay(assembler, decoder, session.session_id, TURN)

    reconciler = ClientReconciler()
    reconciler.begin_turn()
    reconciler.apply_all(decode_all(EventDecoder(), wire))

    assert snapshot(reconciler.messages) == snapshot(session.messages)
    assert reconciler.status == TurnStatus.IDLE


def test_duplicate_delivery_does_not_change_log(assembler, decoder, session):
    # Records that carry no id of their own (debug passthrough, unmatched
    # results) cannot be recognised as repeats, so they are left out
    records = [r for r in TURN if '"type": "status"' not in r and "no pending grep" not in r]
    wire = relay(assembler, decoder, session.session_id, records)
    events = decode_all(EventDecoder(), wire)

    reconciler = ClientReconciler()
    reconciler.begin_turn()
    for event in events:
        reconciler.apply(event)
        reconciler.apply(event)

    assert snapshot(reconciler.messages) == snapshot(session.messages)


def test_result_before_tool_use_converges(assembler, decoder, session):
    records = [
        sse({"type": "init", "sessionId": "s1"}),
        sse({"type": "tool_result", "tool_use_id": "k", "result": "early"}),
        sse({"type": "tool_use", "id": "k", "tool": "Bash", "input": {"command": "ls"}}),
        sse({"type": "result", "success": True}),
        "data: [DONE]",
    ]
    wire = relay(assembler, decoder, session.session_id, records)

    reconciler = ClientReconciler()
    reconciler.begin_turn()
    reconciler.apply_all(decode_all(EventDecoder(), wire))

    assert message_ids(reconciler.messages) == ["init-1", "tool-use-k", "tool-result-k", "result-1"]
    assert snapshot(reconciler.messages) == snapshot(session.messages)
    assert reconciler.correlation.pending("local") == []


def test_done_twice_does_not_raise():
    reconciler = ClientReconciler()
    reconciler.begin_turn("hello")

    reconciler.apply(DoneEvent())
    reconciler.apply(DoneEvent())

    assert message_ids(reconciler.messages) == ["user-1"]
    assert reconciler.status == TurnStatus.IDLE


def test_user_messages_are_numbered_per_turn():
    reconciler = ClientReconciler()

    reconciler.begin_turn("one")
    reconciler.apply(DoneEvent())
    reconciler.begin_turn("two")

    assert message_ids(reconciler.messages) == ["user-1", "user-2"]
    assert reconciler.turn == 2


def test_record_failure_appends_error_and_idles():
    reconciler = ClientReconciler()
    reconciler.begin_turn("hello")

    message = reconciler.record_failure("HTTP error 409: busy")

    assert isinstance(message, ErrorMessage)
    assert reconciler.messages[-1] is message
    assert reconciler.status == TurnStatus.IDLE


def test_cancel_keeps_partial_text_and_idles():
    decoder = EventDecoder()
    reconciler = ClientReconciler()
    reconciler.begin_turn("hello")
    reconciler.apply_all(decode_all(decoder, TURN[:4]))

    reconciler.cancel()

    assert reconciler.status == TurnStatus.IDLE
    assert reconciler.correlation.pending("local") == []
    assert reconciler.messages[-3].content == "Let me check"


def test_clear_resets_everything():
    reconciler = ClientReconciler()
    reconciler.begin_turn("hello")
    reconciler.clear()

    assert reconciler.messages == []
    assert reconciler.turn == 0
