import json
import logging
from typing import Any, Dict, List, Optional, Union

from .events import (
    DONE_SENTINEL,
    DebugEvent,
    DoneEvent,
    ErrorEvent,
    Event,
    InitEvent,
    ResultEvent,
    TextEvent,
    ToolActivityEvent,
    ToolResultEvent,
    ToolUseEvent,
    UnhandledEvent,
    Usage,
)

# Inner envelope types that may carry tool content blocks
_TOOL_ENVELOPE_TYPES = ("assistant", "user")


class EventDecoder:
    """
    Decodes raw SSE records into typed events.

    ``decode`` never raises on malformed input: comment records, records
    without a data field, unparsable JSON and unrecognised shapes all come
    back as ``None`` so the stream can continue.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("EventDecoder")
        self.skipped_frames = 0

    def decode(self, frame: str) -> Optional[Event]:
        """
        Decode one raw record.

        Args:
            frame: A complete SSE record (one or more ``field: value`` lines)

        Returns:
            The decoded event, or None when the record should be ignored
        """
        data = self._extract_data(frame)
        if data is None:
            return None

        if data.strip() == DONE_SENTINEL:
            return DoneEvent()

        try:
            payload = json.loads(data)
        except (ValueError, RecursionError):
            self._skip(f"Failed to parse chunk: {data[:200]!r}")
            return None

        if not isinstance(payload, dict):
            self._skip(f"Ignoring non-object chunk: {data[:200]!r}")
            return None

        try:
            return self.decode_payload(payload)
        except (TypeError, ValueError, RecursionError) as e:
            self._skip(f"Ignoring malformed {payload.get('type')!r} chunk: {e}")
            return None

    def decode_payload(self, payload: Dict[str, Any]) -> Optional[Event]:
        """Decode an already-parsed JSON object."""
        event_type = payload.get("type")
        if not isinstance(event_type, str) or not event_type:
            self._skip(f"Ignoring chunk without a type: {payload!r}")
            return None

        handlers = {
            "init": self._decode_init,
            "text": self._decode_text,
            "tool_use": self._decode_tool_use,
            "tool_result": self._decode_tool_result,
            "result": self._decode_result,
            "error": self._decode_error,
            "debug": self._decode_debug,
        }

        handler = handlers.get(event_type)
        if handler is None:
            self.logger.debug(f"Passing through unhandled event type: {event_type}")
            return UnhandledEvent(raw_type=event_type, payload=payload)

        return handler(payload)

    def _extract_data(self, frame: str) -> Optional[str]:
        """Join the ``data:`` lines of a record; other fields and comments are ignored."""
        data_lines: List[str] = []

        for line in frame.split("\n"):
            if not line or line.startswith(":"):
                continue

            field, _, value = line.partition(":")
            if field != "data":
                continue
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)

        if not data_lines:
            return None
        return "\n".join(data_lines)

    def _decode_init(self, payload: Dict[str, Any]) -> InitEvent:
        tools = payload.get("tools") or []
        return InitEvent(
            session_id=payload.get("sessionId") or payload.get("session_id"),
            model=payload.get("model"),
            tools=[str(tool) for tool in tools] if isinstance(tools, list) else [],
        )

    def _decode_text(self, payload: Dict[str, Any]) -> Optional[TextEvent]:
        text = payload.get("text")
        full_text = payload.get("fullText")
        if text is None and full_text is None:
            self._skip("Ignoring text chunk without text or fullText")
            return None

        message_id = payload.get("messageId")
        return TextEvent(
            text=text,
            full_text=full_text,
            message_id=str(message_id) if message_id is not None else None,
        )

    def _decode_tool_use(self, payload: Dict[str, Any]) -> Optional[ToolUseEvent]:
        tool = payload.get("tool")
        tool_input = payload.get("input")

        # The tool may be a bare name or an object {name, input, output}
        if isinstance(tool, dict):
            name = tool.get("name")
            if tool_input is None:
                tool_input = tool.get("input")
        else:
            name = tool or payload.get("name")

        if not name:
            self._skip("Ignoring tool_use chunk without a tool name")
            return None

        invocation_id = payload.get("id") or payload.get("toolId")
        return ToolUseEvent(
            invocation_id=str(invocation_id) if invocation_id is not None else None,
            name=str(name),
            input=tool_input,
        )

    def _decode_tool_result(self, payload: Dict[str, Any]) -> ToolResultEvent:
        tool = payload.get("tool")
        content = payload.get("result", payload.get("content"))

        if isinstance(tool, dict):
            name = tool.get("name")
            if content is None:
                content = tool.get("output")
        else:
            name = tool

        invocation_id = payload.get("tool_use_id") or payload.get("toolId")
        return ToolResultEvent(
            invocation_id=str(invocation_id) if invocation_id is not None else None,
            name=str(name) if name else None,
            content=content,
            is_error=bool(payload.get("is_error", False)),
        )

    def _decode_result(self, payload: Dict[str, Any]) -> ResultEvent:
        usage = payload.get("usage")
        return ResultEvent(
            success=payload.get("success", True) is not False,
            duration=payload.get("duration"),
            cost=payload.get("cost"),
            usage=Usage.model_validate(usage) if isinstance(usage, dict) else None,
        )

    def _decode_error(self, payload: Dict[str, Any]) -> ErrorEvent:
        error = payload.get("error")
        if isinstance(error, dict):
            error = error.get("message") or json.dumps(error)
        return ErrorEvent(error=str(error) if error else "Unknown error occurred")

    def _decode_debug(self, payload: Dict[str, Any]) -> Union[ToolActivityEvent, DebugEvent]:
        data = payload.get("data")
        items = self._extract_tool_items(data)
        if items:
            return ToolActivityEvent(items=items, data=data)
        return DebugEvent(data=data)

    def _extract_tool_items(
        self, data: Any
    ) -> List[Union[ToolUseEvent, ToolResultEvent]]:
        """
        Pattern-match tool blocks inside a debug envelope.

        Tool calls appear in ``assistant`` envelopes as ``tool_use`` blocks
        and their results in ``user`` envelopes as ``tool_result`` blocks.
        """
        if not isinstance(data, dict) or data.get("type") not in _TOOL_ENVELOPE_TYPES:
            return []

        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return []

        items: List[Union[ToolUseEvent, ToolResultEvent]] = []
        for block in content:
            if not isinstance(block, dict):
                continue

            block_type = block.get("type")
            if block_type == "tool_use" and data["type"] == "assistant":
                if not block.get("id") or not block.get("name"):
                    self.logger.warning(f"Skipping tool_use block without id or name: {block!r}")
                    continue
                items.append(
                    ToolUseEvent(
                        invocation_id=str(block["id"]),
                        name=str(block["name"]),
                        input=block.get("input"),
                    )
                )
            elif block_type == "tool_result" and data["type"] == "user":
                if not block.get("tool_use_id"):
                    self.logger.warning(f"Skipping tool_result block without tool_use_id: {block!r}")
                    continue
                items.append(
                    ToolResultEvent(
                        invocation_id=str(block["tool_use_id"]),
                        content=block.get("content"),
                        is_error=bool(block.get("is_error", False)),
                    )
                )

        return items

    def _skip(self, reason: str) -> None:
        self.skipped_frames += 1
        self.logger.warning(reason)
