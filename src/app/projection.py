"""
Per-event folding rules shared by the server-side assembler and the
client-side reconciler.

Both sides apply the same rules to the same event stream, so the message
logs they build converge. Message ids are derived from the logical update
(turn number, streaming message id, tool invocation id) rather than from
arrival order; that is what lets a redelivered event replace its earlier
copy instead of being appended twice.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from stream.events import (
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
)

from .correlation import ToolCorrelationTable, tool_result_message_id
from .models import (
    AssistantMessage,
    BaseMessage,
    DebugMessage,
    InitMessage,
    ResultMessage,
    TurnStatus,
)

# append(message, before=None): upsert by id; a new message goes ahead of
# the message whose id is ``before`` when that one is already logged
AppendFn = Callable[..., BaseMessage]


@dataclass
class TurnState:
    """Projection state for one session: idle -> streaming -> idle."""

    status: TurnStatus = TurnStatus.IDLE
    turn: int = 0
    completed: bool = False
    open_assistant: Dict[str, AssistantMessage] = field(default_factory=dict)
    last_stream_key: Optional[str] = None
    debug_count: int = 0
    anonymous_tools: int = 0

    def prepare_turn(self) -> None:
        self.turn += 1
        self.status = TurnStatus.IDLE
        self.completed = False
        self.open_assistant.clear()
        self.last_stream_key = None
        self.debug_count = 0
        self.anonymous_tools = 0

    def close(self) -> None:
        for message in self.open_assistant.values():
            message.is_streaming = False
        self.open_assistant.clear()
        self.last_stream_key = None
        self.status = TurnStatus.IDLE
        self.completed = True


class EventProjector:
    """
    Folds events into a message log through an ``append`` callback.

    The callback owns the log; the projector decides which messages to
    append and updates the assistant messages it has already appended.
    """

    def __init__(
        self,
        correlation: ToolCorrelationTable,
        logger: Optional[logging.Logger] = None,
    ):
        self.correlation = correlation
        self.logger = logger or logging.getLogger("EventProjector")

    def fold(
        self,
        session_key: str,
        state: TurnState,
        event: Event,
        append: AppendFn,
    ) -> List[BaseMessage]:
        """
        Apply one event.

        Args:
            session_key: Key for the correlation table
            state: Projection state for the session
            event: Decoded event
            append: Callback that stores a message in the log

        Returns:
            Messages appended or updated by this event
        """
        if isinstance(event, DoneEvent):
            self.correlation.settle(session_key)
            state.close()
            return []

        if isinstance(event, (ResultEvent, ErrorEvent)):
            # A redelivered terminal event lands on the turn it ended
            if state.turn == 0:
                state.prepare_turn()
            message = append(self._terminal_message(state, event))
            self.correlation.settle(session_key)
            state.close()
            return [message]

        if state.turn == 0 or state.completed:
            state.prepare_turn()
        state.status = TurnStatus.STREAMING

        if isinstance(event, InitEvent):
            return [append(self._init_message(state, event))]
        if isinstance(event, TextEvent):
            return self._apply_text(state, event, append)
        if isinstance(event, ToolUseEvent):
            return self._apply_tool_use(session_key, state, event, append)
        if isinstance(event, ToolResultEvent):
            return self._apply_tool_result(session_key, event, append)
        if isinstance(event, ToolActivityEvent):
            applied: List[BaseMessage] = []
            for item in event.items:
                if isinstance(item, ToolUseEvent):
                    applied.extend(self._apply_tool_use(session_key, state, item, append))
                else:
                    applied.extend(self._apply_tool_result(session_key, item, append))
            return applied
        if isinstance(event, (DebugEvent, UnhandledEvent)):
            return [append(self._debug_message(state, event))]

        self.logger.warning(f"No folding rule for event {event!r}")
        return []

    def _init_message(self, state: TurnState, event: InitEvent) -> InitMessage:
        return InitMessage(
            id=f"init-{state.turn}",
            backend_session_id=event.session_id,
            model=event.model,
            tools=list(event.tools),
        )

    def _apply_text(
        self, state: TurnState, event: TextEvent, append: AppendFn
    ) -> List[BaseMessage]:
        key = event.message_id or state.last_stream_key or "default"
        message = state.open_assistant.get(key)

        if message is None:
            message = append(
                AssistantMessage(
                    id=f"assistant-{state.turn}-{key}",
                    streaming_message_id=event.message_id,
                )
            )
            state.open_assistant[key] = message

        state.last_stream_key = key

        if event.full_text is not None:
            # Already-accumulated text is authoritative: replace, never concatenate
            message.content = event.full_text
        elif event.text:
            message.content += event.text

        return [message]

    def _apply_tool_use(
        self,
        session_key: str,
        state: TurnState,
        event: ToolUseEvent,
        append: AppendFn,
    ) -> List[BaseMessage]:
        invocation_id = event.invocation_id
        if invocation_id is None:
            state.anonymous_tools += 1
            invocation_id = f"{event.name}-{state.turn}-{state.anonymous_tools}"

        # A result that arrived first stays after its tool_use in the log
        before = None
        if self.correlation.is_completed(session_key, invocation_id):
            before = tool_result_message_id(invocation_id)

        message = self.correlation.begin(session_key, invocation_id, event.name, event.input)
        return [append(message, before=before)]

    def _apply_tool_result(
        self, session_key: str, event: ToolResultEvent, append: AppendFn
    ) -> List[BaseMessage]:
        messages = self.correlation.complete(
            session_key,
            event.invocation_id,
            event.content,
            is_error=event.is_error,
            tool_name=event.name,
        )
        return [append(message) for message in messages]

    def _terminal_message(self, state: TurnState, event: Event) -> ResultMessage:
        if isinstance(event, ErrorEvent):
            return ResultMessage(
                id=f"error-{state.turn}",
                content=f"Error: {event.error}",
                success=False,
                error=event.error,
            )

        return ResultMessage(
            id=f"result-{state.turn}",
            content="Execution completed" if event.success else "Execution failed",
            success=event.success,
            duration=event.duration,
            cost=event.cost,
            usage=event.usage,
        )

    def _debug_message(self, state: TurnState, event: Event) -> DebugMessage:
        state.debug_count += 1
        if isinstance(event, UnhandledEvent):
            event_type, data = event.raw_type, event.payload
        else:
            event_type, data = "debug", event.data
        return DebugMessage(
            id=f"debug-{state.turn}-{state.debug_count}",
            event_type=event_type,
            data=data,
        )
