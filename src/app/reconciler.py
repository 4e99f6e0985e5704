import logging
from typing import List, Optional

from stream.events import Event

from .correlation import ToolCorrelationTable
from .models import BaseMessage, ErrorMessage, TurnStatus, UserMessage, utc_now
from .projection import EventProjector, TurnState
from .session import insert_index

LOCAL_SESSION_KEY = "local"


class ClientReconciler:
    """
    Consumer-side copy of the message log.

    Applies the re-serialized event stream with the same rules as the
    server's assembler, using its own correlation table. Applying an update
    whose message id is already present replaces that entry in place, so
    duplicate delivery never discards or repeats rendered state.
    """

    def __init__(
        self,
        completed_tool_history: int = 256,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger("ClientReconciler")

        self.correlation = ToolCorrelationTable(
            completed_history=completed_tool_history, logger=self.logger
        )
        self._projector = EventProjector(self.correlation, logger=self.logger)
        self._state = TurnState()
        self._messages: List[BaseMessage] = []
        self._user_count = 0

    @property
    def messages(self) -> List[BaseMessage]:
        return list(self._messages)

    @property
    def status(self) -> TurnStatus:
        return self._state.status

    @property
    def turn(self) -> int:
        return self._state.turn

    def begin_turn(self, content: Optional[str] = None) -> None:
        """Start a new local turn, optionally recording the user's message."""
        self._state.prepare_turn()
        if content is not None:
            self._user_count += 1
            self._upsert(UserMessage(id=f"user-{self._user_count}", content=content))

    def apply(self, event: Event) -> List[BaseMessage]:
        """Apply one event; safe to call again with a redelivered event."""
        return self._projector.fold(LOCAL_SESSION_KEY, self._state, event, self._upsert)

    def apply_all(self, events: List[Event]) -> List[BaseMessage]:
        applied: List[BaseMessage] = []
        for event in events:
            applied.extend(self.apply(event))
        return applied

    def record_failure(self, error: str) -> ErrorMessage:
        """Record a turn that never started (e.g. the request was refused)."""
        message = ErrorMessage(
            id=f"error-{self._state.turn}-{int(utc_now().timestamp() * 1000)}",
            error=error,
        )
        self._upsert(message)
        self._state.close()
        return message

    def cancel(self) -> None:
        """Drop the in-flight turn locally and return to idle."""
        self._state.close()
        self.correlation.clear(LOCAL_SESSION_KEY)
        self.logger.info(f"Cancelled local turn {self._state.turn}")

    def clear(self) -> None:
        self._messages.clear()
        self.correlation.clear(LOCAL_SESSION_KEY)
        self._state = TurnState()
        self._user_count = 0

    def _upsert(self, message: BaseMessage, before: Optional[str] = None) -> BaseMessage:
        for index, existing in enumerate(self._messages):
            if existing.id == message.id:
                if existing is not message:
                    self._messages[index] = message
                return message
        self._messages.insert(insert_index(self._messages, before), message)
        return message
