import logging
from typing import Dict, List, Optional

from stream.events import Event, InitEvent, ResultEvent

from .correlation import ToolCorrelationTable
from .models import BaseMessage, TurnStatus
from .projection import EventProjector, TurnState
from .session import SessionRegistry


class MessageAssembler:
    """
    Builds each session's message log from its decoded event stream.

    Runs the per-session turn state machine (idle -> streaming -> idle),
    delegates tool correlation to the correlation table and writes every
    message through the session registry.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        correlation: ToolCorrelationTable,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.correlation = correlation
        self.logger = logger or logging.getLogger("MessageAssembler")

        self._projector = EventProjector(correlation, logger=self.logger)
        self._states: Dict[str, TurnState] = {}

    def begin_turn(self, session_id: str) -> None:
        """Start a new turn for the session; the state stays idle until init."""
        self._state(session_id).prepare_turn()

    def apply(self, session_id: str, event: Event) -> List[BaseMessage]:
        """
        Fold one event into the session log.

        Args:
            session_id: Session identifier
            event: Decoded event

        Returns:
            Messages appended or updated
        """
        state = self._state(session_id)
        already_terminated = state.completed
        messages = self._projector.fold(
            session_id,
            state,
            event,
            lambda message, before=None: self.registry.append(
                session_id, message, before=before
            ),
        )

        # A redelivered result must not be counted twice
        if not (already_terminated and isinstance(event, ResultEvent)):
            self._record_session_details(session_id, event)
        self.registry.set_status(session_id, state.status)
        self.registry.touch(session_id)

        self.logger.debug(
            f"Session {session_id}: applied {event.type.value} "
            f"({len(messages)} messages, state {state.status.value})"
        )
        return messages

    def cancel(self, session_id: str) -> None:
        """
        Abandon the in-flight turn without a terminal event.

        Pending tool invocations are dropped and the session returns to idle.
        """
        state = self._state(session_id)
        state.close()
        dropped = self.correlation.clear(session_id)
        if self.registry.get(session_id) is not None:
            self.registry.set_status(session_id, TurnStatus.IDLE)
        self.logger.info(
            f"Cancelled turn {state.turn} for session {session_id} "
            f"({dropped} pending tool invocations dropped)"
        )

    def status(self, session_id: str) -> TurnStatus:
        state = self._states.get(session_id)
        return state.status if state else TurnStatus.IDLE

    def forget(self, session_id: str) -> None:
        """Drop projection state for a session whose log was cleared."""
        self._states.pop(session_id, None)
        self.correlation.clear(session_id)

    def _state(self, session_id: str) -> TurnState:
        if session_id not in self._states:
            self._states[session_id] = TurnState()
        return self._states[session_id]

    def _record_session_details(self, session_id: str, event: Event) -> None:
        session = self.registry.get(session_id)
        if session is None:
            return

        if isinstance(event, InitEvent):
            if event.session_id:
                session.backend_session_id = event.session_id
            if event.model:
                session.model = event.model
        elif isinstance(event, ResultEvent):
            if event.cost:
                session.total_cost += event.cost
            if event.usage is not None:
                session.total_tokens += event.usage.total_tokens
