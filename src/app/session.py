import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from .models import BaseMessage, Session, TurnStatus, utc_now


class SessionNotFoundError(KeyError):
    """Raised when an operation names a session the registry does not hold."""


class SessionBusyError(RuntimeError):
    """Raised when a turn is started on a session that already has one in flight."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} already has a turn in progress")
        self.session_id = session_id


def insert_index(messages: List[BaseMessage], before: Optional[str] = None) -> int:
    """Position for a new message: ahead of ``before`` if logged, else the end."""
    if before is not None:
        for index, existing in enumerate(messages):
            if existing.id == before:
                return index
    return len(messages)


class SessionRegistry:
    """
    Owns session identity and each session's ordered message log.

    Sessions live in memory only. A session may have at most one turn in
    flight; ``begin_turn`` rejects a second one until ``end_turn`` is called.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("SessionRegistry")

        self._sessions: Dict[str, Session] = {}
        self._active_turns: Set[str] = set()

        self._metrics = {
            "total_created": 0,
            "total_turns": 0,
            "total_messages": 0,
        }

    def get_or_create(self, session_id: Optional[str], project_id: str) -> Session:
        """
        Return the named session, or create one with a fresh id.

        Args:
            session_id: Existing session id, if the caller has one
            project_id: Project that owns the session

        Returns:
            The existing or newly created session
        """
        if session_id and session_id in self._sessions:
            return self._sessions[session_id]

        if session_id:
            self.logger.info(f"Unknown session {session_id}, creating a new one")

        session = Session(session_id=str(uuid.uuid4()), project_id=project_id)
        self._sessions[session.session_id] = session
        self._metrics["total_created"] += 1

        self.logger.info(
            f"Created new session: {session.session_id} for project {project_id}"
        )
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        """Like ``get`` but raises ``SessionNotFoundError``."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def touch(self, session_id: str) -> None:
        self.require(session_id).last_activity_at = utc_now()

    def append(
        self,
        session_id: str,
        message: BaseMessage,
        before: Optional[str] = None,
    ) -> BaseMessage:
        """
        Append a message to the session log.

        A message whose id is already in the log replaces that entry in
        place, so redelivered updates never duplicate or reorder the log.

        Args:
            session_id: Session identifier
            message: Message to append
            before: Id of a logged message the new one must precede

        Returns:
            The message as stored
        """
        session = self.require(session_id)

        for index, existing in enumerate(session.messages):
            if existing.id == message.id:
                session.messages[index] = message
                self.logger.debug(f"Replaced message {message.id} in session {session_id}")
                break
        else:
            session.messages.insert(insert_index(session.messages, before), message)
            self._metrics["total_messages"] += 1

        session.last_activity_at = utc_now()
        return message

    def clear(self, session_id: str) -> None:
        """Empty the message log without discarding the session identity."""
        session = self.require(session_id)
        session.messages.clear()
        session.last_activity_at = utc_now()
        self.logger.info(f"Cleared message log for session {session_id}")

    def set_status(self, session_id: str, status: TurnStatus) -> None:
        session = self.require(session_id)
        if session.status != status:
            self.logger.debug(f"Session {session_id}: {session.status.value} -> {status.value}")
            session.status = status

    def begin_turn(self, session_id: str) -> Session:
        """
        Claim the session for a new turn.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionBusyError: If a turn is already in flight
        """
        session = self.require(session_id)
        if session_id in self._active_turns or session.status == TurnStatus.STREAMING:
            raise SessionBusyError(session_id)

        self._active_turns.add(session_id)
        session.turn_count += 1
        session.last_activity_at = utc_now()
        self._metrics["total_turns"] += 1
        return session

    def end_turn(self, session_id: str) -> None:
        """Release the session; safe to call when no turn is active."""
        self._active_turns.discard(session_id)
        session = self._sessions.get(session_id)
        if session is not None:
            session.status = TurnStatus.IDLE
            session.last_activity_at = utc_now()

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._active_turns

    def list_sessions(self, project_id: Optional[str] = None) -> List[Session]:
        """Sessions ordered by most recent activity."""
        sessions = [
            session
            for session in self._sessions.values()
            if project_id is None or session.project_id == project_id
        ]
        sessions.sort(key=lambda s: s.last_activity_at, reverse=True)
        return sessions

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self._metrics,
            "session_count": len(self._sessions),
            "active_turns": len(self._active_turns),
        }
