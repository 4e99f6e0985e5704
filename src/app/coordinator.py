import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import logfire

from engine import BaseEngine, TurnRequest
from stream.decoder import EventDecoder
from stream.events import DoneEvent, ErrorEvent, Event

from .assembler import MessageAssembler
from .command_router import identify_task, enhance_prompt
from .correlation import ToolCorrelationTable
from .models import UserMessage
from .session import SessionRegistry

# Queue markers between the backend reader task and the turn stream
_END = object()
_CANCELLED = object()


@dataclass
class TurnHandle:
    """An accepted turn that has not finished streaming yet."""

    session_id: str
    turn: int
    request: TurnRequest
    started_at: float = field(default_factory=time.time)
    reader: Optional[asyncio.Task] = None
    cancel_requested: bool = False
    finished: bool = False


class TurnCoordinator:
    """
    Runs turns end to end: backend stream -> decoder -> assembler -> wire.

    Each session has at most one turn in flight. All decoding, correlation
    and assembly is synchronous; the only suspension point is reading the
    next record from the backend, which happens in a reader task so that a
    turn can be cancelled while that read is pending.
    """

    def __init__(
        self,
        engine: BaseEngine,
        registry: SessionRegistry,
        correlation: ToolCorrelationTable,
        assembler: Optional[MessageAssembler] = None,
        decoder: Optional[EventDecoder] = None,
        allowed_tools: Optional[List[str]] = None,
        trigger_commands: Optional[Dict[str, str]] = None,
        task_folders: Optional[Dict[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.engine = engine
        self.registry = registry
        self.correlation = correlation
        self.logger = logger or logging.getLogger("TurnCoordinator")

        self.assembler = assembler or MessageAssembler(registry, correlation, logger=self.logger)
        self.decoder = decoder or EventDecoder(logger=self.logger)

        self.allowed_tools = list(allowed_tools or [])
        self.trigger_commands = trigger_commands
        self.task_folders = task_folders

        self._active: Dict[str, TurnHandle] = {}
        self._metrics = {
            "turns_started": 0,
            "turns_completed": 0,
            "turns_failed": 0,
            "turns_cancelled": 0,
        }

    def start_turn(
        self,
        project_path: str,
        message: str,
        session_id: Optional[str] = None,
    ) -> TurnHandle:
        """
        Accept a turn and record the user's message.

        Args:
            project_path: Project the agent works in
            message: User input text
            session_id: Session to continue, if any

        Returns:
            Handle to pass to ``stream``

        Raises:
            SessionBusyError: If the session already has a turn in flight
        """
        with logfire.span("turn_coordinator.start_turn", session_id=session_id):
            session = self.registry.get_or_create(session_id, project_path)
            self.registry.begin_turn(session.session_id)

            self.assembler.begin_turn(session.session_id)
            self.registry.append(
                session.session_id,
                UserMessage(id=f"user-{session.turn_count}", content=message),
            )

            task_info = identify_task(message, self.trigger_commands, self.task_folders)
            self.logger.info(f"Task type: {task_info.type}")
            if task_info.is_task:
                self.logger.info(f"PA Agent: {task_info.agent}")
                self.logger.info(f"Task Folder: {task_info.task_folder}")

            handle = TurnHandle(
                session_id=session.session_id,
                turn=session.turn_count,
                request=TurnRequest(
                    project_path=project_path,
                    message=enhance_prompt(message, task_info),
                    resume_session_id=session.backend_session_id,
                    allowed_tools=self.allowed_tools,
                ),
            )

        self._active[session.session_id] = handle
        self._metrics["turns_started"] += 1
        self.logger.info(f"Started turn {handle.turn} for session {session.session_id}")
        return handle

    async def stream(self, handle: TurnHandle) -> AsyncIterator[Event]:
        """
        Stream a turn as events, ending with a ``DoneEvent``.

        A backend failure after streaming started is sent as an ``error``
        event. Cancellation ends the stream without a ``DoneEvent``.
        """
        session_id = handle.session_id
        queue: asyncio.Queue = asyncio.Queue()
        handle.reader = asyncio.create_task(self._read_backend(handle, queue))
        failed = False

        try:
            while True:
                item = await queue.get()

                if item is _CANCELLED or handle.cancel_requested:
                    self._cancel(handle)
                    return
                if item is _END:
                    break
                if isinstance(item, Exception):
                    self.logger.error(f"Backend failed for session {session_id}: {item}")
                    error = ErrorEvent(error=str(item) or type(item).__name__)
                    self.assembler.apply(session_id, error)
                    failed = True
                    yield error
                    break

                event = self.decoder.decode(item)
                if event is None:
                    continue
                if isinstance(event, DoneEvent):
                    break

                self.assembler.apply(session_id, event)
                yield event

                if isinstance(event, ErrorEvent):
                    failed = True
                    break

            # Connection close without [DONE] is a normal end as well
            done = DoneEvent()
            self.assembler.apply(session_id, done)
            handle.finished = True
            self._metrics["turns_failed" if failed else "turns_completed"] += 1
            self._log_turn_end(handle, failed)
            yield done
        except (asyncio.CancelledError, GeneratorExit):
            if not handle.finished:
                self._cancel(handle)
            raise
        finally:
            if handle.reader is not None and not handle.reader.done():
                handle.reader.cancel()
            self._release(handle)

    def cancel_turn(self, session_id: str) -> bool:
        """
        Abort the session's in-flight turn.

        Returns:
            True if a turn was in flight
        """
        handle = self._active.get(session_id)
        if handle is None:
            return False

        handle.cancel_requested = True
        if handle.reader is None:
            # Accepted but never streamed
            self._cancel(handle)
            self._release(handle)
        elif not handle.reader.done():
            handle.reader.cancel()
        return True

    async def abandon(self, handle: TurnHandle) -> None:
        """Release a turn whose stream will never be consumed."""
        if handle.reader is None:
            self._cancel(handle)
            self._release(handle)

    def active_turns(self) -> List[str]:
        return list(self._active)

    def get_metrics(self) -> Dict[str, Any]:
        return {**self._metrics, "active_turns": len(self._active)}

    async def _read_backend(self, handle: TurnHandle, queue: asyncio.Queue) -> None:
        frames = self.engine.stream_turn(handle.request)
        try:
            async for frame in frames:
                queue.put_nowait(frame)
            queue.put_nowait(_END)
        except asyncio.CancelledError:
            queue.put_nowait(_CANCELLED)
            raise
        except Exception as e:
            queue.put_nowait(e)
        finally:
            await frames.aclose()

    def _cancel(self, handle: TurnHandle) -> None:
        if handle.finished:
            return
        handle.finished = True
        self.assembler.cancel(handle.session_id)
        self._metrics["turns_cancelled"] += 1
        reason = "cancelled" if handle.cancel_requested else "abandoned by consumer"
        self.logger.info(f"Turn {handle.turn} for session {handle.session_id} {reason}")

    def _release(self, handle: TurnHandle) -> None:
        # A later turn may already own the session
        if self._active.get(handle.session_id) is not handle:
            return
        del self._active[handle.session_id]
        self.registry.end_turn(handle.session_id)

    def _log_turn_end(self, handle: TurnHandle, failed: bool) -> None:
        elapsed = time.time() - handle.started_at
        session = self.registry.get(handle.session_id)
        message_count = len(session.messages) if session else 0
        logfire.info(
            "turn finished",
            session_id=handle.session_id,
            turn=handle.turn,
            failed=failed,
            elapsed_seconds=elapsed,
        )
        self.logger.info(
            f"Turn {handle.turn} for session {handle.session_id} "
            f"{'failed' if failed else 'completed'} in {elapsed:.2f}s "
            f"({message_count} messages in log)"
        )
