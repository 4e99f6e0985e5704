import asyncio
import logging
from typing import List, Optional

from stream.decoder import EventDecoder
from stream.events import DoneEvent
from stream.transport import StreamTransport, TransportError

from .models import BaseMessage, TurnStatus
from .reconciler import ClientReconciler


class RelayClient:
    """
    Consumer side of the relay: transport, decoder and reconciler in one.

    Keeps a local message log that converges with the relay's log for the
    same session, and remembers the session id the relay assigned so that
    later turns continue the conversation.
    """

    def __init__(
        self,
        transport: StreamTransport,
        decoder: Optional[EventDecoder] = None,
        reconciler: Optional[ClientReconciler] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.logger = logger or logging.getLogger("RelayClient")
        self.decoder = decoder or EventDecoder(logger=self.logger)
        self.reconciler = reconciler or ClientReconciler(logger=self.logger)

        self.session_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def messages(self) -> List[BaseMessage]:
        return self.reconciler.messages

    @property
    def status(self) -> TurnStatus:
        return self.reconciler.status

    async def send(
        self,
        project_path: str,
        message: str,
        session_id: Optional[str] = None,
    ) -> List[BaseMessage]:
        """
        Run one turn and return the local message log once it ends.

        Raises:
            TransportError: If the turn could not be started; an ``error``
                message is recorded locally first
        """
        self._task = asyncio.current_task()
        self.reconciler.begin_turn(message)

        try:
            frames = await self.transport.open(
                project_path, message, session_id=session_id or self.session_id
            )
        except TransportError as e:
            self.reconciler.record_failure(str(e))
            self._task = None
            raise

        if frames.session_id:
            self.session_id = frames.session_id

        try:
            async for frame in frames:
                event = self.decoder.decode(frame)
                if event is None:
                    continue
                self.reconciler.apply(event)
                if isinstance(event, DoneEvent):
                    break
            else:
                # Closed without [DONE]: treat as the end of the turn
                self.reconciler.apply(DoneEvent())
        except asyncio.CancelledError:
            self.reconciler.cancel()
            raise
        finally:
            await frames.aclose()
            self._task = None

        return self.reconciler.messages

    def cancel(self) -> bool:
        """Cancel the turn in flight, if any."""
        if self._task is None or self._task.done():
            return False
        self._task.cancel()
        return True

    def clear(self) -> None:
        self.reconciler.clear()
        self.session_id = None

    async def aclose(self) -> None:
        await self.transport.aclose()
