import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from stream.events import DoneEvent, Event

from .coordinator import TurnCoordinator, TurnHandle


def encode_event(event: Event) -> str:
    """Wire payload for one event: a JSON object, or ``[DONE]``."""
    wire = event.to_wire()
    if isinstance(wire, str):
        return wire
    return json.dumps(wire)


class ChatStreamingHandler:
    """
    Re-serializes a turn's events for the SSE response.

    Every event becomes one ``data: <payload>`` record; the stream of a
    completed turn always ends with ``data: [DONE]``.
    """

    def __init__(
        self,
        coordinator: TurnCoordinator,
        logger: Optional[logging.Logger] = None,
    ):
        self.coordinator = coordinator
        self.logger = logger or logging.getLogger("ChatStreamingHandler")

    async def stream_turn(self, handle: TurnHandle) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream a turn as ``EventSourceResponse`` items.

        Args:
            handle: Turn accepted by the coordinator

        Yields:
            Dicts with a ``data`` key
        """
        sent = 0
        async for event in self.coordinator.stream(handle):
            sent += 1
            if isinstance(event, DoneEvent):
                self.logger.debug(
                    f"Session {handle.session_id}: sent {sent} records for turn {handle.turn}"
                )
            yield {"data": encode_event(event)}
