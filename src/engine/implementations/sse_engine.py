import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from engine import BaseEngine, TurnRequest
from stream.transport import StreamTransport


class SSEBackendEngine(BaseEngine):
    """
    Relays turns to an upstream agent service that already speaks the
    ``POST /chat`` text/event-stream protocol.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.backend_url = config.get('backend_url')
        if not self.backend_url:
            raise ValueError("backend_url is required for the sse engine")

        self.logger = logger or logging.getLogger("SSEBackendEngine")
        self.transport = StreamTransport(
            base_url=self.backend_url,
            chat_path=config.get('chat_path', '/chat'),
            read_timeout=config.get('read_timeout', 300.0),
            max_frame_bytes=config.get('max_frame_bytes', 1024 * 1024),
            client=client,
            logger=self.logger,
        )

    async def stream_turn(self, request: TurnRequest) -> AsyncIterator[str]:
        frames = await self.transport.open(
            project_path=request.project_path,
            message=request.message,
            session_id=request.resume_session_id,
        )
        try:
            async for frame in frames:
                yield frame
        finally:
            await frames.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()
