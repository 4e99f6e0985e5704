import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import logfire

from .framing import FrameBuffer

SESSION_HEADER = "X-Session-Id"


class TransportError(Exception):
    """Raised when a turn cannot be started: nothing was streamed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


def error_frame(message: str) -> str:
    """Build a raw ``error`` record, as if the server had sent it."""
    return f"data: {json.dumps({'type': 'error', 'error': message})}"


class FrameStream:
    """
    A finite, non-restartable sequence of raw records from one response.

    Iterating yields complete records. A network failure after the response
    started is turned into a trailing ``error`` record and ends the sequence.
    """

    def __init__(
        self,
        response: httpx.Response,
        max_frame_bytes: int,
        logger: logging.Logger,
    ):
        self.response = response
        self.logger = logger
        self.session_id: Optional[str] = response.headers.get(SESSION_HEADER)

        self._buffer = FrameBuffer(max_frame_bytes=max_frame_bytes, logger=logger)
        self._consumed = False
        self._closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Frame stream has already been consumed")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            async for chunk in self.response.aiter_text():
                for frame in self._buffer.feed(chunk):
                    yield frame
            self._buffer.flush()
        except httpx.HTTPError as e:
            self.logger.warning(f"Stream interrupted after start: {e!r}")
            self._buffer.flush()
            yield error_frame(f"Stream interrupted: {e}")
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying response; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()

    @property
    def closed(self) -> bool:
        return self._closed


class StreamTransport:
    """
    Opens one text/event-stream per turn against a relay (or backend) endpoint.

    Failures before the response starts streaming (connection refused,
    non-2xx status) are raised as ``TransportError``; later failures come
    through the stream itself.
    """

    def __init__(
        self,
        base_url: str,
        chat_path: str = "/chat",
        read_timeout: Optional[float] = 300.0,
        max_frame_bytes: int = 1024 * 1024,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.chat_path = chat_path
        self.max_frame_bytes = max_frame_bytes
        self.logger = logger or logging.getLogger("StreamTransport")

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=read_timeout)
        )

    async def open(
        self,
        project_path: str,
        message: str,
        session_id: Optional[str] = None,
    ) -> FrameStream:
        """
        Start a turn and return its frame stream.

        Args:
            project_path: Working context for the agent
            message: User input text
            session_id: Existing session to continue, if any

        Returns:
            Frame stream for the turn

        Raises:
            TransportError: If the turn could not be started
        """
        payload: Dict[str, Any] = {"projectPath": project_path, "message": message}
        if session_id:
            payload["sessionId"] = session_id

        url = f"{self.base_url}{self.chat_path}"

        with logfire.span("stream_transport.open", url=url, session_id=session_id):
            request = self._client.build_request(
                "POST",
                url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            )

            try:
                response = await self._client.send(request, stream=True)
            except httpx.HTTPError as e:
                self.logger.error(f"Failed to open stream to {url}: {e!r}")
                raise TransportError(f"Failed to connect to {url}: {e}") from e

            if response.status_code >= 400:
                detail = await self._read_error_body(response)
                self.logger.error(
                    f"Stream request to {url} rejected with {response.status_code}: {detail}"
                )
                raise TransportError(
                    self._error_message(response.status_code, detail),
                    status_code=response.status_code,
                    detail=detail,
                )

        self.logger.debug(f"Opened stream to {url} (status {response.status_code})")
        return FrameStream(response, self.max_frame_bytes, self.logger)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _read_error_body(self, response: httpx.Response) -> Any:
        try:
            await response.aread()
            try:
                return response.json()
            except ValueError:
                return response.text
        except httpx.HTTPError as e:
            return str(e)
        finally:
            await response.aclose()

    @staticmethod
    def _error_message(status_code: int, detail: Any) -> str:
        if isinstance(detail, dict):
            reason = detail.get("error") or detail.get("detail") or detail
        else:
            reason = detail or "no details"
        return f"HTTP error {status_code}: {reason}"
