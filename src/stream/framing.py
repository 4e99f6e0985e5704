import logging
from typing import List, Optional

RECORD_SEPARATOR = "\n\n"


class FrameBuffer:
    """
    Reassembles text records split across network reads.

    Records are separated by a blank line. Partial records are held until
    their separator arrives; whatever is still buffered when the input ends
    is dropped rather than emitted.
    """

    def __init__(
        self,
        max_frame_bytes: int = 1024 * 1024,
        logger: Optional[logging.Logger] = None,
    ):
        self.max_frame_bytes = max_frame_bytes
        self.logger = logger or logging.getLogger("FrameBuffer")

        self._buffer = ""
        self._pending_cr = False
        self._discarding = False
        self.dropped_frames = 0

    def feed(self, chunk: str) -> List[str]:
        """
        Add a chunk of decoded text and return every record it completes.

        Args:
            chunk: Text as received from the network

        Returns:
            Complete records, without their separators
        """
        if not chunk:
            return []

        self._buffer += self._normalize(chunk)
        frames: List[str] = []

        while True:
            index = self._buffer.find(RECORD_SEPARATOR)
            if index < 0:
                break

            record = self._buffer[:index]
            self._buffer = self._buffer[index + len(RECORD_SEPARATOR):]

            if self._discarding:
                # Tail of an oversized record
                self._discarding = False
                continue

            if record.strip():
                frames.append(record)

        if len(self._buffer.encode("utf-8")) > self.max_frame_bytes:
            if not self._discarding:
                self.logger.warning(
                    f"Discarding record larger than {self.max_frame_bytes} bytes"
                )
                self.dropped_frames += 1
            self._buffer = ""
            self._discarding = True

        return frames

    def flush(self) -> Optional[str]:
        """
        Drop any partial record left at end of input.

        Returns:
            The discarded partial record, if there was one
        """
        partial = self._buffer
        self._buffer = ""
        self._pending_cr = False
        self._discarding = False

        if partial.strip():
            self.logger.debug(f"Dropping incomplete record at end of stream: {partial!r}")
            return partial
        return None

    def _normalize(self, chunk: str) -> str:
        """Convert CRLF and bare CR line endings to LF across chunk boundaries."""
        if self._pending_cr:
            chunk = "\r" + chunk
            self._pending_cr = False

        if chunk.endswith("\r"):
            chunk = chunk[:-1]
            self._pending_cr = True

        return chunk.replace("\r\n", "\n").replace("\r", "\n")
