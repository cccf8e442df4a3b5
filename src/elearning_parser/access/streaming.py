"""Stream wrappers applied at the file access boundary.

Backends hand out raw streams; these helpers add buffering and optional
progress reporting without holding any cache state.
"""

import io
import logging
from typing import BinaryIO, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 64 * 1024
DEFAULT_PROGRESS_INTERVAL = 1024 * 1024

# Called with (bytes_read, total_size)
ProgressCallback = Callable[[int, int], None]


class ProgressTrackingStream(io.RawIOBase):
    """Read-only stream that reports bytes consumed to a callback.

    Progress is reported every ``progress_interval`` bytes and once more
    when the stream is closed. Callback errors are logged and ignored.

    Attributes:
        total_size: Expected size of the underlying stream in bytes
        bytes_read: Number of bytes consumed so far
    """

    def __init__(
        self,
        stream: BinaryIO,
        total_size: int,
        callback: ProgressCallback,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        super().__init__()
        self._stream = stream
        self._callback = callback
        self._progress_interval = progress_interval
        self._last_report = 0
        self.total_size = total_size
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._stream.read(len(buffer))
        count = len(data)
        buffer[:count] = data
        if count:
            self._update(count)
        return count

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self.bytes_read > 0:
                self._notify(self.bytes_read)
        finally:
            self._stream.close()
            super().close()

    def _update(self, count: int) -> None:
        self.bytes_read += count
        if self.bytes_read - self._last_report >= self._progress_interval:
            self._last_report = self.bytes_read
            self._notify(self.bytes_read)

    def _notify(self, current: int) -> None:
        try:
            self._callback(current, self.total_size)
        except Exception as e:
            logger.debug(f"Progress callback failed: {e}")


def create_buffered_stream(stream: BinaryIO, buffer_size: int = DEFAULT_BUFFER_SIZE) -> BinaryIO:
    """Wrap a stream in a read buffer unless it already has one.

    In-memory streams are returned unchanged.
    """
    if isinstance(stream, (io.BufferedReader, io.BytesIO)):
        return stream
    if isinstance(stream, io.RawIOBase):
        return io.BufferedReader(stream, buffer_size)
    return stream


def create_enhanced_stream(
    stream: BinaryIO,
    total_size: int,
    progress_callback: Optional[ProgressCallback] = None,
) -> BinaryIO:
    """Apply buffering and, if a callback is given, progress tracking.

    Args:
        stream: Stream returned by a backend
        total_size: Expected size in bytes (-1 if unknown)
        progress_callback: Optional observer called with (bytes_read, total_size)

    Returns:
        Wrapped stream
    """
    buffered = create_buffered_stream(stream)
    if progress_callback is None:
        return buffered
    return io.BufferedReader(ProgressTrackingStream(buffered, total_size, progress_callback))
