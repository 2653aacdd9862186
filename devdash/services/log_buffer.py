"""Bounded, append-only log store for one supervised process."""

import time
from collections import deque

from devdash.models import LogEntry, LogStream

DEFAULT_CAPACITY = 500


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class LogBuffer:
    """FIFO ring of ``LogEntry`` records.

    Appending past ``capacity`` evicts the oldest entry.  Timestamps are epoch
    milliseconds and strictly increasing, so a reader polling with the
    timestamp of the last entry it saw never misses a line written in the same
    millisecond.

    Attributes:
        capacity: Maximum number of entries retained.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._last_timestamp = 0

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, text: str, stream: LogStream) -> LogEntry:
        """Record one line and return the stored entry.

        Args:
            text: Line text; must not contain a newline.
            stream: Stream the line came from.

        Returns:
            The appended ``LogEntry``.
        """
        timestamp = max(_now_ms(), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        entry = LogEntry(timestamp=timestamp, text=text, stream=stream)
        self._entries.append(entry)
        return entry

    def since(self, watermark: int) -> list[LogEntry]:
        """Return every retained entry with a timestamp greater than *watermark*.

        Args:
            watermark: Timestamp of the last entry the caller already holds, or
                ``0`` for everything.

        Returns:
            Matching entries, oldest first.
        """
        return [entry for entry in self._entries if entry.timestamp > watermark]

    def entries(self) -> list[LogEntry]:
        """Return a copy of all retained entries, oldest first."""
        return list(self._entries)
