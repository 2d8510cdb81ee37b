"""Time-bounded outcome window used for the recent error rate."""

from collections import deque
from datetime import datetime, timedelta


class SlidingWindow:
    """Ordered ``(timestamp, success)`` outcomes younger than ``window`` seconds.

    Entries are pruned on every insertion. Reads filter again so an idle
    window never reports outcomes that have aged out since the last write.
    """

    def __init__(self, window: float) -> None:
        if window <= 0:
            raise ValueError("window must be > 0")
        self._span = timedelta(seconds=window)
        self._entries: deque[tuple[datetime, bool]] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_recent(self, timestamp: datetime, now: datetime) -> bool:
        return now - timestamp < self._span

    def record(self, success: bool, now: datetime) -> None:
        """Append one outcome and drop everything outside the window."""
        self._entries.append((now, success))
        while self._entries and not self._is_recent(self._entries[0][0], now):
            self._entries.popleft()

    def recent(self, now: datetime) -> list[tuple[datetime, bool]]:
        """Return the outcomes still inside the window at ``now``."""
        return [entry for entry in self._entries if self._is_recent(entry[0], now)]

    def error_rate(self, now: datetime) -> float:
        """Return the failure percentage (0-100) over recent outcomes."""
        entries = self.recent(now)
        if not entries:
            return 0.0
        failures = sum(1 for _, success in entries if not success)
        return failures / len(entries) * 100

    def clear(self) -> None:
        self._entries.clear()
