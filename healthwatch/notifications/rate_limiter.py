"""Sliding-window per-channel rate limiter for notification delivery."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class SlidingWindow:
    """Counts events in the trailing *window_secs* seconds."""

    def __init__(self, limit: int, window_secs: float = 60.0) -> None:
        self.limit = limit
        self.window_secs = window_secs
        self._stamps: deque[float] = deque()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_secs
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()

    def try_acquire(self, now: float) -> bool:
        """Record one event at *now* if under the limit. Returns True if recorded."""
        self._evict(now)
        if len(self._stamps) >= self.limit:
            return False
        self._stamps.append(now)
        return True

    def count(self, now: float) -> int:
        self._evict(now)
        return len(self._stamps)

    def time_until_available(self, now: float) -> float:
        """Seconds until one more event would be allowed."""
        self._evict(now)
        if len(self._stamps) < self.limit:
            return 0.0
        return self._stamps[0] + self.window_secs - now


class ChannelRateLimiter:
    """Per-channel limits on notifications per minute.

    A channel without a configured limit is never throttled. Over-limit
    notifications are rejected, not queued.
    """

    def __init__(
        self,
        window_secs: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window_secs = window_secs
        self._clock = clock
        self._windows: dict[str, SlidingWindow] = {}

    def try_acquire(self, channel_id: str, limit_per_minute: int | None) -> bool:
        """Consume one slot for *channel_id*. Returns False if the limit is hit."""
        if limit_per_minute is None:
            return True
        window = self._windows.get(channel_id)
        if window is None or window.limit != limit_per_minute:
            window = SlidingWindow(limit_per_minute, self._window_secs)
            self._windows[channel_id] = window
        return window.try_acquire(self._clock())

    def sent_in_window(self, channel_id: str) -> int:
        window = self._windows.get(channel_id)
        if window is None:
            return 0
        return window.count(self._clock())

    def reset(self, channel_id: str | None = None) -> None:
        if channel_id is None:
            self._windows.clear()
        else:
            self._windows.pop(channel_id, None)
