"""In-memory sliding-window rate limiter for inbound frames.

Tracks frame counts per connection within a configurable time window.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Hashable


@dataclass
class _BucketEntry:
    timestamps: list[float] = field(default_factory=list)


class SlidingWindowLimiter:
    """Simple sliding-window counter keyed by any hashable key.

    Parameters
    ----------
    max_events:
        Maximum number of events allowed within *window_seconds*.
    window_seconds:
        Length of the sliding window in seconds.
    clock:
        Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        max_events: int = 50,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[Hashable, _BucketEntry] = defaultdict(_BucketEntry)

    def check(self, key: Hashable) -> bool:
        """Return ``True`` if the event is allowed, ``False`` otherwise."""
        if self.max_events <= 0:
            return True
        entry = self._buckets[key]
        now = self._clock()

        # Prune timestamps outside the window
        cutoff = now - self.window_seconds
        entry.timestamps = [t for t in entry.timestamps if t > cutoff]

        if len(entry.timestamps) >= self.max_events:
            return False

        entry.timestamps.append(now)
        return True

    def remaining(self, key: Hashable) -> int:
        """Return how many events remain for *key* in the current window."""
        entry = self._buckets.get(key)
        if entry is None:
            return self.max_events
        cutoff = self._clock() - self.window_seconds
        active = [t for t in entry.timestamps if t > cutoff]
        return max(0, self.max_events - len(active))

    def forget(self, key: Hashable) -> None:
        self._buckets.pop(key, None)

    def reset(self) -> None:
        """Clear all tracked state (useful for tests)."""
        self._buckets.clear()
