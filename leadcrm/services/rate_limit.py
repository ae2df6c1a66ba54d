"""Process-local fixed-window rate limiter."""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_MAX_KEYS = 10_000


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Counts hits per key inside a fixed window.

    State lives on the instance and is not shared between processes. When a
    new key arrives at ``max_keys``, expired windows are swept and, if still
    full, the oldest window is evicted.
    """

    def __init__(
        self,
        max_hits: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = DEFAULT_MAX_KEYS,
    ):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_keys = max_keys
        self._windows: OrderedDict[str, list] = OrderedDict()  # key -> [count, reset_at]

    def __len__(self) -> int:
        return len(self._windows)

    def _make_room(self, now: float) -> None:
        if len(self._windows) < self.max_keys:
            return
        for key in [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]:
            del self._windows[key]
        while len(self._windows) >= self.max_keys:
            self._windows.popitem(last=False)

    def check(self, key: str) -> RateLimitDecision:
        now = self.clock()
        window = self._windows.get(key)

        if window is None or window[1] <= now:
            if window is None:
                self._make_room(now)
            else:
                del self._windows[key]
            reset_at = now + self.window_seconds
            self._windows[key] = [1, reset_at]
            return RateLimitDecision(allowed=True, remaining=self.max_hits - 1, reset_at=reset_at)

        if window[0] >= self.max_hits:
            return RateLimitDecision(allowed=False, remaining=0, reset_at=window[1])

        window[0] += 1
        return RateLimitDecision(allowed=True, remaining=self.max_hits - window[0], reset_at=window[1])

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)


def client_key(headers, fallback: Optional[str] = None) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or fallback or "unknown"
