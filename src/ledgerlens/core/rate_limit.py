import threading
from dataclasses import dataclass
from time import monotonic

from ledgerlens.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_after_s: float


@dataclass
class _Window:
    count: int
    resets_at: float


class RateLimiter:
    """Fixed-window request counter keyed by caller.

    Each key may make ``limit`` requests per ``window_ms``; the window starts
    at the key's first request and is replaced once it has elapsed.
    """

    def __init__(self, limit: int, window_ms: int = 60_000, name: str = "rate-limit") -> None:
        self.limit = limit
        self.window_ms = window_ms
        self.name = name
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        now = monotonic()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.resets_at:
                window = self._windows[key] = _Window(count=0, resets_at=now + self.window_ms / 1000.0)
            reset_after = max(0.0, window.resets_at - now)
            if window.count >= self.limit:
                logger.info("[RATE] %s: '%s' over %d requests per window", self.name, key, self.limit)
                return RateLimitResult(allowed=False, remaining=0, reset_after_s=reset_after)
            window.count += 1
            return RateLimitResult(allowed=True, remaining=self.limit - window.count, reset_after_s=reset_after)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)
