import threading
from dataclasses import dataclass
from time import monotonic
from typing import Generic, TypeVar

from ledgerlens.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_MS = 300_000
DEFAULT_SWEEP_INTERVAL_MS = 600_000


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    written_at: float
    ttl_ms: int

    def expired(self, now: float) -> bool:
        return (now - self.written_at) * 1000 > self.ttl_ms


class TTLCache(Generic[T]):
    """Thread-safe key/value map with per-entry expiry.

    Construct one per process (or per test), call ``start_sweeper`` to evict
    expired entries in the background and ``shutdown`` to stop it.
    """

    def __init__(self, ttl_ms: int = DEFAULT_TTL_MS, name: str = "cache") -> None:
        self.ttl_ms = ttl_ms
        self.name = name
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def get(self, key: str) -> T | None:
        now = monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(now):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: T, ttl_ms: int | None = None) -> None:
        if self.ttl_ms <= 0 and ttl_ms is None:
            return
        entry = CacheEntry(value=value, written_at=monotonic(), ttl_ms=self.ttl_ms if ttl_ms is None else ttl_ms)
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep(self) -> int:
        """Drop expired entries, taking the lock once per entry."""
        with self._lock:
            keys = list(self._entries)
        removed = 0
        for key in keys:
            now = monotonic()
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and entry.expired(now):
                    del self._entries[key]
                    removed += 1
        if removed:
            logger.debug("[CACHE] %s: swept %d expired entries", self.name, removed)
        return removed

    def start_sweeper(self, interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        interval = interval_ms / 1000.0

        def run() -> None:
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name=f"{self.name}-sweeper", daemon=True)
        self._sweeper.start()
        logger.debug("[CACHE] %s: sweeper started (every %.0f s)", self.name, interval)

    def shutdown(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        sweeper = self._sweeper
        if sweeper is not None:
            sweeper.join(timeout)
        self._sweeper = None
