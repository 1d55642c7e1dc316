# catalog_sync/services/dedupe.py
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

DUPLICATE = "duplicate"
FRESH = "fresh"

DEFAULT_TTL_SEC = 60 * 60


class WebhookDeduplicator:
    """
    Best-effort idempotency for at-least-once webhook delivery.

    Remembers delivery ids for ``ttl`` seconds, holding at most ``max_entries``
    of them (oldest evicted first). Forgetting an id only means a redelivery
    can no longer be recognized; the conflict guard still stops stale echoes.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SEC, max_entries: int = 10_000,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._seen: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def check(self, delivery_id: Optional[str]) -> str:
        if not delivery_id:
            return FRESH
        now = self._clock()
        with self._lock:
            self._purge_locked(now)
            if delivery_id in self._seen:
                return DUPLICATE
            self._seen[delivery_id] = now
            while len(self._seen) > self.max_entries:
                self._seen.popitem(last=False)
        return FRESH

    def forget(self, delivery_id: Optional[str]) -> None:
        # lets the platform's redelivery through after a failed attempt
        if not delivery_id:
            return
        with self._lock:
            self._seen.pop(delivery_id, None)

    def purge(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def _purge_locked(self, now: float) -> int:
        removed = 0
        # insertion order == age order, so stop at the first live entry
        while self._seen:
            key, ts = next(iter(self._seen.items()))
            if now - ts < self.ttl:
                break
            self._seen.popitem(last=False)
            removed += 1
        return removed
