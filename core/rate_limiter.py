"""
Fixed-Window Rate Limiter for Generation Requests

Admission control keyed by an opaque client identity (usually the remote
address supplied by the HTTP layer).

Window semantics:
- First request for a client opens a window: count=1, reset_at=now+window
- Requests after reset_at start a fresh window at count=1
- Within a window, requests beyond max_requests are denied

There is no carry-over between windows, so a burst straddling a window
boundary can admit up to 2x max_requests. This is the documented behavior.

The entry table is bounded: expired entries are swept once the table reaches
max_entries, and if that is not enough the least recently used clients are
evicted.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    """Per-client window state."""
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check."""
    allowed: bool
    count: int
    limit: int
    reset_at: float
    retry_after: float

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class RateLimiter:
    """
    In-memory fixed-window rate limiter.

    Usage:
        limiter = RateLimiter(window_seconds=60, max_requests=100)

        decision = limiter.admit("203.0.113.7")
        if not decision.allowed:
            ...

        # Or raise RateLimitExceeded on deny
        limiter.enforce("203.0.113.7")

    The check-and-increment runs under a lock with no await inside, so it is
    safe from both coroutines and threads.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 100,
        max_entries: int = 10_000,
        clock: Optional[Callable[[], float]] = None,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")

        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.max_entries = max(1, max_entries)
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, RateLimitEntry]" = OrderedDict()
        self._lock = threading.Lock()

        self.total_allowed = 0
        self.total_denied = 0
        self.total_evicted = 0

    @classmethod
    def from_config(cls, config) -> "RateLimiter":
        """Build a limiter from a RateLimitConfig."""
        return cls(
            window_seconds=config.window_seconds,
            max_requests=config.max_requests,
            max_entries=config.max_entries,
        )

    def admit(self, client_id: str) -> RateLimitDecision:
        """Count a request for client_id and decide whether it may proceed."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(client_id)

            if entry is None:
                self._make_room(now)
                entry = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
                self._entries[client_id] = entry
                self.total_allowed += 1
                return self._decision(True, entry, now)

            self._entries.move_to_end(client_id)

            if now > entry.reset_at:
                entry.count = 1
                entry.reset_at = now + self.window_seconds
                self.total_allowed += 1
                return self._decision(True, entry, now)

            if entry.count >= self.max_requests:
                self.total_denied += 1
                return self._decision(False, entry, now)

            entry.count += 1
            self.total_allowed += 1
            return self._decision(True, entry, now)

    def enforce(self, client_id: str) -> RateLimitDecision:
        """Like admit(), but raise RateLimitExceeded when denied."""
        decision = self.admit(client_id)
        if not decision.allowed:
            logger.warning(
                f"Rate limit exceeded for {client_id}: "
                f"{decision.count}/{self.max_requests} in window, retry after {decision.retry_after:.1f}s"
            )
            raise RateLimitExceeded(client_id, decision.retry_after)
        return decision

    def _decision(self, allowed: bool, entry: RateLimitEntry, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=allowed,
            count=entry.count,
            limit=self.max_requests,
            reset_at=entry.reset_at,
            retry_after=0.0 if allowed else max(0.0, entry.reset_at - now),
        )

    def _make_room(self, now: float):
        """Keep the table under max_entries before inserting. Caller holds the lock."""
        if len(self._entries) < self.max_entries:
            return

        swept = self._sweep_locked(now)
        while len(self._entries) >= self.max_entries:
            client_id, _ = self._entries.popitem(last=False)
            self.total_evicted += 1
            logger.debug(f"Evicted rate limit entry for {client_id} (table full)")

        if swept:
            logger.debug(f"Swept {swept} expired rate limit entries")

    def _sweep_locked(self, now: float) -> int:
        expired = [cid for cid, entry in self._entries.items() if now > entry.reset_at]
        for cid in expired:
            del self._entries[cid]
        self.total_evicted += len(expired)
        return len(expired)

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop entries whose window has elapsed. Returns the number removed."""
        with self._lock:
            return self._sweep_locked(self._clock() if now is None else now)

    def reset(self, client_id: Optional[str] = None):
        """Forget one client, or every client when client_id is None."""
        with self._lock:
            if client_id is None:
                self._entries.clear()
            else:
                self._entries.pop(client_id, None)

    def get_entry(self, client_id: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(client_id)
            return RateLimitEntry(entry.count, entry.reset_at) if entry else None

    def __len__(self) -> int:
        return len(self._entries)

    def get_status(self) -> dict:
        """Get current status as a dictionary."""
        return {
            "window_seconds": self.window_seconds,
            "max_requests": self.max_requests,
            "max_entries": self.max_entries,
            "tracked_clients": len(self._entries),
            "total_allowed": self.total_allowed,
            "total_denied": self.total_denied,
            "total_evicted": self.total_evicted,
        }
