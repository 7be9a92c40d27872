# core/rate_limit.py
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class Bucket:
    tokens: float
    last: float


class TokenBucketLimiter:
    """
    Per-key token bucket: `rate` tokens every `per_seconds`, bursting to `capacity`.
    Idle buckets are forgotten once they would be full again.
    """

    def __init__(
        self,
        rate: float,
        per_seconds: float,
        capacity: float,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10_000,
    ):
        self.rate = rate
        self.per_seconds = per_seconds
        self.capacity = capacity
        self._clock = clock
        self._max_keys = max_keys
        self._buckets: Dict[str, Bucket] = {}

    def _refill(self, key: str, now: float) -> Bucket:
        b = self._buckets.get(key)
        if b is None:
            if len(self._buckets) >= self._max_keys:
                self._prune(now)
            b = Bucket(tokens=self.capacity, last=now)
            self._buckets[key] = b
            return b
        elapsed = max(0.0, now - b.last)
        b.tokens = min(self.capacity, b.tokens + (elapsed / self.per_seconds) * self.rate)
        b.last = now
        return b

    def allow(self, key: str, cost: float = 1.0) -> bool:
        b = self._refill(key, self._clock())
        if b.tokens >= cost:
            b.tokens -= cost
            return True
        return False

    def retry_after(self, key: str, cost: float = 1.0) -> float:
        """Seconds until `cost` tokens are available for `key` (0 when allowed now)."""
        b = self._refill(key, self._clock())
        missing = cost - b.tokens
        if missing <= 0:
            return 0.0
        return missing * self.per_seconds / self.rate

    def _prune(self, now: float) -> None:
        full_after = self.capacity * self.per_seconds / self.rate
        for key in [k for k, b in self._buckets.items() if now - b.last >= full_after]:
            del self._buckets[key]
