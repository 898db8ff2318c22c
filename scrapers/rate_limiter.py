from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from urllib.parse import urlparse

from core.models import SourceConfig

log = logging.getLogger(__name__)


class TokenBucket:
    """Token bucket with a FIFO waiter queue.

    Capacity ``C`` refills continuously at ``C / window`` tokens per second.
    A caller gets a token immediately only when one is available and nobody
    is queued ahead of it; otherwise it waits in line and a drain task hands
    out tokens every ``poll_interval`` seconds.
    """

    def __init__(
        self,
        capacity: int,
        window_seconds: float,
        *,
        poll_interval: float = 0.1,
        clock=time.monotonic,
    ) -> None:
        if capacity < 1 or window_seconds <= 0:
            raise ValueError("capacity must be >= 1 and window_seconds > 0")
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._rate = capacity / window_seconds
        self._poll_interval = poll_interval
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._waiters: deque[asyncio.Future] = deque()
        self._drainer: asyncio.Task | None = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.capacity), self._tokens + elapsed * self._rate)
            self._last_refill = now

    async def acquire(self) -> None:
        self._refill()
        if self._tokens >= 1 and not self._waiters:
            self._tokens -= 1
            return

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        self._ensure_drainer()
        try:
            await fut
        except asyncio.CancelledError:
            # Granted right before the cancel landed: hand the token back.
            if fut.done() and not fut.cancelled():
                self._tokens = min(float(self.capacity), self._tokens + 1)
            raise

    def _ensure_drainer(self) -> None:
        if self._drainer is None or self._drainer.done():
            self._drainer = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._waiters:
            await asyncio.sleep(self._poll_interval)
            self._refill()
            while self._waiters:
                head = self._waiters[0]
                if head.done():
                    self._waiters.popleft()
                    continue
                if self._tokens < 1:
                    break
                self._waiters.popleft()
                self._tokens -= 1
                head.set_result(None)

    def status(self) -> dict:
        self._refill()
        return {
            "tokens": int(self._tokens),
            "capacity": self.capacity,
            "pending": sum(1 for w in self._waiters if not w.done()),
        }


def limiter_key(config: SourceConfig) -> str:
    """Buckets are keyed by host so every listing config of one provider
    shares the provider's request allowance."""
    return urlparse(config.base_url).netloc or config.source_id


class RateLimiterRegistry:
    """One bucket per source host, created lazily from the first config seen."""

    def __init__(self, poll_interval: float = 0.1) -> None:
        self._poll_interval = poll_interval
        self._buckets: dict[str, TokenBucket] = {}

    def for_source(self, config: SourceConfig) -> TokenBucket:
        key = limiter_key(config)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(
                config.rate_limit_requests,
                config.rate_limit_window_seconds,
                poll_interval=self._poll_interval,
            )
            self._buckets[key] = bucket
            log.debug(
                "Rate limiter for %s: %d per %.1fs",
                key,
                config.rate_limit_requests,
                config.rate_limit_window_seconds,
            )
        return bucket

    def status(self) -> dict[str, dict]:
        return {key: b.status() for key, b in self._buckets.items()}
