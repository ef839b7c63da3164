"""
backend/survivor/services/provider_rate_limiter.py

Purpose:
    Process-local requests-per-minute limiter shared by every caller of a
    results provider (scheduled sync, admin refresh, CLI), so the audit and
    refresh paths together stay inside the provider's rate limit.

Dependencies:
    - asyncio
    - time
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    capacity: float
    refill_per_second: float
    lock: asyncio.Lock


class ProviderRateLimiter:
    """Token bucket per provider name; capacity is one minute of requests."""

    def __init__(self) -> None:
        self._buckets: dict[str, _Bucket] = {}

    async def acquire(self, provider: str, rpm: int | None) -> None:
        if rpm is None or int(rpm) <= 0:
            return
        key = str(provider or "").strip().lower()
        if not key:
            return

        bucket = self._bucket(key, int(rpm))
        while True:
            async with bucket.lock:
                now = time.monotonic()
                elapsed = max(0.0, now - bucket.updated_at)
                bucket.tokens = min(bucket.capacity, bucket.tokens + elapsed * bucket.refill_per_second)
                bucket.updated_at = now

                if bucket.tokens >= 1.0:
                    bucket.tokens -= 1.0
                    return

                wait_seconds = (1.0 - bucket.tokens) / bucket.refill_per_second

            await asyncio.sleep(wait_seconds)

    def _bucket(self, provider: str, rpm: int) -> _Bucket:
        # No await between lookup and insert, so no lock is needed here.
        capacity = float(max(1, rpm))
        bucket = self._buckets.get(provider)
        if bucket is None:
            bucket = _Bucket(
                tokens=capacity,
                updated_at=time.monotonic(),
                capacity=capacity,
                refill_per_second=capacity / 60.0,
                lock=asyncio.Lock(),
            )
            self._buckets[provider] = bucket
        elif bucket.capacity != capacity:
            bucket.capacity = capacity
            bucket.refill_per_second = capacity / 60.0
            bucket.tokens = min(bucket.tokens, capacity)
        return bucket

    def reset(self) -> None:
        self._buckets.clear()


provider_rate_limiter = ProviderRateLimiter()
