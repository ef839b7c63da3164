"""
backend/tests/test_provider_rate_limit_shared_state.py

Purpose:
    Validate provider-wide (shared) in-process RPM limiting semantics.

Dependencies:
    - survivor.services.provider_rate_limiter
"""

from __future__ import annotations

import pytest

from survivor.services import provider_rate_limiter as limiter_module
from survivor.services.provider_rate_limiter import ProviderRateLimiter


@pytest.fixture
def fake_clock(monkeypatch):
    timeline = {"now": 0.0}
    sleeps: list[float] = []

    async def _fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        timeline["now"] += seconds

    monkeypatch.setattr(limiter_module.time, "monotonic", lambda: timeline["now"])
    monkeypatch.setattr(limiter_module.asyncio, "sleep", _fake_sleep)
    return timeline, sleeps


@pytest.mark.asyncio
async def test_callers_share_one_bucket_per_provider(fake_clock):
    _, sleeps = fake_clock
    limiter = ProviderRateLimiter()

    # Scheduled sync consumes the only token...
    await limiter.acquire("espn", 1)
    # ...so an admin refresh against the same provider has to wait
    await limiter.acquire("ESPN", 1)

    assert sleeps, "second call should have been throttled"
    assert round(sleeps[0], 2) == 60.0


@pytest.mark.asyncio
async def test_buckets_are_independent_and_burst_up_to_capacity(fake_clock):
    _, sleeps = fake_clock
    limiter = ProviderRateLimiter()

    for _ in range(3):
        await limiter.acquire("espn", 3)
    await limiter.acquire("other", 3)
    assert sleeps == []

    await limiter.acquire("espn", 3)
    assert round(sleeps[0], 2) == 20.0


@pytest.mark.asyncio
async def test_missing_rpm_disables_limiting(fake_clock):
    _, sleeps = fake_clock
    limiter = ProviderRateLimiter()
    for _ in range(10):
        await limiter.acquire("espn", None)
        await limiter.acquire("", 1)
    assert sleeps == []
