"""
backend/survivor/services/results_refresher.py

Purpose:
    Provider -> ResultsCache refresh boundary. Fetches a week, merges it into
    the cache, persists the merged week, and converts provider failures into
    a stale/pending outcome instead of an exception.

Notes:
    - refresh_until_final() is the only polling loop: a hard iteration and
      wall-clock budget, idempotent fetch-merge per iteration, no
      self-rescheduling.

Dependencies:
    - survivor.providers.base
    - survivor.services.results_cache
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Iterable, Optional

from survivor.config import settings
from survivor.errors import ProviderUnavailableError
from survivor.providers.base import ResultsProvider
from survivor.services.results_cache import ResultsCache, StoreSummary
from survivor.utils import utcnow

logger = logging.getLogger("survivor.results_refresher")

PersistHook = Callable[[ResultsCache, int], Awaitable[int]]


@dataclass
class RefreshOutcome:
    week: int
    fetched: bool
    stale: bool = False
    final: bool = False
    summary: Optional[StoreSummary] = None
    error: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "week": self.week,
            "fetched": self.fetched,
            "stale": self.stale,
            "final": self.final,
            "summary": self.summary.as_dict() if self.summary else None,
            "error": self.error,
        }


def current_week(today: Optional[date] = None) -> int:
    """Regular-season week for a date, clamped to 1..TOTAL_WEEKS."""
    today = today or utcnow().date()
    start = settings.SEASON_START_DATE
    if today < start:
        return 1
    week = (today - start).days // 7 + 1
    return min(max(week, 1), settings.TOTAL_WEEKS)


class ResultsRefresher:
    def __init__(
        self,
        provider: ResultsProvider,
        cache: ResultsCache,
        persist: Optional[PersistHook] = None,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._persist = persist

    @property
    def cache(self) -> ResultsCache:
        return self._cache

    async def refresh_week(self, week: int, *, force: bool = False) -> RefreshOutcome:
        week = int(week)
        if not force and self._cache.is_week_final(week) and self._cache.is_fresh(week, self._cache.max_age_ms):
            return RefreshOutcome(week=week, fetched=False, final=True)

        try:
            games = await self._provider.get_week_results(week)
        except ProviderUnavailableError as exc:
            logger.warning("Refresh of week %d failed, serving cached data: %s", week, exc)
            return RefreshOutcome(
                week=week,
                fetched=False,
                stale=self._cache.has_week(week),
                final=self._cache.is_week_final(week),
                error=str(exc),
            )

        summary = self._cache.store(week, games)
        if self._persist is not None:
            await self._persist(self._cache, week)
        return RefreshOutcome(
            week=week,
            fetched=True,
            final=self._cache.is_week_final(week),
            summary=summary,
        )

    async def refresh_until_final(
        self,
        weeks: Iterable[int],
        *,
        max_iterations: Optional[int] = None,
        max_seconds: Optional[float] = None,
        poll_interval: float = 0.0,
    ) -> dict[int, RefreshOutcome]:
        """Poll the given weeks until all are final or the budget runs out."""
        max_iterations = max_iterations or settings.RESULTS_SYNC_MAX_ITERATIONS
        max_seconds = max_seconds if max_seconds is not None else settings.RESULTS_SYNC_MAX_SECONDS
        deadline = time.monotonic() + max_seconds

        pending = sorted({int(w) for w in weeks})
        outcomes: dict[int, RefreshOutcome] = {}

        for iteration in range(max_iterations):
            if not pending or time.monotonic() >= deadline:
                break
            for week in list(pending):
                outcome = await self.refresh_week(week, force=iteration > 0)
                outcomes[week] = outcome
                if outcome.final:
                    pending.remove(week)
            if pending and poll_interval > 0 and iteration + 1 < max_iterations:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(poll_interval, remaining))

        if pending:
            logger.info("Refresh budget exhausted with weeks still open: %s", pending)
        return outcomes
