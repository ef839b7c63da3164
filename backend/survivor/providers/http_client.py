"""
backend/survivor/providers/http_client.py

Purpose:
    Outbound HTTP layer shared by results providers: per-provider rate
    limiting, bounded retry with exponential backoff (Retry-After wins when
    present) and a circuit breaker, so a dead upstream degrades to cached
    results quickly instead of stalling every refresh.

Dependencies:
    - httpx
    - survivor.services.provider_rate_limiter
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from survivor.services.provider_rate_limiter import provider_rate_limiter

logger = logging.getLogger("survivor.http_client")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
MAX_BACKOFF_SECONDS = 60.0
_NETWORK_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)


class CircuitOpenError(RuntimeError):
    """Raised when a request is refused because the provider circuit is open."""


@dataclass
class CircuitBreaker:
    """Opens after `threshold` consecutive failed requests; half-opens after `cooldown` seconds."""

    threshold: int = 3
    cooldown: float = 300.0
    failures: int = 0
    opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def allow(self) -> bool:
        if self.opened_at is None:
            return True
        if time.monotonic() - self.opened_at >= self.cooldown:
            logger.info("Circuit half-open, letting one request through")
            return True
        return False

    def success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit closed after successful request")
        self.failures = 0
        self.opened_at = None

    def failure(self, name: str) -> None:
        self.failures += 1
        if self.failures >= self.threshold:
            if self.opened_at is None:
                logger.warning("[%s] Circuit OPEN after %d failed requests", name, self.failures)
            self.opened_at = time.monotonic()


def _retry_after(response: Optional[httpx.Response]) -> Optional[float]:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def _safe_url(url: str) -> str:
    """Drop the query string for compact logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """httpx.AsyncClient with rate limiting, retry/backoff and a circuit breaker."""

    def __init__(
        self,
        name: str,
        timeout: float = 15.0,
        max_retries: int = 3,
        base_delay: float = 2.0,
        rate_limit_rpm: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.circuit = CircuitBreaker()
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._max_retries = max(0, max_retries)
        self._base_delay = base_delay
        self._rate_limit_rpm = rate_limit_rpm

    def _backoff(self, attempt: int, response: Optional[httpx.Response]) -> float:
        delay = _retry_after(response)
        if delay is None:
            delay = self._base_delay * (2 ** attempt)
        return min(delay, MAX_BACKOFF_SECONDS)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying 429/5xx and network errors.

        Once retries are exhausted the last retryable response is returned
        for the caller to inspect; if no response was ever read, the last
        network error is raised.
        """
        if not self.circuit.allow():
            raise CircuitOpenError(f"{self.name} circuit open")

        attempts = self._max_retries + 1
        response: Optional[httpx.Response] = None
        error: Optional[Exception] = None

        for attempt in range(attempts):
            await provider_rate_limiter.acquire(self.name, self._rate_limit_rpm)
            try:
                response = await self._client.request(method, url, **kwargs)
            except _NETWORK_ERRORS as exc:
                response, error = None, exc
                logger.warning(
                    "[%s] %s %s failed (attempt %d/%d): %s",
                    self.name, method, _safe_url(url), attempt + 1, attempts, exc,
                )
            else:
                if response.status_code not in RETRYABLE_STATUSES:
                    self.circuit.success()
                    return response
                logger.warning(
                    "[%s] %s %s returned %d (attempt %d/%d)",
                    self.name, method, _safe_url(url), response.status_code, attempt + 1, attempts,
                )

            if attempt + 1 < attempts:
                await asyncio.sleep(self._backoff(attempt, response))

        self.circuit.failure(self.name)
        if response is not None:
            logger.error("[%s] Giving up on %s after %d attempts (HTTP %d)",
                         self.name, _safe_url(url), attempts, response.status_code)
            return response
        logger.error("[%s] Giving up on %s after %d attempts: %s", self.name, _safe_url(url), attempts, error)
        raise error  # type: ignore[misc]

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
