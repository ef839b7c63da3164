import logging
from typing import Any, Optional

import httpx

from survivor.config import settings
from survivor.errors import ProviderUnavailableError
from survivor.models.survivor import GameResult, GameStatus
from survivor.providers.base import ResultsProvider
from survivor.providers.http_client import CircuitOpenError, ResilientClient
from survivor.services.team_name_normalizer import TIE

logger = logging.getLogger("survivor.espn")

# ESPN public API, no auth needed
NFL_PATH = "football/nfl"
REGULAR_SEASON = 2


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ESPNResultsProvider(ResultsProvider):
    """Weekly NFL results from the free ESPN scoreboard API."""

    name = "espn"

    def __init__(
        self,
        season: Optional[int] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[ResilientClient] = None,
    ):
        self._season = season or settings.SEASON_YEAR
        self._base_url = (base_url or settings.ESPN_BASE_URL).rstrip("/")
        self._client = client or ResilientClient(
            "espn",
            timeout=settings.ESPN_TIMEOUT_SECONDS,
            max_retries=settings.ESPN_MAX_RETRIES,
            base_delay=settings.ESPN_RETRY_BASE_DELAY,
            rate_limit_rpm=settings.ESPN_RATE_LIMIT_RPM,
            transport=transport,
        )

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    async def _fetch_scoreboard(self, week: int) -> list[dict]:
        """Fetch the ESPN scoreboard events for one regular-season week."""
        try:
            resp = await self._client.get(
                f"{self._base_url}/{NFL_PATH}/scoreboard",
                params={
                    "dates": str(self._season),
                    "seasontype": str(REGULAR_SEASON),
                    "week": str(week),
                },
            )
        except CircuitOpenError as exc:
            raise ProviderUnavailableError(self.name, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(self.name, f"week {week}: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderUnavailableError(self.name, f"week {week}: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderUnavailableError(self.name, f"week {week}: invalid JSON") from exc

        events = data.get("events") if isinstance(data, dict) else None
        if not isinstance(events, list):
            raise ProviderUnavailableError(self.name, f"week {week}: payload has no events list")
        return events

    async def get_week_results(self, week: int) -> list[GameResult]:
        events = await self._fetch_scoreboard(week)

        results = []
        for event in events:
            game = self._parse_event(event, week)
            if game is not None:
                results.append(game)

        final = sum(1 for g in results if g.status == GameStatus.final)
        logger.info("ESPN: week %d -> %d games (%d final)", week, len(results), final)
        return results

    @staticmethod
    def _parse_event(event: dict, week: int) -> Optional[GameResult]:
        competitions = event.get("competitions") or []
        if not competitions:
            return None
        comp = competitions[0]

        competitors = comp.get("competitors") or []
        if len(competitors) < 2:
            return None

        home = None
        away = None
        for c in competitors:
            if c.get("homeAway") == "home":
                home = c
            elif c.get("homeAway") == "away":
                away = c
        if not home or not away:
            home, away = competitors[0], competitors[1]

        home_name = (home.get("team") or {}).get("displayName", "")
        away_name = (away.get("team") or {}).get("displayName", "")
        home_score = _to_int(home.get("score"))
        away_score = _to_int(away.get("score"))

        status_type = (comp.get("status") or event.get("status") or {}).get("type", {})
        if status_type.get("completed"):
            status = GameStatus.final
        elif status_type.get("state") == "in":
            status = GameStatus.in_progress
        else:
            # "pre", and postponed/canceled games that never completed
            status = GameStatus.scheduled

        winner = None
        if status == GameStatus.final:
            if home.get("winner") is True:
                winner = home_name
            elif away.get("winner") is True:
                winner = away_name
            elif home_score is not None and away_score is not None:
                if home_score > away_score:
                    winner = home_name
                elif away_score > home_score:
                    winner = away_name
                else:
                    winner = TIE

        return GameResult(
            week=week,
            home_team=home_name,
            away_team=away_name,
            home_score=home_score,
            away_score=away_score,
            status=status,
            winner=winner,
            game_id=str(event.get("id")) if event.get("id") is not None else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


# Singleton
espn_provider = ESPNResultsProvider()
