"""
backend/tests/test_espn_provider.py

Purpose:
    ESPN scoreboard parsing and failure mapping, using an httpx
    MockTransport instead of the network.

Dependencies:
    - httpx
    - survivor.providers.espn
"""

from __future__ import annotations

import httpx
import pytest

from survivor.errors import ProviderUnavailableError
from survivor.models.survivor import GameStatus
from survivor.providers.espn import ESPNResultsProvider
from survivor.providers.http_client import ResilientClient


def _competitor(side, name, score, winner=None):
    row = {"homeAway": side, "team": {"displayName": name}, "score": str(score)}
    if winner is not None:
        row["winner"] = winner
    return row


def _event(event_id, home, away, state="post", completed=True, home_winner=None, away_winner=None):
    return {
        "id": event_id,
        "competitions": [{
            "status": {"type": {"state": state, "completed": completed}},
            "competitors": [
                _competitor("home", home[0], home[1], home_winner),
                _competitor("away", away[0], away[1], away_winner),
            ],
        }],
    }


SCOREBOARD = {
    "events": [
        _event("401", ("Philadelphia Eagles", 24), ("Dallas Cowboys", 20), home_winner=True, away_winner=False),
        _event("402", ("New York Giants", 17), ("Washington Commanders", 17)),
        _event("403", ("Detroit Lions", 14), ("Chicago Bears", 7), state="in", completed=False),
        _event("404", ("Miami Dolphins", 0), ("Buffalo Bills", 0), state="pre", completed=False),
        {"id": "405", "competitions": []},
    ]
}


def _provider(handler, max_retries=0):
    client = ResilientClient(
        "espn-test", max_retries=max_retries, base_delay=0.0,
        transport=httpx.MockTransport(handler),
    )
    return ESPNResultsProvider(season=2025, base_url="https://espn.test/sports", client=client)


@pytest.mark.asyncio
async def test_week_results_are_parsed():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=SCOREBOARD)

    provider = _provider(handler)
    games = await provider.get_week_results(1)

    assert seen["path"] == "/sports/football/nfl/scoreboard"
    assert seen["params"] == {"dates": "2025", "seasontype": "2", "week": "1"}
    assert len(games) == 4

    by_id = {g.game_id: g for g in games}
    assert by_id["401"].status == GameStatus.final
    assert by_id["401"].winner == "Philadelphia Eagles"
    assert by_id["402"].winner == "TIE"
    assert by_id["403"].status == GameStatus.in_progress
    assert by_id["403"].winner is None
    assert by_id["404"].status == GameStatus.scheduled
    assert all(g.week == 1 for g in games)
    await provider.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={}),
        httpx.Response(200, content=b"<html>oops</html>"),
        httpx.Response(200, json={"leagues": []}),
    ],
)
async def test_unusable_responses_raise_provider_unavailable(response):
    provider = _provider(lambda request: response)
    with pytest.raises(ProviderUnavailableError) as exc_info:
        await provider.get_week_results(2)
    assert exc_info.value.provider == "espn"


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_reported():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(503)

    provider = _provider(handler, max_retries=2)
    with pytest.raises(ProviderUnavailableError):
        await provider.get_week_results(3)
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_network_errors_and_open_circuit_raise_provider_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    provider = _provider(handler)
    for _ in range(3):
        with pytest.raises(ProviderUnavailableError):
            await provider.get_week_results(4)

    assert provider.circuit_open is True
    with pytest.raises(ProviderUnavailableError, match="circuit open"):
        await provider.get_week_results(4)
