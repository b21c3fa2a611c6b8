"""
Shared fixtures and payload builders for the test suite.

Upstream traffic is served by httpx.MockTransport; time is injected through
FakeClock and a recording sleep, so nothing here waits on the wall clock.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

import httpx
import pytest

from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.retry import RetryPolicy

from ingest.upstream import ScheduleAPI

BASE_URL = "https://api.test/v2"


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Drop-in for asyncio.sleep that returns at once and remembers each delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


def build_api(
    handler: Callable[[httpx.Request], Any],
    sleep: Optional[RecordingSleep] = None,
    retry: Optional[RetryPolicy] = None,
) -> ScheduleAPI:
    http = UpstreamHTTPClient(
        BASE_URL,
        retry_policy=retry or RetryPolicy(),
        transport=httpx.MockTransport(handler),
        sleep=sleep or RecordingSleep(),
    )
    return ScheduleAPI(http)


# ── Payload builders (upstream wire shape) ──────────────────────────────

def goal(
    scorer_id: int,
    game_time: int,
    home_score: int,
    away_score: int,
    goal_types: Sequence[str] = ("EV",),
    winning: bool = False,
    scorer: Optional[tuple[str, str]] = None,
    event_id: int = 0,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "scorerPlayerId": scorer_id,
        "logTime": "2025-10-18T15:00:00Z",
        "gameTime": game_time,
        "period": min(game_time // 1200 + 1, 4),
        "eventId": event_id,
        "homeTeamScore": home_score,
        "awayTeamScore": away_score,
        "winningGoal": winning,
        "goalTypes": list(goal_types),
        "assistantPlayerIds": [],
        "videoClipUrl": None,
    }
    if scorer is not None:
        payload["scorerPlayer"] = {"playerId": scorer_id, "firstName": scorer[0], "lastName": scorer[1]}
    return payload


def team(
    team_id: str,
    name: str,
    goals: int = 0,
    events: Sequence[dict[str, Any]] = (),
) -> dict[str, Any]:
    return {
        "teamId": team_id,
        "teamPlaceholder": None,
        "teamName": name,
        "goals": goals,
        "goalEvents": list(events),
    }


def game(
    game_id: int,
    season: int = 2025,
    start: str = "2025-10-18T15:30:00Z",
    started: bool = False,
    ended: bool = False,
    game_time: int = 0,
    home: Optional[dict[str, Any]] = None,
    away: Optional[dict[str, Any]] = None,
    finished_type: Optional[str] = None,
    serie: str = "RUNKOSARJA",
) -> dict[str, Any]:
    return {
        "id": game_id,
        "season": season,
        "start": start,
        "end": None,
        "homeTeam": home or team("TPS", "TPS"),
        "awayTeam": away or team("HIFK", "HIFK"),
        "finishedType": finished_type,
        "started": started,
        "ended": ended,
        "gameTime": game_time,
        "serie": serie,
    }


def schedule(games: Sequence[dict[str, Any]], next_game_date: Optional[str] = None) -> dict[str, Any]:
    return {"games": list(games), "previousGameDate": None, "nextGameDate": next_game_date}


def player(player_id: int, first: str, last: str, **extra: Any) -> dict[str, Any]:
    return {"id": player_id, "firstName": first, "lastName": last, **extra}


def detail(
    game_payload: dict[str, Any],
    home_players: Sequence[dict[str, Any]] = (),
    away_players: Sequence[dict[str, Any]] = (),
) -> dict[str, Any]:
    g = dict(game_payload)
    for side in ("homeTeam", "awayTeam"):
        g[side] = {**g[side], "penaltyEvents": []}
    g["periods"] = []
    return {
        "game": g,
        "awards": [],
        "homeTeamPlayers": list(home_players),
        "awayTeamPlayers": list(away_players),
    }


def live_game_with_goals(game_id: int = 7, season: int = 2025) -> dict[str, Any]:
    """An ongoing game, 1-1 after two goals."""
    return game(
        game_id,
        season=season,
        started=True,
        game_time=1500,
        home=team("TPS", "TPS", 1, [goal(101, 300, 1, 0, ("YV",))]),
        away=team("HIFK", "HIFK", 1, [goal(202, 1400, 1, 1)]),
    )
