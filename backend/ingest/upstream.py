"""
Schedule/game API connector.
Fetches the day index and game details and validates them into wire models.
"""
from __future__ import annotations

from datetime import date
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from shared.errors import ParseError
from shared.models.upstream import DetailedGameResponse, ScheduleResponse
from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

INDEX_ENDPOINT = "index"
DETAIL_ENDPOINT = "detail"


def index_path(tournament: str, day: date) -> tuple[str, dict[str, str]]:
    return "games", {"tournament": tournament, "date": day.isoformat()}


def game_path(season: int, game_id: int) -> str:
    return f"games/{season}/{game_id}"


def _validate(model: type[M], payload: Any, url: str) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.error(
            "upstream_unexpected_shape",
            model=model.__name__,
            url=url,
            errors=exc.error_count(),
            first_error=str(exc.errors()[0]["loc"]) if exc.errors() else None,
        )
        raise ParseError(f"Unexpected {model.__name__} payload: {exc.error_count()} errors", url) from exc


class ScheduleAPI:
    """Thin typed facade over the two upstream endpoints."""

    def __init__(self, http: UpstreamHTTPClient) -> None:
        self._http = http

    @property
    def http(self) -> UpstreamHTTPClient:
        return self._http

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def fetch_index(self, tournament: str, day: date) -> ScheduleResponse:
        path, params = index_path(tournament, day)
        payload = await self._http.get_json(path, params=params, endpoint=INDEX_ENDPOINT)
        if isinstance(payload, list):
            # Some deployments return a bare list of games
            payload = {"games": payload}
        response = _validate(ScheduleResponse, payload, f"{path}?tournament={tournament}&date={day}")
        logger.debug(
            "index_fetched",
            tournament=tournament,
            date=day.isoformat(),
            games=len(response.games),
            next_game_date=response.next_game_date,
        )
        return response

    async def fetch_detail(self, season: int, game_id: int) -> DetailedGameResponse:
        path = game_path(season, game_id)
        payload = await self._http.get_json(path, endpoint=DETAIL_ENDPOINT)
        response = _validate(DetailedGameResponse, payload, path)
        logger.debug(
            "detail_fetched",
            season=season,
            game_id=game_id,
            home_players=len(response.home_team_players),
            away_players=len(response.away_team_players),
        )
        return response
