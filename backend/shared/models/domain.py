"""
Pydantic v2 domain models for the Live Sync engine.
These are the committed, presentation-facing values, NOT wire payloads.

Snapshots are frozen: a refresh builds new instances and swaps the whole
collection, readers never see a partially updated game.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import GOAL_TYPE_DISPLAY_ORDER, GameStatus, GoalType


class DomainModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class GoalEvent(DomainModel):
    scorer_player_id: int
    scorer_name: str
    minute: int
    home_team_score: int
    away_team_score: int
    goal_types: tuple[str, ...] = ()
    is_winning_goal: bool = False
    is_home_team: bool = True
    video_clip_url: Optional[str] = None

    @property
    def is_power_play(self) -> bool:
        return GoalType.POWER_PLAY.value in self.goal_types or GoalType.POWER_PLAY_5ON3.value in self.goal_types

    @property
    def is_shorthanded(self) -> bool:
        return GoalType.SHORTHANDED.value in self.goal_types

    @property
    def is_empty_net(self) -> bool:
        return GoalType.EMPTY_NET.value in self.goal_types

    @property
    def is_penalty_shot(self) -> bool:
        return GoalType.PENALTY_SHOT.value in self.goal_types

    @property
    def is_own_goal(self) -> bool:
        return GoalType.OWN_GOAL.value in self.goal_types

    @property
    def running_score(self) -> str:
        return f"{self.home_team_score}-{self.away_team_score}"

    def goal_type_display(self) -> str:
        """Space-separated indicators in fixed priority order; EV only when it is the sole type."""
        present = {t.strip() for t in self.goal_types if t.strip()}
        indicators = [t for t in GOAL_TYPE_DISPLAY_ORDER if t in present]
        if not indicators and present == {GoalType.EVEN_STRENGTH.value}:
            indicators.append(GoalType.EVEN_STRENGTH.value)
        return " ".join(indicators)


class GameSnapshot(DomainModel):
    game_id: int
    season: int
    serie: str = ""
    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None
    home_team: str
    away_team: str
    home_score: int = 0
    away_score: int = 0
    status: GameStatus = GameStatus.SCHEDULED
    is_overtime: bool = False
    is_shootout: bool = False
    played_time: int = Field(default=0, description="Elapsed game clock in seconds")
    start: str = ""
    goal_events: tuple[GoalEvent, ...] = ()
    # Served from last-known-good cache after an upstream failure
    stale: bool = False
    # Built from index fields only; enrichment failed with nothing cached
    degraded: bool = False

    @property
    def is_live(self) -> bool:
        return self.status.is_live

    @property
    def result(self) -> str:
        return f"{self.home_score}-{self.away_score}"

    @property
    def start_time(self) -> Optional[datetime]:
        if not self.start:
            return None
        try:
            return datetime.fromisoformat(self.start.replace("Z", "+00:00"))
        except ValueError:
            return None


class FetchScope(DomainModel):
    """
    What to fetch: a calendar date, or an explicit set of (season, game_id) resources.

    `explicit_date` records whether the caller asked for the date, as opposed
    to it being chosen from the clock.
    """
    day: Optional[date] = None
    games: tuple[tuple[int, int], ...] = ()
    explicit_date: bool = True

    @classmethod
    def for_date(cls, day: Union[date, str], explicit: bool = True) -> "FetchScope":
        if isinstance(day, str):
            day = date.fromisoformat(day)
        return cls(day=day, explicit_date=explicit)

    @classmethod
    def for_games(cls, games: list[tuple[int, int]] | tuple[tuple[int, int], ...]) -> "FetchScope":
        return cls(games=tuple((int(s), int(g)) for s, g in games), explicit_date=False)

    @property
    def is_date_scope(self) -> bool:
        return self.day is not None

    def describe(self) -> str:
        if self.day is not None:
            return f"date:{self.day.isoformat()}"
        return "games:" + ",".join(f"{s}/{g}" for s, g in self.games)


class FetchFailure(DomainModel):
    resource: str
    error_type: str
    message: str


class FetchOutcome(DomainModel):
    """Result of one orchestrated fetch."""
    scope: FetchScope
    snapshots: tuple[GameSnapshot, ...] = ()
    effective_date: Optional[date] = None
    failures: tuple[FetchFailure, ...] = ()
    upstream_calls: int = 0

    @property
    def stale_count(self) -> int:
        return sum(1 for s in self.snapshots if s.stale)

    @property
    def degraded_count(self) -> int:
        return sum(1 for s in self.snapshots if s.degraded)

    @property
    def has_live_games(self) -> bool:
        return any(s.is_live for s in self.snapshots)

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)
