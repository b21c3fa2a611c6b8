"""
Pydantic v2 models for the upstream payloads this engine consumes.

Two response shapes carry team and goal data: the day index
(`games?tournament=..&date=..`) and the game detail (`games/{season}/{id}`).
Both implement the HasTeams / HasGoalEvents capabilities so the normalizer
never needs to know which one it was handed.
"""
from __future__ import annotations

import abc
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.enums import NON_GOAL_TYPES


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Capabilities ────────────────────────────────────────────────────────
class HasGoalEvents(abc.ABC):
    """A team side that knows its name, score and scoring plays."""

    @abc.abstractmethod
    def side_id(self) -> Optional[str]:
        ...

    @abc.abstractmethod
    def side_name(self) -> str:
        ...

    @abc.abstractmethod
    def side_score(self) -> int:
        ...

    @abc.abstractmethod
    def scoring_events(self) -> Sequence["UpstreamGoalEvent"]:
        """Goal events excluding unsuccessful shootout attempts."""
        ...


class HasTeams(abc.ABC):
    """A game record exposing its home and away sides."""

    @abc.abstractmethod
    def home_side(self) -> HasGoalEvents:
        ...

    @abc.abstractmethod
    def away_side(self) -> HasGoalEvents:
        ...

    def has_recorded_goals(self) -> bool:
        home, away = self.home_side(), self.away_side()
        return (
            home.side_score() > 0
            or away.side_score() > 0
            or bool(home.scoring_events())
            or bool(away.scoring_events())
        )


# ── Goal events ─────────────────────────────────────────────────────────
class EmbeddedPlayer(WireModel):
    player_id: int = Field(alias="playerId")
    last_name: str = Field(default="", alias="lastName")
    first_name: str = Field(default="", alias="firstName")


class UpstreamGoalEvent(WireModel):
    scorer_player_id: int = Field(alias="scorerPlayerId")
    log_time: str = Field(default="", alias="logTime")
    game_time: int = Field(default=0, alias="gameTime")
    period: int = 0
    event_id: int = Field(default=0, alias="eventId")
    home_team_score: int = Field(alias="homeTeamScore")
    away_team_score: int = Field(alias="awayTeamScore")
    winning_goal: bool = Field(default=False, alias="winningGoal")
    goal_types: list[str] = Field(default_factory=list, alias="goalTypes")
    assistant_player_ids: list[int] = Field(default_factory=list, alias="assistantPlayerIds")
    video_clip_url: Optional[str] = Field(default=None, alias="videoClipUrl")
    scorer_player: Optional[EmbeddedPlayer] = Field(default=None, alias="scorerPlayer")

    @property
    def is_counted(self) -> bool:
        return not any(t in NON_GOAL_TYPES for t in self.goal_types)


def _counted(events: Sequence[UpstreamGoalEvent]) -> list[UpstreamGoalEvent]:
    return [g for g in events if g.is_counted]


# ── Index (schedule) response ───────────────────────────────────────────
class ScheduleTeam(WireModel, HasGoalEvents):
    team_id: Optional[str] = Field(default=None, alias="teamId")
    team_placeholder: Optional[str] = Field(default=None, alias="teamPlaceholder")
    team_name: Optional[str] = Field(default=None, alias="teamName")
    goals: int = 0
    goal_events: list[UpstreamGoalEvent] = Field(default_factory=list, alias="goalEvents")

    def side_id(self) -> Optional[str]:
        return self.team_id

    def side_name(self) -> str:
        return self.team_name or self.team_placeholder or "Unknown"

    def side_score(self) -> int:
        return self.goals

    def scoring_events(self) -> Sequence[UpstreamGoalEvent]:
        return _counted(self.goal_events)


class GameFields(WireModel):
    """Fields shared by the index and detail game records."""
    id: int
    season: int
    start: str
    end: Optional[str] = None
    finished_type: Optional[str] = Field(default=None, alias="finishedType")
    started: bool = False
    ended: bool = False
    game_time: int = Field(default=0, alias="gameTime")
    serie: str = ""

    @field_validator("serie", mode="before")
    @classmethod
    def coerce_serie(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("game_time", mode="before")
    @classmethod
    def coerce_game_time(cls, value: Any) -> int:
        return 0 if value is None else value

    @property
    def is_live(self) -> bool:
        return self.started and not self.ended


class ScheduleGame(GameFields, HasTeams):
    home_team: ScheduleTeam = Field(alias="homeTeam")
    away_team: ScheduleTeam = Field(alias="awayTeam")

    def home_side(self) -> HasGoalEvents:
        return self.home_team

    def away_side(self) -> HasGoalEvents:
        return self.away_team


class ScheduleResponse(WireModel):
    games: list[ScheduleGame] = Field(default_factory=list)
    previous_game_date: Optional[str] = Field(default=None, alias="previousGameDate")
    next_game_date: Optional[str] = Field(default=None, alias="nextGameDate")


# ── Detail response ─────────────────────────────────────────────────────
class Period(WireModel):
    index: int
    home_team_goals: int = Field(default=0, alias="homeTeamGoals")
    away_team_goals: int = Field(default=0, alias="awayTeamGoals")
    category: str = ""
    start_time: int = Field(default=0, alias="startTime")
    end_time: int = Field(default=0, alias="endTime")


class PenaltyEvent(WireModel):
    player_id: int = Field(alias="playerId")
    game_time: int = Field(default=0, alias="gameTime")
    period: int = 0
    penalty_fault_name: str = Field(default="", alias="penaltyFaultName")
    penalty_minutes: int = Field(default=0, alias="penaltyMinutes")


class DetailedTeam(WireModel, HasGoalEvents):
    team_id: str = Field(alias="teamId")
    team_name: str = Field(alias="teamName")
    goals: int = 0
    goal_events: list[UpstreamGoalEvent] = Field(default_factory=list, alias="goalEvents")
    penalty_events: list[PenaltyEvent] = Field(default_factory=list, alias="penaltyEvents")

    def side_id(self) -> Optional[str]:
        return self.team_id

    def side_name(self) -> str:
        return self.team_name or "Unknown"

    def side_score(self) -> int:
        return self.goals

    def scoring_events(self) -> Sequence[UpstreamGoalEvent]:
        return _counted(self.goal_events)


class DetailedGame(GameFields, HasTeams):
    home_team: DetailedTeam = Field(alias="homeTeam")
    away_team: DetailedTeam = Field(alias="awayTeam")
    periods: list[Period] = Field(default_factory=list)

    def home_side(self) -> HasGoalEvents:
        return self.home_team

    def away_side(self) -> HasGoalEvents:
        return self.away_team


class Player(WireModel):
    id: int
    last_name: str = Field(default="", alias="lastName")
    first_name: str = Field(default="", alias="firstName")
    removed: bool = False
    dressed: Optional[bool] = None

    @property
    def is_active(self) -> bool:
        return not self.removed and self.dressed is not False


class DetailedGameResponse(WireModel):
    game: DetailedGame
    awards: list[Any] = Field(default_factory=list)
    home_team_players: list[Player] = Field(default_factory=list, alias="homeTeamPlayers")
    away_team_players: list[Player] = Field(default_factory=list, alias="awayTeamPlayers")
