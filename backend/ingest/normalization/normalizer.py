"""
Normalization layer for the ingest path.
Turns upstream index/detail payloads into committed GameSnapshot values.

Both payload shapes are read through the HasTeams / HasGoalEvents
capabilities; nothing here branches on which response it was given.
"""
from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

from shared.models.domain import GameSnapshot, GoalEvent
from shared.models.enums import FinishedType, GameStatus
from shared.models.upstream import (
    DetailedGameResponse,
    GameFields,
    HasGoalEvents,
    HasTeams,
    Player,
    ScheduleGame,
    UpstreamGoalEvent,
)
from shared.utils.logging import get_logger

logger = get_logger(__name__)

FALLBACK_NAME_TEMPLATE = "Pelaaja {player_id}"


# ── Names ───────────────────────────────────────────────────────────────

def format_for_display(full_name: str) -> str:
    """Last word of the name, first letter upper-cased, rest lower-cased."""
    parts = full_name.split()
    if not parts:
        return ""
    last = parts[-1]
    return last[:1].upper() + last[1:].lower()


def fallback_name(player_id: int) -> str:
    return FALLBACK_NAME_TEMPLATE.format(player_id=player_id)


class ScorerNameResolver(Protocol):
    """Produces the scorer display name that goes into a GoalEvent."""

    def build_roster(self, players: Sequence[Player]) -> dict[int, str]:
        ...

    def resolve(
        self,
        player_id: int,
        roster: Mapping[int, str],
        event: Optional[UpstreamGoalEvent] = None,
    ) -> str:
        ...


class RosterNameResolver:
    """
    Last-name resolver backed by the game roster.

    Lookup order: roster entry, then the player embedded in the goal event,
    then "Pelaaja {id}".
    """

    def build_roster(self, players: Sequence[Player]) -> dict[int, str]:
        roster: dict[int, str] = {}
        for player in players:
            name = format_for_display(f"{player.first_name} {player.last_name}")
            if not name:
                continue
            # A removed/undressed duplicate never overrides an active entry
            if player.id in roster and not player.is_active:
                continue
            roster[player.id] = name
        return roster

    def resolve(
        self,
        player_id: int,
        roster: Mapping[int, str],
        event: Optional[UpstreamGoalEvent] = None,
    ) -> str:
        name = roster.get(player_id)
        if name:
            return name
        if event is not None and event.scorer_player is not None:
            embedded = format_for_display(
                f"{event.scorer_player.first_name} {event.scorer_player.last_name}"
            )
            if embedded:
                return embedded
        return fallback_name(player_id)


# ── Status ──────────────────────────────────────────────────────────────

def determine_game_status(game: GameFields) -> tuple[GameStatus, bool, bool]:
    """Returns (status, is_overtime, is_shootout)."""
    is_overtime = game.finished_type == FinishedType.EXTENDED_TIME.value
    is_shootout = game.finished_type == FinishedType.WINNING_SHOT.value
    started = game.started or game.game_time > 0
    if not started:
        status = GameStatus.SCHEDULED
    elif not game.ended:
        status = GameStatus.ONGOING
    else:
        status = GameStatus.FINAL
    return status, is_overtime, is_shootout


# ── Goal events ─────────────────────────────────────────────────────────

def _side_events(
    side: HasGoalEvents,
    is_home_team: bool,
    roster: Mapping[int, str],
    resolver: ScorerNameResolver,
) -> list[tuple[int, GoalEvent]]:
    events = []
    for goal in side.scoring_events():
        events.append(
            (
                goal.game_time,
                GoalEvent(
                    scorer_player_id=goal.scorer_player_id,
                    scorer_name=resolver.resolve(goal.scorer_player_id, roster, goal),
                    minute=goal.game_time // 60,
                    home_team_score=goal.home_team_score,
                    away_team_score=goal.away_team_score,
                    goal_types=tuple(goal.goal_types),
                    is_winning_goal=goal.winning_goal,
                    is_home_team=is_home_team,
                    video_clip_url=goal.video_clip_url,
                ),
            )
        )
    return events


def build_goal_events(
    game: HasTeams,
    roster: Mapping[int, str],
    resolver: ScorerNameResolver,
) -> tuple[GoalEvent, ...]:
    """Goals of both sides in game-clock order (home first on ties)."""
    events = _side_events(game.home_side(), True, roster, resolver)
    events += _side_events(game.away_side(), False, roster, resolver)
    events.sort(key=lambda pair: pair[0])
    return tuple(event for _, event in events)


# ── Snapshots ───────────────────────────────────────────────────────────

def _snapshot(
    game: GameFields,
    teams: HasTeams,
    goal_events: tuple[GoalEvent, ...],
    serie: str = "",
    stale: bool = False,
    degraded: bool = False,
) -> GameSnapshot:
    status, is_overtime, is_shootout = determine_game_status(game)
    home, away = teams.home_side(), teams.away_side()
    return GameSnapshot(
        game_id=game.id,
        season=game.season,
        serie=serie or game.serie,
        home_team_id=home.side_id(),
        away_team_id=away.side_id(),
        home_team=home.side_name(),
        away_team=away.side_name(),
        home_score=home.side_score(),
        away_score=away.side_score(),
        status=status,
        is_overtime=is_overtime,
        is_shootout=is_shootout,
        played_time=game.game_time,
        start=game.start,
        goal_events=goal_events,
        stale=stale,
        degraded=degraded,
    )


def snapshot_from_index(
    game: ScheduleGame,
    resolver: ScorerNameResolver,
    degraded: bool = False,
    stale: bool = False,
) -> GameSnapshot:
    """Snapshot built from index fields only; scorer names come from embedded data or the fallback."""
    events = build_goal_events(game, {}, resolver)
    return _snapshot(game, game, events, stale=stale, degraded=degraded)


def snapshot_from_detail(
    detail: DetailedGameResponse,
    goal_events: tuple[GoalEvent, ...],
    serie: str = "",
    stale: bool = False,
) -> GameSnapshot:
    return _snapshot(detail.game, detail.game, goal_events, serie=serie, stale=stale)


def merge_snapshot(
    index_game: ScheduleGame,
    detail: Optional[DetailedGameResponse],
    goal_events: Optional[tuple[GoalEvent, ...]],
    resolver: ScorerNameResolver,
    stale: bool = False,
) -> GameSnapshot:
    """
    Merge an index record with its enrichment result.

    Without enrichment the index record stands alone. With it, the detail
    game supplies state and the index keeps its tournament label.
    """
    if detail is None or goal_events is None:
        return snapshot_from_index(index_game, resolver, stale=stale)
    if detail.game.id != index_game.id:
        logger.warning(
            "merge_id_mismatch",
            index_game_id=index_game.id,
            detail_game_id=detail.game.id,
        )
        return snapshot_from_index(index_game, resolver, degraded=True)
    return snapshot_from_detail(detail, goal_events, serie=index_game.serie, stale=stale)


def needs_enrichment(game: ScheduleGame) -> bool:
    """Games with recorded goals or in progress get a detail fetch; untouched scheduled games do not."""
    status, _, _ = determine_game_status(game)
    return status.is_live or game.has_recorded_goals()
