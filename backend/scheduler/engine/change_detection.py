"""
Structural change detection over snapshot collections.

The fingerprint is a SHA-256 digest over every presentation field, in
collection order. It is a pure function of its input: the same snapshots
always hash the same, and any visible difference changes the digest.
"""
from __future__ import annotations

import hashlib
from typing import Optional, Sequence

from shared.models.domain import GameSnapshot, GoalEvent
from shared.utils.logging import get_logger

logger = get_logger(__name__)

_FIELD_SEP = b"\x1f"
_RECORD_SEP = b"\x1e"


def _goal_fields(goal: GoalEvent) -> list[str]:
    return [
        str(goal.scorer_player_id),
        goal.scorer_name,
        str(goal.minute),
        str(goal.home_team_score),
        str(goal.away_team_score),
        ",".join(goal.goal_types),
        str(goal.is_winning_goal),
        str(goal.is_home_team),
        goal.video_clip_url or "",
    ]


def _game_fields(snapshot: GameSnapshot) -> list[str]:
    return [
        str(snapshot.game_id),
        str(snapshot.season),
        snapshot.serie,
        snapshot.home_team,
        snapshot.away_team,
        str(snapshot.home_score),
        str(snapshot.away_score),
        snapshot.status.value,
        str(snapshot.is_overtime),
        str(snapshot.is_shootout),
        str(snapshot.played_time),
        snapshot.start,
        str(snapshot.stale),
        str(snapshot.degraded),
        str(len(snapshot.goal_events)),
    ]


def fingerprint(snapshots: Sequence[GameSnapshot]) -> str:
    digest = hashlib.sha256()
    digest.update(str(len(snapshots)).encode())
    for snapshot in snapshots:
        digest.update(_RECORD_SEP)
        digest.update(_FIELD_SEP.join(f.encode() for f in _game_fields(snapshot)))
        for goal in snapshot.goal_events:
            digest.update(_RECORD_SEP)
            digest.update(_FIELD_SEP.join(f.encode() for f in _goal_fields(goal)))
    return digest.hexdigest()


class ChangeDetector:
    """Remembers the last committed fingerprint."""

    def __init__(self) -> None:
        self._committed: Optional[str] = None

    @property
    def committed(self) -> Optional[str]:
        return self._committed

    def has_changed(self, candidate: Sequence[GameSnapshot]) -> bool:
        return fingerprint(candidate) != self._committed

    def commit(self, candidate: Sequence[GameSnapshot]) -> str:
        self._committed = fingerprint(candidate)
        return self._committed

    def reset(self) -> None:
        self._committed = None


def describe_changes(old: Sequence[GameSnapshot], new: Sequence[GameSnapshot]) -> list[str]:
    """Log and return human-readable score/clock changes for ongoing games."""
    previous = {s.game_id: s for s in old}
    changes: list[str] = []
    for snapshot in new:
        before = previous.get(snapshot.game_id)
        if before is None:
            continue
        if snapshot.status != before.status:
            changes.append(
                f"{snapshot.home_team}-{snapshot.away_team}: {before.status.value} -> {snapshot.status.value}"
            )
        if not snapshot.is_live:
            continue
        if snapshot.result != before.result:
            changes.append(f"{snapshot.home_team}-{snapshot.away_team}: score {before.result} -> {snapshot.result}")
            logger.info(
                "score_changed",
                game_id=snapshot.game_id,
                before=before.result,
                after=snapshot.result,
            )
        if snapshot.played_time != before.played_time:
            changes.append(
                f"{snapshot.home_team}-{snapshot.away_team}: clock {before.played_time}s -> {snapshot.played_time}s"
            )
            logger.debug(
                "clock_advanced",
                game_id=snapshot.game_id,
                before=before.played_time,
                after=snapshot.played_time,
            )
    return changes
