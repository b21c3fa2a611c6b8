"""Stable, hashable cache keys."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from shared.models.enums import CacheKind


@dataclass(frozen=True)
class CacheKey:
    """
    Composite key for one logical upstream resource.

    Two keys built from the same scope compare equal and hash equally, so
    repeated requests always land on the same entry (and the same in-flight
    fetch).
    """
    kind: CacheKind
    scope: str = ""
    season: Optional[int] = None
    resource_id: Optional[int] = None

    @classmethod
    def index(cls, tournament: str, day: Union[date, str]) -> "CacheKey":
        day_str = day.isoformat() if isinstance(day, date) else day
        return cls(CacheKind.INDEX, scope=f"{tournament}-{day_str}")

    @classmethod
    def game(cls, season: int, game_id: int) -> "CacheKey":
        return cls(CacheKind.GAME, season=season, resource_id=game_id)

    @classmethod
    def goal_events(cls, season: int, game_id: int) -> "CacheKey":
        return cls(CacheKind.GOAL_EVENTS, season=season, resource_id=game_id)

    @classmethod
    def players(cls, game_id: int) -> "CacheKey":
        return cls(CacheKind.PLAYERS, resource_id=game_id)

    def matches_date(self, day: Union[date, str]) -> bool:
        day_str = day.isoformat() if isinstance(day, date) else day
        return self.kind == CacheKind.INDEX and self.scope.endswith(f"-{day_str}")

    def __str__(self) -> str:
        if self.kind == CacheKind.INDEX:
            return f"index:{self.scope}"
        if self.season is not None:
            return f"{self.kind.value}:{self.season}/{self.resource_id}"
        return f"{self.kind.value}:{self.resource_id}"
