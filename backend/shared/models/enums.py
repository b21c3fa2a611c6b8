"""Domain enumerations for the Live Sync engine."""
from __future__ import annotations

from enum import Enum


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    FINAL = "final"

    @property
    def is_live(self) -> bool:
        return self == GameStatus.ONGOING


class FinishedType(str, Enum):
    """Upstream `finishedType` values that affect presentation."""
    REGULAR_TIME = "ENDED_DURING_REGULAR_TIME"
    EXTENDED_TIME = "ENDED_DURING_EXTENDED_GAME_TIME"
    WINNING_SHOT = "ENDED_DURING_WINNING_SHOT_COMPETITION"


class Tournament(str, Enum):
    PRESEASON = "valmistavat_ottelut"
    REGULAR_SEASON = "runkosarja"
    PLAYOFFS = "playoffs"
    PLAYOUT = "playout"
    QUALIFICATIONS = "qualifications"


class CacheKind(str, Enum):
    INDEX = "index"
    GAME = "game"
    GOAL_EVENTS = "goal_events"
    PLAYERS = "players"


class SchedulerPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISABLED = "disabled"
    STOPPED = "stopped"


class GoalType(str, Enum):
    """Upstream goal type codes."""
    EVEN_STRENGTH = "EV"
    POWER_PLAY = "YV"
    POWER_PLAY_5ON3 = "YV2"
    SHORTHANDED = "AV"
    EMPTY_NET = "TM"
    PENALTY_SHOT = "RV"
    OWN_GOAL = "OM"
    GOALIE_PULLED = "IM"
    WINNING_SHOT = "VT"
    PENALTY_GOAL = "VL"
    EXTRA_ATTACKER = "MV"
    # Shootout attempts that did not score
    SHOOTOUT_MISS = "RL0"
    WINNING_SHOT_MISS = "VT0"


# Display order for goal type indicators; EV is shown only when alone.
GOAL_TYPE_DISPLAY_ORDER: tuple[str, ...] = ("YV", "YV2", "IM", "VT", "AV", "TM", "VL", "MV", "RV")

NON_GOAL_TYPES: frozenset[str] = frozenset({GoalType.SHOOTOUT_MISS.value, GoalType.WINNING_SHOT_MISS.value})
