"""
Date and season helpers: which tournaments run in a month, which date to show
by default, and whether a date is in the past.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from shared.models.enums import Tournament

PRESEASON_MONTHS = range(5, 10)   # May - September
PLAYOFF_MONTHS = range(3, 7)      # March - June
DAILY_CUTOFF = time(12, 0)

# A scheduled game is "starting" from 5 minutes before to 10 minutes after its start time
START_WINDOW_BEFORE = timedelta(minutes=5)
START_WINDOW_AFTER = timedelta(minutes=10)


def active_tournaments(day: date) -> list[str]:
    """Tournament identifiers to query for `day`, in display order."""
    tournaments: list[str] = []
    if day.month in PRESEASON_MONTHS:
        tournaments.append(Tournament.PRESEASON.value)
    tournaments.append(Tournament.REGULAR_SEASON.value)
    if day.month in PLAYOFF_MONTHS:
        tournaments.extend(
            [Tournament.PLAYOFFS.value, Tournament.PLAYOUT.value, Tournament.QUALIFICATIONS.value]
        )
    return tournaments


def default_fetch_date(now_local: datetime) -> tuple[date, bool]:
    """
    Today's date from noon onwards, yesterday's before noon.

    Returns (date, chosen_because_of_cutoff).
    """
    if now_local.time() >= DAILY_CUTOFF:
        return now_local.date(), False
    return now_local.date() - timedelta(days=1), True


def is_historical(day: date, today: date) -> bool:
    """Strictly before today."""
    return day < today


def parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_near_start(start: str, now: datetime) -> bool:
    """True when `now` falls in the start window around the scheduled `start`."""
    start_at = parse_timestamp(start)
    if start_at is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    delta = now - start_at
    return -START_WINDOW_BEFORE <= delta <= START_WINDOW_AFTER


def seconds_until_start_window(start: str, now: datetime) -> Optional[float]:
    """Seconds until the start window for `start` opens; None once it has opened or when unparseable."""
    start_at = parse_timestamp(start)
    if start_at is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    remaining = (start_at - START_WINDOW_BEFORE - now).total_seconds()
    return remaining if remaining > 0 else None


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
