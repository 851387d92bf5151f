"""Plan lock windows and calendar-day date handling.

An athlete's plan rigidity decides how many days ahead of today are frozen.
Changes that land inside the window go through a proposal instead of being
applied directly. Dates are compared as local calendar days, and stored
workout dates are pinned to local noon.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Literal, Union

from core.errors import InvalidPayload

PlanRigiditySetting = Literal["LOCKED_TODAY", "LOCKED_1_DAY", "LOCKED_2_DAYS", "LOCKED_3_DAYS", "FLEXIBLE_WEEK"]

LOCK_DAYS: dict[str, int] = {
    "LOCKED_TODAY": 0,
    "LOCKED_1_DAY": 1,
    "LOCKED_2_DAYS": 2,
    "LOCKED_3_DAYS": 3,
    "FLEXIBLE_WEEK": 7,
}
PLAN_RIGIDITY_SETTINGS: tuple[str, ...] = tuple(LOCK_DAYS)
DEFAULT_PLAN_RIGIDITY: PlanRigiditySetting = "LOCKED_1_DAY"

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
LOCAL_NOON = dt.time(12, 0)

DateLike = Union[str, dt.date, dt.datetime]


def normalize_rigidity(value: object, default: str = DEFAULT_PLAN_RIGIDITY) -> PlanRigiditySetting:
    """Map a stored profile value onto a known setting, falling back to the default."""
    v = str(value or default)
    return v if v in LOCK_DAYS else default  # type: ignore[return-value]


def lock_days(rigidity: str) -> int:
    return LOCK_DAYS[normalize_rigidity(rigidity)]


def to_local_noon(value: DateLike) -> dt.datetime:
    """Resolve a date-like input to a naive local datetime at 12:00.

    Date-only strings are read as local calendar days so that a midnight
    timestamp can never shift to the neighbouring day. Aware datetimes are
    converted to local time before the day is taken.
    """
    if isinstance(value, dt.datetime):
        local = value.astimezone().replace(tzinfo=None) if value.tzinfo else value
        return dt.datetime.combine(local.date(), LOCAL_NOON)
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, LOCAL_NOON)

    raw = str(value or "").strip()
    if _DATE_ONLY.match(raw):
        try:
            return dt.datetime.combine(dt.date.fromisoformat(raw), LOCAL_NOON)
        except ValueError as exc:
            raise InvalidPayload(f"Invalid date: {raw}") from exc
    try:
        parsed = dt.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidPayload(f"Invalid date: {raw!r}") from exc
    return to_local_noon(parsed)


def _calendar_day(value: DateLike) -> dt.date:
    if isinstance(value, dt.datetime):
        return (value.astimezone().replace(tzinfo=None) if value.tzinfo else value).date()
    if isinstance(value, dt.date):
        return value
    return to_local_noon(value).date()


def is_locked(workout_date: DateLike, now: DateLike, rigidity: str) -> bool:
    """True when the workout's day falls inside the athlete's lock window.

    The window covers today plus ``lock_days`` further local calendar days;
    time of day is ignored. FLEXIBLE_WEEK never locks anything.
    """
    setting = normalize_rigidity(rigidity)
    if setting == "FLEXIBLE_WEEK":
        return False
    today = _calendar_day(now)
    day = _calendar_day(workout_date)
    lock_end_exclusive = today + dt.timedelta(days=LOCK_DAYS[setting] + 1)
    return today <= day < lock_end_exclusive
