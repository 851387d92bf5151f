"""Training load model: CTL, ATL and TSB stepped one week at a time.

CTL (chronic load, "fitness") uses a ~6-week smoothing constant and ATL
(acute load, "fatigue") a ~1.5-week constant, both applied to the average
daily TSS of the week. TSB is their difference and may go negative.

Reference: Banister impulse-response model, weekly simplification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

CTL_TIME_CONSTANT_WEEKS = 6.0
ATL_TIME_CONSTANT_WEEKS = 1.5
MAX_CTL_JUMP_PER_WEEK = 5.0
DURATION_TSS_FACTOR = 0.8


@dataclass(frozen=True)
class LoadState:
    """CTL/ATL/TSB after one simulated week."""
    ctl: float
    atl: float
    tsb: float


def step(
    prev_ctl: float,
    prev_atl: float,
    week_tss: float,
    ctl_ceiling: float = MAX_CTL_JUMP_PER_WEEK,
) -> LoadState:
    """Advance CTL/ATL by one week of training stress.

    The single-week CTL increase is capped at ``ctl_ceiling`` so one anomalous
    week cannot inflate fitness. Negative TSS is treated as a rest week.
    """
    daily_tss = max(0.0, float(week_tss)) / 7.0
    ctl = prev_ctl + (daily_tss - prev_ctl) / CTL_TIME_CONSTANT_WEEKS
    ctl = min(ctl, prev_ctl + ctl_ceiling)
    atl = prev_atl + (daily_tss - prev_atl) / ATL_TIME_CONSTANT_WEEKS
    return LoadState(ctl=ctl, atl=atl, tsb=ctl - atl)


class _HasLoad(Protocol):
    tss: float | None
    duration_min: int | None


def session_load(tss: float | None, duration_min: int | None) -> float:
    """Load of one session: recorded TSS, else duration-based estimate."""
    if tss:
        return float(tss)
    if duration_min:
        return float(round(duration_min * DURATION_TSS_FACTOR))
    return 0.0


def weekly_load(workouts: Iterable[_HasLoad]) -> float:
    """Sum session loads for a set of workouts."""
    return sum(session_load(w.tss, w.duration_min) for w in workouts)
