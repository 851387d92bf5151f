"""Apply a coach suggestion payload to an athlete's calendar.

Each payload kind has one handler. Handlers look up and validate everything
they need before the first write, and all writes of one payload happen inside
a single ``atomic`` block.
"""

from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass
from typing import Any, Optional, assert_never

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.db import atomic
from core.errors import InvalidPayload
from core.logging_config import get_logger, log_event
from core.models import Workout
from core.services.plan_rigidity import to_local_noon
from core.validators import (
    AddRecoveryDayPayload,
    AdjustWorkoutPayload,
    MoveWorkoutPayload,
    RebalanceWeekPayload,
    SuggestionPayload,
    SwapWorkoutsPayload,
    parse_suggestion_payload,
)

logger = get_logger(__name__)

RECOVERY_REASON = "Recovery day suggested by coach"
RECOVERY_REPLACEMENTS: dict[str, tuple[str, str, int]] = {
    # replacement -> (type, title, default duration)
    "rest": ("rest", "Rest day", 0),
    "walk": ("other", "Easy walk", 30),
    "easy_spin": ("bike", "Easy spin", 30),
}
REBALANCE_FIELDS: dict[str, tuple[str, type | tuple[type, ...]]] = {
    "title": ("title", str),
    "type": ("type", str),
    "durationMin": ("duration_min", (int, float)),
    "tss": ("tss", (int, float)),
}


@dataclass(frozen=True)
class ApplyResult:
    ok: bool
    error: Optional[str] = None
    proposal_created: bool = False
    proposal_id: Optional[int] = None


_NOT_FOUND = ApplyResult(ok=False, error="Workout not found")


def apply_suggestion_payload(s: Session, athlete_id: int, payload: Any) -> ApplyResult:
    """Validate ``payload`` and apply it for ``athlete_id``.

    Validation problems and missing workouts come back as ``ok=False`` with a
    reason; nothing is written in that case.
    """
    try:
        parsed = payload if _is_variant(payload) else parse_suggestion_payload(payload)
    except InvalidPayload as exc:
        log_event(logger, "suggestion.apply.rejected", athlete_id=athlete_id, reason=exc.message)
        return ApplyResult(ok=False, error=exc.message)

    try:
        with atomic(s):
            result = dispatch_payload(s, athlete_id, parsed)
    except InvalidPayload as exc:
        log_event(logger, "suggestion.apply.rejected", athlete_id=athlete_id, kind=parsed.kind, reason=exc.message)
        return ApplyResult(ok=False, error=exc.message)

    log_event(logger, "suggestion.apply.finished", athlete_id=athlete_id, kind=parsed.kind, ok=result.ok, error=result.error)
    return result


def _is_variant(payload: Any) -> bool:
    return isinstance(
        payload,
        (AdjustWorkoutPayload, SwapWorkoutsPayload, MoveWorkoutPayload, AddRecoveryDayPayload, RebalanceWeekPayload),
    )


def dispatch_payload(s: Session, athlete_id: int, payload: SuggestionPayload) -> ApplyResult:
    """Run the handler for an already-validated payload. Caller owns the transaction."""
    match payload:
        case AdjustWorkoutPayload():
            return _adjust_workout(s, athlete_id, payload)
        case SwapWorkoutsPayload():
            return _swap_workouts(s, athlete_id, payload)
        case MoveWorkoutPayload():
            return _move_workout(s, athlete_id, payload)
        case AddRecoveryDayPayload():
            return _add_recovery_day(s, athlete_id, payload)
        case RebalanceWeekPayload():
            return _rebalance_week(s, athlete_id, payload)
        case _:
            assert_never(payload)


def owned_workout(s: Session, athlete_id: int, workout_id: int) -> Optional[Workout]:
    return s.execute(
        select(Workout).where(Workout.id == workout_id, Workout.athlete_id == athlete_id)
    ).scalar_one_or_none()


def _signed(value: float) -> str:
    number = int(value) if float(value).is_integer() else value
    return f"+{number}" if value > 0 else f"{number}"


def adjustment_annotation(p: AdjustWorkoutPayload) -> str:
    text = f"Adjusted by coach: {_signed(p.intensity_delta_pct)}% intensity"
    if p.volume_delta_pct is not None:
        text += f", {_signed(p.volume_delta_pct)}% volume"
    return f"{text}. {p.notes or ''}".strip()


def _adjust_workout(s: Session, athlete_id: int, p: AdjustWorkoutPayload) -> ApplyResult:
    workout = owned_workout(s, athlete_id, p.workout_id)
    if workout is None:
        return _NOT_FOUND

    annotation = adjustment_annotation(p)
    prescription: dict[str, Any] = {}
    if workout.prescription_json:
        try:
            loaded = json.loads(workout.prescription_json)
            prescription = loaded if isinstance(loaded, dict) else {}
        except json.JSONDecodeError:
            prescription = {}
    existing_why = str(prescription.get("why") or "")
    prescription["why"] = f"{existing_why} {annotation}" if existing_why else annotation

    workout.prescription_json = json.dumps(prescription)
    workout.notes = f"{workout.notes}\n{annotation}" if (workout.notes or "").strip() else annotation
    return ApplyResult(ok=True)


def _swap_workouts(s: Session, athlete_id: int, p: SwapWorkoutsPayload) -> ApplyResult:
    # One-way: only the source workout moves. A workout already on the target
    # day stays where it is.
    workout = owned_workout(s, athlete_id, p.from_workout_id)
    if workout is None:
        return _NOT_FOUND
    workout.date = to_local_noon(p.to_date)
    return ApplyResult(ok=True)


def _move_workout(s: Session, athlete_id: int, p: MoveWorkoutPayload) -> ApplyResult:
    workout = owned_workout(s, athlete_id, p.workout_id)
    if workout is None:
        return _NOT_FOUND
    workout.date = to_local_noon(p.to_date)
    return ApplyResult(ok=True)


def _add_recovery_day(s: Session, athlete_id: int, p: AddRecoveryDayPayload) -> ApplyResult:
    day = to_local_noon(p.date)
    type_, title, default_duration = RECOVERY_REPLACEMENTS[p.replacement]
    duration = p.duration_min if p.duration_min is not None else default_duration

    day_start = dt.datetime.combine(day.date(), dt.time.min)
    existing = s.execute(
        select(Workout)
        .where(
            Workout.athlete_id == athlete_id,
            Workout.planned.is_(True),
            Workout.date >= day_start,
            Workout.date < day_start + dt.timedelta(days=1),
        )
        .order_by(Workout.id)
        .limit(1)
    ).scalar_one_or_none()

    if existing is None:
        existing = Workout(athlete_id=athlete_id, date=day, planned=True, completed=False)
        s.add(existing)
    existing.type = type_
    existing.title = title
    existing.duration_min = duration
    existing.tss = 0
    existing.ai_generated = True
    existing.ai_reason = RECOVERY_REASON
    return ApplyResult(ok=True)


def _rebalance_week(s: Session, athlete_id: int, p: RebalanceWeekPayload) -> ApplyResult:
    for change in p.changes or []:
        workout = owned_workout(s, athlete_id, change.workout_id)
        if workout is None:
            continue
        for key, (attr, kinds) in REBALANCE_FIELDS.items():
            value = change.patch.get(key)
            if isinstance(value, kinds) and not isinstance(value, bool):
                setattr(workout, attr, round(value) if attr == "duration_min" else value)
    return ApplyResult(ok=True)
