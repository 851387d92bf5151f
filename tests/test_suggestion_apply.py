"""Tests for applying coach suggestion payloads to the calendar."""

from __future__ import annotations

import datetime as dt
import json

from sqlalchemy import select

from core.models import Workout
from core.services.suggestion_apply import RECOVERY_REASON, apply_suggestion_payload


def _noon(d: int) -> dt.datetime:
    return dt.datetime(2026, 2, d, 12, 0)


def test_adjust_workout_annotates_notes_and_prescription(session, athlete, make_workout):
    w = make_workout()
    result = apply_suggestion_payload(
        session,
        1,
        {"kind": "adjustWorkout", "workoutId": w.id, "intensityDeltaPct": 10, "volumeDeltaPct": -20, "notes": "Go easy"},
    )

    assert result.ok is True
    assert w.notes == "Adjusted by coach: +10% intensity, -20% volume. Go easy"
    assert json.loads(w.prescription_json) == {"why": w.notes}


def test_adjust_workout_appends_to_existing_text(session, athlete, make_workout):
    w = make_workout(notes="Felt heavy", prescription_json=json.dumps({"why": "Base", "reps": 6}))
    apply_suggestion_payload(session, 1, {"kind": "adjustWorkout", "workoutId": w.id, "intensityDeltaPct": -5.5})

    assert w.notes == "Felt heavy\nAdjusted by coach: -5.5% intensity."
    assert json.loads(w.prescription_json) == {"why": "Base Adjusted by coach: -5.5% intensity.", "reps": 6}


def test_adjust_workout_replaces_unreadable_prescription(session, athlete, make_workout):
    w = make_workout(prescription_json="not json")
    apply_suggestion_payload(session, 1, {"kind": "adjustWorkout", "workoutId": w.id, "intensityDeltaPct": 0})

    assert json.loads(w.prescription_json) == {"why": "Adjusted by coach: 0% intensity."}


def test_move_workout_sets_local_noon(session, athlete, make_workout):
    w = make_workout(day=dt.date(2026, 2, 10))
    result = apply_suggestion_payload(session, 1, {"kind": "moveWorkout", "workoutId": w.id, "toDate": "2026-02-12"})

    assert result.ok
    assert w.date == _noon(12)


def test_swap_is_one_way(session, athlete, make_workout):
    a = make_workout(day=dt.date(2026, 2, 10), title="Tempo Run")
    b = make_workout(day=dt.date(2026, 2, 12), title="Long Run")

    result = apply_suggestion_payload(
        session,
        1,
        {"kind": "swapWorkouts", "fromWorkoutId": a.id, "toDate": "2026-02-12"},
    )

    assert result.ok
    assert a.date == _noon(12)
    assert b.date == _noon(12)


def test_add_recovery_day_creates_rest(session, athlete):
    result = apply_suggestion_payload(session, 1, {"kind": "addRecoveryDay", "date": "2026-02-13", "replacement": "rest"})
    assert result.ok

    rows = session.execute(select(Workout).where(Workout.athlete_id == 1)).scalars().all()
    assert len(rows) == 1
    rest = rows[0]
    assert (rest.type, rest.title, rest.duration_min, rest.tss) == ("rest", "Rest day", 0, 0)
    assert rest.date == _noon(13)
    assert rest.planned is True
    assert rest.ai_generated is True
    assert rest.ai_reason == RECOVERY_REASON


def test_add_recovery_day_is_idempotent(session, athlete):
    payload = {"kind": "addRecoveryDay", "date": "2026-02-13", "replacement": "walk"}
    apply_suggestion_payload(session, 1, payload)
    apply_suggestion_payload(session, 1, payload)

    rows = session.execute(select(Workout).where(Workout.athlete_id == 1)).scalars().all()
    assert len(rows) == 1
    assert rows[0].title == "Easy walk"
    assert rows[0].duration_min == 30


def test_add_recovery_day_replaces_planned_workout(session, athlete, make_workout):
    w = make_workout(day=dt.date(2026, 2, 13), title="Interval Training", tss=70)
    apply_suggestion_payload(
        session,
        1,
        {"kind": "addRecoveryDay", "date": "2026-02-13", "replacement": "easy_spin", "durationMin": 25},
    )

    rows = session.execute(select(Workout).where(Workout.athlete_id == 1)).scalars().all()
    assert [r.id for r in rows] == [w.id]
    assert (w.type, w.title, w.duration_min, w.tss) == ("bike", "Easy spin", 25, 0)


def test_rebalance_week_skips_unknown_workouts(session, athlete, make_workout):
    w = make_workout()
    result = apply_suggestion_payload(
        session,
        1,
        {
            "kind": "rebalanceWeek",
            "rules": ["keep long run"],
            "changes": [
                {"workoutId": w.id, "patch": {"title": "Steady Run", "durationMin": 37.6, "tss": True, "date": "2026-03-01"}},
                {"workoutId": 9999, "patch": {"title": "Ghost"}},
            ],
        },
    )

    assert result.ok
    assert w.title == "Steady Run"
    assert w.duration_min == 38
    assert w.tss is None
    assert w.date == _noon(12)


def test_rebalance_week_rejects_negative_values(session, athlete, make_workout):
    w = make_workout(tss=50)
    for patch, key in (({"durationMin": -10}, "durationMin"), ({"tss": -500}, "tss")):
        result = apply_suggestion_payload(
            session, 1, {"kind": "rebalanceWeek", "changes": [{"workoutId": w.id, "patch": patch}]}
        )

        assert result.ok is False
        assert result.error.startswith("Invalid payload: ")
        assert f"{key} must be non-negative" in result.error

    session.flush()
    assert (w.duration_min, w.tss) == (45, 50)


def test_missing_workout(session, athlete):
    result = apply_suggestion_payload(session, 1, {"kind": "moveWorkout", "workoutId": 42, "toDate": "2026-02-12"})
    assert result.ok is False
    assert result.error == "Workout not found"


def test_foreign_workout_is_not_found(session, athlete, make_workout):
    w = make_workout(athlete_id=2)
    result = apply_suggestion_payload(session, 1, {"kind": "adjustWorkout", "workoutId": w.id, "intensityDeltaPct": 5})

    assert result.error == "Workout not found"
    assert w.notes is None


def test_unknown_kind(session, athlete):
    result = apply_suggestion_payload(session, 1, {"kind": "teleport"})
    assert result.ok is False
    assert result.error == "Unknown payload kind: teleport"


def test_missing_kind(session, athlete):
    assert apply_suggestion_payload(session, 1, {"workoutId": 1}).error == "Invalid payload"
    assert apply_suggestion_payload(session, 1, "not json").error == "Invalid payload"


def test_missing_field(session, athlete):
    result = apply_suggestion_payload(session, 1, {"kind": "moveWorkout", "workoutId": 1})
    assert result.ok is False
    assert result.error.startswith("Invalid payload: ")


def test_bad_date_writes_nothing(session, athlete, make_workout):
    w = make_workout(day=dt.date(2026, 2, 10))
    result = apply_suggestion_payload(session, 1, {"kind": "moveWorkout", "workoutId": w.id, "toDate": "someday"})

    assert result.ok is False
    assert result.error == "Invalid date: 'someday'"
    assert session.get(Workout, w.id).date == _noon(10)
