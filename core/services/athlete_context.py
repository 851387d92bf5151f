from __future__ import annotations

import datetime as dt

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.db import atomic
from core.errors import NotFound
from core.models import Athlete, DailyCheckIn, DailyMetric, Workout, WorkoutFeedback
from core.services.planning import AthleteContext, FeedbackPatterns, PlanGenerationResult, RecentWorkout
from core.services.simulation import BaselineMetrics, CompletedLoad, MetricSnapshot, baseline_from_history

BASELINE_WINDOW_DAYS = 28
CONTEXT_WINDOW_DAYS = 14
CHECK_IN_WINDOW_DAYS = 7
FEEDBACK_WINDOW_DAYS = 14
GENERATED_PLAN_SOURCE = "weekly_plan"


def _athlete(s: Session, athlete_id: int) -> Athlete:
    athlete = s.get(Athlete, athlete_id)
    if athlete is None:
        raise NotFound("Athlete not found")
    return athlete


def _day_start(day: dt.date) -> dt.datetime:
    return dt.datetime.combine(day, dt.time.min)


def build_baseline_metrics(s: Session, athlete_id: int, today: dt.date) -> BaselineMetrics:
    """Simulation baseline from the last four weeks of metrics and completed workouts."""
    athlete = _athlete(s, athlete_id)
    since = today - dt.timedelta(days=BASELINE_WINDOW_DAYS)

    metric_rows = s.execute(
        select(DailyMetric).where(DailyMetric.athlete_id == athlete_id, DailyMetric.day >= since, DailyMetric.day <= today)
    ).scalars().all()
    workout_rows = s.execute(
        select(Workout).where(
            Workout.athlete_id == athlete_id,
            Workout.completed.is_(True),
            Workout.date >= _day_start(since),
            Workout.date < _day_start(today + dt.timedelta(days=1)),
        )
    ).scalars().all()

    return baseline_from_history(
        [
            MetricSnapshot(
                day=m.day,
                ctl=m.ctl,
                atl=m.atl,
                tsb=m.tsb,
                readiness_score=m.readiness_score,
                burnout_risk=m.burnout_risk,
            )
            for m in metric_rows
        ],
        [CompletedLoad(day=w.date.date(), tss=w.tss) for w in workout_rows],
        identity_mode=athlete.identity_mode or "competitive",  # type: ignore[arg-type]
    )


def build_athlete_context(s: Session, athlete_id: int, today: dt.date) -> AthleteContext:
    """Planner input: profile, two weeks of workouts, recent check-ins and feedback."""
    athlete = _athlete(s, athlete_id)

    workouts = s.execute(
        select(Workout)
        .where(
            Workout.athlete_id == athlete_id,
            Workout.date >= _day_start(today - dt.timedelta(days=CONTEXT_WINDOW_DAYS)),
            Workout.date < _day_start(today + dt.timedelta(days=1)),
        )
        .order_by(Workout.date)
    ).scalars().all()

    avg_readiness = s.execute(
        select(func.avg(DailyCheckIn.readiness_score)).where(
            DailyCheckIn.athlete_id == athlete_id,
            DailyCheckIn.day >= today - dt.timedelta(days=CHECK_IN_WINDOW_DAYS),
            DailyCheckIn.readiness_score.is_not(None),
        )
    ).scalar_one_or_none()

    feedback_rows = s.execute(
        select(WorkoutFeedback.perceived_difficulty, func.count())
        .where(
            WorkoutFeedback.athlete_id == athlete_id,
            WorkoutFeedback.created_at >= _day_start(today - dt.timedelta(days=FEEDBACK_WINDOW_DAYS)),
        )
        .group_by(WorkoutFeedback.perceived_difficulty)
    ).all()
    counts = {difficulty: n for difficulty, n in feedback_rows}
    feedback = FeedbackPatterns(
        total_feedback=sum(counts.values()),
        too_hard_count=counts.get("too_hard", 0),
    )

    return AthleteContext(
        today=today,
        sport=athlete.sport or "running",
        experience_level=athlete.experience_level or "intermediate",
        weekly_hours_goal=athlete.weekly_hours_goal or 6.0,
        recent_workouts=tuple(
            RecentWorkout(date=w.date, completed=bool(w.completed), tss=w.tss, duration_min=w.duration_min)
            for w in workouts
        ),
        avg_check_in_readiness=float(avg_readiness) if avg_readiness is not None else None,
        feedback_patterns=feedback if feedback.total_feedback else None,
    )


def save_generated_plan(s: Session, athlete_id: int, result: PlanGenerationResult) -> list[Workout]:
    """Persist a generated week as planned, AI-generated workouts."""
    _athlete(s, athlete_id)
    rows = [
        Workout(
            athlete_id=athlete_id,
            title=w.title,
            type=w.type,
            date=w.date,
            duration_min=w.duration_min,
            tss=w.estimated_tss,
            intensity=w.intensity,
            planned=True,
            completed=False,
            ai_generated=True,
            ai_reason=w.ai_reason,
            ai_confidence=w.ai_confidence,
            source=GENERATED_PLAN_SOURCE,
        )
        for w in result.workouts
    ]
    with atomic(s):
        s.add_all(rows)
    return rows
