"""Rule-based weekly plan generation bounded by recent training load.

A polarized 7-day skeleton is filled from sport-keyed workout templates,
durations are scaled by experience level and weekly-hours goal, and the week's
estimated TSS is held near +15% of the last completed week.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional, Sequence

from core.services.plan_rigidity import to_local_noon
from core.services.training_load import weekly_load

Intensity = Literal["easy", "moderate", "hard", "recovery"]
WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True)
class WorkoutTemplate:
    title: str
    type: str
    intensity: Intensity
    base_duration: int
    tss_per_min: float


@dataclass(frozen=True)
class DayPlan:
    workout_key: Optional[str]  # None = rest day
    reason: str
    duration_multiplier: float = 1.0


def _templates(rows: dict[str, tuple[str, str, Intensity, int, float]]) -> Mapping[str, WorkoutTemplate]:
    return MappingProxyType({key: WorkoutTemplate(*row) for key, row in rows.items()})


DEFAULT_WORKOUT_TEMPLATES: Mapping[str, Mapping[str, WorkoutTemplate]] = MappingProxyType(
    {
        "running": _templates(
            {
                "easy": ("Easy Run", "run", "easy", 45, 0.8),
                "intervals": ("Interval Training", "run", "hard", 50, 1.4),
                "tempo": ("Tempo Run", "run", "moderate", 45, 1.1),
                "long": ("Long Run", "run", "easy", 90, 0.9),
                "recovery": ("Recovery Run", "run", "recovery", 30, 0.5),
            }
        ),
        "cycling": _templates(
            {
                "easy": ("Endurance Ride", "bike", "easy", 60, 0.7),
                "vo2": ("VO2max Intervals", "bike", "hard", 60, 1.5),
                "threshold": ("Threshold Ride", "bike", "moderate", 60, 1.2),
                "long": ("Long Ride", "bike", "easy", 120, 0.8),
                "recovery": ("Recovery Spin", "bike", "recovery", 40, 0.4),
            }
        ),
        "triathlon": _templates(
            {
                "easy_run": ("Easy Run", "run", "easy", 40, 0.8),
                "easy_bike": ("Endurance Ride", "bike", "easy", 60, 0.7),
                "swim": ("Swim Technique", "swim", "moderate", 45, 0.9),
                "intervals": ("Run Intervals", "run", "hard", 45, 1.4),
                "long_bike": ("Long Ride", "bike", "easy", 90, 0.8),
                "brick": ("Brick (Bike+Run)", "bike", "moderate", 75, 1.0),
            }
        ),
        "swimming": _templates(
            {
                "easy": ("Easy Swim", "swim", "easy", 45, 0.7),
                "intervals": ("Swim Intervals", "swim", "hard", 50, 1.3),
                "technique": ("Technique Focus", "swim", "moderate", 45, 0.8),
                "endurance": ("Endurance Swim", "swim", "easy", 60, 0.8),
            }
        ),
        "strength": _templates(
            {
                "full_body": ("Full Body Strength", "strength", "moderate", 45, 0.9),
                "upper": ("Upper Body", "strength", "moderate", 40, 0.8),
                "lower": ("Lower Body", "strength", "moderate", 40, 0.8),
                "core": ("Core & Stability", "strength", "easy", 30, 0.6),
            }
        ),
    }
)

LEVEL_MULTIPLIERS: Mapping[str, float] = MappingProxyType(
    {"beginner": 0.7, "intermediate": 1.0, "advanced": 1.15, "expert": 1.3}
)


@dataclass(frozen=True)
class PlannerConfig:
    templates: Mapping[str, Mapping[str, WorkoutTemplate]] = field(default_factory=lambda: DEFAULT_WORKOUT_TEMPLATES)
    level_multipliers: Mapping[str, float] = field(default_factory=lambda: LEVEL_MULTIPLIERS)
    default_sport: str = "running"
    growth_target: float = 1.10
    growth_ceiling: float = 1.15
    no_history_target_tss: int = 300
    no_history_max_tss: int = 400
    low_readiness_threshold: float = 55.0
    too_hard_ratio_threshold: float = 0.4
    penalty_factor: float = 0.9
    cut_factor: float = 0.7
    min_duration_min: int = 20
    min_workouts_before_cut: int = 3
    ai_confidence: float = 85.0


DEFAULT_PLANNER_CONFIG = PlannerConfig()


@dataclass(frozen=True)
class FeedbackPatterns:
    total_feedback: int = 0
    too_hard_count: int = 0


@dataclass(frozen=True)
class RecentWorkout:
    date: dt.date | dt.datetime
    completed: bool = True
    tss: float | None = None
    duration_min: int | None = None


@dataclass(frozen=True)
class AthleteContext:
    today: dt.date
    sport: str = "running"
    experience_level: str = "intermediate"
    weekly_hours_goal: float = 6.0
    recent_workouts: Sequence[RecentWorkout] = ()
    avg_check_in_readiness: Optional[float] = None
    feedback_patterns: Optional[FeedbackPatterns] = None


@dataclass(frozen=True)
class PlannedWorkout:
    title: str
    type: str
    date: dt.datetime
    duration_min: int
    intensity: Intensity
    ai_reason: str
    ai_confidence: float
    estimated_tss: float


@dataclass(frozen=True)
class PlanGenerationResult:
    workouts: list[PlannedWorkout]
    start_date: dt.date
    end_date: dt.date
    summary_md: str
    constraints: dict[str, Any]
    warnings: list[str]


def _as_date(value: dt.date | dt.datetime) -> dt.date:
    return value.date() if isinstance(value, dt.datetime) else value


def last_week_load(workouts: Sequence[RecentWorkout], today: dt.date) -> float:
    """Completed load in the 7 days before ``today`` (today excluded)."""
    window_start = today - dt.timedelta(days=7)
    return weekly_load(w for w in workouts if w.completed and window_start <= _as_date(w.date) < today)


def adjust_duration_for_level(base_duration: int, level: str, config: PlannerConfig = DEFAULT_PLANNER_CONFIG) -> int:
    factor = config.level_multipliers.get((level or "").lower(), 1.0)
    return round(base_duration * factor)


def adjust_duration_for_goal(base_duration: int, weekly_hours_goal: float) -> int:
    if weekly_hours_goal <= 5:
        return round(base_duration * 0.8)
    if weekly_hours_goal >= 12:
        return round(base_duration * 1.2)
    return base_duration


def week_structure(sport: str, level: str, weekly_hours_goal: float) -> dict[int, DayPlan]:
    """Polarized skeleton keyed by weekday (0 = Monday)."""
    if sport == "triathlon":
        return {
            0: DayPlan("easy_run", "Start week with easy aerobic run"),
            1: DayPlan("swim", "Swim technique and endurance"),
            2: DayPlan("intervals", "Quality session: run intervals for speed"),
            3: DayPlan("easy_bike", "Easy bike to maintain cycling fitness"),
            4: DayPlan("brick", "Brick workout for race simulation"),
            5: DayPlan("long_bike", "Long ride for endurance", 1.3),
            6: DayPlan(None, "Rest day for recovery"),
        }

    cycling = sport == "cycling"
    structure = {
        0: DayPlan("easy", "Easy effort to start the week"),
        1: DayPlan("vo2" if cycling else "intervals", "Quality session: high-intensity intervals"),
        2: DayPlan("recovery", "Recovery session after hard day"),
        3: DayPlan("threshold" if cycling else "tempo", "Moderate intensity: threshold/tempo work"),
        4: DayPlan("easy", "Easy effort before long session"),
        5: DayPlan("long", "Long session for aerobic development", 1.2),
        6: DayPlan(None, "Rest day for full recovery"),
    }

    if weekly_hours_goal >= 8 and sport != "strength":
        structure[2] = DayPlan("full_body", "Strength session for injury prevention")
    if level == "beginner":
        structure[2] = DayPlan(None, "Extra rest day for recovery (beginner)")
        structure[4] = DayPlan(None, "Rest before long session")
    if weekly_hours_goal <= 4:
        structure[0] = DayPlan(None, "Rest day (reduced volume plan)")
        structure[4] = DayPlan(None, "Rest day (reduced volume plan)")
    return structure


def resolve_template(sport: str, key: str, config: PlannerConfig = DEFAULT_PLANNER_CONFIG) -> WorkoutTemplate | None:
    """Find the template for an archetype, falling back to strength, then easy."""
    templates = config.templates.get(sport) or config.templates[config.default_sport]
    strength = config.templates.get("strength", {})
    template = templates.get(key) or strength.get(key) or templates.get("easy")
    if template is None and templates:
        template = next(iter(templates.values()))
    return template


def generate_weekly_plan(context: AthleteContext, config: PlannerConfig = DEFAULT_PLANNER_CONFIG) -> PlanGenerationResult:
    """Assemble the next 7 days of training for an athlete.

    Deterministic for a given context: the window starts the day after
    ``context.today`` and no randomness is involved. Load caps only shorten
    sessions and add warnings; they never reject the plan.
    """
    warnings: list[str] = []
    start_date = context.today + dt.timedelta(days=1)
    end_date = start_date + dt.timedelta(days=6)

    sport = (context.sport or config.default_sport).lower()
    if sport not in config.templates:
        sport = config.default_sport
    level = (context.experience_level or "intermediate").lower()
    hours_goal = context.weekly_hours_goal or 6

    last_tss = last_week_load(context.recent_workouts, context.today)

    readiness_penalty = 1.0
    if context.avg_check_in_readiness is not None and context.avg_check_in_readiness < config.low_readiness_threshold:
        readiness_penalty = config.penalty_factor
        warnings.append("Recent check-ins suggest lower readiness; plan has been kept conservative.")

    feedback = context.feedback_patterns
    too_hard_ratio = feedback.too_hard_count / feedback.total_feedback if feedback and feedback.total_feedback > 0 else 0.0
    feedback_penalty = 1.0
    if too_hard_ratio >= config.too_hard_ratio_threshold:
        feedback_penalty = config.penalty_factor
        warnings.append("Recent workout feedback indicates sessions felt too hard; plan has been kept conservative.")

    penalty = readiness_penalty * feedback_penalty
    if last_tss > 0:
        target_tss = round(last_tss * config.growth_target * penalty)
        max_allowed_tss = round(last_tss * config.growth_ceiling * penalty)
    else:
        target_tss = round(config.no_history_target_tss * penalty)
        max_allowed_tss = round(config.no_history_max_tss * penalty)

    structure = week_structure(sport, level, hours_goal)
    workouts: list[PlannedWorkout] = []
    planned_tss = 0.0

    for offset in range(7):
        day = start_date + dt.timedelta(days=offset)
        day_plan = structure[day.weekday()]
        if day_plan.workout_key is None:
            continue
        template = resolve_template(sport, day_plan.workout_key, config)
        if template is None:
            continue

        duration = adjust_duration_for_level(template.base_duration, level, config)
        duration = adjust_duration_for_goal(duration, hours_goal)
        if day_plan.duration_multiplier != 1.0:
            duration = round(duration * day_plan.duration_multiplier)

        estimated = round(duration * template.tss_per_min)
        if planned_tss + estimated > max_allowed_tss and len(workouts) >= config.min_workouts_before_cut:
            duration = max(config.min_duration_min, round(duration * config.cut_factor))
            warnings.append(f"Reduced {template.title} duration to stay within +15% load increase limit")
            estimated = round(duration * template.tss_per_min)

        planned_tss += estimated
        workouts.append(
            PlannedWorkout(
                title=template.title,
                type=template.type,
                date=to_local_noon(day),
                duration_min=duration,
                intensity=template.intensity,
                ai_reason=day_plan.reason,
                ai_confidence=config.ai_confidence,
                estimated_tss=float(estimated),
            )
        )

    if planned_tss > max_allowed_tss and last_tss > 0:
        warnings.append(
            f"Weekly load ({round(planned_tss)} TSS) exceeds recommended +15% increase. Consider reducing intensity."
        )

    return PlanGenerationResult(
        workouts=workouts,
        start_date=start_date,
        end_date=end_date,
        summary_md=summary_markdown(workouts, sport, start_date, end_date, warnings),
        constraints={
            "sport": sport,
            "experience_level": level,
            "weekly_hours_goal": hours_goal,
            "last_week_tss": last_tss,
            "target_week_tss": target_tss,
            "max_allowed_tss": max_allowed_tss,
        },
        warnings=warnings,
    )


def summary_markdown(
    workouts: Sequence[PlannedWorkout],
    sport: str,
    start_date: dt.date,
    end_date: dt.date,
    warnings: Sequence[str],
) -> str:
    total_duration = sum(w.duration_min for w in workouts)
    total_tss = round(sum(w.estimated_tss for w in workouts))
    hard = sum(1 for w in workouts if w.intensity == "hard")
    easy = sum(1 for w in workouts if w.intensity in {"easy", "recovery"})

    lines = [
        "## 7-Day Training Plan",
        "",
        f"**{start_date:%b} {start_date.day} - {end_date:%b} {end_date.day}**",
        "",
        f"**Sport:** {sport.capitalize()}",
        f"**Total Volume:** {total_duration // 60}h {total_duration % 60}m | **Est. TSS:** {total_tss}",
        f"**Structure:** {hard} quality session(s), {easy} easy/recovery session(s)",
        "",
        "### Workout Schedule",
        "",
    ]
    for w in workouts:
        lines.append(f"- **{WEEKDAY_NAMES[w.date.weekday()]}:** {w.title} ({w.duration_min}min) [{w.intensity}]")
    if warnings:
        lines.extend(["", "### Warnings", ""])
        lines.extend(f"- {warning}" for warning in warnings)
    lines.extend(["", "---", "*Generated by the rules engine*"])
    return "\n".join(lines)
