from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Athlete(Base):
    __tablename__ = "athletes"
    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(200), unique=True)
    display_name: Mapped[str] = mapped_column(String(120), default="")
    sport: Mapped[str] = mapped_column(String(30), default="running")
    experience_level: Mapped[str] = mapped_column(String(20), default="intermediate")
    weekly_hours_goal: Mapped[float] = mapped_column(Float, default=6.0)
    identity_mode: Mapped[str] = mapped_column(String(20), default="competitive")
    plan_rigidity: Mapped[str] = mapped_column(String(20), default="LOCKED_1_DAY")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)


class Workout(Base):
    __tablename__ = "workouts"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(30))
    date: Mapped[dt.datetime] = mapped_column(DateTime, index=True)
    duration_min: Mapped[int | None] = mapped_column(Integer)
    tss: Mapped[float | None] = mapped_column(Float)
    intensity: Mapped[str | None] = mapped_column(String(20))
    planned: Mapped[bool] = mapped_column(Boolean, default=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    description_md: Mapped[str | None] = mapped_column(Text)
    prescription_json: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_reason: Mapped[str | None] = mapped_column(Text)
    ai_confidence: Mapped[float | None] = mapped_column(Float)
    source: Mapped[str | None] = mapped_column(String(40))
    __table_args__ = (CheckConstraint("duration_min is null or duration_min >= 0"),)


class DailyMetric(Base):
    __tablename__ = "daily_metrics"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    day: Mapped[dt.date] = mapped_column(Date)
    ctl: Mapped[float | None] = mapped_column(Float)
    atl: Mapped[float | None] = mapped_column(Float)
    tsb: Mapped[float | None] = mapped_column(Float)
    readiness_score: Mapped[float | None] = mapped_column(Float)
    burnout_risk: Mapped[float | None] = mapped_column(Float)
    __table_args__ = (UniqueConstraint("athlete_id", "day", name="uq_daily_metric"),)


class DailyCheckIn(Base):
    __tablename__ = "daily_checkins"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    day: Mapped[dt.date] = mapped_column(Date)
    readiness_score: Mapped[float | None] = mapped_column(Float)
    user_accepted: Mapped[bool | None] = mapped_column(Boolean)
    user_override_reason: Mapped[str | None] = mapped_column(String(255))
    __table_args__ = (UniqueConstraint("athlete_id", "day", name="uq_checkin_daily"),)


class WorkoutFeedback(Base):
    __tablename__ = "workout_feedback"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    workout_id: Mapped[int | None] = mapped_column(ForeignKey("workouts.id", ondelete="SET NULL"))
    perceived_difficulty: Mapped[str] = mapped_column(String(20))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (CheckConstraint("perceived_difficulty in ('too_easy', 'just_right', 'too_hard')"),)


class PlanChangeProposal(Base):
    __tablename__ = "plan_change_proposals"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    workout_id: Mapped[int | None] = mapped_column(ForeignKey("workouts.id", ondelete="SET NULL"), index=True)
    check_in_id: Mapped[int | None] = mapped_column(ForeignKey("daily_checkins.id", ondelete="SET NULL"))
    source_type: Mapped[str] = mapped_column(String(20))
    summary: Mapped[str] = mapped_column(Text)
    patch_json: Mapped[str] = mapped_column(Text)
    confidence: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow, index=True)
    decided_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    __table_args__ = (
        CheckConstraint("status in ('PENDING', 'ACCEPTED', 'DECLINED')"),
        CheckConstraint("source_type in ('DAILY_CHECKIN', 'COACH', 'RULE')"),
        Index("ix_plan_change_proposals_pending", "athlete_id", "workout_id", "status"),
    )


class CoachSuggestion(Base):
    __tablename__ = "coach_suggestions"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    scope: Mapped[str] = mapped_column(String(20))
    type: Mapped[str] = mapped_column(String(40))
    title: Mapped[str] = mapped_column(String(200))
    summary: Mapped[str] = mapped_column(String(300))
    why: Mapped[str] = mapped_column(Text, default="")
    payload: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    applied_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    dismissed_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    __table_args__ = (CheckConstraint("status in ('PENDING', 'APPLIED', 'DISMISSED')"),)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id: Mapped[int] = mapped_column(primary_key=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), index=True)
    actor_id: Mapped[int | None] = mapped_column(Integer)
    action_type: Mapped[str] = mapped_column(String(60))
    target_type: Mapped[str] = mapped_column(String(30))
    target_id: Mapped[str] = mapped_column(String(64))
    summary: Mapped[str] = mapped_column(String(255))
    details_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
