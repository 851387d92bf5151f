"""training load engine schema"""

from alembic import op
import sqlalchemy as sa


revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "athletes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("sport", sa.String(length=30), nullable=False, server_default="running"),
        sa.Column("experience_level", sa.String(length=20), nullable=False, server_default="intermediate"),
        sa.Column("weekly_hours_goal", sa.Float(), nullable=False, server_default="6"),
        sa.Column("identity_mode", sa.String(length=20), nullable=False, server_default="competitive"),
        sa.Column("plan_rigidity", sa.String(length=20), nullable=False, server_default="LOCKED_1_DAY"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "workouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("duration_min", sa.Integer(), nullable=True),
        sa.Column("tss", sa.Float(), nullable=True),
        sa.Column("intensity", sa.String(length=20), nullable=True),
        sa.Column("planned", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description_md", sa.Text(), nullable=True),
        sa.Column("prescription_json", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ai_reason", sa.Text(), nullable=True),
        sa.Column("ai_confidence", sa.Float(), nullable=True),
        sa.Column("source", sa.String(length=40), nullable=True),
        sa.CheckConstraint("duration_min is null or duration_min >= 0"),
    )
    op.create_index("ix_workouts_athlete_id", "workouts", ["athlete_id"])
    op.create_index("ix_workouts_date", "workouts", ["date"])

    op.create_table(
        "daily_metrics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("ctl", sa.Float(), nullable=True),
        sa.Column("atl", sa.Float(), nullable=True),
        sa.Column("tsb", sa.Float(), nullable=True),
        sa.Column("readiness_score", sa.Float(), nullable=True),
        sa.Column("burnout_risk", sa.Float(), nullable=True),
        sa.UniqueConstraint("athlete_id", "day", name="uq_daily_metric"),
    )
    op.create_index("ix_daily_metrics_athlete_id", "daily_metrics", ["athlete_id"])

    op.create_table(
        "daily_checkins",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("readiness_score", sa.Float(), nullable=True),
        sa.Column("user_accepted", sa.Boolean(), nullable=True),
        sa.Column("user_override_reason", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("athlete_id", "day", name="uq_checkin_daily"),
    )
    op.create_index("ix_daily_checkins_athlete_id", "daily_checkins", ["athlete_id"])

    op.create_table(
        "workout_feedback",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("workout_id", sa.Integer(), sa.ForeignKey("workouts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("perceived_difficulty", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("perceived_difficulty in ('too_easy', 'just_right', 'too_hard')"),
    )
    op.create_index("ix_workout_feedback_athlete_id", "workout_feedback", ["athlete_id"])

    op.create_table(
        "plan_change_proposals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("workout_id", sa.Integer(), sa.ForeignKey("workouts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("check_in_id", sa.Integer(), sa.ForeignKey("daily_checkins.id", ondelete="SET NULL"), nullable=True),
        sa.Column("source_type", sa.String(length=20), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("patch_json", sa.Text(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("status in ('PENDING', 'ACCEPTED', 'DECLINED')"),
        sa.CheckConstraint("source_type in ('DAILY_CHECKIN', 'COACH', 'RULE')"),
    )
    op.create_index("ix_plan_change_proposals_athlete_id", "plan_change_proposals", ["athlete_id"])
    op.create_index("ix_plan_change_proposals_workout_id", "plan_change_proposals", ["workout_id"])
    op.create_index("ix_plan_change_proposals_created_at", "plan_change_proposals", ["created_at"])
    op.create_index("ix_plan_change_proposals_pending", "plan_change_proposals", ["athlete_id", "workout_id", "status"])

    op.create_table(
        "coach_suggestions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scope", sa.String(length=20), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("summary", sa.String(length=300), nullable=False),
        sa.Column("why", sa.Text(), nullable=False, server_default=""),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("applied_at", sa.DateTime(), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("status in ('PENDING', 'APPLIED', 'DISMISSED')"),
    )
    op.create_index("ix_coach_suggestions_athlete_id", "coach_suggestions", ["athlete_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.Integer(), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action_type", sa.String(length=60), nullable=False),
        sa.Column("target_type", sa.String(length=30), nullable=False),
        sa.Column("target_id", sa.String(length=64), nullable=False),
        sa.Column("summary", sa.String(length=255), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_audit_logs_athlete_id", "audit_logs", ["athlete_id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "coach_suggestions",
        "plan_change_proposals",
        "workout_feedback",
        "daily_checkins",
        "daily_metrics",
        "workouts",
        "athletes",
    ):
        op.drop_table(table)
