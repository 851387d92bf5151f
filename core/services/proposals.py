"""Plan-change proposals: queue a calendar change for review, then accept or decline it.

A proposal moves PENDING -> ACCEPTED or PENDING -> DECLINED exactly once. The
status flip is a conditional UPDATE, so two concurrent decisions cannot both
succeed, and it shares one unit of work with the workout write, the check-in
update and the audit row.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Literal, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.config import get_settings
from core.db import atomic
from core.errors import InvalidPayload, NotFound, StateConflict
from core.logging_config import get_logger, log_event
from core.models import Athlete, DailyCheckIn, PlanChangeProposal, Workout
from core.services.audit import record_audit, track_after_commit
from core.services.plan_rigidity import PLAN_RIGIDITY_SETTINGS, PlanRigiditySetting, normalize_rigidity, to_local_noon
from core.services.suggestion_apply import dispatch_payload, owned_workout
from core.validators import ProposalPatch, WorkoutPatch, dump_proposal_patch, parse_proposal_patch

logger = get_logger(__name__)

SourceType = Literal["DAILY_CHECKIN", "COACH", "RULE"]
Decision = Literal["ACCEPT", "DECLINE"]
SOURCE_TYPES = ("DAILY_CHECKIN", "COACH", "RULE")
PENDING_PROPOSALS_LIMIT = 5
DECLINE_REASON = "Declined plan change proposal"
COACH_PLACEHOLDER_SOURCE = "coach_proposal"


@dataclass(frozen=True)
class DecisionResult:
    proposal_id: int
    status: str
    workout_id: Optional[int]
    applied: bool = False
    workout_deleted: bool = False


def _owned_check_in(s: Session, athlete_id: int, check_in_id: int) -> Optional[DailyCheckIn]:
    return s.execute(
        select(DailyCheckIn).where(DailyCheckIn.id == check_in_id, DailyCheckIn.athlete_id == athlete_id)
    ).scalar_one_or_none()


def create_proposal(
    s: Session,
    athlete_id: int,
    patch: ProposalPatch | dict[str, Any],
    summary: str,
    source_type: SourceType,
    workout_id: Optional[int] = None,
    check_in_id: Optional[int] = None,
    confidence: Optional[float] = None,
) -> PlanChangeProposal:
    """Queue a PENDING proposal carrying a validated patch."""
    if source_type not in SOURCE_TYPES:
        raise InvalidPayload(f"Unknown source type: {source_type}")
    parsed = parse_proposal_patch(patch)
    if isinstance(parsed, WorkoutPatch):
        if workout_id is None:
            workout_id = parsed.workout.id
        elif workout_id != parsed.workout.id:
            raise InvalidPayload("Invalid proposal patch")
    if workout_id is not None and owned_workout(s, athlete_id, workout_id) is None:
        raise NotFound("Workout not found")
    if check_in_id is not None and _owned_check_in(s, athlete_id, check_in_id) is None:
        raise NotFound("Check-in not found")

    with atomic(s):
        proposal = PlanChangeProposal(
            athlete_id=athlete_id,
            workout_id=workout_id,
            check_in_id=check_in_id,
            source_type=source_type,
            summary=summary,
            patch_json=dump_proposal_patch(parsed),
            confidence=confidence,
            status="PENDING",
        )
        s.add(proposal)
        s.flush()
        record_audit(
            s,
            athlete_id,
            "PLAN_CHANGE_PROPOSED",
            "PLAN",
            proposal.id,
            "Proposed a plan change",
            {"proposal_id": proposal.id, "workout_id": workout_id, "source_type": source_type},
        )

    log_event(logger, "plan_proposal.created", athlete_id=athlete_id, proposal_id=proposal.id, source_type=source_type)
    return proposal


def _flip_status(s: Session, proposal: PlanChangeProposal, status: str, now: dt.datetime) -> None:
    res = s.execute(
        update(PlanChangeProposal)
        .where(PlanChangeProposal.id == proposal.id, PlanChangeProposal.status == "PENDING")
        .values(status=status, decided_at=now)
    )
    if res.rowcount == 0:
        raise StateConflict("Proposal already decided")


def _workout_values(patch: WorkoutPatch) -> dict[str, Any]:
    values = patch.workout.update.model_dump(exclude_unset=True)
    date_value = values.get("date")
    if isinstance(date_value, str) and not date_value.strip():
        values.pop("date")
    elif date_value is not None:
        values["date"] = to_local_noon(date_value)
    return values


def decide_proposal(
    s: Session,
    athlete_id: int,
    proposal_id: int,
    decision: Decision,
    now: Optional[dt.datetime] = None,
) -> DecisionResult:
    """Accept or decline a pending proposal on behalf of its owner.

    Raises NotFound for a missing or foreign proposal, StateConflict when it is
    no longer pending and InvalidPayload when an accepted patch cannot be
    applied. Nothing is written unless the whole decision succeeds.
    """
    if decision not in ("ACCEPT", "DECLINE"):
        raise InvalidPayload(f"Unknown decision: {decision}")
    now = now or dt.datetime.utcnow()
    log_event(logger, "plan_proposal.decide.started", athlete_id=athlete_id, proposal_id=proposal_id, decision=decision)

    proposal = s.get(PlanChangeProposal, proposal_id)
    if proposal is None or proposal.athlete_id != athlete_id:
        raise NotFound("Proposal not found")
    if proposal.status != "PENDING":
        raise StateConflict("Proposal already decided")

    result = _accept(s, athlete_id, proposal, now) if decision == "ACCEPT" else _decline(s, athlete_id, proposal, now)

    track_after_commit(
        s,
        "plan_proposal_accepted" if result.status == "ACCEPTED" else "plan_proposal_declined",
        athlete_id,
        source="plan_proposal",
        proposal_id=proposal_id,
        workout_id=result.workout_id,
    )
    log_event(logger, "plan_proposal.decide.succeeded", athlete_id=athlete_id, proposal_id=proposal_id, status=result.status)
    return result


def _accept(s: Session, athlete_id: int, proposal: PlanChangeProposal, now: dt.datetime) -> DecisionResult:
    patch = parse_proposal_patch(proposal.patch_json)
    proposal_id = proposal.id
    check_in_id = proposal.check_in_id

    values: dict[str, Any] = {}
    workout: Optional[Workout] = None
    if isinstance(patch, WorkoutPatch):
        if patch.workout.id != proposal.workout_id:
            raise InvalidPayload("Invalid proposal patch")
        workout = owned_workout(s, athlete_id, patch.workout.id)
        if workout is None:
            raise NotFound("Workout not found")
        values = _workout_values(patch)

    with atomic(s):
        _flip_status(s, proposal, "ACCEPTED", now)
        if workout is not None:
            for key, value in values.items():
                setattr(workout, key, value)
            workout_id: Optional[int] = workout.id
        else:
            applied = dispatch_payload(s, athlete_id, patch)
            if not applied.ok:
                raise NotFound(applied.error or "Workout not found")
            workout_id = proposal.workout_id
        if check_in_id is not None:
            check_in = _owned_check_in(s, athlete_id, check_in_id)
            if check_in is not None:
                check_in.user_accepted = True
                check_in.user_override_reason = None
        record_audit(
            s,
            athlete_id,
            "PLAN_CHANGE_ACCEPTED",
            "PLAN",
            proposal_id,
            "Accepted plan change proposal",
            {"proposal_id": proposal_id, "workout_id": workout_id},
        )

    return DecisionResult(proposal_id=proposal_id, status="ACCEPTED", workout_id=workout_id, applied=True)


def _decline(s: Session, athlete_id: int, proposal: PlanChangeProposal, now: dt.datetime) -> DecisionResult:
    proposal_id = proposal.id
    workout_id = proposal.workout_id
    check_in_id = proposal.check_in_id

    placeholder: Optional[Workout] = None
    if proposal.source_type == "COACH" and workout_id is not None:
        w = owned_workout(s, athlete_id, workout_id)
        if w is not None and not w.planned and not w.completed and w.source == COACH_PLACEHOLDER_SOURCE:
            placeholder = w

    with atomic(s):
        _flip_status(s, proposal, "DECLINED", now)
        record_audit(
            s,
            athlete_id,
            "PLAN_CHANGE_DECLINED",
            "PLAN",
            proposal_id,
            DECLINE_REASON,
            {"proposal_id": proposal_id, "workout_id": workout_id},
        )
        if placeholder is not None:
            s.delete(placeholder)
        if check_in_id is not None:
            check_in = _owned_check_in(s, athlete_id, check_in_id)
            if check_in is not None:
                check_in.user_accepted = False
                check_in.user_override_reason = DECLINE_REASON

    return DecisionResult(
        proposal_id=proposal_id,
        status="DECLINED",
        workout_id=workout_id,
        workout_deleted=placeholder is not None,
    )


def pending_proposals_for_workout(
    s: Session,
    athlete_id: int,
    workout_id: int,
    limit: Optional[int] = None,
) -> list[PlanChangeProposal]:
    """Newest pending proposals for one of the athlete's workouts."""
    limit = limit or get_settings().pending_proposals_limit or PENDING_PROPOSALS_LIMIT
    return list(
        s.execute(
            select(PlanChangeProposal)
            .where(
                PlanChangeProposal.athlete_id == athlete_id,
                PlanChangeProposal.workout_id == workout_id,
                PlanChangeProposal.status == "PENDING",
            )
            .order_by(PlanChangeProposal.created_at.desc(), PlanChangeProposal.id.desc())
            .limit(limit)
        ).scalars().all()
    )


def get_plan_rigidity(s: Session, athlete_id: int) -> PlanRigiditySetting:
    default = normalize_rigidity(get_settings().default_plan_rigidity)
    athlete = s.get(Athlete, athlete_id)
    return normalize_rigidity(athlete.plan_rigidity if athlete else None, default)


def update_plan_rigidity(s: Session, athlete_id: int, setting: str) -> PlanRigiditySetting:
    if setting not in PLAN_RIGIDITY_SETTINGS:
        raise InvalidPayload(f"Unknown plan rigidity: {setting}")
    athlete = s.get(Athlete, athlete_id)
    if athlete is None:
        raise NotFound("Athlete not found")

    with atomic(s):
        athlete.plan_rigidity = setting
        record_audit(
            s,
            athlete_id,
            "SETTINGS_CHANGED",
            "SETTINGS",
            athlete_id,
            "Updated plan rigidity",
            {"plan_rigidity": setting},
        )
    log_event(logger, "settings.plan_rigidity.updated", athlete_id=athlete_id, plan_rigidity=setting)
    return normalize_rigidity(setting)
