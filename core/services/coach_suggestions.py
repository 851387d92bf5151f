"""Coach suggestions: lock-gated application and the stored-suggestion lifecycle.

A suggestion touching a day inside the athlete's lock window is not applied;
it becomes a COACH proposal carrying the payload, and the athlete decides.
"""

from __future__ import annotations

import datetime as dt
import json
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.db import atomic
from core.errors import InvalidPayload, NotFound, StateConflict
from core.logging_config import get_logger, log_event
from core.models import CoachSuggestion
from core.services.audit import record_audit
from core.services.plan_rigidity import is_locked, normalize_rigidity, to_local_noon
from core.services.proposals import create_proposal, get_plan_rigidity
from core.services.suggestion_apply import ApplyResult, apply_suggestion_payload, owned_workout
from core.validators import (
    AddRecoveryDayPayload,
    AdjustWorkoutPayload,
    AISuggestion,
    AISuggestionsEnvelope,
    MoveWorkoutPayload,
    RebalanceWeekPayload,
    SuggestionPayload,
    SwapWorkoutsPayload,
    dump_suggestion_payload,
    parse_suggestion_payload,
)

logger = get_logger(__name__)


def _workout_locked(s: Session, athlete_id: int, workout_id: int, rigidity: str, now: dt.datetime) -> bool:
    w = owned_workout(s, athlete_id, workout_id)
    return w is not None and is_locked(w.date, now, rigidity)


def affected_workout_locked(
    s: Session,
    athlete_id: int,
    payload: SuggestionPayload,
    rigidity: str,
    now: dt.datetime,
) -> bool:
    """True when any day the payload would touch is inside the lock window."""
    match payload:
        case AdjustWorkoutPayload():
            return _workout_locked(s, athlete_id, payload.workout_id, rigidity, now)
        case SwapWorkoutsPayload():
            if _workout_locked(s, athlete_id, payload.from_workout_id, rigidity, now):
                return True
            return is_locked(to_local_noon(payload.to_date), now, rigidity)
        case MoveWorkoutPayload():
            return is_locked(to_local_noon(payload.to_date), now, rigidity)
        case AddRecoveryDayPayload():
            return is_locked(to_local_noon(payload.date), now, rigidity)
        case RebalanceWeekPayload():
            return any(
                _workout_locked(s, athlete_id, c.workout_id, rigidity, now) for c in payload.changes or []
            )
    return False


def _target_workout_id(payload: SuggestionPayload) -> Optional[int]:
    if isinstance(payload, (AdjustWorkoutPayload, MoveWorkoutPayload)):
        return payload.workout_id
    if isinstance(payload, SwapWorkoutsPayload):
        return payload.from_workout_id
    return None


def apply_or_propose(
    s: Session,
    athlete_id: int,
    payload: Any,
    rigidity: Optional[str] = None,
    now: Optional[dt.datetime] = None,
    summary: str = "Coach suggestion",
) -> ApplyResult:
    """Apply a payload now, or queue it as a COACH proposal when it hits a locked day."""
    try:
        parsed = parse_suggestion_payload(payload)
    except InvalidPayload as exc:
        return ApplyResult(ok=False, error=exc.message)

    now = now or dt.datetime.now()
    setting = normalize_rigidity(rigidity) if rigidity else get_plan_rigidity(s, athlete_id)
    try:
        locked = setting != "FLEXIBLE_WEEK" and affected_workout_locked(s, athlete_id, parsed, setting, now)
    except InvalidPayload as exc:
        return ApplyResult(ok=False, error=exc.message)

    if locked:
        workout_id = _target_workout_id(parsed)
        if workout_id is not None and owned_workout(s, athlete_id, workout_id) is None:
            workout_id = None
        proposal = create_proposal(
            s,
            athlete_id,
            parsed,
            summary=summary,
            source_type="COACH",
            workout_id=workout_id,
        )
        log_event(logger, "coach_suggestion.gated", athlete_id=athlete_id, kind=parsed.kind, proposal_id=proposal.id, rigidity=setting)
        return ApplyResult(ok=True, proposal_created=True, proposal_id=proposal.id)

    return apply_suggestion_payload(s, athlete_id, parsed)


def _pending_suggestion(s: Session, athlete_id: int, suggestion_id: int) -> CoachSuggestion:
    suggestion = s.execute(
        select(CoachSuggestion).where(CoachSuggestion.id == suggestion_id, CoachSuggestion.athlete_id == athlete_id)
    ).scalar_one_or_none()
    if suggestion is None:
        raise NotFound("Suggestion not found")
    if suggestion.status != "PENDING":
        raise StateConflict("Suggestion already applied or dismissed")
    return suggestion


def apply_coach_suggestion(
    s: Session,
    athlete_id: int,
    suggestion_id: int,
    now: Optional[dt.datetime] = None,
) -> ApplyResult:
    """Apply (or gate) a stored suggestion and mark it APPLIED on success."""
    suggestion = _pending_suggestion(s, athlete_id, suggestion_id)
    result = apply_or_propose(
        s,
        athlete_id,
        suggestion.payload,
        now=now,
        summary=suggestion.title or suggestion.summary or "Coach suggestion",
    )
    if not result.ok:
        return result

    with atomic(s):
        suggestion.status = "APPLIED"
        suggestion.applied_at = now or dt.datetime.utcnow()
        record_audit(
            s,
            athlete_id,
            "COACH_SUGGESTION_APPLIED",
            "SUGGESTION",
            suggestion.id,
            "Applied coach suggestion",
            {"proposal_created": result.proposal_created, "proposal_id": result.proposal_id},
        )
    return result


def dismiss_coach_suggestion(
    s: Session,
    athlete_id: int,
    suggestion_id: int,
    now: Optional[dt.datetime] = None,
) -> CoachSuggestion:
    suggestion = _pending_suggestion(s, athlete_id, suggestion_id)
    with atomic(s):
        suggestion.status = "DISMISSED"
        suggestion.dismissed_at = now or dt.datetime.utcnow()
        record_audit(s, athlete_id, "COACH_SUGGESTION_DISMISSED", "SUGGESTION", suggestion.id, "Dismissed coach suggestion")
    return suggestion


def parse_ai_suggestions(raw: Any) -> list[AISuggestion]:
    """Validate an LLM response envelope; anything malformed yields no suggestions."""
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return AISuggestionsEnvelope.model_validate(data).suggestions
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.warning("ai_suggestions_invalid error=%s", exc)
        return []


def save_suggestions(s: Session, athlete_id: int, suggestions: list[AISuggestion]) -> list[CoachSuggestion]:
    """Persist validated suggestions as PENDING rows."""
    rows = [
        CoachSuggestion(
            athlete_id=athlete_id,
            scope=item.scope,
            type=item.type,
            title=item.title,
            summary=item.summary,
            why=item.why,
            payload=json.dumps(dump_suggestion_payload(item.payload)),
            status="PENDING",
        )
        for item in suggestions
    ]
    with atomic(s):
        s.add_all(rows)
    return rows
