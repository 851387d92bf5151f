from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from core.logging_config import get_logger, log_event
from core.models import AuditLog

logger = get_logger(__name__)


def record_audit(
    s: Session,
    athlete_id: int,
    action_type: str,
    target_type: str,
    target_id: Any,
    summary: str,
    details: Optional[dict[str, Any]] = None,
    actor_id: Optional[int] = None,
) -> AuditLog:
    """Stage an audit row in the caller's unit of work."""
    row = AuditLog(
        athlete_id=athlete_id,
        actor_id=actor_id if actor_id is not None else athlete_id,
        action_type=action_type,
        target_type=target_type,
        target_id=str(target_id),
        summary=summary,
        details_json=json.dumps(details or {}, default=str),
    )
    s.add(row)
    return row


def track(name: str, athlete_id: int, source: str = "", **properties: Any) -> None:
    """Emit an analytics event. Fire-and-forget: delivery failures are logged, never raised."""
    try:
        log_event(logger, "analytics_event", event_name=name, athlete_id=athlete_id, source=source, properties=properties)
    except Exception as exc:
        logger.warning("analytics_event_dropped name=%s error=%s", name, exc)


_PENDING_EVENTS = "pending_analytics_events"


def track_after_commit(s: Session, name: str, athlete_id: int, source: str = "", **properties: Any) -> None:
    """Queue an analytics event on ``s``; it is emitted once the session commits."""
    s.info.setdefault(_PENDING_EVENTS, []).append((name, athlete_id, source, properties))


@event.listens_for(Session, "after_commit")
def _emit_pending_events(s: Session) -> None:
    for name, athlete_id, source, properties in s.info.pop(_PENDING_EVENTS, []):
        track(name, athlete_id, source, **properties)


@event.listens_for(Session, "after_soft_rollback")
def _drop_pending_events(s: Session, previous_transaction) -> None:
    s.info.pop(_PENDING_EVENTS, None)
