"""Tests for audit rows and analytics events."""

from __future__ import annotations

import json
import logging

from sqlalchemy import select

from core.models import AuditLog
from core.services.audit import record_audit, track, track_after_commit


def test_record_audit_is_staged_in_session(session, athlete):
    row = record_audit(session, 1, "PLAN_CHANGE_PROPOSED", "PLAN", 12, "Proposed a plan change", {"workout_id": None})
    assert row in session.new
    session.commit()

    stored = session.execute(select(AuditLog)).scalar_one()
    assert stored.target_id == "12"
    assert stored.actor_id == 1
    assert json.loads(stored.details_json) == {"workout_id": None}


def test_record_audit_with_actor(session, athlete):
    row = record_audit(session, 1, "SETTINGS_CHANGED", "SETTINGS", 1, "Updated plan rigidity", actor_id=99)
    session.commit()
    assert row.actor_id == 99
    assert row.details_json == "{}"


def test_track_logs_analytics_event(caplog):
    with caplog.at_level(logging.INFO, logger="core.services.audit"):
        track("plan_proposal_accepted", 3, source="plan_proposal", proposal_id=8)

    record = caplog.records[-1]
    assert record.getMessage() == "analytics_event"
    assert record.ctx_event_name == "plan_proposal_accepted"
    assert record.ctx_properties == {"proposal_id": 8}


def test_track_after_commit_waits_for_commit(session, athlete, caplog):
    with caplog.at_level(logging.INFO, logger="core.services.audit"):
        track_after_commit(session, "plan_proposal_declined", 1, source="plan_proposal", proposal_id=4)
        session.execute(select(AuditLog)).all()
        session.rollback()
        session.commit()
        assert not [r for r in caplog.records if r.getMessage() == "analytics_event"]

        track_after_commit(session, "plan_proposal_declined", 1, source="plan_proposal", proposal_id=5)
        session.commit()

    events = [r for r in caplog.records if r.getMessage() == "analytics_event"]
    assert [e.ctx_properties for e in events] == [{"proposal_id": 5}]
