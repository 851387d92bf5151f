from __future__ import annotations

from datetime import date, datetime, timedelta
import json
import sys

from fastapi.testclient import TestClient


def _reset_runtime_caches():
    from core.config import get_settings
    from core.db import get_engine, get_session_factory

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


def _purge_api_modules() -> None:
    for name in [
        "api.main",
        "api.routes",
        "api.ratelimit",
    ]:
        sys.modules.pop(name, None)


def _seed():
    from core.db import session_scope
    from core.models import Athlete, CoachSuggestion, Workout

    soon = datetime.combine(date.today() + timedelta(days=1), datetime.min.time()).replace(hour=12)
    later = soon + timedelta(days=5)
    with session_scope() as s:
        s.add(Athlete(id=1, email="demo.runner@example.com", display_name="Demo Runner"))
        s.add(Athlete(id=2, email="other.runner@example.com", display_name="Other Runner"))
        s.flush()
        s.add(Workout(id=10, athlete_id=1, title="Tempo Run", type="run", date=soon, duration_min=45))
        s.add(Workout(id=11, athlete_id=1, title="Long Run", type="run", date=later, duration_min=90))
        s.add(Workout(id=20, athlete_id=2, title="Other Run", type="run", date=later, duration_min=30))
        s.add(
            CoachSuggestion(
                id=5,
                athlete_id=1,
                scope="week",
                type="ADJUST_INTENSITY",
                title="Ease the long run",
                summary="Drop intensity",
                why="High fatigue",
                payload=json.dumps({"kind": "adjustWorkout", "workoutId": 11, "intensityDeltaPct": -10}),
            )
        )


def _build_client(tmp_path, monkeypatch) -> TestClient:
    db_path = tmp_path / "api_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-secret")
    _reset_runtime_caches()
    _purge_api_modules()

    from core.db import get_engine
    from core.models import Base

    Base.metadata.create_all(get_engine())
    _seed()

    from api.main import create_app

    return TestClient(create_app())


def _auth(athlete_id: int | None = 1) -> dict[str, str]:
    from api.auth import issue_access_token

    token = issue_access_token(user_id=athlete_id or 99, role="athlete", athlete_id=athlete_id)
    return {"Authorization": f"Bearer {token}"}


BASELINE = {
    "ctl": 50,
    "atl": 40,
    "tsb": 10,
    "avg_weekly_tss": 350,
    "avg_readiness": 65,
    "avg_burnout_risk": 20,
}


def test_health_and_request_id(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "env": "test"}
    assert res.headers["X-Request-ID"] == "req-123"


def test_auth_is_required(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post("/api/v1/simulator/run", json={})
    assert res.status_code == 401
    assert res.json()["detail"]["code"] == "AUTH_REQUIRED"

    res = client.post("/api/v1/simulator/run", json={}, headers={"Authorization": "Bearer nope"})
    assert res.status_code == 401

    res = client.get("/api/v1/settings/plan-rigidity", headers=_auth(None))
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "FORBIDDEN_ATHLETE_SCOPE"


def test_simulator_run(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.post(
        "/api/v1/simulator/run",
        json={"scenario": {"volume_change_pct": 10}, "duration_weeks": 4, "baseline": BASELINE},
        headers=_auth(),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["description"].startswith("Volume: +10%")
    assert [w["week_index"] for w in body["weeks"]] == [1, 2, 3, 4]
    assert body["summary"]["risk_level"] in {"LOW", "MODERATE", "HIGH"}
    assert body["baseline"]["ctl"] == 50


def test_simulator_run_uses_stored_history(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.post("/api/v1/simulator/run", json={"duration_weeks": 2}, headers=_auth())
    assert res.status_code == 200
    assert res.json()["baseline"]["avg_weekly_tss"] == 250


def test_simulator_rejects_bad_input(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post("/api/v1/simulator/run", json={"duration_weeks": 1}, headers=_auth())
    assert res.status_code == 422

    res = client.post("/api/v1/simulator/run", json={"scenario": {"volume_change_pct": 80}}, headers=_auth())
    assert res.status_code == 422


def test_simulator_compare(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.post(
        "/api/v1/simulator/compare",
        json={
            "baseline": BASELINE,
            "scenarios": [{"name": "custom", "scenario": {"volume_change_pct": 5}, "duration_weeks": 6}],
            "preset_keys": ["aggressive_build", "longevity_first"],
        },
        headers=_auth(),
    )
    assert res.status_code == 200
    assert [r["name"] for r in res.json()["results"]] == ["custom", "aggressive_build", "longevity_first"]


def test_simulator_compare_unknown_preset(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.post("/api/v1/simulator/compare", json={"preset_keys": ["yolo"], "baseline": BASELINE}, headers=_auth())
    assert res.status_code == 422
    assert res.json()["detail"] == {"code": "INVALID_SCENARIO", "message": "Unknown scenario preset: yolo"}

    res = client.post("/api/v1/simulator/compare", json={"baseline": BASELINE}, headers=_auth())
    assert res.status_code == 422


def test_presets(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.get("/api/v1/simulator/presets")
    assert res.status_code == 200
    presets = {p["key"]: p for p in res.json()}
    assert set(presets) == {"aggressive_build", "balanced_progress", "longevity_first", "comeback_safe"}
    assert presets["comeback_safe"]["params"]["identity_mode_override"] == "comeback"


def test_weekly_plan_persist(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.post("/api/v1/plans/weekly", json={"today": "2026-02-08", "persist": True}, headers=_auth())
    assert res.status_code == 200
    body = res.json()
    assert body["start_date"] == "2026-02-09"
    assert len(body["workouts"]) == 6
    assert len(body["saved_workout_ids"]) == 6
    assert body["summary_md"].startswith("## 7-Day Training Plan")


def test_plan_rigidity_settings(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.get("/api/v1/settings/plan-rigidity", headers=_auth())
    assert res.json() == {"plan_rigidity": "LOCKED_1_DAY", "lock_days": 1}

    res = client.put("/api/v1/settings/plan-rigidity", json={"plan_rigidity": "LOCKED_3_DAYS"}, headers=_auth())
    assert res.status_code == 200
    assert res.json() == {"plan_rigidity": "LOCKED_3_DAYS", "lock_days": 3}

    res = client.put("/api/v1/settings/plan-rigidity", json={"plan_rigidity": "SOMETIMES"}, headers=_auth())
    assert res.status_code == 422


def test_proposal_lifecycle(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post(
        "/api/v1/proposals",
        json={"summary": "Shorten tempo", "patch": {"workout": {"id": 10, "update": {"durationMin": 30}}}},
        headers=_auth(),
    )
    assert res.status_code == 201
    proposal = res.json()
    assert proposal["status"] == "PENDING"
    assert proposal["workout_id"] == 10

    res = client.get("/api/v1/workouts/10/proposals", headers=_auth())
    assert [p["id"] for p in res.json()] == [proposal["id"]]

    res = client.post(f"/api/v1/proposals/{proposal['id']}/decision", json={"decision": "ACCEPT"}, headers=_auth())
    assert res.status_code == 200
    assert res.json()["status"] == "ACCEPTED"
    assert res.json()["applied"] is True

    res = client.post(f"/api/v1/proposals/{proposal['id']}/decision", json={"decision": "DECLINE"}, headers=_auth())
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "STATE_CONFLICT"

    assert client.get("/api/v1/workouts/10/proposals", headers=_auth()).json() == []


def test_proposal_scoping(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post(
        "/api/v1/proposals",
        json={"summary": "Steal", "patch": {"workout": {"id": 20, "update": {"title": "Mine"}}}},
        headers=_auth(),
    )
    assert res.status_code == 404

    res = client.post(
        "/api/v1/proposals",
        json={"summary": "Mine", "patch": {"workout": {"id": 10, "update": {"title": "Changed"}}}},
        headers=_auth(),
    )
    proposal_id = res.json()["id"]

    res = client.post(f"/api/v1/proposals/{proposal_id}/decision", json={"decision": "ACCEPT"}, headers=_auth(2))
    assert res.status_code == 404
    assert res.json()["detail"]["code"] == "NOT_FOUND"


def test_apply_suggestion_gated_and_direct(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post(
        "/api/v1/suggestions/apply",
        json={"kind": "adjustWorkout", "workoutId": 10, "intensityDeltaPct": -10},
        headers=_auth(),
    )
    assert res.status_code == 200
    assert res.json()["proposal_created"] is True

    res = client.post(
        "/api/v1/suggestions/apply",
        json={"kind": "adjustWorkout", "workoutId": 11, "intensityDeltaPct": -10},
        headers=_auth(),
    )
    assert res.json() == {"ok": True, "error": None, "proposal_created": False, "proposal_id": None}


def test_apply_suggestion_errors(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post("/api/v1/suggestions/apply", json={"kind": "teleport"}, headers=_auth())
    assert res.status_code == 422
    assert res.json()["detail"]["message"] == "Unknown payload kind: teleport"

    res = client.post(
        "/api/v1/suggestions/apply",
        json={"kind": "adjustWorkout", "workoutId": 20, "intensityDeltaPct": 5},
        headers=_auth(),
    )
    assert res.status_code == 404


def test_coach_suggestion_endpoints(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)

    res = client.post("/api/v1/coach-suggestions/5/apply", headers=_auth())
    assert res.status_code == 200
    assert res.json()["ok"] is True

    res = client.post("/api/v1/coach-suggestions/5/dismiss", headers=_auth())
    assert res.status_code == 409

    res = client.post("/api/v1/coach-suggestions/99/apply", headers=_auth())
    assert res.status_code == 404


def test_apply_rebalance_with_negative_duration_is_rejected(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    res = client.post(
        "/api/v1/suggestions/apply",
        json={"kind": "rebalanceWeek", "changes": [{"workoutId": 11, "patch": {"durationMin": -10}}]},
        headers=_auth(),
    )
    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "INVALID_PAYLOAD"
    assert "durationMin must be non-negative" in res.json()["detail"]["message"]


def test_ingest_ai_suggestions(tmp_path, monkeypatch):
    client = _build_client(tmp_path, monkeypatch)
    envelope = {
        "suggestions": [
            {
                "scope": "week",
                "type": "MOVE_SESSION",
                "title": "Move the long run",
                "summary": "Shift to Sunday",
                "why": "Travel on Saturday",
                "payload": {"kind": "moveWorkout", "workoutId": 11, "toDate": "2026-03-01"},
            }
        ]
    }

    res = client.post("/api/v1/coach-suggestions", json=envelope, headers=_auth())
    assert res.status_code == 201
    [saved] = res.json()
    assert (saved["title"], saved["status"]) == ("Move the long run", "PENDING")

    res = client.post(f"/api/v1/coach-suggestions/{saved['id']}/apply", headers=_auth())
    assert res.status_code == 200

    res = client.post("/api/v1/coach-suggestions", json={"suggestions": [{"title": "??"}]}, headers=_auth())
    assert res.status_code == 201
    assert res.json() == []
