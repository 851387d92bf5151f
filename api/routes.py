import dataclasses
import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from api.auth import current_athlete_id
from api.deps import get_db
from api.ratelimit import limiter
from api.schemas import (
    ApplyResultOut,
    BaselineOut,
    CoachSuggestionOut,
    DecisionOut,
    HealthOut,
    PlannedWorkoutOut,
    PlanRigidityOut,
    PresetOut,
    ProposalOut,
    ScenarioComparisonOut,
    SimulationCompareRequest,
    SimulationCompareResponse,
    SimulationRunRequest,
    SimulationRunResponse,
    SimulationSummaryOut,
    WeeklyPlanRequest,
    WeeklyPlanResponse,
    WeeklySimulationOut,
)
from core.config import get_settings
from core.errors import InvalidScenario
from core.services.athlete_context import build_athlete_context, build_baseline_metrics, save_generated_plan
from core.services.coach_suggestions import (
    apply_coach_suggestion,
    apply_or_propose,
    dismiss_coach_suggestion,
    parse_ai_suggestions,
    save_suggestions,
)
from core.services.plan_rigidity import lock_days
from core.services.planning import generate_weekly_plan
from core.services.proposals import (
    create_proposal,
    decide_proposal,
    get_plan_rigidity,
    pending_proposals_for_workout,
    update_plan_rigidity,
)
from core.services.simulation import (
    SCENARIO_PRESETS,
    BaselineMetrics,
    ScenarioRequest,
    compare_presets,
    compare_scenarios,
    format_scenario_params,
    simulate,
)
from core.services.suggestion_apply import ApplyResult
from core.validators import (
    PlanRigidityInput,
    ProposalCreateInput,
    ProposalDecisionInput,
    ScenarioParamsInput,
)

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/api/v1")


def _check_duration(weeks: int) -> None:
    if not settings.simulation_min_weeks <= weeks <= settings.simulation_max_weeks:
        raise InvalidScenario(
            f"duration_weeks must be between {settings.simulation_min_weeks} and {settings.simulation_max_weeks}"
        )


def _baseline(s: Session, athlete_id: int, body_baseline, today: date | None) -> BaselineMetrics:
    if body_baseline is not None:
        return body_baseline.to_baseline()
    return build_baseline_metrics(s, athlete_id, today or date.today())


def _apply_response(result: ApplyResult) -> ApplyResultOut:
    if not result.ok:
        not_found = (result.error or "").endswith("not found")
        raise HTTPException(
            status_code=404 if not_found else 422,
            detail={"code": "NOT_FOUND" if not_found else "INVALID_PAYLOAD", "message": result.error},
        )
    return ApplyResultOut.model_validate(result)


@router.get("/health", response_model=HealthOut, tags=["system"])
def health():
    return HealthOut(status="ok", env=settings.app_env)


@router.get("/simulator/presets", response_model=list[PresetOut], tags=["simulator"])
def list_presets():
    return [
        PresetOut(
            key=key,
            name=preset.name,
            description=preset.description,
            params=ScenarioParamsInput.model_validate(dataclasses.asdict(preset.params)),
        )
        for key, preset in SCENARIO_PRESETS.items()
    ]


@router.post("/simulator/run", response_model=SimulationRunResponse, tags=["simulator"])
@limiter.limit(settings.simulator_rate_limit)
def run_simulation(
    request: Request,
    response: Response,
    body: SimulationRunRequest,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    del request, response
    _check_duration(body.duration_weeks)
    baseline = _baseline(db, athlete_id, body.baseline, body.today)
    params = body.scenario.to_params()
    output = simulate(baseline, params, body.duration_weeks, max_weeks=settings.simulation_max_weeks)
    logger.info(
        "simulation_run",
        extra={"ctx_athlete_id": athlete_id, "ctx_weeks": body.duration_weeks, "ctx_risk_level": output.summary.risk_level},
    )
    return SimulationRunResponse(
        description=format_scenario_params(params),
        baseline=BaselineOut.model_validate(baseline),
        weeks=[WeeklySimulationOut.model_validate(w) for w in output.weeks],
        summary=SimulationSummaryOut.model_validate(output.summary),
    )


@router.post("/simulator/compare", response_model=SimulationCompareResponse, tags=["simulator"])
@limiter.limit(settings.simulator_rate_limit)
def compare_simulations(
    request: Request,
    response: Response,
    body: SimulationCompareRequest,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    del request, response
    _check_duration(body.duration_weeks)
    for item in body.scenarios:
        _check_duration(item.duration_weeks)
    baseline = _baseline(db, athlete_id, body.baseline, body.today)

    results = compare_scenarios(
        baseline,
        [ScenarioRequest(name=i.name, params=i.scenario.to_params(), duration_weeks=i.duration_weeks) for i in body.scenarios],
    )
    if body.preset_keys:
        results += compare_presets(baseline, body.preset_keys, body.duration_weeks)
    return SimulationCompareResponse(
        baseline=BaselineOut.model_validate(baseline),
        results=[ScenarioComparisonOut.model_validate(r) for r in results],
    )


@router.post("/plans/weekly", response_model=WeeklyPlanResponse, tags=["plans"])
def weekly_plan(
    body: WeeklyPlanRequest,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    context = build_athlete_context(db, athlete_id, body.today or date.today())
    result = generate_weekly_plan(context)
    saved_ids: list[int] = []
    if body.persist:
        saved_ids = [w.id for w in save_generated_plan(db, athlete_id, result)]
    logger.info(
        "weekly_plan_generated",
        extra={"ctx_athlete_id": athlete_id, "ctx_workouts": len(result.workouts), "ctx_persisted": body.persist},
    )
    return WeeklyPlanResponse(
        start_date=result.start_date,
        end_date=result.end_date,
        workouts=[PlannedWorkoutOut.model_validate(w) for w in result.workouts],
        summary_md=result.summary_md,
        constraints=result.constraints,
        warnings=result.warnings,
        saved_workout_ids=saved_ids,
    )


@router.get("/settings/plan-rigidity", response_model=PlanRigidityOut, tags=["settings"])
def read_plan_rigidity(athlete_id: int = Depends(current_athlete_id), db: Session = Depends(get_db)):
    setting = get_plan_rigidity(db, athlete_id)
    return PlanRigidityOut(plan_rigidity=setting, lock_days=lock_days(setting))


@router.put("/settings/plan-rigidity", response_model=PlanRigidityOut, tags=["settings"])
def write_plan_rigidity(
    body: PlanRigidityInput,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    setting = update_plan_rigidity(db, athlete_id, body.plan_rigidity)
    return PlanRigidityOut(plan_rigidity=setting, lock_days=lock_days(setting))


@router.post("/proposals", response_model=ProposalOut, status_code=201, tags=["proposals"])
def submit_proposal(
    body: ProposalCreateInput,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    proposal = create_proposal(
        db,
        athlete_id,
        body.patch,
        summary=body.summary,
        source_type=body.source_type,
        workout_id=body.workout_id,
        check_in_id=body.check_in_id,
        confidence=body.confidence,
    )
    return ProposalOut.model_validate(proposal)


@router.get("/workouts/{workout_id}/proposals", response_model=list[ProposalOut], tags=["proposals"])
def list_pending_proposals(
    workout_id: int,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    return [ProposalOut.model_validate(p) for p in pending_proposals_for_workout(db, athlete_id, workout_id)]


@router.post("/proposals/{proposal_id}/decision", response_model=DecisionOut, tags=["proposals"])
@limiter.limit(settings.apply_rate_limit)
def decide(
    request: Request,
    response: Response,
    proposal_id: int,
    body: ProposalDecisionInput,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    del request, response
    result = decide_proposal(db, athlete_id, proposal_id, body.decision)
    return DecisionOut.model_validate(result)


@router.post("/suggestions/apply", response_model=ApplyResultOut, tags=["suggestions"])
@limiter.limit(settings.apply_rate_limit)
def apply_suggestion(
    request: Request,
    response: Response,
    payload: dict[str, Any] = Body(...),
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    del request, response
    return _apply_response(apply_or_propose(db, athlete_id, payload))


@router.post("/coach-suggestions", response_model=list[CoachSuggestionOut], status_code=201, tags=["suggestions"])
@limiter.limit(settings.apply_rate_limit)
def ingest_suggestions(
    request: Request,
    response: Response,
    raw: Any = Body(...),
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    del request, response
    rows = save_suggestions(db, athlete_id, parse_ai_suggestions(raw))
    return [CoachSuggestionOut.model_validate(r) for r in rows]


@router.post("/coach-suggestions/{suggestion_id}/apply", response_model=ApplyResultOut, tags=["suggestions"])
@limiter.limit(settings.apply_rate_limit)
def apply_stored_suggestion(
    request: Request,
    response: Response,
    suggestion_id: int,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    del request, response
    return _apply_response(apply_coach_suggestion(db, athlete_id, suggestion_id))


@router.post("/coach-suggestions/{suggestion_id}/dismiss", response_model=CoachSuggestionOut, tags=["suggestions"])
def dismiss_stored_suggestion(
    suggestion_id: int,
    athlete_id: int = Depends(current_athlete_id),
    db: Session = Depends(get_db),
):
    return CoachSuggestionOut.model_validate(dismiss_coach_suggestion(db, athlete_id, suggestion_id))
