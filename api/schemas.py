from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.validators import BaselineMetricsInput, ScenarioParamsInput


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- simulator -------------------------------------------------------------------

class SimulationRunRequest(BaseModel):
    scenario: ScenarioParamsInput = Field(default_factory=ScenarioParamsInput)
    duration_weeks: int = Field(default=8, ge=2, le=12)
    baseline: Optional[BaselineMetricsInput] = None
    today: Optional[dt_date] = None


class NamedScenario(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    scenario: ScenarioParamsInput
    duration_weeks: int = Field(default=8, ge=2, le=12)


class SimulationCompareRequest(BaseModel):
    scenarios: list[NamedScenario] = Field(default_factory=list, max_length=6)
    preset_keys: list[str] = Field(default_factory=list, max_length=6)
    duration_weeks: int = Field(default=8, ge=2, le=12)
    baseline: Optional[BaselineMetricsInput] = None
    today: Optional[dt_date] = None

    @model_validator(mode="after")
    def _needs_something_to_compare(self):
        if not self.scenarios and not self.preset_keys:
            raise ValueError("provide scenarios or preset_keys")
        return self


class BaselineOut(_FromAttributes):
    ctl: float
    atl: float
    tsb: float
    avg_weekly_tss: float
    avg_readiness: float
    avg_burnout_risk: float
    identity_mode: str


class WeeklySimulationOut(_FromAttributes):
    week_index: int
    simulated_ctl: float
    simulated_atl: float
    simulated_tsb: float
    simulated_readiness_avg: float
    simulated_burnout_risk: float
    weekly_tss: float
    insights: list[str]
    warnings: list[str]


class SimulationSummaryOut(_FromAttributes):
    final_ctl: float
    final_atl: float
    final_tsb: float
    ctl_change: float
    peak_burnout_risk: float
    total_warnings: int
    recommendation: str
    risk_level: str


class SimulationRunResponse(BaseModel):
    description: str
    baseline: BaselineOut
    weeks: list[WeeklySimulationOut]
    summary: SimulationSummaryOut


class ScenarioComparisonOut(_FromAttributes):
    name: str
    final_ctl: float
    ctl_change: float
    peak_burnout_risk: float
    total_warnings: int
    risk_level: str
    recommendation: str


class SimulationCompareResponse(BaseModel):
    baseline: BaselineOut
    results: list[ScenarioComparisonOut]


class PresetOut(BaseModel):
    key: str
    name: str
    description: str
    params: ScenarioParamsInput


# --- plans -------------------------------------------------------------------------

class WeeklyPlanRequest(BaseModel):
    today: Optional[dt_date] = None
    persist: bool = False


class PlannedWorkoutOut(_FromAttributes):
    title: str
    type: str
    date: dt_datetime
    duration_min: int
    intensity: str
    ai_reason: str
    ai_confidence: float
    estimated_tss: float


class WeeklyPlanResponse(BaseModel):
    start_date: dt_date
    end_date: dt_date
    workouts: list[PlannedWorkoutOut]
    summary_md: str
    constraints: dict[str, Any]
    warnings: list[str]
    saved_workout_ids: list[int] = Field(default_factory=list)


# --- governance ----------------------------------------------------------------------

class PlanRigidityOut(BaseModel):
    plan_rigidity: str
    lock_days: int


class ProposalOut(_FromAttributes):
    id: int
    workout_id: Optional[int] = None
    check_in_id: Optional[int] = None
    source_type: str
    summary: str
    confidence: Optional[float] = None
    status: str
    created_at: dt_datetime
    decided_at: Optional[dt_datetime] = None


class DecisionOut(_FromAttributes):
    proposal_id: int
    status: str
    workout_id: Optional[int] = None
    applied: bool
    workout_deleted: bool


class ApplyResultOut(_FromAttributes):
    ok: bool
    error: Optional[str] = None
    proposal_created: bool = False
    proposal_id: Optional[int] = None


class CoachSuggestionOut(_FromAttributes):
    id: int
    scope: str
    type: str
    title: str
    summary: str
    status: str
    applied_at: Optional[dt_datetime] = None
    dismissed_at: Optional[dt_datetime] = None


class HealthOut(BaseModel):
    status: str
    env: str
