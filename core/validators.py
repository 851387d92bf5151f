"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

import json
import datetime as dt
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from core.errors import InvalidPayload
from core.services.guardrails import ComplianceAssumption, IdentityMode, IntensityBias, RecoveryFocus
from core.services.simulation import BaselineMetrics, ScenarioParams


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Simulator inputs ---------------------------------------------------------

class ScenarioParamsInput(BaseModel):
    volume_change_pct: int = Field(default=0, ge=-50, le=50)
    intensity_bias: IntensityBias = "BALANCED"
    recovery_focus: RecoveryFocus = "NORMAL"
    compliance_assumption: ComplianceAssumption = "REALISTIC"
    identity_mode_override: Optional[IdentityMode] = None

    def to_params(self) -> ScenarioParams:
        return ScenarioParams(**self.model_dump())


class BaselineMetricsInput(BaseModel):
    ctl: float = Field(default=0, ge=0)
    atl: float = Field(default=0, ge=0)
    tsb: float = 0
    avg_weekly_tss: float = Field(default=0, ge=0)
    avg_readiness: float = Field(default=65, ge=0, le=100)
    avg_burnout_risk: float = Field(default=20, ge=0, le=100)
    identity_mode: IdentityMode = "competitive"

    def to_baseline(self) -> BaselineMetrics:
        return BaselineMetrics(**self.model_dump())


# --- Coach suggestion payloads --------------------------------------------------

class ReplacementWorkoutTemplate(_CamelModel):
    type: str
    duration_min: float
    title: Optional[str] = None


class AdjustWorkoutPayload(_CamelModel):
    kind: Literal["adjustWorkout"]
    workout_id: int
    intensity_delta_pct: float
    volume_delta_pct: Optional[float] = None
    notes: Optional[str] = None


class SwapWorkoutsPayload(_CamelModel):
    kind: Literal["swapWorkouts"]
    from_workout_id: int
    to_date: str
    replacement_workout_template: Optional[ReplacementWorkoutTemplate] = None


class MoveWorkoutPayload(_CamelModel):
    kind: Literal["moveWorkout"]
    workout_id: int
    to_date: str


class AddRecoveryDayPayload(_CamelModel):
    kind: Literal["addRecoveryDay"]
    date: str
    replacement: Literal["rest", "walk", "easy_spin"]
    duration_min: Optional[int] = Field(default=None, ge=0)


class WorkoutChange(_CamelModel):
    workout_id: int
    patch: dict[str, Any] = Field(default_factory=dict)

    @field_validator("patch")
    @classmethod
    def validate_patch(cls, v: dict[str, Any]) -> dict[str, Any]:
        for key in ("durationMin", "tss"):
            value = v.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
                raise ValueError(f"{key} must be non-negative")
        return v


class RebalanceWeekPayload(_CamelModel):
    kind: Literal["rebalanceWeek"]
    rules: Optional[list[str]] = None
    changes: Optional[list[WorkoutChange]] = None


SuggestionPayload = Annotated[
    Union[
        AdjustWorkoutPayload,
        SwapWorkoutsPayload,
        MoveWorkoutPayload,
        AddRecoveryDayPayload,
        RebalanceWeekPayload,
    ],
    Field(discriminator="kind"),
]
SUGGESTION_KINDS = ("adjustWorkout", "swapWorkouts", "moveWorkout", "addRecoveryDay", "rebalanceWeek")
_PAYLOAD_TYPES = (AdjustWorkoutPayload, SwapWorkoutsPayload, MoveWorkoutPayload, AddRecoveryDayPayload, RebalanceWeekPayload)

_suggestion_adapter: TypeAdapter[Any] = TypeAdapter(SuggestionPayload)


def parse_suggestion_payload(raw: Any) -> SuggestionPayload:
    """Validate a raw dict (or JSON string) into one of the payload variants."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidPayload("Invalid payload") from exc
    if not isinstance(raw, dict) or not isinstance(raw.get("kind"), str):
        raise InvalidPayload("Invalid payload")
    if raw["kind"] not in SUGGESTION_KINDS:
        raise InvalidPayload(f"Unknown payload kind: {raw['kind']}")
    try:
        return _suggestion_adapter.validate_python(raw)
    except ValidationError as exc:
        raise InvalidPayload(f"Invalid payload: {_first_error(exc)}") from exc


def dump_suggestion_payload(payload: SuggestionPayload) -> dict[str, Any]:
    return payload.model_dump(by_alias=True, exclude_none=True)


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


# --- Proposal patches -----------------------------------------------------------

class WorkoutUpdate(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[str] = Field(default=None, min_length=1, max_length=30)
    date: Optional[Union[dt.datetime, dt.date, str]] = None
    planned: Optional[bool] = None
    completed: Optional[bool] = None
    duration_min: Optional[int] = Field(default=None, ge=0)
    tss: Optional[float] = Field(default=None, ge=0)
    description_md: Optional[str] = None
    prescription_json: Optional[str] = None
    ai_generated: Optional[bool] = None
    ai_reason: Optional[str] = None
    ai_confidence: Optional[float] = Field(default=None, ge=0, le=100)
    source: Optional[str] = Field(default=None, max_length=40)


class WorkoutPatchTarget(BaseModel):
    id: int
    update: WorkoutUpdate


class WorkoutPatch(BaseModel):
    workout: WorkoutPatchTarget


ProposalPatch = Union[WorkoutPatch, SuggestionPayload]


def parse_proposal_patch(raw: Any) -> ProposalPatch:
    """Read a stored patch: a workout patch, or a coach suggestion payload."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidPayload("Invalid proposal patch") from exc
    if isinstance(raw, (WorkoutPatch, *_PAYLOAD_TYPES)):
        return raw
    if not isinstance(raw, dict):
        raise InvalidPayload("Invalid proposal patch")
    if "kind" in raw:
        return parse_suggestion_payload(raw)
    try:
        return WorkoutPatch.model_validate(raw)
    except ValidationError as exc:
        raise InvalidPayload(f"Invalid proposal patch: {_first_error(exc)}") from exc


def dump_proposal_patch(patch: ProposalPatch) -> str:
    if isinstance(patch, WorkoutPatch):
        return json.dumps(patch.model_dump(mode="json", by_alias=True, exclude_none=True))
    return json.dumps(dump_suggestion_payload(patch))


class ProposalCreateInput(BaseModel):
    summary: str = Field(min_length=1, max_length=500)
    source_type: Literal["DAILY_CHECKIN", "COACH", "RULE"] = "RULE"
    workout_id: Optional[int] = Field(default=None, gt=0)
    check_in_id: Optional[int] = Field(default=None, gt=0)
    confidence: Optional[float] = Field(default=None, ge=0, le=100)
    patch: dict[str, Any]


class ProposalDecisionInput(BaseModel):
    decision: Literal["ACCEPT", "DECLINE"]


class PlanRigidityInput(BaseModel):
    plan_rigidity: Literal["LOCKED_TODAY", "LOCKED_1_DAY", "LOCKED_2_DAYS", "LOCKED_3_DAYS", "FLEXIBLE_WEEK"]


# --- AI coach output ------------------------------------------------------------

SuggestionScope = Literal["today", "week", "season"]
SuggestionType = Literal[
    "ADJUST_INTENSITY",
    "SWAP_SESSION",
    "ADD_RECOVERY",
    "REBALANCE_WEEK",
    "REDUCE_VOLUME",
    "MOVE_SESSION",
    "ADD_EASY_SESSION",
]


class AISuggestion(BaseModel):
    scope: SuggestionScope
    type: SuggestionType
    title: str = Field(min_length=1, max_length=200)
    summary: str = Field(min_length=1, max_length=300)
    why: str = Field(min_length=1, max_length=1000)
    payload: SuggestionPayload


class AISuggestionsEnvelope(BaseModel):
    suggestions: list[AISuggestion] = Field(max_length=5)

