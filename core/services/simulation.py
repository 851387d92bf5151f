"""Deterministic what-if simulation of multi-week training scenarios.

Projects CTL/ATL/TSB, readiness and burnout risk week by week. Nothing is
persisted: the caller gets a trajectory and a qualitative recommendation.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Literal, Mapping, Optional, Sequence

from core.errors import InvalidScenario
from core.services.guardrails import (
    DEFAULT_GUARDRAIL_CONFIG,
    ComplianceAssumption,
    GuardrailConfig,
    IdentityMode,
    IntensityBias,
    RecoveryFocus,
    ScenarioFlags,
    burnout_risk,
    check_burnout,
    check_ramp,
    check_tsb_floor,
    readiness_estimate,
)
from core.services.training_load import MAX_CTL_JUMP_PER_WEEK, step

RiskLevel = Literal["LOW", "MODERATE", "HIGH"]

INTENSITY_MULTIPLIERS: Mapping[str, float] = MappingProxyType({"HIGH": 1.15, "BALANCED": 1.0, "LOW": 0.85})
COMPLIANCE_RATES: Mapping[str, float] = MappingProxyType({"OPTIMISTIC": 0.95, "REALISTIC": 0.85, "CONSERVATIVE": 0.75})

DEFAULT_CTL = 50.0
DEFAULT_ATL = 40.0
DEFAULT_WEEKLY_TSS = 250.0
DEFAULT_BURNOUT_RISK = 20.0
DEFAULT_READINESS = 65.0
MAX_SIMULATION_WEEKS = 12


@dataclass(frozen=True)
class BaselineMetrics:
    ctl: float
    atl: float
    tsb: float
    avg_weekly_tss: float
    avg_readiness: float
    avg_burnout_risk: float
    identity_mode: IdentityMode = "competitive"


@dataclass(frozen=True)
class ScenarioParams:
    volume_change_pct: int = 0
    intensity_bias: IntensityBias = "BALANCED"
    recovery_focus: RecoveryFocus = "NORMAL"
    compliance_assumption: ComplianceAssumption = "REALISTIC"
    identity_mode_override: Optional[IdentityMode] = None

    @property
    def flags(self) -> ScenarioFlags:
        return ScenarioFlags(
            intensity_bias=self.intensity_bias,
            recovery_focus=self.recovery_focus,
            compliance_assumption=self.compliance_assumption,
        )


@dataclass(frozen=True)
class WeeklySimulationResult:
    week_index: int
    simulated_ctl: float
    simulated_atl: float
    simulated_tsb: float
    simulated_readiness_avg: float
    simulated_burnout_risk: float
    weekly_tss: float
    insights: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class SimulationSummary:
    final_ctl: float
    final_atl: float
    final_tsb: float
    ctl_change: float
    peak_burnout_risk: float
    total_warnings: int
    recommendation: str
    risk_level: RiskLevel


@dataclass(frozen=True)
class SimulationOutput:
    weeks: list[WeeklySimulationResult]
    summary: SimulationSummary


@dataclass(frozen=True)
class ScenarioPreset:
    name: str
    params: ScenarioParams
    description: str


@dataclass(frozen=True)
class ScenarioRequest:
    name: str
    params: ScenarioParams
    duration_weeks: int


@dataclass(frozen=True)
class ScenarioComparison:
    name: str
    final_ctl: float
    ctl_change: float
    peak_burnout_risk: float
    total_warnings: int
    risk_level: RiskLevel
    recommendation: str = field(default="")


SCENARIO_PRESETS: Mapping[str, ScenarioPreset] = MappingProxyType(
    {
        "aggressive_build": ScenarioPreset(
            name="Aggressive Build",
            params=ScenarioParams(
                volume_change_pct=25,
                intensity_bias="HIGH",
                recovery_focus="NORMAL",
                compliance_assumption="OPTIMISTIC",
            ),
            description="Push hard for rapid fitness gains. Higher risk of overtraining.",
        ),
        "balanced_progress": ScenarioPreset(
            name="Balanced Progress",
            params=ScenarioParams(
                volume_change_pct=10,
                intensity_bias="BALANCED",
                recovery_focus="NORMAL",
                compliance_assumption="REALISTIC",
            ),
            description="Steady, sustainable progress with moderate risk.",
        ),
        "longevity_first": ScenarioPreset(
            name="Longevity First",
            params=ScenarioParams(
                volume_change_pct=0,
                intensity_bias="LOW",
                recovery_focus="EXTRA",
                compliance_assumption="CONSERVATIVE",
            ),
            description="Prioritize health and consistency over rapid gains.",
        ),
        "comeback_safe": ScenarioPreset(
            name="Comeback Safe",
            params=ScenarioParams(
                volume_change_pct=-10,
                intensity_bias="LOW",
                recovery_focus="EXTRA",
                compliance_assumption="CONSERVATIVE",
                identity_mode_override="comeback",
            ),
            description="Gentle return to training after break or injury.",
        ),
    }
)

def _r1(value: float) -> float:
    return round(value, 1)


def classify_risk(total_warnings: int, peak_burnout_risk: float) -> RiskLevel:
    if total_warnings > 2 or peak_burnout_risk >= 70:
        return "HIGH"
    if total_warnings > 0 or peak_burnout_risk >= 50:
        return "MODERATE"
    return "LOW"


def recommend(total_warnings: int, peak_burnout_risk: float) -> str:
    if total_warnings == 0 and peak_burnout_risk < 50:
        return "This scenario appears safe and sustainable. Good balance of progress and recovery."
    if total_warnings <= 2 and peak_burnout_risk < 70:
        return "Moderate risk scenario. Monitor closely and adjust if fatigue accumulates."
    return "High risk scenario. Consider reducing volume or intensity to avoid overtraining."


def simulate(
    baseline: BaselineMetrics,
    params: ScenarioParams,
    duration_weeks: int,
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
    max_weeks: int = MAX_SIMULATION_WEEKS,
) -> SimulationOutput:
    """Run the week-by-week projection for one scenario.

    Weeks are folded strictly in order: each week's ramp check uses the prior
    week's capped TSS and its load step starts from the prior CTL/ATL.
    """
    if not 1 <= duration_weeks <= max_weeks:
        raise InvalidScenario(f"duration_weeks must be between 1 and {max_weeks}")
    if not -50 <= params.volume_change_pct <= 50:
        raise InvalidScenario("volume_change_pct must be between -50 and 50")

    identity_mode = params.identity_mode_override or baseline.identity_mode
    flags = params.flags

    base_tss = baseline.avg_weekly_tss or DEFAULT_WEEKLY_TSS
    target_tss = round(base_tss * (1 + params.volume_change_pct / 100))
    intensity_multiplier = INTENSITY_MULTIPLIERS[params.intensity_bias]
    compliance = COMPLIANCE_RATES[params.compliance_assumption]

    ctl = baseline.ctl or DEFAULT_CTL
    atl = baseline.atl or DEFAULT_ATL
    reported_ctl = ctl
    previous_tss = float(base_tss)
    peak_risk = baseline.avg_burnout_risk or DEFAULT_BURNOUT_RISK
    total_warnings = 0
    weeks: list[WeeklySimulationResult] = []

    for week in range(1, duration_weeks + 1):
        insights: list[str] = []
        warnings: list[str] = []

        progress = week / duration_weeks
        planned = round(base_tss + (target_tss - base_tss) * progress * intensity_multiplier)
        actual = max(0, round(planned * compliance))

        ramp = check_ramp(previous_tss, actual, identity_mode, config)
        warnings.extend(ramp.warnings)

        state = step(ctl, atl, ramp.capped_tss, MAX_CTL_JUMP_PER_WEEK)
        warnings.extend(check_tsb_floor(state.tsb, config))

        readiness = readiness_estimate(state.tsb, flags, identity_mode, config)
        risk = burnout_risk(state.tsb, ramp.ramp_rate, flags, identity_mode, config)
        warnings.extend(check_burnout(risk, config))
        peak_risk = max(peak_risk, risk)

        if week == 1:
            insights.append(f"Starting from CTL {round(ctl)}, targeting {params.volume_change_pct}% volume change")
        if state.ctl > ctl + 3:
            insights.append(f"Strong fitness gain this week (+{state.ctl - ctl:.1f} CTL)")
        if readiness >= 70:
            insights.append("Good readiness - body adapting well")
        elif readiness < 50:
            insights.append("Low readiness - prioritize recovery")
        if week == duration_weeks:
            gain = state.ctl - baseline.ctl
            insights.append(f"Final projection: {'+' if gain > 0 else ''}{gain:.1f} CTL over {duration_weeks} weeks")

        # rounding must not push the reported series past the weekly CTL ceiling
        reported_ctl = min(_r1(state.ctl), reported_ctl + MAX_CTL_JUMP_PER_WEEK)
        prefixed = tuple(f"Week {week}: {w}" for w in warnings)
        total_warnings += len(prefixed)
        weeks.append(
            WeeklySimulationResult(
                week_index=week,
                simulated_ctl=reported_ctl,
                simulated_atl=_r1(state.atl),
                simulated_tsb=_r1(state.tsb),
                simulated_readiness_avg=readiness,
                simulated_burnout_risk=risk,
                weekly_tss=ramp.capped_tss,
                insights=tuple(insights),
                warnings=prefixed,
            )
        )

        ctl, atl = state.ctl, state.atl
        previous_tss = ramp.capped_tss

    final = weeks[-1]
    summary = SimulationSummary(
        final_ctl=final.simulated_ctl,
        final_atl=final.simulated_atl,
        final_tsb=final.simulated_tsb,
        ctl_change=_r1(final.simulated_ctl - baseline.ctl),
        peak_burnout_risk=peak_risk,
        total_warnings=total_warnings,
        recommendation=recommend(total_warnings, peak_risk),
        risk_level=classify_risk(total_warnings, peak_risk),
    )
    return SimulationOutput(weeks=weeks, summary=summary)


def compare_scenarios(
    baseline: BaselineMetrics,
    scenarios: Sequence[ScenarioRequest],
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
) -> list[ScenarioComparison]:
    """Simulate several scenarios from the same baseline for side-by-side review."""
    results: list[ScenarioComparison] = []
    for scenario in scenarios:
        out = simulate(baseline, scenario.params, scenario.duration_weeks, config)
        results.append(
            ScenarioComparison(
                name=scenario.name,
                final_ctl=out.summary.final_ctl,
                ctl_change=out.summary.ctl_change,
                peak_burnout_risk=out.summary.peak_burnout_risk,
                total_warnings=out.summary.total_warnings,
                risk_level=out.summary.risk_level,
                recommendation=out.summary.recommendation,
            )
        )
    return results


def compare_presets(
    baseline: BaselineMetrics,
    preset_keys: Iterable[str],
    duration_weeks: int,
    presets: Mapping[str, ScenarioPreset] = SCENARIO_PRESETS,
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
) -> list[ScenarioComparison]:
    requests: list[ScenarioRequest] = []
    for key in preset_keys:
        preset = presets.get(key)
        if preset is None:
            raise InvalidScenario(f"Unknown scenario preset: {key}")
        requests.append(ScenarioRequest(name=key, params=preset.params, duration_weeks=duration_weeks))
    return compare_scenarios(baseline, requests, config)


def format_scenario_params(params: ScenarioParams) -> str:
    sign = "+" if params.volume_change_pct >= 0 else ""
    parts = [
        f"Volume: {sign}{params.volume_change_pct}%",
        f"Intensity: {params.intensity_bias}",
        f"Recovery: {params.recovery_focus}",
        f"Compliance: {params.compliance_assumption}",
    ]
    if params.identity_mode_override:
        parts.append(f"Mode: {params.identity_mode_override}")
    return " | ".join(parts)


@dataclass(frozen=True)
class MetricSnapshot:
    day: dt.date
    ctl: float | None = None
    atl: float | None = None
    tsb: float | None = None
    readiness_score: float | None = None
    burnout_risk: float | None = None


@dataclass(frozen=True)
class CompletedLoad:
    day: dt.date
    tss: float | None = None


def baseline_from_history(
    metrics: Sequence[MetricSnapshot],
    workouts: Sequence[CompletedLoad],
    identity_mode: IdentityMode = "competitive",
) -> BaselineMetrics:
    """Aggregate ~28 days of history into a simulation baseline.

    Weekly TSS is the completed load over four weeks; CTL/ATL/TSB come from the
    most recent metric row. Missing history falls back to neutral defaults.
    """
    latest = max(metrics, key=lambda m: m.day) if metrics else None
    avg_weekly_tss = round(sum(w.tss or 0 for w in workouts) / 4) if workouts else DEFAULT_WEEKLY_TSS

    readiness = [m.readiness_score for m in metrics if m.readiness_score is not None]
    risks = [m.burnout_risk for m in metrics if m.burnout_risk is not None]

    return BaselineMetrics(
        ctl=(latest.ctl if latest and latest.ctl else DEFAULT_CTL),
        atl=(latest.atl if latest and latest.atl else DEFAULT_ATL),
        tsb=(latest.tsb if latest and latest.tsb else 10.0),
        avg_weekly_tss=float(avg_weekly_tss),
        avg_readiness=float(round(sum(readiness) / len(readiness))) if readiness else DEFAULT_READINESS,
        avg_burnout_risk=float(round(sum(risks) / len(risks))) if risks else DEFAULT_BURNOUT_RISK,
        identity_mode=identity_mode,
    )
