"""Safety guardrails for projected training load.

Ramp-rate caps, a minimum-safe TSB floor, a heuristic burnout-risk score and a
coarse readiness estimate. Tolerances scale with the athlete's identity mode.

Nothing here raises or blocks: every check returns capped/clamped numbers
plus human-readable warnings, and the caller decides what to do with them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Mapping

IdentityMode = Literal["competitive", "longevity", "comeback", "busy_pro"]
IntensityBias = Literal["LOW", "BALANCED", "HIGH"]
RecoveryFocus = Literal["NORMAL", "EXTRA"]
ComplianceAssumption = Literal["REALISTIC", "OPTIMISTIC", "CONSERVATIVE"]

IDENTITY_MODES: tuple[str, ...] = ("competitive", "longevity", "comeback", "busy_pro")


@dataclass(frozen=True)
class IdentityModifier:
    ramp_limit: float      # multiplier on the base ramp cap
    recovery_bonus: float  # readiness bonus / burnout relief


@dataclass(frozen=True)
class GuardrailConfig:
    max_ramp_rate: float = 0.10
    danger_ramp_rate: float = 0.15
    min_tsb_safe: float = -30.0
    burnout_threshold: float = 70.0
    burnout_ramp_trigger: float = 0.08
    extra_recovery_bonus: float = 10.0
    identity_modifiers: Mapping[str, IdentityModifier] = field(
        default_factory=lambda: MappingProxyType(
            {
                "competitive": IdentityModifier(ramp_limit=1.0, recovery_bonus=0.0),
                "longevity": IdentityModifier(ramp_limit=0.7, recovery_bonus=10.0),
                "comeback": IdentityModifier(ramp_limit=0.5, recovery_bonus=15.0),
                "busy_pro": IdentityModifier(ramp_limit=0.8, recovery_bonus=5.0),
            }
        )
    )

    def modifier(self, identity_mode: str) -> IdentityModifier:
        return self.identity_modifiers.get(identity_mode) or self.identity_modifiers["competitive"]

    def ramp_cap(self, identity_mode: str) -> float:
        return self.max_ramp_rate * self.modifier(identity_mode).ramp_limit


DEFAULT_GUARDRAIL_CONFIG = GuardrailConfig()


@dataclass(frozen=True)
class ScenarioFlags:
    """The scenario choices that feed the risk heuristics."""
    intensity_bias: IntensityBias = "BALANCED"
    recovery_focus: RecoveryFocus = "NORMAL"
    compliance_assumption: ComplianceAssumption = "REALISTIC"


@dataclass(frozen=True)
class RampCheck:
    capped_tss: float
    ramp_rate: float
    warnings: list[str]


@dataclass(frozen=True)
class GuardrailResult:
    capped_tss: float
    ramp_rate: float
    burnout_risk: float
    readiness: float
    warnings: list[str]


def ramp_rate(prev_week_tss: float, planned_tss: float) -> float:
    """Week-over-week change as a fraction; 0 when there is no previous load."""
    if prev_week_tss <= 0:
        return 0.0
    return (planned_tss - prev_week_tss) / prev_week_tss


def check_ramp(
    prev_week_tss: float,
    planned_tss: float,
    identity_mode: str,
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
) -> RampCheck:
    """Cap planned TSS at the identity-scaled ramp limit."""
    rate = ramp_rate(prev_week_tss, planned_tss)
    cap = config.ramp_cap(identity_mode)
    warnings: list[str] = []
    capped = max(0.0, float(planned_tss))

    if rate > cap:
        capped = float(round(prev_week_tss * (1 + cap)))
        warnings.append(f"TSS capped from {round(planned_tss)} to {round(capped)} (ramp limit {round(cap * 100)}%)")
    if rate > config.danger_ramp_rate:
        warnings.append(f"Dangerous ramp rate detected ({round(rate * 100)}%)")

    return RampCheck(capped_tss=capped, ramp_rate=rate, warnings=warnings)


def check_tsb_floor(tsb: float, config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG) -> list[str]:
    if tsb < config.min_tsb_safe:
        return [f"TSB critically low ({round(tsb)}). High injury/overtraining risk."]
    return []


def _recovery_bonus(flags: ScenarioFlags, identity_mode: str, config: GuardrailConfig) -> float:
    extra = config.extra_recovery_bonus if flags.recovery_focus == "EXTRA" else 0.0
    return extra + config.modifier(identity_mode).recovery_bonus


def burnout_risk(
    tsb: float,
    rate: float,
    flags: ScenarioFlags,
    identity_mode: str,
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
) -> float:
    """Heuristic burnout risk in [5, 95]; not a medical measure."""
    risk = 20.0
    if tsb < -20:
        risk += 20
    if tsb < -30:
        risk += 15
    if rate > config.burnout_ramp_trigger:
        risk += 15
    if flags.intensity_bias == "HIGH":
        risk += 10
    if flags.compliance_assumption == "OPTIMISTIC":
        risk += 5
    risk -= _recovery_bonus(flags, identity_mode, config)
    return max(5.0, min(95.0, risk))


def check_burnout(risk: float, config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG) -> list[str]:
    if risk > config.burnout_threshold:
        return [f"Elevated burnout risk ({round(risk)}%). Consider reducing load."]
    return []


def readiness_estimate(
    tsb: float,
    flags: ScenarioFlags,
    identity_mode: str,
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
) -> float:
    """Coarse readiness proxy: 50 + TSB + recovery bonuses, clamped to [20, 95]."""
    readiness = 50 + tsb + _recovery_bonus(flags, identity_mode, config)
    return float(max(20, min(95, round(readiness))))


def evaluate(
    prev_week_tss: float,
    planned_tss: float,
    tsb: float,
    identity_mode: str,
    flags: ScenarioFlags,
    config: GuardrailConfig = DEFAULT_GUARDRAIL_CONFIG,
) -> GuardrailResult:
    """Run every guardrail against a planned week with a projected TSB."""
    ramp = check_ramp(prev_week_tss, planned_tss, identity_mode, config)
    risk = burnout_risk(tsb, ramp.ramp_rate, flags, identity_mode, config)
    warnings = ramp.warnings + check_tsb_floor(tsb, config) + check_burnout(risk, config)
    return GuardrailResult(
        capped_tss=ramp.capped_tss,
        ramp_rate=ramp.ramp_rate,
        burnout_risk=risk,
        readiness=readiness_estimate(tsb, flags, identity_mode, config),
        warnings=warnings,
    )
