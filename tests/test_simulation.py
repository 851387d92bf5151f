"""Tests for the what-if scenario simulator."""

from __future__ import annotations

import datetime as dt

import pytest

from core.errors import InvalidScenario
from core.services.simulation import (
    SCENARIO_PRESETS,
    BaselineMetrics,
    CompletedLoad,
    MetricSnapshot,
    ScenarioParams,
    ScenarioRequest,
    baseline_from_history,
    classify_risk,
    compare_presets,
    compare_scenarios,
    format_scenario_params,
    recommend,
    simulate,
)


def _baseline(**overrides) -> BaselineMetrics:
    values = dict(
        ctl=50.0,
        atl=40.0,
        tsb=10.0,
        avg_weekly_tss=350.0,
        avg_readiness=65.0,
        avg_burnout_risk=20.0,
    )
    values.update(overrides)
    return BaselineMetrics(**values)


def test_simulate_holding_volume_is_calm():
    out = simulate(_baseline(), ScenarioParams(), 4)

    assert [w.week_index for w in out.weeks] == [1, 2, 3, 4]
    first = out.weeks[0]
    # 350 planned at 85% compliance
    assert first.weekly_tss == 298
    assert first.simulated_readiness_avg == 57
    assert first.warnings == ()
    assert first.insights[0] == "Starting from CTL 50, targeting 0% volume change"
    assert out.weeks[-1].insights[-1].startswith("Final projection: ")
    assert out.summary.total_warnings == 0
    assert out.summary.risk_level == "LOW"


def test_simulate_is_deterministic():
    params = SCENARIO_PRESETS["aggressive_build"].params
    assert simulate(_baseline(), params, 8) == simulate(_baseline(), params, 8)


def test_ramp_warnings_are_prefixed_with_week():
    baseline = _baseline(ctl=10.0, atl=10.0, tsb=0.0, avg_weekly_tss=100.0)
    params = ScenarioParams(volume_change_pct=50, intensity_bias="HIGH", compliance_assumption="OPTIMISTIC")

    out = simulate(baseline, params, 2)

    first = out.weeks[0]
    assert first.weekly_tss == 110
    assert first.warnings[0] == "Week 1: TSS capped from 123 to 110 (ramp limit 10%)"
    assert first.warnings[1].startswith("Week 1: Dangerous ramp rate detected")
    assert all(w.startswith("Week 2: ") for w in out.weeks[1].warnings)
    assert out.summary.total_warnings == sum(len(w.warnings) for w in out.weeks)


def test_ctl_rises_at_most_five_per_week():
    baseline = _baseline(ctl=1.0, atl=1.0, tsb=0.0, avg_weekly_tss=2000.0)
    out = simulate(baseline, ScenarioParams(), 6)

    previous = baseline.ctl
    for week in out.weeks:
        assert week.simulated_ctl <= previous + 5.0
        previous = week.simulated_ctl
    assert out.weeks[0].simulated_ctl == 6.0


@pytest.mark.parametrize("ctl", [1.06, 3.14159, 5.8, 7.25, 12.349, 0.55])
def test_reported_ctl_respects_ceiling_from_unrounded_baseline(ctl):
    baseline = _baseline(ctl=ctl, atl=ctl, tsb=0.0, avg_weekly_tss=2000.0)
    out = simulate(baseline, ScenarioParams(volume_change_pct=50, intensity_bias="HIGH"), 12)

    previous = baseline.ctl
    for week in out.weeks:
        assert week.simulated_ctl <= previous + 5.0
        previous = week.simulated_ctl


def test_outputs_stay_in_bounds():
    for key, preset in SCENARIO_PRESETS.items():
        out = simulate(_baseline(), preset.params, 12)
        for week in out.weeks:
            assert 20 <= week.simulated_readiness_avg <= 95, key
            assert 5 <= week.simulated_burnout_risk <= 95, key
            assert week.weekly_tss >= 0


@pytest.mark.parametrize("weeks", [0, 13])
def test_duration_out_of_range(weeks):
    with pytest.raises(InvalidScenario):
        simulate(_baseline(), ScenarioParams(), weeks)


def test_volume_change_out_of_range():
    with pytest.raises(InvalidScenario) as exc:
        simulate(_baseline(), ScenarioParams(volume_change_pct=60), 4)
    assert exc.value.code == "INVALID_SCENARIO"


def test_identity_override_wins():
    baseline = _baseline(identity_mode="competitive")
    params = ScenarioParams(volume_change_pct=30, identity_mode_override="comeback")
    capped = simulate(baseline, params, 1).weeks[0]
    # comeback ramp cap is 5%
    assert "(ramp limit 5%)" in capped.warnings[0]


def test_compare_presets_orders_risk():
    results = compare_presets(_baseline(), ["aggressive_build", "longevity_first"], 8)

    assert [r.name for r in results] == ["aggressive_build", "longevity_first"]
    levels = ["LOW", "MODERATE", "HIGH"]
    assert levels.index(results[0].risk_level) >= levels.index(results[1].risk_level)
    assert results[0].peak_burnout_risk >= results[1].peak_burnout_risk


def test_compare_presets_unknown_key():
    with pytest.raises(InvalidScenario, match="Unknown scenario preset: yolo"):
        compare_presets(_baseline(), ["balanced_progress", "yolo"], 8)


def test_compare_scenarios_uses_each_duration():
    results = compare_scenarios(
        _baseline(),
        [
            ScenarioRequest(name="short", params=ScenarioParams(), duration_weeks=2),
            ScenarioRequest(name="long", params=ScenarioParams(volume_change_pct=20), duration_weeks=10),
        ],
    )
    assert [r.name for r in results] == ["short", "long"]
    assert results[1].recommendation


def test_classify_risk_and_recommend():
    assert classify_risk(0, 40) == "LOW"
    assert classify_risk(1, 40) == "MODERATE"
    assert classify_risk(0, 50) == "MODERATE"
    assert classify_risk(3, 10) == "HIGH"
    assert classify_risk(0, 70) == "HIGH"
    assert recommend(0, 40).startswith("This scenario appears safe")
    assert recommend(2, 60).startswith("Moderate risk scenario")
    assert recommend(0, 75).startswith("High risk scenario")


def test_format_scenario_params():
    assert format_scenario_params(ScenarioParams(volume_change_pct=10)) == (
        "Volume: +10% | Intensity: BALANCED | Recovery: NORMAL | Compliance: REALISTIC"
    )
    text = format_scenario_params(SCENARIO_PRESETS["comeback_safe"].params)
    assert text.startswith("Volume: -10%")
    assert text.endswith("| Mode: comeback")


def test_baseline_without_history_uses_defaults():
    baseline = baseline_from_history([], [])
    assert baseline.ctl == 50
    assert baseline.atl == 40
    assert baseline.tsb == 10
    assert baseline.avg_weekly_tss == 250
    assert baseline.avg_readiness == 65
    assert baseline.avg_burnout_risk == 20


def test_baseline_from_history():
    metrics = [
        MetricSnapshot(day=dt.date(2026, 2, 1), ctl=40, atl=45, tsb=-5, readiness_score=60, burnout_risk=30),
        MetricSnapshot(day=dt.date(2026, 2, 7), ctl=42, atl=44, tsb=-2, readiness_score=70),
    ]
    workouts = [CompletedLoad(day=dt.date(2026, 2, d), tss=t) for d, t in ((1, 100), (3, 200), (5, 300), (6, 400))]

    baseline = baseline_from_history(metrics, workouts, identity_mode="longevity")

    assert baseline.ctl == 42
    assert baseline.atl == 44
    assert baseline.tsb == -2
    assert baseline.avg_weekly_tss == 250
    assert baseline.avg_readiness == 65
    assert baseline.avg_burnout_risk == 30
    assert baseline.identity_mode == "longevity"
