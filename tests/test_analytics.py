import pytest

from tranche_economics.analytics import calculate_tranche_analytics, format_analytics_summary, level_time_share
from tranche_economics.constants import SECONDS_PER_YEAR
from tranche_economics.formatters import delta_indicator, format_amount, format_bp, format_duration, level_badge
from tranche_economics.models import DistributionResult, HarvestReport, SafetyLevel


def _report(harvest_id, profit, result, *, elapsed=SECONDS_PER_YEAR, slashed=0, recovered=0):
    return HarvestReport(
        harvest_id=harvest_id,
        timestamp=harvest_id * elapsed,
        elapsed_seconds=elapsed,
        profit=profit,
        protected_principal=80_000,
        leveraged_principal=20_000,
        fixed_rate_bps=500,
        result=result,
        slashed=slashed,
        deficit_recovered=recovered,
        emergency_triggered=not result.protected_fully_paid,
        new_fixed_rate_bps=500,
    )


def test_analytics_single_year():
    result = DistributionResult(100, 4_000, 5_900, 0, True)
    a = calculate_tranche_analytics([_report(1, 10_000, result)])
    assert a.harvests == 1
    assert a.total_protocol_fees == 100
    assert a.protected_apy_bps == 500
    assert a.leveraged_apy_bps == 2_950
    assert a.emergency_harvests == 0
    assert (a.min_fixed_rate_bps, a.max_fixed_rate_bps) == (500, 500)


def test_analytics_nets_slashes_from_leveraged():
    good = DistributionResult(100, 4_000, 5_900, 0, True)
    bad = DistributionResult(0, 4_000, 0, 14_000, True)
    a = calculate_tranche_analytics([_report(1, 10_000, good), _report(2, -10_000, bad, slashed=14_000)])
    assert a.total_slashed == 14_000
    assert a.leveraged_apy_bps < 0
    assert a.total_profit == 0


def test_analytics_empty():
    a = calculate_tranche_analytics([])
    assert a.harvests == 0
    assert a.protected_apy_bps == 0
    assert "ANALYTICS SUMMARY" in format_analytics_summary(a)


def test_level_time_share():
    transitions = [
        (100, SafetyLevel.HEALTHY, SafetyLevel.CAUTION, 1_800),
        (250, SafetyLevel.CAUTION, SafetyLevel.CRITICAL, 300),
    ]
    out = level_time_share(transitions, initial_level=SafetyLevel.HEALTHY, start=0, end=400)
    assert out[SafetyLevel.HEALTHY] == 100
    assert out[SafetyLevel.CAUTION] == 150
    assert out[SafetyLevel.CRITICAL] == 150
    assert sum(out.values()) == 400
    assert "TIME AT SAFETY LEVEL" in format_analytics_summary(calculate_tranche_analytics([]), out)


@pytest.mark.parametrize(
    ("bp", "expected"),
    [(500, "5.00%"), (2_950, "29.50%"), (0, "0.00%"), (-125, "-1.25%")],
)
def test_format_bp(bp, expected):
    assert format_bp(bp) == expected


def test_format_helpers():
    assert format_amount(1_234_567) == "1,234,567"
    assert format_amount(1_000, signed=True) == "+1,000"
    assert format_amount(-5, signed=True) == "-5"
    assert format_duration(90_000) == "1d 1h"
    assert format_duration(7 * 86_400) == "7d"
    assert format_duration(7_200) == "2h"
    assert level_badge(SafetyLevel.CRITICAL) == ("🚨", "Critical")
    assert delta_indicator(1, 2) == "📈"
    assert delta_indicator(2, 1) == "📉"
    assert delta_indicator(1, 1) == "➡️"
