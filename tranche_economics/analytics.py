"""Analytics over a series of harvests.

- Realized yield per tranche, annualized against time-weighted principal
- Fee, slash and deficit-recovery totals
- Time spent at each safety level
"""

from collections.abc import Sequence
from dataclasses import dataclass

from tranche_economics.constants import SECONDS_PER_YEAR, TOTAL_BASIS_POINTS
from tranche_economics.formatters import format_amount, format_bp, format_duration, level_badge
from tranche_economics.models import HarvestReport, SafetyLevel


@dataclass(frozen=True)
class TrancheAnalytics:
    """Aggregated outcome of a run of harvests."""

    harvests: int
    period_seconds: int
    total_profit: int
    total_protocol_fees: int
    total_protected_yield: int
    total_leveraged_yield: int
    total_slashed: int
    total_deficit_recovered: int
    emergency_harvests: int
    # Annualized against time-weighted principal; leveraged is net of slashes and may be negative.
    protected_apy_bps: int
    leveraged_apy_bps: int
    min_fixed_rate_bps: int
    max_fixed_rate_bps: int


def _annualized_bps(amount: int, principal_seconds: int) -> int:
    """amount / (principal * time) scaled to a year, in bps, truncated toward zero."""
    if principal_seconds <= 0:
        return 0
    scaled = abs(amount) * SECONDS_PER_YEAR * TOTAL_BASIS_POINTS // principal_seconds
    return scaled if amount >= 0 else -scaled


def calculate_tranche_analytics(reports: Sequence[HarvestReport]) -> TrancheAnalytics:
    """Aggregate harvest reports (in harvest order)."""
    protected_seconds = 0
    leveraged_seconds = 0
    for r in reports:
        protected_seconds += r.protected_principal * r.elapsed_seconds
        leveraged_seconds += r.leveraged_principal * r.elapsed_seconds

    total_protected = sum(r.result.protected_yield for r in reports)
    total_leveraged = sum(r.result.leveraged_yield - r.deficit_recovered - r.unowned_yield for r in reports)
    total_slashed = sum(r.slashed for r in reports)
    rates = [r.fixed_rate_bps for r in reports]

    return TrancheAnalytics(
        harvests=len(reports),
        period_seconds=sum(r.elapsed_seconds for r in reports),
        total_profit=sum(r.profit for r in reports),
        total_protocol_fees=sum(r.result.protocol_fee for r in reports),
        total_protected_yield=total_protected,
        total_leveraged_yield=total_leveraged,
        total_slashed=total_slashed,
        total_deficit_recovered=sum(r.deficit_recovered for r in reports),
        emergency_harvests=sum(1 for r in reports if r.emergency_triggered),
        protected_apy_bps=_annualized_bps(total_protected, protected_seconds),
        leveraged_apy_bps=_annualized_bps(total_leveraged - total_slashed, leveraged_seconds),
        min_fixed_rate_bps=min(rates) if rates else 0,
        max_fixed_rate_bps=max(rates) if rates else 0,
    )


def level_time_share(
    transitions: Sequence[tuple[int, SafetyLevel, SafetyLevel, int]],
    *,
    initial_level: SafetyLevel,
    start: int,
    end: int,
) -> dict[SafetyLevel, int]:
    """Seconds spent at each safety level between ``start`` and ``end``."""
    out = {level: 0 for level in SafetyLevel}
    level = initial_level
    cursor = start
    for ts, _, to_level, _ in transitions:
        if ts < start:
            level = to_level
            continue
        if ts > end:
            break
        out[level] += ts - cursor
        cursor = ts
        level = to_level
    out[level] += max(end - cursor, 0)
    return out


def format_analytics_summary(analytics: TrancheAnalytics, level_seconds: dict[SafetyLevel, int] | None = None) -> str:
    """Format analytics as a text summary for console output."""
    lines = [
        "",
        "=" * 70,
        "📊 ANALYTICS SUMMARY",
        "=" * 70,
        "",
        "🌾 HARVESTS",
        f"   Count: {analytics.harvests} over {format_duration(analytics.period_seconds)}",
        f"   Strategy P&L: {format_amount(analytics.total_profit, signed=True)}",
        f"   Protocol Fees: {format_amount(analytics.total_protocol_fees)}",
        f"   Emergency Harvests: {analytics.emergency_harvests}",
        "",
        "🛡️  PROTECTED TRANCHE",
        f"   Yield Paid: {format_amount(analytics.total_protected_yield)}",
        f"   Realized APY: {format_bp(analytics.protected_apy_bps)}",
        f"   Fixed Rate Range: {format_bp(analytics.min_fixed_rate_bps)} - {format_bp(analytics.max_fixed_rate_bps)}",
        "",
        "⚡ LEVERAGED TRANCHE",
        f"   Yield Credited: {format_amount(analytics.total_leveraged_yield)}",
        f"   Slashed: {format_amount(analytics.total_slashed)}",
        f"   Deficit Recovered: {format_amount(analytics.total_deficit_recovered)}",
        f"   Realized APY (net of slashes): {format_bp(analytics.leveraged_apy_bps)}",
        "",
    ]
    if level_seconds:
        total = sum(level_seconds.values()) or 1
        lines.append("🚦 TIME AT SAFETY LEVEL")
        for level, seconds in level_seconds.items():
            emoji, label = level_badge(level)
            lines.append(f"   {emoji} {label}: {100 * seconds / total:.1f}%")
        lines.append("")
    return "\n".join(lines)
