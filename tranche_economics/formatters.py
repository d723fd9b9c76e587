"""Formatting utilities."""

from decimal import Decimal

from tranche_economics.constants import SECONDS_PER_DAY
from tranche_economics.models import EpochState, SafetyLevel


def format_bp(bp: int) -> str:
    """Format basis points as percentage."""
    return f"{(Decimal(bp) / Decimal(100)):.2f}%"


def format_amount(value: int, *, signed: bool = False) -> str:
    """Format an integer amount with thousands separators."""
    if signed:
        return f"{value:+,}"
    return f"{value:,}"


def format_duration(seconds: int) -> str:
    """Format a duration as days and hours."""
    days, rem = divmod(max(seconds, 0), SECONDS_PER_DAY)
    hours = rem // 3600
    if days and hours:
        return f"{days}d {hours}h"
    if days:
        return f"{days}d"
    return f"{hours}h"


def level_badge(level: SafetyLevel) -> tuple[str, str]:
    """Returns (emoji, label) for a safety level."""
    badges = {
        SafetyLevel.HEALTHY: "🟢",
        SafetyLevel.CAUTION: "🟡",
        SafetyLevel.WARNING: "🟠",
        SafetyLevel.DANGER: "🔴",
        SafetyLevel.CRITICAL: "🚨",
    }
    return badges[level], level.name.title()


def epoch_badge(state: EpochState) -> str:
    """Returns emoji for an epoch state."""
    if state == EpochState.OPEN:
        return "📂"
    if state == EpochState.LOCKED:
        return "🔒"
    return "✅"


def delta_indicator(prev_val: int, cur_val: int) -> str:
    """Returns emoji indicator for value change."""
    if cur_val > prev_val:
        return "📈"
    if cur_val < prev_val:
        return "📉"
    return "➡️"
