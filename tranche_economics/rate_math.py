"""Pure integer math for tranche obligations and ratios.

All rates and ratios are basis points (1/10_000). Division floors, so an obligation
is under-paid by at most one unit per call; results stay reproducible across runs.
"""

from tranche_economics.constants import DYNAMIC_RATE_STEPS, SECONDS_PER_YEAR, TOTAL_BASIS_POINTS
from tranche_economics.errors import ConfigurationError


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise ConfigurationError(f"{name} must be >= 0 (got {value})")


def apply_bps(amount: int, bps: int) -> int:
    """Return ``amount * bps / 10_000``, floored."""
    _require_non_negative(amount=amount, bps=bps)
    return (amount * bps) // TOTAL_BASIS_POINTS


def obligation(principal: int, rate_bps: int, elapsed_seconds: int) -> int:
    """Fixed yield owed on ``principal`` at ``rate_bps`` (annualized) over ``elapsed_seconds``."""
    _require_non_negative(principal=principal, rate_bps=rate_bps, elapsed_seconds=elapsed_seconds)
    if principal == 0 or rate_bps == 0 or elapsed_seconds == 0:
        return 0
    return (principal * rate_bps * elapsed_seconds) // (SECONDS_PER_YEAR * TOTAL_BASIS_POINTS)


def buffer_ratio(protected: int, leveraged: int) -> int:
    """Leveraged share of total principal, in bps.

    Returns 0 when both principals are 0. Callers that gate on risk must treat that
    case as safe themselves; this function does not special-case it.
    """
    _require_non_negative(protected=protected, leveraged=leveraged)
    total = protected + leveraged
    if total == 0:
        return 0
    return (leveraged * TOTAL_BASIS_POINTS) // total


def leverage(protected: int, leveraged: int) -> int:
    """Total principal over leveraged principal, in bps. 0 means undefined (no leveraged capital)."""
    _require_non_negative(protected=protected, leveraged=leveraged)
    if leveraged == 0:
        return 0
    return ((protected + leveraged) * TOTAL_BASIS_POINTS) // leveraged


def dynamic_rate(base_rate_bps: int, ratio_bps: int, *, min_rate_bps: int, max_rate_bps: int) -> int:
    """Step the protected fixed rate down as the buffer ratio thins, bounded by [min, max]."""
    _require_non_negative(base_rate_bps=base_rate_bps, ratio_bps=ratio_bps, min_rate_bps=min_rate_bps)
    if min_rate_bps > max_rate_bps:
        raise ConfigurationError(f"min rate {min_rate_bps} exceeds max rate {max_rate_bps}")

    rate = min_rate_bps
    for threshold, share_bps in DYNAMIC_RATE_STEPS:
        if ratio_bps >= threshold:
            rate = apply_bps(base_rate_bps, share_bps)
            break
    return min(max(rate, min_rate_bps), max_rate_bps)
