"""Priority waterfall: protocol fee, protected obligation, leveraged residual or slash."""

from tranche_economics.constants import TOTAL_BASIS_POINTS
from tranche_economics.errors import ConfigurationError
from tranche_economics.models import DistributionResult
from tranche_economics.rate_math import apply_bps, obligation


def _validate_inputs(
    protected_principal: int,
    leveraged_principal: int,
    fixed_rate_bps: int,
    protocol_fee_bps: int,
    elapsed_seconds: int,
) -> None:
    if not 0 <= protocol_fee_bps <= TOTAL_BASIS_POINTS:
        raise ConfigurationError(f"protocol fee out of range: {protocol_fee_bps} bps")
    if fixed_rate_bps < 0:
        raise ConfigurationError(f"fixed rate must be >= 0 (got {fixed_rate_bps})")
    if protected_principal < 0 or leveraged_principal < 0:
        raise ConfigurationError(
            f"principals must be >= 0 (protected={protected_principal}, leveraged={leveraged_principal})"
        )
    if elapsed_seconds < 0:
        raise ConfigurationError(f"elapsed time must be >= 0 (got {elapsed_seconds})")


def distribute(
    protected_principal: int,
    leveraged_principal: int,
    fixed_rate_bps: int,
    protocol_fee_bps: int,
    elapsed_seconds: int,
    signed_profit: int,
) -> DistributionResult:
    """
    Route a harvest's profit (or loss) through the waterfall.

    The protected obligation always ranks first. The leveraged tranche receives yield only when
    the obligation is met out of distributable profit in the same call; otherwise it is slashed to
    fund the shortfall and, on a loss, to absorb the loss itself. The fee is only taken from profit.
    """
    _validate_inputs(protected_principal, leveraged_principal, fixed_rate_bps, protocol_fee_bps, elapsed_seconds)
    owed = obligation(protected_principal, fixed_rate_bps, elapsed_seconds)

    if signed_profit <= 0:
        loss = -signed_profit
        deficit = owed + loss
        if leveraged_principal >= deficit:
            return DistributionResult(
                protocol_fee=0,
                protected_yield=owed,
                leveraged_yield=0,
                leveraged_slash=deficit,
                protected_fully_paid=True,
            )
        return DistributionResult(
            protocol_fee=0,
            protected_yield=max(leveraged_principal - loss, 0),
            leveraged_yield=0,
            leveraged_slash=leveraged_principal,
            protected_fully_paid=False,
        )

    fee = apply_bps(signed_profit, protocol_fee_bps)
    distributable = signed_profit - fee

    if distributable >= owed:
        return DistributionResult(
            protocol_fee=fee,
            protected_yield=owed,
            leveraged_yield=distributable - owed,
            leveraged_slash=0,
            protected_fully_paid=True,
        )

    shortfall = owed - distributable
    if leveraged_principal >= shortfall:
        return DistributionResult(
            protocol_fee=fee,
            protected_yield=owed,
            leveraged_yield=0,
            leveraged_slash=shortfall,
            protected_fully_paid=True,
        )
    return DistributionResult(
        protocol_fee=fee,
        protected_yield=distributable + leveraged_principal,
        leveraged_yield=0,
        leveraged_slash=leveraged_principal,
        protected_fully_paid=False,
    )
