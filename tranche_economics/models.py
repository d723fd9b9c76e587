"""Data models for the tranche distribution engine."""

from dataclasses import dataclass
from enum import Enum, IntEnum


class SafetyLevel(IntEnum):
    """Discrete risk classification. Higher value means worse."""

    HEALTHY = 0
    CAUTION = 1
    WARNING = 2
    DANGER = 3
    CRITICAL = 4


class EpochState(str, Enum):
    """Lifecycle of a withdrawal epoch: OPEN → LOCKED → SETTLED."""

    OPEN = "open"
    LOCKED = "locked"
    SETTLED = "settled"


@dataclass(frozen=True)
class LevelPolicy:
    """Deposit policy attached to one safety level."""

    min_buffer_ratio_bps: int
    # 0 disables the ceiling.
    max_protected_deposit: int
    target_protected_rate_bps: int
    protected_deposits_enabled: bool
    leveraged_deposits_enabled: bool


@dataclass(frozen=True)
class DistributionResult:
    """Outcome of a single waterfall run."""

    protocol_fee: int
    protected_yield: int
    leveraged_yield: int
    leveraged_slash: int
    protected_fully_paid: bool


@dataclass(frozen=True)
class HarvestReport:
    """What a harvest did to the tranches."""

    harvest_id: int
    timestamp: int
    elapsed_seconds: int
    profit: int
    protected_principal: int
    leveraged_principal: int
    fixed_rate_bps: int
    result: DistributionResult
    # Amount the leveraged vault actually removed (may be less than requested).
    slashed: int
    # Leveraged yield withheld to recover an earlier slash deficit.
    deficit_recovered: int
    emergency_triggered: bool
    new_fixed_rate_bps: int
    # Leveraged residual sent to the treasury because no leveraged shares were outstanding.
    unowned_yield: int = 0


@dataclass(frozen=True)
class DepositCheck:
    """Policy pre-check result. A rejection is a value, not an error."""

    allowed: bool
    reason: str = ""


@dataclass(frozen=True)
class DepositOutcome:
    """Result of a deposit routed through the distribution controller."""

    accepted: bool
    reason: str
    shares: int = 0


@dataclass
class Epoch:
    """A fixed-length withdrawal window."""

    id: int
    start_time: int
    end_time: int
    state: EpochState = EpochState.OPEN
    total_withdraw_requests: int = 0


@dataclass
class WithdrawRequest:
    """A queued redemption settled with the epoch it was filed in."""

    user: str
    is_protected: bool
    share_amount: int
    epoch_id: int
    processed: bool = False
    # Filled at settlement.
    shares_redeemed: int = 0
    amount_paid: int = 0


@dataclass(frozen=True)
class EarlyWithdrawResult:
    """Immediate withdrawal outside the epoch queue."""

    user: str
    is_protected: bool
    shares: int
    gross_amount: int
    penalty: int
    net_amount: int
    # Part of net_amount the strategy could not return.
    capital_shortfall: int = 0


@dataclass(frozen=True)
class EpochSettlement:
    """Summary of one epoch settlement."""

    epoch_id: int
    harvest: HarvestReport | None
    requests_processed: int
    shares_redeemed: int
    amount_paid: int
    penalty_to_protected: int
    penalty_to_leveraged: int
    penalty_deferred: int
    next_epoch_id: int
    capital_shortfall: int = 0
