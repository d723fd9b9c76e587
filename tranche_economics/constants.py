"""Constants and configuration for the tranche distribution engine."""

TOTAL_BASIS_POINTS = 100_00
SECONDS_PER_DAY = 86_400
DAYS_PER_YEAR = 365
SECONDS_PER_YEAR = DAYS_PER_YEAR * SECONDS_PER_DAY

# Fixed rate owed to the protected tranche (annualized, basis points).
DEFAULT_BASE_RATE_BPS = 500
DEFAULT_MIN_RATE_BPS = 200
DEFAULT_MAX_RATE_BPS = 20_00

DEFAULT_PROTOCOL_FEE_BPS = 100
MAX_PROTOCOL_FEE_BPS = 20_00

# Dynamic rate step function: (minimum buffer ratio, share of base rate), both in bps.
# Below the last step the floor rate applies.
DYNAMIC_RATE_STEPS: tuple[tuple[int, int], ...] = (
    (20_00, 100_00),
    (15_00, 90_00),
    (10_00, 80_00),
    (5_00, 60_00),
)

# Buffer ratio thresholds for HEALTHY, CAUTION, WARNING, DANGER (anything lower is CRITICAL).
DEFAULT_SAFETY_THRESHOLDS: tuple[int, int, int, int] = (20_00, 15_00, 10_00, 5_00)

# Per-level policy defaults, ordered HEALTHY → CRITICAL:
# (min buffer ratio bps, max protected deposit (0 = no ceiling), target protected rate bps,
#  protected deposits enabled, leveraged deposits enabled)
DEFAULT_LEVEL_POLICIES: tuple[tuple[int, int, int, bool, bool], ...] = (
    (20_00, 0, 500, True, True),
    (15_00, 0, 450, True, True),
    (10_00, 0, 400, True, True),
    (5_00, 0, 300, False, True),
    (0, 0, 200, False, True),
)

DEFAULT_EPOCH_DURATION = 7 * SECONDS_PER_DAY
MIN_EPOCH_DURATION = 3_600
MAX_EPOCH_DURATION = 30 * SECONDS_PER_DAY

DEFAULT_EARLY_WITHDRAW_PENALTY_BPS = 100
MAX_EARLY_WITHDRAW_PENALTY_BPS = 10_00

# Minimal ABI for the rate oracle - only the view we sync from.
RATE_ORACLE_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "targetRate",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

DEFAULT_TIMEOUT = 30

# Simulation defaults (CLI)
DEFAULT_SIM_DAYS = 90
DEFAULT_SIM_PROTECTED_DEPOSIT = 80_000
DEFAULT_SIM_LEVERAGED_DEPOSIT = 20_000
DEFAULT_SIM_STRATEGY_APY_BPS = 8_00
