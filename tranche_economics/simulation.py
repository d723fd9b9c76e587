"""Day-by-day simulation wiring all controllers together."""

import sys
from dataclasses import dataclass, field
from typing import Any

from tqdm import tqdm

from tranche_economics.constants import (
    DEFAULT_BASE_RATE_BPS,
    DEFAULT_EARLY_WITHDRAW_PENALTY_BPS,
    DEFAULT_PROTOCOL_FEE_BPS,
    DEFAULT_SIM_DAYS,
    DEFAULT_SIM_LEVERAGED_DEPOSIT,
    DEFAULT_SIM_PROTECTED_DEPOSIT,
    DEFAULT_SIM_STRATEGY_APY_BPS,
    SECONDS_PER_DAY,
    TOTAL_BASIS_POINTS,
)
from tranche_economics.distribution import DistributionController
from tranche_economics.epochs import EpochController
from tranche_economics.ledger import MockYieldStrategy, StaticRateSource, TrancheVault, Treasury
from tranche_economics.models import EarlyWithdrawResult, EpochSettlement, HarvestReport
from tranche_economics.permissions import Role, system_caller, user
from tranche_economics.safety import SafetyController

PROTECTED_LP = "protected-lp"
LEVERAGED_LP = "leveraged-lp"
# Arbitrary fixed start so runs are reproducible.
SIM_START = 1_700_000_000


class SimulationClock:
    """Manually advanced clock."""

    def __init__(self, start: int = SIM_START) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        """Move time forward."""
        self.now += seconds


@dataclass(frozen=True)
class SimulationConfig:
    """Inputs of a simulation run."""

    days: int = DEFAULT_SIM_DAYS
    protected_deposit: int = DEFAULT_SIM_PROTECTED_DEPOSIT
    leveraged_deposit: int = DEFAULT_SIM_LEVERAGED_DEPOSIT
    strategy_apy_bps: int = DEFAULT_SIM_STRATEGY_APY_BPS
    base_rate_bps: int = DEFAULT_BASE_RATE_BPS
    protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS
    epoch_days: int = 7
    early_withdraw_penalty_bps: int = DEFAULT_EARLY_WITHDRAW_PENALTY_BPS
    # Share of the protected LP's shares queued for withdrawal each epoch.
    withdraw_bps: int = 0
    shock_day: int | None = None
    shock_loss: int = 0
    early_exit_day: int | None = None
    early_exit_bps: int = 0


@dataclass
class SimulationResult:
    """Everything a run produced."""

    config: SimulationConfig
    clock: SimulationClock
    distribution: DistributionController
    safety: SafetyController
    epochs: EpochController
    strategy: MockYieldStrategy
    treasury: Treasury
    start: int
    harvests: list[HarvestReport] = field(default_factory=list)
    settlements: list[EpochSettlement] = field(default_factory=list)
    early_exits: list[EarlyWithdrawResult] = field(default_factory=list)
    rejected_deposits: list[str] = field(default_factory=list)
    emergency_day: int | None = None


def build_system(config: SimulationConfig, clock: SimulationClock, *, rate_source: Any = None) -> SimulationResult:
    """Create and initialize every component for ``config``."""
    admin = system_caller("admin", Role.ADMIN)
    protected_vault = TrancheVault("protected", is_protected=True)
    leveraged_vault = TrancheVault("leveraged", is_protected=False)
    distribution = DistributionController(
        protected_vault,
        leveraged_vault,
        base_rate_bps=config.base_rate_bps,
        protocol_fee_bps=config.protocol_fee_bps,
        clock=clock,
    )
    strategy = MockYieldStrategy(config.strategy_apy_bps, clock=clock)
    treasury = Treasury()
    distribution.initialize(
        strategy,
        rate_source if rate_source is not None else StaticRateSource(config.base_rate_bps),
        treasury,
        caller=admin,
    )
    safety = SafetyController(distribution, clock=clock)
    distribution.attach_safety(safety, caller=admin)
    epochs = EpochController(
        distribution,
        epoch_duration=config.epoch_days * SECONDS_PER_DAY,
        early_withdraw_penalty_bps=config.early_withdraw_penalty_bps,
        clock=clock,
    )
    epochs.initialize(caller=admin)
    return SimulationResult(
        config=config,
        clock=clock,
        distribution=distribution,
        safety=safety,
        epochs=epochs,
        strategy=strategy,
        treasury=treasury,
        start=clock(),
    )


def run_simulation(config: SimulationConfig, *, rate_source: Any = None, progress: bool = True) -> SimulationResult:
    """
    Run ``config.days`` daily cycles.

    Day 0 seeds the leveraged tranche first, then the protected tranche (so the buffer exists
    before the protected deposit is checked). Each following day advances the clock one day,
    processes the epoch if it is due (which harvests) or harvests otherwise, then refreshes the
    safety level.
    """
    clock = SimulationClock()
    sim = build_system(config, clock, rate_source=rate_source)
    keeper = system_caller("keeper", Role.KEEPER)
    if rate_source is not None:
        sim.distribution.sync_rate(caller=keeper)

    for name, is_protected, amount in (
        (LEVERAGED_LP, False, config.leveraged_deposit),
        (PROTECTED_LP, True, config.protected_deposit),
    ):
        outcome = sim.distribution.deposit(is_protected, amount, caller=user(name))
        if not outcome.accepted:
            sim.rejected_deposits.append(f"{name}: {outcome.reason}")

    protected_vault = sim.distribution.protected_vault
    leveraged_vault = sim.distribution.leveraged_vault

    with tqdm(
        range(1, config.days + 1),
        desc="📅 Simulating",
        unit="day",
        file=sys.stderr,
        disable=not progress,
    ) as pbar:
        for day in pbar:
            clock.advance(SECONDS_PER_DAY)
            if config.shock_day == day and config.shock_loss:
                sim.strategy.schedule_pnl(-config.shock_loss)

            if config.early_exit_day == day and config.early_exit_bps:
                shares = leveraged_vault.balance_of(LEVERAGED_LP) * config.early_exit_bps // TOTAL_BASIS_POINTS
                if shares:
                    sim.early_exits.append(sim.epochs.early_withdraw(False, shares, caller=user(LEVERAGED_LP)))

            if sim.epochs.time_until_epoch_end() == 0:
                settlement = sim.epochs.process_epoch(caller=keeper)
                sim.settlements.append(settlement)
                if settlement.harvest is not None:
                    sim.harvests.append(settlement.harvest)
                if config.withdraw_bps:
                    shares = protected_vault.balance_of(PROTECTED_LP) * config.withdraw_bps // TOTAL_BASIS_POINTS
                    if shares:
                        sim.epochs.request_withdraw(True, shares, caller=user(PROTECTED_LP))
            elif not sim.distribution.emergency_mode:
                report = sim.distribution.harvest(caller=keeper)
                if report is not None:
                    sim.harvests.append(report)

            level = sim.safety.health_check()
            pbar.set_postfix(level=level.name, rate=sim.distribution.fixed_rate_bps)
            if sim.distribution.emergency_mode and sim.emergency_day is None:
                sim.emergency_day = day
                tqdm.write(f"🚨 Day {day}: emergency mode active", file=sys.stderr)

    return sim

