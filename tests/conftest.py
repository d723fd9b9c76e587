from dataclasses import dataclass

import pytest

from tranche_economics.distribution import DistributionController
from tranche_economics.epochs import EpochController
from tranche_economics.ledger import MockYieldStrategy, StaticRateSource, TrancheVault, Treasury
from tranche_economics.permissions import Role, system_caller
from tranche_economics.simulation import SimulationClock

ADMIN = system_caller("admin", Role.ADMIN)


@dataclass
class System:
    clock: SimulationClock
    protected: TrancheVault
    leveraged: TrancheVault
    dist: DistributionController
    strategy: MockYieldStrategy
    treasury: Treasury
    rate_source: StaticRateSource
    epochs: EpochController


@pytest.fixture
def clock() -> SimulationClock:
    return SimulationClock()


@pytest.fixture
def system(clock) -> System:
    protected = TrancheVault("protected", is_protected=True)
    leveraged = TrancheVault("leveraged", is_protected=False)
    dist = DistributionController(protected, leveraged, clock=clock)
    strategy = MockYieldStrategy(0, clock=clock)
    treasury = Treasury()
    rate_source = StaticRateSource(500)
    dist.initialize(strategy, rate_source, treasury, caller=ADMIN)
    epochs = EpochController(dist, clock=clock)
    epochs.initialize(caller=ADMIN)
    return System(
        clock=clock,
        protected=protected,
        leveraged=leveraged,
        dist=dist,
        strategy=strategy,
        treasury=treasury,
        rate_source=rate_source,
        epochs=epochs,
    )
