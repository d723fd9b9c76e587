import pytest

from tranche_economics.constants import DEFAULT_EPOCH_DURATION, SECONDS_PER_DAY
from tranche_economics.epochs import EpochController
from tranche_economics.errors import (
    ConfigurationError,
    InsufficientResourceError,
    SequencingError,
    UnauthorizedError,
)
from tranche_economics.models import EpochState
from tranche_economics.permissions import Role, system_caller, user

ADMIN = system_caller("admin", Role.ADMIN)
KEEPER = system_caller("keeper", Role.KEEPER)
ALICE = user("alice")
BOB = user("bob")


def _seed(system, protected=80_000, leveraged=20_000):
    assert system.dist.deposit(False, leveraged, caller=user("lev")).accepted
    if protected:
        assert system.dist.deposit(True, protected, caller=ALICE).accepted


def _lock_and_settle(system, epoch_id=0):
    system.epochs.lock_epoch(epoch_id, caller=KEEPER)
    return system.epochs.settle_epoch(epoch_id, caller=KEEPER)


def test_first_epoch_opens_on_initialize(system):
    epoch = system.epochs.current_epoch
    assert epoch.id == 0
    assert epoch.state == EpochState.OPEN
    assert epoch.end_time - epoch.start_time == DEFAULT_EPOCH_DURATION
    assert system.epochs.time_until_epoch_end() == DEFAULT_EPOCH_DURATION
    with pytest.raises(SequencingError):
        system.epochs.initialize(caller=ADMIN)


def test_uninitialized_controller(system):
    epochs = EpochController(system.dist, clock=system.clock)
    with pytest.raises(SequencingError):
        epochs.request_withdraw(True, 1, caller=ALICE)
    with pytest.raises(UnauthorizedError):
        epochs.initialize(caller=KEEPER)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"epoch_duration": 60},
        {"epoch_duration": 31 * SECONDS_PER_DAY},
        {"early_withdraw_penalty_bps": 1_001},
    ],
)
def test_invalid_construction(system, kwargs):
    with pytest.raises(ConfigurationError):
        EpochController(system.dist, clock=system.clock, **kwargs)


def test_request_validation(system):
    _seed(system)
    with pytest.raises(InsufficientResourceError):
        system.epochs.request_withdraw(True, 0, caller=ALICE)
    with pytest.raises(InsufficientResourceError):
        system.epochs.request_withdraw(True, 80_001, caller=ALICE)
    with pytest.raises(InsufficientResourceError):
        system.epochs.request_withdraw(True, 1, caller=BOB)

    request = system.epochs.request_withdraw(True, 10_000, caller=ALICE)
    assert request.epoch_id == 0
    assert not request.processed
    assert system.epochs.current_epoch.total_withdraw_requests == 10_000
    assert system.epochs.pending_requests() == [request]


def test_state_machine_ordering(system):
    _seed(system)
    with pytest.raises(SequencingError):
        system.epochs.settle_epoch(0, caller=KEEPER)
    with pytest.raises(SequencingError):
        system.epochs.lock_epoch(7, caller=KEEPER)
    with pytest.raises(UnauthorizedError):
        system.epochs.lock_epoch(0, caller=ALICE)

    system.epochs.lock_epoch(0, caller=KEEPER)
    with pytest.raises(SequencingError):
        system.epochs.lock_epoch(0, caller=KEEPER)
    with pytest.raises(SequencingError):
        system.epochs.request_withdraw(True, 1, caller=ALICE)

    system.epochs.settle_epoch(0, caller=KEEPER)
    assert system.epochs.epochs[0].state == EpochState.SETTLED
    with pytest.raises(SequencingError):
        system.epochs.settle_epoch(0, caller=KEEPER)
    assert system.epochs.current_epoch.id == 1
    assert system.epochs.current_epoch.state == EpochState.OPEN


def test_settlement_harvests_and_pays_queue(system):
    _seed(system)
    system.epochs.request_withdraw(True, 40_000, caller=ALICE)
    system.clock.advance(DEFAULT_EPOCH_DURATION)

    settlement = _lock_and_settle(system)

    assert settlement.harvest is not None
    # zero profit: a week of obligation is funded by slashing the leveraged tranche
    assert settlement.harvest.result.protected_yield == 76
    assert settlement.requests_processed == 1
    assert settlement.shares_redeemed == 40_000
    assert settlement.amount_paid >= 40_000
    assert settlement.amount_paid == system.protected.paid_out["alice"]
    assert settlement.next_epoch_id == 1
    assert settlement.capital_shortfall == 0
    assert system.protected.balance_of("alice") == 40_000
    assert system.dist.principals()[0] == system.protected.total_principal()
    assert system.epochs.pending_requests() == []


def test_requests_settle_only_in_their_own_epoch(system):
    _seed(system)
    first = system.epochs.request_withdraw(True, 10_000, caller=ALICE)
    _lock_and_settle(system, 0)
    assert first.processed

    second = system.epochs.request_withdraw(True, 5_000, caller=ALICE)
    assert second.epoch_id == 1
    assert system.epochs.pending_requests(0) == []
    assert system.epochs.pending_requests(1) == [second]

    settlement = _lock_and_settle(system, 1)
    assert settlement.requests_processed == 1
    assert settlement.shares_redeemed == 5_000
    assert first.shares_redeemed == 10_000

    settlement = _lock_and_settle(system, 2)
    assert settlement.requests_processed == 0


def test_settlement_clamps_to_remaining_balance(system):
    _seed(system)
    request = system.epochs.request_withdraw(True, 80_000, caller=ALICE)
    system.epochs.early_withdraw(True, 50_000, caller=ALICE)

    settlement = _lock_and_settle(system)

    assert request.shares_redeemed == 30_000
    assert settlement.shares_redeemed == 30_000
    assert system.protected.balance_of("alice") == 0


def test_early_withdraw_charges_penalty(system):
    _seed(system, protected=10_000)
    strategy_before = system.strategy.total_assets()

    result = system.epochs.early_withdraw(True, 10_000, caller=ALICE)

    assert result.gross_amount == 10_000
    assert result.penalty == 100
    assert result.net_amount == 9_900
    assert result.capital_shortfall == 0
    assert system.epochs.accumulated_penalties == 100
    assert system.epochs.paid_out["alice"] == 9_900
    assert system.strategy.total_assets() == strategy_before - 9_900
    assert system.dist.principals() == (0, 20_000)


def test_early_withdraw_works_while_locked(system):
    _seed(system, protected=10_000)
    system.epochs.lock_epoch(0, caller=KEEPER)
    assert system.epochs.early_withdraw(True, 5_000, caller=ALICE).net_amount == 4_950
    with pytest.raises(InsufficientResourceError):
        system.epochs.early_withdraw(True, 5_001, caller=ALICE)
    with pytest.raises(InsufficientResourceError):
        system.epochs.early_withdraw(False, 0, caller=ALICE)


def test_penalties_shared_pro_rata_at_settlement(system):
    _seed(system)
    assert system.dist.deposit(True, 10_000, caller=BOB).accepted
    system.epochs.early_withdraw(True, 10_000, caller=BOB)

    settlement = _lock_and_settle(system)

    assert settlement.harvest is None
    assert settlement.penalty_to_protected == 80
    assert settlement.penalty_to_leveraged == 20
    assert settlement.penalty_deferred == 0
    assert system.protected.yield_reserve == 80
    assert system.leveraged.yield_reserve == 20
    assert system.epochs.accumulated_penalties == 0


def test_penalties_deferred_when_tranches_empty(system):
    assert system.dist.deposit(True, 1_000, caller=BOB).accepted
    system.epochs.early_withdraw(True, 1_000, caller=BOB)

    settlement = _lock_and_settle(system)

    assert settlement.penalty_deferred == 10
    assert settlement.penalty_to_protected == settlement.penalty_to_leveraged == 0
    assert system.epochs.accumulated_penalties == 10


def test_process_epoch_waits_for_end_time(system):
    _seed(system)
    with pytest.raises(SequencingError):
        system.epochs.process_epoch(caller=KEEPER)

    system.clock.advance(DEFAULT_EPOCH_DURATION)
    settlement = system.epochs.process_epoch(caller=KEEPER)

    assert settlement.epoch_id == 0
    assert system.epochs.current_epoch.id == 1
    assert system.epochs.current_epoch.start_time == system.clock()
    assert system.epochs.settlements == [settlement]


def test_settlement_in_emergency_skips_harvest(system):
    _seed(system)
    system.epochs.request_withdraw(True, 10_000, caller=ALICE)
    system.dist.emergency_withdraw(caller=ADMIN)
    system.clock.advance(SECONDS_PER_DAY)

    settlement = _lock_and_settle(system)

    assert settlement.harvest is None
    assert settlement.requests_processed == 1
    assert system.dist.harvest_count == 0
    # the strategy was swept, so nothing backed the payout
    assert settlement.amount_paid > 0
    assert settlement.capital_shortfall == settlement.amount_paid

    exit_result = system.epochs.early_withdraw(True, 10_000, caller=ALICE)
    assert exit_result.capital_shortfall == exit_result.net_amount


def test_admin_setters(system):
    system.epochs.set_epoch_duration(SECONDS_PER_DAY, caller=ADMIN)
    system.epochs.set_early_withdraw_penalty(0, caller=ADMIN)
    with pytest.raises(ConfigurationError):
        system.epochs.set_epoch_duration(10, caller=ADMIN)
    with pytest.raises(UnauthorizedError):
        system.epochs.set_early_withdraw_penalty(50, caller=KEEPER)

    _lock_and_settle(system)
    epoch = system.epochs.current_epoch
    assert epoch.end_time - epoch.start_time == SECONDS_PER_DAY
