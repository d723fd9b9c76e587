import pytest

from tranche_economics.constants import SECONDS_PER_YEAR
from tranche_economics.errors import ConfigurationError, InsufficientResourceError, UnauthorizedError
from tranche_economics.ledger import MockYieldStrategy, TrancheVault, Treasury
from tranche_economics.permissions import Role, system_caller, user
from tranche_economics.simulation import SimulationClock

CONTROLLER = system_caller("controller", Role.CONTROLLER)


def test_deposit_then_redeem_returns_principal():
    vault = TrancheVault("protected", is_protected=True)
    shares = vault.deposit("alice", 1_000, caller=CONTROLLER)
    assert shares == 1_000
    assert vault.redeem(shares, "alice", "alice", caller=user("alice")) == 1_000
    assert vault.total_assets() == 0
    assert vault.total_shares == 0
    assert vault.paid_out == {"alice": 1_000}


def test_yield_raises_share_price():
    vault = TrancheVault("protected", is_protected=True)
    vault.deposit("alice", 1_000, caller=CONTROLLER)
    vault.credit_yield(1_000, caller=CONTROLLER)
    bob_shares = vault.deposit("bob", 2_000, caller=CONTROLLER)
    assert bob_shares == 1_000
    # rounded down in the vault's favour
    assert vault.preview_redeem(vault.balance_of("alice")) == 1_999


def test_only_controller_moves_funds():
    vault = TrancheVault("leveraged", is_protected=False)
    with pytest.raises(UnauthorizedError):
        vault.deposit("alice", 1_000, caller=user("alice"))
    vault.deposit("alice", 1_000, caller=CONTROLLER)
    with pytest.raises(UnauthorizedError):
        vault.credit_yield(10, caller=user("alice"))
    with pytest.raises(UnauthorizedError):
        vault.redeem(100, "mallory", "alice", caller=user("mallory"))
    with pytest.raises(InsufficientResourceError):
        vault.redeem(1_001, "alice", "alice", caller=user("alice"))
    with pytest.raises(InsufficientResourceError):
        vault.deposit("alice", 0, caller=CONTROLLER)


def test_slash_uses_yield_then_principal_then_records_deficit():
    vault = TrancheVault("leveraged", is_protected=False)
    vault.deposit("lev", 1_000, caller=CONTROLLER)
    vault.credit_yield(200, caller=CONTROLLER)

    assert vault.slash_principal(1_500, caller=CONTROLLER) == 1_200
    assert vault.yield_reserve == 0
    assert vault.total_principal() == 0
    assert vault.slash_deficit == 300

    # the next yield pays down the deficit before it is credited
    assert vault.credit_yield(800, caller=CONTROLLER) == 500
    assert vault.slash_deficit == 0
    assert vault.deficit_recovered_total == 300
    assert vault.yield_reserve == 500


def test_fixed_rate_only_on_protected_tranche():
    protected = TrancheVault("protected", is_protected=True)
    protected.set_fixed_rate(450, caller=CONTROLLER)
    assert protected.fixed_rate_bps == 450
    with pytest.raises(ConfigurationError):
        TrancheVault("leveraged", is_protected=False).set_fixed_rate(450, caller=CONTROLLER)


def test_strategy_accrues_and_applies_scheduled_pnl():
    clock = SimulationClock(0)
    strategy = MockYieldStrategy(1_000, clock=clock)
    strategy.deposit(100_000)
    clock.advance(SECONDS_PER_YEAR)
    strategy.schedule_pnl(-500)
    assert strategy.harvest() == 9_500
    assert strategy.total_assets() == 109_500
    assert strategy.harvest() == 0

    strategy.schedule_pnl(-1_000_000)
    assert strategy.harvest() == -1_000_000
    assert strategy.total_assets() == 0
    assert strategy.withdraw(10) == 0


def test_treasury_records_receipts():
    treasury = Treasury("fees")
    treasury.receive(100, source="protocol-fee")
    treasury.receive(0, source="protocol-fee")
    assert treasury.balance == 100
    assert len(treasury.receipts) == 2
    with pytest.raises(ConfigurationError):
        treasury.receive(-1, source="oops")
