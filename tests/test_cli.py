from tranche_economics import cli, onchain
from tranche_economics.ledger import StaticRateSource
from tranche_economics.models import SafetyLevel
from tranche_economics.simulation import SimulationConfig, run_simulation
from tranche_economics.validation import validate_controller_state


def test_simulation_steady_state():
    sim = run_simulation(SimulationConfig(days=30), progress=False)
    assert sim.rejected_deposits == []
    assert len(sim.harvests) == 30
    assert len(sim.settlements) == 4
    assert sim.emergency_day is None
    assert sim.safety.level == SafetyLevel.HEALTHY
    assert sim.distribution.protected_vault.yield_reserve > 0
    assert validate_controller_state(sim.distribution) == []


def test_simulation_loss_shock_enters_emergency():
    sim = run_simulation(SimulationConfig(days=10, shock_day=3, shock_loss=50_000), progress=False)
    assert sim.emergency_day == 3
    assert len(sim.harvests) == 3
    assert sim.settlements[0].harvest is None
    # the slash drew on the leveraged yield reserve first, so only that much principal survives
    assert sim.distribution.leveraged_vault.total_principal() < 100
    assert sim.safety.level == SafetyLevel.CRITICAL
    assert sim.safety.protected_deposits_paused


def test_simulation_queue_and_early_exit():
    config = SimulationConfig(days=14, withdraw_bps=5_000, early_exit_day=2, early_exit_bps=1_000)
    sim = run_simulation(config, progress=False)
    assert len(sim.early_exits) == 1
    assert sim.early_exits[0].penalty > 0
    # the day-7 settlement distributes the early-exit penalty
    assert sim.settlements[0].penalty_to_protected + sim.settlements[0].penalty_to_leveraged > 0
    # request queued after the day-7 settlement is paid at day 14
    assert sim.settlements[1].requests_processed == 1


def test_main_runs_simulation(capsys):
    assert cli.main(["--days", "14", "--no-progress"]) == 0
    out = capsys.readouterr().out
    assert "TRANCHE DISTRIBUTION REPORT" in out
    assert "ANALYTICS SUMMARY" in out


def test_main_rate_oracle_requires_rpc_url(monkeypatch, capsys):
    monkeypatch.delenv("ETH_RPC_URL", raising=False)
    assert cli.main(["--rate-oracle", "0xabc", "--no-progress"]) == 2
    assert "RPC URL is required" in capsys.readouterr().err


def test_main_syncs_rate_from_oracle(monkeypatch, capsys):
    monkeypatch.setattr(onchain, "connect_rate_source", lambda rpc_url, addr, timeout: StaticRateSource(700))
    rc = cli.main(["--days", "3", "--no-progress", "--rate-oracle", "0xabc", "--rpc-url", "http://localhost:8545"])
    assert rc == 0
    assert "Base rate: 7.00%" in capsys.readouterr().out


def test_main_reports_invalid_config(capsys):
    assert cli.main(["--days", "3", "--no-progress", "--fee-bps", "5000"]) == 1
    assert "simulation aborted" in capsys.readouterr().err
