"""Console output formatting."""

from datetime import datetime, timezone

from tranche_economics.formatters import (
    delta_indicator,
    epoch_badge,
    format_amount,
    format_bp,
    format_duration,
    level_badge,
)
from tranche_economics.ledger import TrancheVault
from tranche_economics.simulation import SimulationResult


def _print_vault(label: str, emoji: str, vault: TrancheVault, deposited: int) -> None:
    print(f"\n{emoji} {label} tranche ({vault.name})")
    print("   " + "─" * 50)
    principal = vault.total_principal()
    print(f"   💰 Principal:        {format_amount(principal)}  {delta_indicator(deposited, principal)}")
    print(f"   🌾 Yield reserve:    {format_amount(vault.yield_reserve)}")
    print(f"   📦 Total assets:     {format_amount(vault.total_assets())}")
    print(f"   🎟️  Shares:           {format_amount(vault.total_shares)}")
    if vault.is_protected:
        print(f"   📌 Fixed rate:       {format_bp(vault.fixed_rate_bps)}")
    if vault.slash_deficit or vault.deficit_recovered_total:
        print(f"   🕳️  Slash deficit:    {format_amount(vault.slash_deficit)}")
        print(f"   🩹 Recovered:        {format_amount(vault.deficit_recovered_total)}")


def print_simulation_report(sim: SimulationResult) -> None:
    """Print the end state of a simulation run."""
    cfg = sim.config
    dist = sim.distribution
    ts = datetime.fromtimestamp(sim.clock(), tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    print("=" * 70)
    print("📊 TRANCHE DISTRIBUTION REPORT")
    print(f"   🕐 {ts}  •  {cfg.days} days  •  {dist.harvest_count} harvests")
    print("=" * 70)

    print("\n⚙️  Parameters")
    print(f"   Strategy APY: {format_bp(cfg.strategy_apy_bps)}  •  Base rate: {format_bp(dist.base_rate_bps)}")
    print(f"   Rate bounds: {format_bp(dist.min_rate_bps)} - {format_bp(dist.max_rate_bps)}")
    print(f"   Protocol fee: {format_bp(dist.protocol_fee_bps)}")
    print(f"   Epoch: {format_duration(sim.epochs.epoch_duration)}  •  Early exit penalty: "
          f"{format_bp(sim.epochs.early_withdraw_penalty_bps)}")
    if cfg.shock_day is not None and cfg.shock_loss:
        print(f"   Loss shock: {format_amount(cfg.shock_loss)} on day {cfg.shock_day}")

    _print_vault("Protected", "🛡️ ", dist.protected_vault, cfg.protected_deposit)
    _print_vault("Leveraged", "⚡", dist.leveraged_vault, cfg.leveraged_deposit)

    emoji, label = level_badge(sim.safety.level)
    print(f"\n🚦 Safety: {emoji} {label}")
    print(f"   Buffer ratio: {format_bp(dist.buffer_ratio())}  •  Leverage: {dist.leverage() / 10_000:.2f}x")
    paused = [name for name, flag in (
        ("protected", sim.safety.protected_deposits_paused),
        ("leveraged", sim.safety.leveraged_deposits_paused),
    ) if flag]
    print(f"   Deposits paused: {', '.join(paused) if paused else 'none'}")
    if dist.emergency_mode:
        print(f"   🚨 Emergency mode since day {sim.emergency_day}")

    epoch = sim.epochs.current_epoch
    print(f"\n{epoch_badge(epoch.state)} Epoch {epoch.id} ({epoch.state.value})")
    print(f"   Settled epochs: {len(sim.settlements)}")
    print(f"   Paid via queue: {format_amount(sum(s.amount_paid for s in sim.settlements))}")
    print(f"   Pending requests: {len(sim.epochs.pending_requests())}")
    print(f"   Penalty pool: {format_amount(sim.epochs.accumulated_penalties)}")
    for ex in sim.early_exits:
        print(
            f"   ⏩ Early exit by {ex.user}: gross {format_amount(ex.gross_amount)}, "
            f"penalty {format_amount(ex.penalty)}, net {format_amount(ex.net_amount)}"
        )

    print(f"\n🏦 Treasury: {format_amount(sim.treasury.balance)}")
    if sim.rejected_deposits:
        print("\n⛔ Rejected deposits:")
        for reason in sim.rejected_deposits:
            print(f"   {reason}")
    print("")
