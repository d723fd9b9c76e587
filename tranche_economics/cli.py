"""CLI and main logic."""

import argparse
import os
import sys

from tranche_economics.analytics import calculate_tranche_analytics, format_analytics_summary, level_time_share
from tranche_economics.console import print_simulation_report
from tranche_economics.constants import (
    DEFAULT_BASE_RATE_BPS,
    DEFAULT_EARLY_WITHDRAW_PENALTY_BPS,
    DEFAULT_PROTOCOL_FEE_BPS,
    DEFAULT_SIM_DAYS,
    DEFAULT_SIM_LEVERAGED_DEPOSIT,
    DEFAULT_SIM_PROTECTED_DEPOSIT,
    DEFAULT_SIM_STRATEGY_APY_BPS,
    DEFAULT_TIMEOUT,
)
from tranche_economics.errors import TrancheEngineError
from tranche_economics.models import SafetyLevel
from tranche_economics.simulation import SimulationConfig, run_simulation
from tranche_economics.validation import validate_controller_state


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Simulate a two-tranche yield waterfall with safety levels and epochs.")
    p.add_argument("--days", type=int, default=DEFAULT_SIM_DAYS, help="Number of daily cycles to run.")
    p.add_argument("--protected", type=int, default=DEFAULT_SIM_PROTECTED_DEPOSIT, help="Protected tranche deposit.")
    p.add_argument("--leveraged", type=int, default=DEFAULT_SIM_LEVERAGED_DEPOSIT, help="Leveraged tranche deposit.")
    p.add_argument("--apy-bps", type=int, default=DEFAULT_SIM_STRATEGY_APY_BPS, help="Strategy APY in bps.")
    p.add_argument("--base-rate-bps", type=int, default=DEFAULT_BASE_RATE_BPS, help="Protected base rate in bps.")
    p.add_argument("--fee-bps", type=int, default=DEFAULT_PROTOCOL_FEE_BPS, help="Protocol fee on profit in bps.")
    p.add_argument("--epoch-days", type=int, default=7, help="Withdrawal epoch length in days.")
    p.add_argument(
        "--penalty-bps",
        type=int,
        default=DEFAULT_EARLY_WITHDRAW_PENALTY_BPS,
        help="Early withdraw penalty in bps.",
    )
    p.add_argument("--withdraw-bps", type=int, default=0, help="Share of protected shares queued each epoch (bps).")
    p.add_argument("--shock-day", type=int, default=None, help="Day on which the strategy reports a loss.")
    p.add_argument("--shock-loss", type=int, default=0, help="Size of the loss reported on --shock-day.")
    p.add_argument("--early-exit-day", type=int, default=None, help="Day on which the leveraged LP exits early.")
    p.add_argument("--early-exit-bps", type=int, default=0, help="Share of leveraged shares exited early (bps).")
    p.add_argument(
        "--rate-oracle",
        default=None,
        help="Rate oracle address; when set, the base rate is synced from targetRate() before the run.",
    )
    p.add_argument(
        "--rpc-url",
        default=None,
        help="Execution-layer RPC URL for --rate-oracle. Defaults to the ETH_RPC_URL environment variable.",
    )
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    return p.parse_args(argv)


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)

    rate_source = None
    if args.rate_oracle:
        rpc_url = args.rpc_url or os.getenv("ETH_RPC_URL")
        if not rpc_url:
            print(
                "Error: RPC URL is required with --rate-oracle. Provide --rpc-url or set ETH_RPC_URL.",
                file=sys.stderr,
            )
            return 2
        try:
            from tranche_economics.onchain import connect_rate_source
        except ImportError as ex:  # pragma: no cover
            print("Missing dependency. Run: pip install web3", file=sys.stderr)
            raise SystemExit(2) from ex
        try:
            rate_source = connect_rate_source(rpc_url, args.rate_oracle, timeout=DEFAULT_TIMEOUT)
            print(f"ℹ️ Rate oracle: {args.rate_oracle[:10]}... target {rate_source.target_rate()} bps", file=sys.stderr)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            print(f"Error: failed to read rate oracle {args.rate_oracle}: {ex}", file=sys.stderr)
            return 2

    config = SimulationConfig(
        days=args.days,
        protected_deposit=args.protected,
        leveraged_deposit=args.leveraged,
        strategy_apy_bps=args.apy_bps,
        base_rate_bps=args.base_rate_bps,
        protocol_fee_bps=args.fee_bps,
        epoch_days=args.epoch_days,
        early_withdraw_penalty_bps=args.penalty_bps,
        withdraw_bps=args.withdraw_bps,
        shock_day=args.shock_day,
        shock_loss=args.shock_loss,
        early_exit_day=args.early_exit_day,
        early_exit_bps=args.early_exit_bps,
    )

    try:
        sim = run_simulation(config, rate_source=rate_source, progress=not args.no_progress)
    except TrancheEngineError as ex:
        print(f"Error: simulation aborted: {ex}", file=sys.stderr)
        return 1

    issues = validate_controller_state(sim.distribution, warn_only=True)
    if issues:
        print("⚠️  State validation warnings:", file=sys.stderr)
        for issue in issues:
            print(f"   {issue}", file=sys.stderr)

    print_simulation_report(sim)

    analytics = calculate_tranche_analytics(sim.harvests)
    level_seconds = level_time_share(
        sim.safety.transitions,
        initial_level=SafetyLevel.HEALTHY,
        start=sim.start,
        end=sim.clock(),
    )
    print(format_analytics_summary(analytics, level_seconds))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
