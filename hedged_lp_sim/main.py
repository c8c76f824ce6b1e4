#!/usr/bin/env python3
"""
Hedged LP Simulator - Main Entry Point

Sizes a delta-neutral LP position, prints its PnL profile across the range
and optionally runs the full open/close lifecycle on an in-process
deployment.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from hedged_lp_sim.analysis.hedge_pnl import build_pnl_sweep, expected_pnl, plot_pnl_sweep, summarize_sweep
from hedged_lp_sim.core.errors import HedgeError
from hedged_lp_sim.core.fixed_point import WAD, from_number, to_float
from hedged_lp_sim.engine.config import AllocationMode, StrategyConfig, load_strategy_config
from hedged_lp_sim.engine.deployment import create_deployment


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delta-Neutral Hedged LP Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m hedged_lp_sim.main --sweep                                  # Static 79/21 split, range 0.5-2.0
  python -m hedged_lp_sim.main --sweep --mode solved --target 0.6      # Equal-PnL hedge at 0.6
  python -m hedged_lp_sim.main --sweep --csv out/sweep.csv --chart out/sweep.png
  python -m hedged_lp_sim.main --simulate --exit-price 0.8              # Open, move price, close
        """
    )

    # Actions
    parser.add_argument('--sweep', action='store_true',
                        help='Print the PnL profile across the price range')
    parser.add_argument('--simulate', action='store_true',
                        help='Run deposit, hedged open and close on an in-process deployment')

    # Position
    parser.add_argument('--price', type=str, default="1.0",
                        help='Current price, token1 per token0 (default: 1.0)')
    parser.add_argument('--lower', type=str, default="0.5",
                        help='Lower bound of the range (default: 0.5)')
    parser.add_argument('--upper', type=str, default="2.0",
                        help='Upper bound of the range (default: 2.0)')
    parser.add_argument('--capital', type=str, default="1000",
                        help='Total capital in token1 (default: 1000)')
    parser.add_argument('--mode', choices=[m.value for m in AllocationMode], default=None,
                        help='Allocation mode (default: from config, static)')
    parser.add_argument('--target', type=str,
                        help='Target price for the solved mode (default: lower bound)')
    parser.add_argument('--short-price', type=str,
                        help='Short entry price for the solved mode (default: current price)')

    # Sweep output
    parser.add_argument('--points', type=int, default=41,
                        help='Number of grid prices in the sweep (default: 41)')
    parser.add_argument('--volatility', type=float, default=0.3,
                        help='Log-price volatility for the expected PnL (default: 0.3)')
    parser.add_argument('--csv', type=str,
                        help='Write the sweep table to a CSV file')
    parser.add_argument('--chart', type=str,
                        help='Save the sweep chart to an image file')

    # Lifecycle simulation
    parser.add_argument('--exit-price', type=str,
                        help='Price to move to before closing (default: current price)')

    parser.add_argument('--config', type=str,
                        help='Strategy configuration JSON file')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')
    return parser


def _optional_number(value: Optional[str]) -> Optional[int]:
    return from_number(value) if value is not None else None


def run_sweep(args, config: StrategyConfig, mode: AllocationMode) -> int:
    price = from_number(args.price)
    df = build_pnl_sweep(
        price,
        from_number(args.lower),
        from_number(args.upper),
        from_number(args.capital),
        mode=mode,
        target_price=_optional_number(args.target),
        short_price=_optional_number(args.short_price),
        points=args.points,
        lp_share_bps=config.static_lp_share_bps,
    )

    summary = summarize_sweep(df)
    expected = expected_pnl(df, to_float(price), args.volatility)

    print(f"Allocation ({summary['mode']}): LP {summary['lp_value']:,.4f} / short {summary['short_value']:,.4f}")
    print("-" * 60)
    print(df.to_string(index=False, float_format=lambda v: f"{v:,.4f}"))
    print("-" * 60)
    print(f"Worst LP PnL:   {summary['worst_lp_pnl']:,.4f}")
    print(f"Worst net PnL:  {summary['worst_net_pnl']:,.4f}")
    print(f"LP PnL std:     {summary['lp_pnl_std']:,.4f}")
    print(f"Net PnL std:    {summary['net_pnl_std']:,.4f}")
    print(f"Expected net PnL (vol {args.volatility:.2f}): {expected['expected_net_pnl']:,.4f}")

    if args.csv:
        csv_path = Path(args.csv)
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(csv_path, index=False)
        print(f"Saved sweep table to {csv_path}")

    if args.chart:
        print(f"Saved chart to {plot_pnl_sweep(df, Path(args.chart))}")

    return 0


def run_simulation(args, config: StrategyConfig, mode: AllocationMode) -> int:
    price = from_number(args.price)
    deployment = create_deployment(config, human_price=price)
    orchestrator = deployment.orchestrator
    user = "user"

    # Deposit half the capital in each token
    half_capital = from_number(args.capital) // 2
    amount1 = deployment.units(deployment.token1, to_float(half_capital))
    amount0 = deployment.units(deployment.token0, half_capital / price)
    deployment.fund_user(user, amount0, amount1)
    orchestrator.deposit_for_lp(user, amount0, amount1)

    tick_lower = deployment.tick_for_price(from_number(args.lower))
    tick_upper = deployment.tick_for_price(from_number(args.upper))
    composite = orchestrator.open_hedged_lp_for_user(
        deployment.owner, user, tick_lower, tick_upper, mode,
        target_price=None, short_price=None
    )

    print(f"Opened hedged position {composite.composite_id} [{tick_lower}, {tick_upper}] ({mode.value})")
    print(f"  LP leg:     {composite.lp_amount0} {deployment.token0} + {composite.lp_amount1} {deployment.token1}")
    print(f"  Short leg:  {composite.short_supplied} {deployment.token1} supplied")
    account = deployment.manager.account_data()
    print(f"  Health factor: {account.health_factor / WAD:.4f}")

    if args.exit_price:
        deployment.set_market_price(from_number(args.exit_price))
        print(f"Moved market price to {args.exit_price}")

    result = orchestrator.close_hedged_lp_for_user(deployment.owner, user)
    deposit = orchestrator.get_user_lp_deposit(user)
    print(f"Closed hedged position {result.composite_id}")
    print(f"  Short PnL:  {result.short_pnl} {deployment.token1} units")
    print(f"  Deposit:    {deposit.amount0} {deployment.token0} + {deposit.amount1} {deployment.token1}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with command-line interface"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if not (args.sweep or args.simulate):
        parser.print_help()
        return 1

    try:
        config = load_strategy_config(args.config) if args.config else StrategyConfig()
        mode = AllocationMode(args.mode) if args.mode else config.default_allocation_mode

        if args.sweep:
            print("Hedged LP PnL Sweep")
            print("=" * 60)
            status = run_sweep(args, config, mode)
            if status:
                return status

        if args.simulate:
            print("Hedged LP Lifecycle Simulation")
            print("=" * 60)
            return run_simulation(args, config, mode)

        return 0

    except (HedgeError, ValueError, OSError) as e:
        print(f"Error: {str(e)}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
