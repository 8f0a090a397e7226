#!/usr/bin/env python3
"""
Cross-symbol ORB market simulation
One synthetic clock over the whole universe, top-K admission per tick
"""

import argparse
import asyncio
import logging

from orb_engine.backtest.report import export_trades, plot_equity_curve, print_backtest_results
from orb_engine.backtest.simulator import MarketSimulator, SimulationReport
from orb_engine.core.advanced_logger import setup_logging
from orb_engine.core.orb_config import ORBConfig
from orb_engine.utils.market_data import MarketDataProvider
from orb_engine.utils.sample_data import generate_sample_universe

logger = logging.getLogger(__name__)


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='ORB Market Simulation')

    parser.add_argument('--symbols', nargs='+', default=None,
                        help='Symbols to simulate (default: configured universe)')
    parser.add_argument('--range', dest='range_', type=str, default='5d',
                        help='Yahoo period for 1m bars (default: 5d)')
    parser.add_argument('--top-k', type=int, default=None,
                        help='New positions admitted per tick (default: 5)')
    parser.add_argument('--amount', type=float, default=None,
                        help='Dollars per trade (default: 50000)')
    parser.add_argument('--sample', action='store_true',
                        help='Use synthetic data instead of Yahoo Finance')
    parser.add_argument('--days', type=int, default=5,
                        help='Synthetic trading days with --sample (default: 5)')
    parser.add_argument('--csv', type=str, default=None, help='Export trades to CSV')
    parser.add_argument('--chart', type=str, default=None, help='Save equity chart PNG')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    return parser.parse_args()


def print_simulation_report(report: SimulationReport):
    print_backtest_results(report.result, "ORB MARKET SIMULATION")
    print(f"\n💼 PORTFOLIO:")
    print(f"   Starting Capital: ${report.starting_capital:,.2f}")
    print(f"   Final Equity: ${report.final_equity:,.2f}")
    print(f"   Dollar P&L: ${report.dollar_pnl:+,.2f}")
    print(f"   Ticks Simulated: {report.ticks}")
    if report.skipped_for_cash:
        print(f"   Signals Skipped (cash): {report.skipped_for_cash}")


def main():
    args = parse_arguments()

    overrides = {}
    if args.top_k:
        overrides['top_k'] = args.top_k
    if args.amount:
        overrides['amount_per_trade'] = args.amount
    config = ORBConfig.simulation_profile(**overrides)
    if args.symbols:
        config.symbols = tuple(s.upper() for s in args.symbols)
    if not config.symbols:
        # universe lives in the shipped config file
        config.symbols = ORBConfig.load_from_file().symbols

    setup_logging(level='DEBUG' if args.debug else config.log_level)

    if args.sample:
        universe = generate_sample_universe(config.symbols, days=args.days,
                                            timezone=config.session_timezone)
    else:
        provider = MarketDataProvider(config.session_timezone)
        universe = asyncio.run(provider.fetch_many(
            list(config.symbols), args.range_, '1m',
            batch_size=config.fetch_batch_size,
            timeout=config.fetch_timeout_seconds,
        ))

    simulator = MarketSimulator(config)
    for symbol, candles in universe.items():
        simulator.add_ticker_data(symbol, candles)

    report = simulator.run()
    print_simulation_report(report)

    if args.csv:
        export_trades(report.trades, args.csv)
    if args.chart:
        plot_equity_curve(report.result, args.chart, title="Simulation", equity_curve=report.equity_curve)

    print("\n✅ Simulation completed!")


if __name__ == "__main__":
    main()
