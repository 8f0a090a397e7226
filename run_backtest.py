#!/usr/bin/env python3
"""
Historical backtest runner
ORB per-symbol replay on intraday bars, or the gap-fill strategy on daily bars
"""

import argparse
import asyncio
import logging
import sys

from orb_engine.backtest.backtester import ORBBacktester
from orb_engine.backtest.metrics import aggregate_results
from orb_engine.backtest.report import export_trades, plot_equity_curve, print_backtest_results, result_to_dict
from orb_engine.core.advanced_logger import setup_logging
from orb_engine.core.orb_config import ORBConfig
from orb_engine.strategies.gap_fill import GapFillParams, backtest_gap_fill, build_market_trend_map
from orb_engine.utils.market_data import MarketDataProvider
from orb_engine.utils.notifier import WebhookNotifier

logger = logging.getLogger(__name__)


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='ORB / Gap-Fill Backtester')

    parser.add_argument('--strategy', choices=['orb', 'gap'], default='orb',
                        help='Strategy to backtest (default: orb)')
    parser.add_argument('--symbols', nargs='+', default=None,
                        help='Symbols to test (default: configured universe)')
    parser.add_argument('--range', dest='range_', type=str, default=None,
                        help="Yahoo period (default: 5d for orb, 2y for gap)")
    parser.add_argument('--interval', type=str, default='1m',
                        help='Bar size for orb (default: 1m)')
    parser.add_argument('--opening-candles', type=int, default=None,
                        help='Opening range size in candles (default: 30)')

    # Gap-fill parameters
    parser.add_argument('--gap', type=float, default=2.0, help='Min gap down %% (default: 2)')
    parser.add_argument('--min-rsi', type=float, default=30.0, help='Min prior-day RSI (default: 30)')
    parser.add_argument('--hold-days', type=int, default=1, help='Max hold days (default: 1)')
    parser.add_argument('--stop-loss', type=float, default=3.0, help='Stop loss %% (default: 3)')
    parser.add_argument('--market-filter', action='store_true', help='Require SPY above its 200d SMA')

    # Output
    parser.add_argument('--csv', type=str, default=None, help='Export trades to CSV')
    parser.add_argument('--chart', type=str, default=None, help='Save equity chart PNG')
    parser.add_argument('--config', type=str, default=None, help='Path to JSON config file')
    parser.add_argument('--notify', action='store_true', help='POST the summary to the webhook')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    return parser.parse_args()


def run_orb(args, config: ORBConfig, provider: MarketDataProvider):
    backtester = ORBBacktester(config)
    return asyncio.run(backtester.run_async(list(config.symbols), provider,
                                            args.range_ or '5d', args.interval))


def run_gap(args, config: ORBConfig, provider: MarketDataProvider):
    period = args.range_ or '2y'
    params = GapFillParams(
        gap_threshold=args.gap,
        min_rsi=args.min_rsi,
        hold_days=args.hold_days,
        stop_loss=args.stop_loss,
        use_market_filter=args.market_filter,
    )

    market_trend = None
    if args.market_filter:
        market_trend = build_market_trend_map(provider.fetch_candles('SPY', period, '1d'))

    trades = []
    for symbol in config.symbols:
        daily = provider.fetch_candles(symbol, period, '1d')
        if not daily:
            continue
        trades.extend(backtest_gap_fill(daily, symbol, params, market_trend))
    return aggregate_results(trades)


def main():
    args = parse_arguments()

    config = ORBConfig.load_from_file(args.config) if args.config else ORBConfig.backtest_profile()
    if args.symbols:
        config.symbols = tuple(s.upper() for s in args.symbols)
    if not config.symbols:
        # universe lives in the shipped config file
        config.symbols = ORBConfig.load_from_file().symbols
    if args.opening_candles:
        config.opening_range_size = args.opening_candles

    setup_logging(level='DEBUG' if args.debug else config.log_level)
    if not config.validate():
        sys.exit(1)

    provider = MarketDataProvider(config.session_timezone)
    if args.strategy == 'gap':
        result = run_gap(args, config, provider)
        title = "GAP FILL BACKTEST RESULTS"
    else:
        config.display_strategy_summary()
        result = run_orb(args, config, provider)
        title = "ORB BACKTEST RESULTS"

    print_backtest_results(result, title)

    if args.csv:
        export_trades(result.trades, args.csv)
    if args.chart:
        plot_equity_curve(result, args.chart, title=args.strategy.upper())
    if args.notify:
        WebhookNotifier(config.webhook_url).send(title, result_to_dict(result))

    print("\n✅ Backtest finished!")


if __name__ == "__main__":
    main()
