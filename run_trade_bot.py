#!/usr/bin/env python3
"""
ORB Trade Bot runner - executes a single polling cycle
Schedule it (cron, systemd timer) every 5 minutes during market hours
"""

import argparse
import logging
import sys

from orb_engine.core.advanced_logger import setup_logging
from orb_engine.core.orb_config import ORBConfig
from orb_engine.core.state_store import JsonFileStateStore
from orb_engine.live.broker import IBKRBroker, PaperBroker
from orb_engine.live.trade_bot import ORBTradeBot
from orb_engine.utils.market_data import MarketDataProvider
from orb_engine.utils.notifier import WebhookNotifier

logger = logging.getLogger(__name__)


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='ORB Trade Bot (single cycle)')

    parser.add_argument('--inverse', action='store_true',
                        help='Inverse buy-only mode (falling knives and tops)')
    parser.add_argument('--execute', action='store_true',
                        help='Submit orders (default: recommendations only)')
    parser.add_argument('--ibkr', action='store_true',
                        help='Route orders to IBKR instead of the paper broker')
    parser.add_argument('--paper', action='store_true',
                        help='Use IBKR paper trading port 7497')
    parser.add_argument('--cash', type=float, default=100000.0,
                        help='Starting cash for the paper broker (default: 100000)')
    parser.add_argument('--symbols', nargs='+', default=None,
                        help='Symbols to scan (default: configured universe)')
    parser.add_argument('--state-file', type=str, default=None,
                        help='Daily state JSON path (default: bot_state.json)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to JSON config file')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')

    return parser.parse_args()


def main():
    args = parse_arguments()

    if args.config:
        config = ORBConfig.load_from_file(args.config)
    else:
        config = ORBConfig.inverse_profile() if args.inverse else ORBConfig.live_profile()
    if args.inverse:
        config.inverted = True
    if args.execute:
        config.auto_execute = True
    if args.symbols:
        config.symbols = tuple(s.upper() for s in args.symbols)
    if not config.symbols:
        # universe lives in the shipped config file
        config.symbols = ORBConfig.load_from_file().symbols
    if args.state_file:
        config.state_file = args.state_file
    if args.paper:
        config.ibkr_port = 7497

    setup_logging(level='DEBUG' if args.debug else config.log_level)
    if not config.validate():
        sys.exit(1)
    config.display_strategy_summary()

    if args.ibkr:
        broker = IBKRBroker(config.ibkr_host, config.ibkr_port, config.ibkr_client_id)
    else:
        broker = PaperBroker(cash=args.cash)

    bot = ORBTradeBot(
        config=config,
        provider=MarketDataProvider(config.session_timezone),
        broker=broker,
        state_store=JsonFileStateStore(config.state_file),
    )

    try:
        report = bot.run_cycle()
    finally:
        broker.close()

    print(report.text)

    if config.send_notifications:
        WebhookNotifier(config.webhook_url).send("ORB Trade Bot", {
            'signals': report.signals,
            'positions_opened': report.positions_opened,
            'orders_placed': report.orders_placed,
            'orders_failed': report.orders_failed,
            'closed_trades': [t.to_dict() for t in report.closed_trades],
        })


if __name__ == "__main__":
    main()
