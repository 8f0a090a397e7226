#!/usr/bin/env python3
"""
ORB Backtester
Per-symbol sequential replay: one session at a time, at most one trade per day
"""

import logging
from typing import Dict, List, Optional, Sequence

from orb_engine.backtest.metrics import aggregate_results
from orb_engine.core.candle_store import CandleStore
from orb_engine.core.models import BacktestResult, Candle, ClosedTrade, ExitReason, Signal
from orb_engine.core.orb_config import ORBConfig
from orb_engine.strategies.orb_strategy import SignalDetector, prior_session_close
from orb_engine.strategies.position_manager import PositionManager

logger = logging.getLogger(__name__)


class ORBBacktester:
    """Replays historical sessions through the shared detector and state machine"""

    def __init__(self, config: ORBConfig = None, detector: SignalDetector = None,
                 manager: PositionManager = None):
        self.config = config or ORBConfig.backtest_profile()
        self.detector = detector or SignalDetector(self.config)
        self.manager = manager or PositionManager(self.config)
        self.skipped_symbols: List[str] = []

    def _quantity_for(self, signal: Signal) -> int:
        if signal.trigger_price <= 0:
            return 1
        return max(1, int(self.config.amount_per_trade / signal.trigger_price))

    def simulate_trade(self, signal: Signal, session: Sequence[Candle]) -> Optional[ClosedTrade]:
        """Walk the bars after the signal bar until the position closes"""
        signal_index = next(
            (i for i, c in enumerate(session) if c.timestamp == signal.trigger_timestamp), None
        )
        if signal_index is None:
            logger.warning(f"⚠️ {signal.symbol}: signal bar {signal.trigger_timestamp} not in session")
            return None

        position = self.manager.open_position(signal, self._quantity_for(signal))

        last_index = len(session) - 1
        if signal_index == last_index:
            bar = session[signal_index]
            return self.manager.close_position(position, bar.close, bar.timestamp, ExitReason.EOD)

        for i in range(signal_index + 1, len(session)):
            trade = self.manager.on_candle(position, session[i], is_session_last=(i == last_index))
            if trade is not None:
                return trade

        # Only reachable when the final bars were malformed and skipped
        bar = session[last_index]
        return self.manager.close_position(position, bar.close, bar.timestamp, ExitReason.EOD)

    def backtest_symbol(self, symbol: str, candles: Sequence[Candle]) -> List[ClosedTrade]:
        """Run the strategy over every session of one symbol"""
        store = CandleStore(self.config.session_timezone)
        store.add(symbol, candles)
        sessions = list(store.sessions(symbol).values())

        trades: List[ClosedTrade] = []
        for index, session in enumerate(sessions):
            result = self.detector.evaluate(symbol, session, prior_session_close(sessions, index))
            if result.signal is None:
                continue

            trade = self.simulate_trade(result.signal, session)
            if trade is not None:
                trades.append(trade)

        logger.info(f"📊 {symbol}: {len(trades)} trades over {len(sessions)} sessions")
        return trades

    def run(self, universe: Dict[str, Sequence[Candle]]) -> BacktestResult:
        """Backtest every symbol; symbols without data are skipped and logged"""
        self.skipped_symbols = []
        all_trades: List[ClosedTrade] = []

        for symbol, candles in universe.items():
            if not candles:
                logger.warning(f"🚫 {symbol}: no data, skipped")
                self.skipped_symbols.append(symbol)
                continue
            all_trades.extend(self.backtest_symbol(symbol, candles))

        logger.info(f"✅ Backtest complete: {len(all_trades)} trades, "
                    f"{len(self.skipped_symbols)} symbols skipped")
        return aggregate_results(all_trades)

    async def run_async(self, symbols: Sequence[str], provider, range_: str = "5d",
                        interval: str = "1m") -> BacktestResult:
        """Fetch the universe concurrently, then backtest it"""
        fetched = await provider.fetch_many(
            symbols, range_, interval,
            batch_size=self.config.fetch_batch_size,
            timeout=self.config.fetch_timeout_seconds,
        )
        universe = {symbol: fetched.get(symbol, []) for symbol in symbols}
        return self.run(universe)
