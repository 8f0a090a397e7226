#!/usr/bin/env python3
"""
Cross-symbol Market Simulator
Advances one synthetic clock across every ticker at once and ranks
same-tick ORB candidates by relative volume before admitting them
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from orb_engine.backtest.metrics import aggregate_results
from orb_engine.core.candle_store import CandleStore
from orb_engine.core.models import (
    BacktestResult, Candle, ClosedTrade, ExitReason, OpeningRange, Position, Side, Signal,
)
from orb_engine.core.orb_config import ORBConfig
from orb_engine.strategies.orb_strategy import SignalDetector
from orb_engine.strategies.position_manager import PositionManager

logger = logging.getLogger(__name__)


@dataclass
class SimulationReport:
    """Outcome of a simulation run"""
    result: BacktestResult
    starting_capital: float
    final_cash: float
    equity_curve: List[Tuple[datetime, float]] = field(default_factory=list)
    ticks: int = 0
    skipped_for_cash: int = 0

    @property
    def trades(self) -> Tuple[ClosedTrade, ...]:
        return self.result.trades

    @property
    def final_equity(self) -> float:
        return self.equity_curve[-1][1] if self.equity_curve else self.final_cash

    @property
    def dollar_pnl(self) -> float:
        return sum(t.dollar_pnl for t in self.result.trades)


@dataclass
class _SymbolTimeline:
    """Per-symbol lookup tables built once before the clock starts"""
    candles: List[Candle]
    index_by_time: Dict[datetime, int]
    dates: List[date]
    session_start: Dict[date, int]
    session_bounds: Dict[date, Tuple[int, int]]
    prior_close: Dict[date, Optional[float]]


class MarketSimulator:
    """Minute-by-minute portfolio simulation with top-K admission per tick"""

    def __init__(self, config: ORBConfig = None):
        self.config = config or ORBConfig.simulation_profile()
        self.detector = SignalDetector(self.config)
        self.manager = PositionManager(self.config)
        self.store = CandleStore(self.config.session_timezone)

        self._timelines: Dict[str, _SymbolTimeline] = {}
        self.reset()

    def reset(self):
        """Clear all run state; the registered candles are kept"""
        self.cash = self.config.starting_capital
        self.positions: Dict[str, Position] = {}
        self.trade_history: List[ClosedTrade] = []
        self.traded_today: set = set()
        self.current_day: Optional[date] = None
        self._range_cache: Dict[Tuple[str, date], Optional[OpeningRange]] = {}
        self._last_close: Dict[str, float] = {}
        self._skipped_for_cash = 0

    def add_ticker_data(self, symbol: str, candles: Sequence[Candle]) -> int:
        """Register candles for a symbol; returns the stored bar count"""
        count = self.store.add(symbol, candles)
        if not count:
            logger.warning(f"🚫 {symbol}: no usable candles, not simulated")
        return count

    # --- Setup ----------------------------------------------------------

    def _build_timeline(self, symbol: str) -> _SymbolTimeline:
        candles = self.store.candles(symbol)
        dates = [self.store.session_date(c) for c in candles]

        session_start: Dict[date, int] = {}
        session_bounds: Dict[date, Tuple[int, int]] = {}
        for i, day in enumerate(dates):
            session_start.setdefault(day, i)
            session_bounds[day] = (session_start[day], i + 1)

        prior_close: Dict[date, Optional[float]] = {}
        previous: Optional[float] = None
        for day, (start, end) in session_bounds.items():
            prior_close[day] = previous
            previous = candles[end - 1].close

        return _SymbolTimeline(
            candles=candles,
            index_by_time={c.timestamp: i for i, c in enumerate(candles)},
            dates=dates,
            session_start=session_start,
            session_bounds=session_bounds,
            prior_close=prior_close,
        )

    def _is_session_last(self, timeline: _SymbolTimeline, index: int) -> bool:
        return index + 1 >= len(timeline.candles) or timeline.dates[index + 1] != timeline.dates[index]

    def _opening_range(self, symbol: str, timeline: _SymbolTimeline, day: date) -> Optional[OpeningRange]:
        """Qualified range for one symbol-day, computed once"""
        key = (symbol, day)
        if key not in self._range_cache:
            start, end = timeline.session_bounds[day]
            session = timeline.candles[start:end]
            opening_range, reason = self.detector.qualify_session(symbol, session, timeline.prior_close[day])
            if reason is not None:
                logger.debug(f"🚫 {symbol} {day}: {reason.value}")
            self._range_cache[key] = opening_range
        return self._range_cache[key]

    # --- Tick phases ----------------------------------------------------

    def _manage_positions(self, timestamp: datetime):
        for symbol in list(self.positions):
            timeline = self._timelines[symbol]
            index = timeline.index_by_time.get(timestamp)
            if index is None:
                continue

            position = self.positions[symbol]
            trade = self.manager.on_candle(position, timeline.candles[index],
                                           is_session_last=self._is_session_last(timeline, index))
            if trade is not None:
                self._record_close(symbol, position, trade)

    def _scan_for_setups(self, timestamp: datetime) -> List[Tuple[Signal, int]]:
        candidates: List[Tuple[Signal, int]] = []
        for symbol, timeline in self._timelines.items():
            if symbol in self.positions or symbol in self.traded_today:
                continue

            index = timeline.index_by_time.get(timestamp)
            if index is None:
                continue

            day = timeline.dates[index]
            if index - timeline.session_start[day] < self.config.opening_range_size:
                continue

            opening_range = self._opening_range(symbol, timeline, day)
            if opening_range is None:
                continue

            signal = self.detector.check_breakout(symbol, opening_range, timeline.candles[index])
            if signal is not None:
                candidates.append((signal, index))
        return candidates

    def _admit(self, candidates: List[Tuple[Signal, int]]):
        ranked = sorted(candidates, key=lambda c: c[0].relative_volume, reverse=True)
        if len(ranked) > self.config.top_k:
            logger.debug(f"🏁 {len(ranked)} candidates, admitting top {self.config.top_k}")

        for signal, index in ranked[:self.config.top_k]:
            if self.cash < self.config.amount_per_trade:
                self._skipped_for_cash += 1
                logger.debug(f"💸 {signal.symbol}: insufficient cash (${self.cash:,.2f})")
                continue

            quantity = int(self.config.amount_per_trade / signal.trigger_price)
            if quantity <= 0:
                continue

            position = self.manager.open_position(signal, quantity)
            self.cash -= quantity * signal.trigger_price
            self.positions[signal.symbol] = position
            self.traded_today.add(signal.symbol)

            timeline = self._timelines[signal.symbol]
            if self._is_session_last(timeline, index):
                bar = timeline.candles[index]
                trade = self.manager.close_position(position, bar.close, bar.timestamp, ExitReason.EOD)
                self._record_close(signal.symbol, position, trade)

    def _record_close(self, symbol: str, position: Position, trade: ClosedTrade):
        self.cash += trade.quantity * position.entry_price + trade.dollar_pnl
        self.trade_history.append(trade)
        del self.positions[symbol]

    def _mark_to_market(self) -> float:
        equity = self.cash
        for symbol, position in self.positions.items():
            price = self._last_close.get(symbol, position.entry_price)
            direction = 1 if position.side == Side.LONG else -1
            remaining = position.quantity / position.initial_quantity
            per_share = position.accumulated_pnl + (price - position.entry_price) * direction * remaining
            equity += position.initial_quantity * (position.entry_price + per_share)
        return equity

    # --- Main loop ------------------------------------------------------

    def run(self) -> SimulationReport:
        """Run the clock over the union of all candle timestamps"""
        logger.info("🟢 Starting Market Simulation")
        logger.info(f"   Tickers: {len(self.store)} | Top-K: {self.config.top_k} | "
                    f"${self.config.amount_per_trade:,.0f} per trade")

        self.reset()
        self._timelines = {symbol: self._build_timeline(symbol) for symbol in self.store.symbols()}
        equity_curve: List[Tuple[datetime, float]] = []

        axis = sorted({ts for tl in self._timelines.values() for ts in tl.index_by_time})
        for timestamp in axis:
            day = next(
                tl.dates[tl.index_by_time[timestamp]]
                for tl in self._timelines.values() if timestamp in tl.index_by_time
            )
            if day != self.current_day:
                self.current_day = day
                self.traded_today.clear()

            for symbol, tl in self._timelines.items():
                index = tl.index_by_time.get(timestamp)
                if index is not None:
                    self._last_close[symbol] = tl.candles[index].close

            self._manage_positions(timestamp)
            self._admit(self._scan_for_setups(timestamp))
            equity_curve.append((timestamp, self._mark_to_market()))

        if self.positions:
            logger.warning(f"⚠️ {len(self.positions)} positions still open at end of data")

        result = aggregate_results(self.trade_history)
        logger.info(f"🔴 Simulation ended: {result.total_trades} trades, "
                    f"cash ${self.cash:,.2f}")

        return SimulationReport(
            result=result,
            starting_capital=self.config.starting_capital,
            final_cash=self.cash,
            equity_curve=equity_curve,
            ticks=len(axis),
            skipped_for_cash=self._skipped_for_cash,
        )
