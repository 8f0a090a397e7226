#!/usr/bin/env python3
"""
ORB Trade Bot - one polling cycle per invocation

Normal mode: manage open positions through the scale-out/breakeven state
machine, then look for fresh breakouts on the latest candle.
Inverse mode: buy-only, every breakout or breakdown becomes a BUY, weakest
setups first, sized from remaining cash until the reserve is hit.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pytz

from orb_engine.core.candle_store import group_candles_by_session
from orb_engine.core.errors import OrderRejected
from orb_engine.core.models import Candle, ClosedTrade, Position, RejectionReason, Side, Signal
from orb_engine.core.orb_config import ORBConfig
from orb_engine.core.state_store import DailyState, InMemoryStateStore, StateStore
from orb_engine.live.broker import (
    AccountSnapshot, Broker, OrderRequest, PaperBroker, ensure_filled, position_size,
)
from orb_engine.strategies.action_mapper import ActionMapper, OrderSide, TradeAction
from orb_engine.strategies.orb_strategy import SignalDetector, prior_session_close
from orb_engine.strategies.position_manager import PositionManager
from orb_engine.utils.market_data import MarketDataProvider

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Human-readable cycle output plus counters"""
    lines: List[str] = field(default_factory=list)
    signals: int = 0
    positions_opened: int = 0
    orders_placed: int = 0
    orders_failed: int = 0
    closed_trades: List[ClosedTrade] = field(default_factory=list)
    remaining_cash: Optional[float] = None

    def log(self, message: str):
        self.lines.append(message)
        logger.info(message)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class ORBTradeBot:
    """Shared detector and state machine wired to data, broker and daily state"""

    def __init__(self, config: ORBConfig = None, provider: MarketDataProvider = None,
                 broker: Broker = None, state_store: StateStore = None):
        self.config = config or ORBConfig.live_profile()
        self.provider = provider or MarketDataProvider(self.config.session_timezone)
        self.broker = broker or PaperBroker()
        self.state_store = state_store or InMemoryStateStore()
        self.detector = SignalDetector(self.config)
        self.manager = PositionManager(self.config)
        self.mapper = ActionMapper(inverted=self.config.inverted)
        self.tz = pytz.timezone(self.config.session_timezone)

    # --- Data -----------------------------------------------------------

    def _prefetch(self) -> Dict[str, List[Candle]]:
        return asyncio.run(self.provider.fetch_many(
            list(self.config.symbols),
            self.config.live_range,
            self.config.live_interval,
            batch_size=self.config.fetch_batch_size,
            timeout=self.config.fetch_timeout_seconds,
        ))

    def _today_session(self, candles: Sequence[Candle], today: date) -> Tuple[List[Candle], Optional[float]]:
        sessions = group_candles_by_session(candles, self.config.session_timezone)
        days = list(sessions.keys())
        if today not in sessions:
            return [], None
        index = days.index(today)
        return sessions[today], prior_session_close(list(sessions.values()), index)

    def _latest_signal(self, symbol: str, candles: Sequence[Candle], today: date,
                       report: CycleReport) -> Optional[Signal]:
        """Breakout check on the most recent candle against today's range"""
        session, prior_close = self._today_session(candles, today)
        opening_range, reason = self.detector.qualify_session(symbol, session, prior_close)

        if reason == RejectionReason.INSUFFICIENT_SESSION:
            report.log(f"⏳ [WAIT] {symbol}: range forming ({len(session)}/{self.config.opening_range_size + 1} candles)")
            return None
        if reason == RejectionReason.NO_DATA:
            logger.debug(f"📭 {symbol}: no candles for {today}")
            return None
        if opening_range is None:
            return None

        return self.detector.check_breakout(symbol, opening_range, session[-1])

    # --- Orders ---------------------------------------------------------

    def _submit(self, symbol: str, side: OrderSide, quantity: int, price: float,
                report: CycleReport) -> bool:
        request = OrderRequest(symbol=symbol, side=side, quantity=quantity, reference_price=price)
        try:
            result = ensure_filled(self.broker.submit_order(request), symbol)
        except OrderRejected as e:
            report.orders_failed += 1
            report.log(f"   ❌ ORDER FAILED: {e.message}")
            return False

        report.orders_placed += 1
        report.log(f"   ✅ ORDER PLACED: {side.value} {quantity} {symbol} ({result.message})")
        return True

    # --- Normal mode ----------------------------------------------------

    def _manage_position(self, position: Position, candles: Sequence[Candle],
                         report: CycleReport):
        fresh = [c for c in candles if c.timestamp > position.last_update]
        if not fresh:
            return

        session_dates = [c.timestamp.astimezone(self.tz).date() for c in candles]
        offset = len(candles) - len(fresh)
        exit_side = ActionMapper.exit_side(position.side)

        for i, candle in enumerate(fresh):
            index = offset + i
            # the live tail of today's session is never EOD; only completed days are
            is_last = index + 1 < len(candles) and session_dates[index + 1] != session_dates[index]
            was_scaled = position.scaled_out
            quantity_before = position.quantity

            trade = self.manager.on_candle(position, candle, is_session_last=is_last)

            if position.scaled_out and not was_scaled:
                report.log(f"🎯 [SCALE OUT] {position.symbol} hit Target 1 ${position.target_price:.2f}; "
                           f"stop -> breakeven ${position.stop_price:.2f}")
                sold = quantity_before - position.quantity
                if self.config.auto_execute and sold > 0:
                    self._submit(position.symbol, exit_side, sold, position.target_price, report)

            if trade is not None:
                icon = '🛡️' if position.scaled_out else '❌'
                report.log(f"{icon} [EXIT] {position.symbol} {trade.exit_reason.value} @ ${trade.exit_price:.2f}")
                report.closed_trades.append(trade)
                if self.config.auto_execute:
                    self._submit(position.symbol, exit_side, position.quantity, trade.exit_price, report)
                return

    def _open_from_signal(self, signal: Signal, state: DailyState, snapshot: AccountSnapshot,
                          report: CycleReport):
        action = self.mapper.entry_action(signal)
        quantity = position_size(snapshot.cash_available, self.config.position_fraction, action.price)
        report.signals += 1
        icon = "🚀" if signal.side == Side.LONG else "🔻"
        report.log(f"{icon} [SIGNAL] {signal.symbol} {signal.side.value} @ ${signal.trigger_price:.2f} "
                   f"(relVol {signal.relative_volume:.2f}x)")

        if self.config.auto_execute and not self._submit(signal.symbol, action.order_side, quantity,
                                                         action.price, report):
            return

        position = self.manager.open_position(signal, quantity)
        state.positions.append(position)
        state.executed_trades += 1
        report.positions_opened += 1
        report.log(f">>> ACTION: {action.order_side.value.upper()} {quantity} SHARES of {signal.symbol}")
        report.log(f"    ENTRY: ${position.entry_price:.2f}")
        report.log(f"    STOP:  ${position.stop_price:.2f} (Initial 1R)")
        report.log(f"    TARGET 1: ${position.target_price:.2f} (Scaling {self.config.scale_out_fraction*100:.0f}%)")

    def _recommendations(self, state: DailyState, report: CycleReport):
        report.log("")
        report.log("--- 📋 RECOMMENDATIONS ---")
        open_positions = state.open_positions()
        if not open_positions:
            report.log("No active positions or pending signals.")
        for p in open_positions:
            report.log(f"[OPEN] {p.symbol} ({p.side.value}) - {p.quantity} SHARES")
            if p.scaled_out:
                report.log("   - STATUS: SCALED OUT (partial profit taken)")
                report.log(f"   - CURRENT STOP: ${p.stop_price:.2f} (Break-Even)")
            else:
                report.log(f"   - ENTRY: ${p.entry_price:.2f}")
                report.log(f"   - STOP LOSS: ${p.stop_price:.2f} (Initial 1R)")
                report.log(f"   - TARGET 1: ${p.target_price:.2f}")
        report.log("-" * 26)

    def _run_normal(self, today: date, report: CycleReport) -> CycleReport:
        report.log("--- 🤖 ORB TRADE BOT ---")
        state = self.state_store.load(today)
        report.log(f"Date: {state.date}")
        report.log(f"Executed Trades Today: {state.executed_trades}")

        data = self._prefetch()
        snapshot: Optional[AccountSnapshot] = None

        for symbol in self.config.symbols:
            candles = data.get(symbol)
            if not candles:
                continue

            position = state.open_position(symbol)
            if position is not None:
                self._manage_position(position, candles, report)
                continue

            if state.closed_today(symbol):
                continue

            signal = self._latest_signal(symbol, candles, today, report)
            if signal is None:
                continue

            if snapshot is None:
                snapshot = self.broker.get_account_snapshot()
            if symbol in snapshot.held_symbols:
                logger.info(f"⏭️ {symbol}: already held, skipping")
                continue
            self._open_from_signal(signal, state, snapshot, report)

        if report.signals == 0 and not state.open_positions():
            report.log("📭 No candidates this cycle.")

        self.state_store.save(state)
        self._recommendations(state, report)
        return report

    # --- Inverse mode ---------------------------------------------------

    def _run_inverse(self, today: date, report: CycleReport) -> CycleReport:
        report.log("--- 💀 INVERSE ORB BOT (BUY-ONLY) ---")
        snapshot = self.broker.get_account_snapshot()
        cash = snapshot.cash_available
        report.log(f"💰 Cash Available: ${cash:,.2f}")

        data = self._prefetch()
        actions: List[TradeAction] = []
        for symbol in self.config.symbols:
            candles = data.get(symbol)
            if not candles or symbol in snapshot.held_symbols:
                continue
            signal = self._latest_signal(symbol, candles, today, report)
            if signal is not None:
                actions.append(self.mapper.entry_action(signal))

        report.signals = len(actions)
        report.log(f"📊 Found {len(actions)} inverted signals.")
        if not actions:
            report.log("📭 No candidates. Market may be closed or range still forming.")
            report.remaining_cash = cash
            return report

        ranked = self.mapper.rank(actions)
        if self.config.max_new_positions is not None:
            ranked = ranked[:self.config.max_new_positions]

        for action in ranked:
            quantity = position_size(cash, self.config.position_fraction, action.price)
            report.log(f"💀 BUY {quantity} x {action.signal.symbol} @ ~${action.price:.2f} "
                       f"[{action.reason}] (conviction {action.conviction:.2f})")
            if not self._submit(action.signal.symbol, OrderSide.BUY, quantity, action.price, report):
                continue
            cash -= quantity * action.price
            if cash < self.config.min_cash_reserve:
                report.log("⚠️ Cash below reserve. Stopping execution.")
                break

        report.remaining_cash = max(0.0, cash)
        report.log("--- 📋 EXECUTION SUMMARY ---")
        report.log(f"Trades Placed: {report.orders_placed}")
        report.log(f"Trades Failed: {report.orders_failed}")
        report.log(f"Remaining Cash (Est): ${report.remaining_cash:,.2f}")
        return report

    def run_cycle(self, today: Optional[date] = None) -> CycleReport:
        """Run one cycle; always returns a report"""
        today = today or datetime.now(self.tz).date()
        report = CycleReport()
        if self.config.inverted:
            return self._run_inverse(today, report)
        return self._run_normal(today, report)
