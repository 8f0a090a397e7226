#!/usr/bin/env python3
"""
Position/Trade state machine for ORB trades

OPEN_INITIAL -> OPEN_SCALED -> CLOSED

Per candle, in priority order (LONG; SHORT mirrors the prices):
  a. scale out at 1R, stop moves to breakeven
  b. stop (STOP before scale-out, TRAIL_STOP after)
  c. last candle of the session: EOD
  d. max hold elapsed: TIME_EXIT
With TieBreakPolicy.STOP_FIRST, (b) is checked against the pre-bar stop before (a).
Stop fills are worsened by exit_slippage (set by the simulation profile).
The scale-out sells floor(initial * fraction) shares; a 1-share lot sells none
and just moves its stop to breakeven.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from orb_engine.core.errors import InvalidTransition
from orb_engine.core.models import (
    Candle, ClosedTrade, ExitReason, Position, PositionStatus, Side, Signal,
)
from orb_engine.core.orb_config import ORBConfig, TieBreakPolicy

logger = logging.getLogger(__name__)


def _direction(side: Side) -> int:
    return 1 if side == Side.LONG else -1


class PositionManager:
    """Drives open positions through scale-out, stop, EOD and time exits"""

    def __init__(self, config: ORBConfig = None):
        self.config = config or ORBConfig()

    def open_position(self, signal: Signal, quantity: int = 1) -> Position:
        """Create a position at the signal's trigger price"""
        quantity = max(1, int(quantity))
        position = Position(
            symbol=signal.symbol,
            side=signal.side,
            entry_price=signal.trigger_price,
            quantity=quantity,
            initial_quantity=quantity,
            stop_price=signal.stop,
            initial_stop=signal.stop,
            target_price=signal.target,
            range_height=signal.range_height,
            entry_time=signal.trigger_timestamp,
        )
        logger.info(f"📈 Opened {position.side.value} {position.symbol}: {quantity} @ ${position.entry_price:.2f} "
                    f"| Stop ${position.stop_price:.2f} | Target 1 ${position.target_price:.2f}")
        return position

    # --- Price tests ----------------------------------------------------

    @staticmethod
    def _target_hit(position: Position, candle: Candle) -> bool:
        if position.side == Side.LONG:
            return candle.high >= position.target_price
        return candle.low <= position.target_price

    @staticmethod
    def _stop_hit(position: Position, candle: Candle) -> bool:
        if position.side == Side.LONG:
            return candle.low <= position.stop_price
        return candle.high >= position.stop_price

    @staticmethod
    def _remaining_fraction(position: Position) -> float:
        """Share of the initial lot still held; odd lots split on whole shares"""
        if not position.initial_quantity:
            return 1.0
        return position.quantity / position.initial_quantity

    def _hold_expired(self, position: Position, candle: Candle) -> bool:
        max_hold = self.config.max_hold_minutes
        if not max_hold:
            return False
        elapsed = (candle.timestamp - position.entry_time).total_seconds() / 60.0
        return elapsed >= max_hold

    # --- Transitions ----------------------------------------------------

    def scale_out(self, position: Position) -> None:
        """Realize the scale-out leg at target and move the stop to breakeven"""
        sold = int(position.initial_quantity * self.config.scale_out_fraction)
        # PnL is per share of the initial lot, weighted by the shares actually sold
        fraction = sold / position.initial_quantity if position.initial_quantity else 0.0
        leg = (position.target_price - position.entry_price) * _direction(position.side) * fraction
        position.accumulated_pnl += leg
        position.quantity = position.initial_quantity - sold
        position.stop_price = position.entry_price
        position.scaled_out = True
        logger.info(f"🎯 [SCALE OUT] {position.symbol} hit Target 1 ${position.target_price:.2f}. "
                    f"Closed {sold}/{position.initial_quantity} shares, stop -> breakeven ${position.stop_price:.2f}")

    def stop_fill_price(self, position: Position) -> float:
        """Stop level worsened by the configured exit slippage"""
        return position.stop_price - self.config.exit_slippage * _direction(position.side)

    def close_position(self, position: Position, price: float, timestamp: datetime,
                       reason: ExitReason) -> ClosedTrade:
        """Finalize PnL and hand the position to the trade ledger"""
        if position.status == PositionStatus.CLOSED:
            raise InvalidTransition(f"{position.symbol} is already closed")

        remaining = self._remaining_fraction(position)
        pnl = position.accumulated_pnl + (price - position.entry_price) * _direction(position.side) * remaining
        return_percent = pnl / position.entry_price * 100 if position.entry_price else 0.0

        position.status = PositionStatus.CLOSED
        position.last_update = timestamp

        icon = {ExitReason.STOP: '❌', ExitReason.TRAIL_STOP: '🛡️', ExitReason.TARGET: '🎯',
                ExitReason.EOD: '🔔', ExitReason.TIME_EXIT: '⏰'}[reason]
        logger.info(f"{icon} [EXIT] {position.symbol} {reason.value} @ ${price:.2f} "
                    f"P&L ${pnl:+.2f}/sh ({return_percent:+.2f}%)")

        return ClosedTrade(
            symbol=position.symbol,
            side=position.side,
            entry_time=position.entry_time,
            exit_time=timestamp,
            entry_price=position.entry_price,
            exit_price=price,
            pnl=pnl,
            return_percent=return_percent,
            exit_reason=reason,
            quantity=position.initial_quantity,
        )

    def _stop_out(self, position: Position, candle: Candle) -> ClosedTrade:
        reason = ExitReason.TRAIL_STOP if position.scaled_out else ExitReason.STOP
        return self.close_position(position, self.stop_fill_price(position), candle.timestamp, reason)

    def on_candle(self, position: Position, candle: Candle,
                  is_session_last: bool = False) -> Optional[ClosedTrade]:
        """Apply one candle. Returns the ClosedTrade when the position closes."""
        if position.status == PositionStatus.CLOSED:
            raise InvalidTransition(f"{position.symbol}: no transition from CLOSED")

        prices = (candle.open, candle.high, candle.low, candle.close)
        if any(p is None or not math.isfinite(p) for p in prices):
            logger.debug(f"⚠️ {position.symbol}: malformed candle at {candle.timestamp} skipped")
            return None

        position.last_update = candle.timestamp

        if self.config.tie_break == TieBreakPolicy.STOP_FIRST and self._stop_hit(position, candle):
            return self._stop_out(position, candle)

        if not position.scaled_out and self._target_hit(position, candle):
            self.scale_out(position)

        if self._stop_hit(position, candle):
            return self._stop_out(position, candle)

        if is_session_last:
            return self.close_position(position, candle.close, candle.timestamp, ExitReason.EOD)

        if self._hold_expired(position, candle):
            return self.close_position(position, candle.close, candle.timestamp, ExitReason.TIME_EXIT)

        return None
