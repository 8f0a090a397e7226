#!/usr/bin/env python3
"""
Gap Fill Strategy on daily candles

Buy a stock that gaps DOWN beyond a threshold at the open and exit when
the gap is filled (price trades back to the prior close), on the stop,
or at the end of the holding window.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

import numpy as np

from orb_engine.core.models import Candle, ClosedTrade, ExitReason, Side

logger = logging.getLogger(__name__)

ENTRY_SLIPPAGE = 1.001  # buy at open + 0.1%


@dataclass
class GapFillParams:
    gap_threshold: float = 2.0  # minimum gap down, percent
    min_rsi: float = 30.0  # prior-day RSI floor; lower means already oversold
    min_volume: float = 500_000  # 20-day average volume
    min_price: float = 10.0
    stop_loss: float = 3.0  # percent below entry
    hold_days: int = 1
    use_sma_filter: bool = False
    sma_period: int = 200
    use_market_filter: bool = False
    volume_lookback: int = 20


def calculate_rsi(candles: Sequence[Candle], period: int = 14) -> np.ndarray:
    """Wilder RSI of closes; zero until ``period`` changes are available"""
    rsi = np.zeros(len(candles))
    if len(candles) < period + 1:
        return rsi

    closes = np.array([c.close for c in candles], dtype=float)
    changes = np.diff(closes)

    avg_gain = changes[:period].clip(min=0).sum() / period
    avg_loss = -changes[:period].clip(max=0).sum() / period

    for i in range(period, len(candles)):
        if i > period:
            change = changes[i - 1]
            avg_gain = (avg_gain * (period - 1) + max(change, 0.0)) / period
            avg_loss = (avg_loss * (period - 1) + max(-change, 0.0)) / period
        rs = 100.0 if avg_loss == 0 else avg_gain / avg_loss
        rsi[i] = 100 - 100 / (1 + rs)

    return rsi


def calculate_avg_volume(candles: Sequence[Candle], index: int, lookback: int = 20) -> float:
    """Mean volume of the ``lookback`` days before ``index`` (0 without enough history)"""
    if index < lookback:
        return 0.0
    return float(np.mean([c.volume for c in candles[index - lookback:index]]))


def calculate_sma(candles: Sequence[Candle], index: int, period: int) -> float:
    """Mean close of the ``period`` days before ``index`` (0 without enough history)"""
    if index < period:
        return 0.0
    return float(np.mean([c.close for c in candles[index - period:index]]))


def _day(candle: Candle) -> date:
    return candle.timestamp.date()


def build_market_trend_map(index_candles: Sequence[Candle], period: int = 200) -> Dict[date, bool]:
    """Date -> close above its ``period``-day SMA, for the market index"""
    trend = {}
    for i in range(period, len(index_candles)):
        trend[_day(index_candles[i])] = index_candles[i].close > calculate_sma(index_candles, i, period)
    logger.info(f"📈 Market trend map built for {len(trend)} trading days")
    return trend


def backtest_gap_fill(candles: Sequence[Candle], symbol: str, params: GapFillParams = None,
                      market_trend: Optional[Dict[date, bool]] = None) -> List[ClosedTrade]:
    """Replay daily candles; trades may overlap when hold_days > 0"""
    params = params or GapFillParams()
    rsi = calculate_rsi(candles)
    trades: List[ClosedTrade] = []

    for i in range(params.volume_lookback, len(candles) - params.hold_days):
        prev_day = candles[i - 1]
        today = candles[i]

        gap_percent = (today.open - prev_day.close) / prev_day.close * 100
        if gap_percent >= -params.gap_threshold:
            continue
        if rsi[i - 1] < params.min_rsi:
            continue
        if calculate_avg_volume(candles, i, params.volume_lookback) < params.min_volume:
            continue
        if today.open < params.min_price:
            continue
        if params.use_sma_filter and today.close < calculate_sma(candles, i, params.sma_period):
            continue
        if params.use_market_filter and market_trend is not None:
            if market_trend.get(_day(today)) is False:
                continue

        entry_price = today.open * ENTRY_SLIPPAGE
        target_price = prev_day.close
        stop_price = entry_price * (1 - params.stop_loss / 100)

        exit_price, exit_time, reason = None, None, None
        for j in range(params.hold_days + 1):
            check_day = candles[i + j]
            if check_day.high >= target_price:
                exit_price, exit_time, reason = target_price, check_day.timestamp, ExitReason.TARGET
                break
            if check_day.low <= stop_price:
                exit_price, exit_time, reason = stop_price, check_day.timestamp, ExitReason.STOP
                break
            if j == 0 or j == params.hold_days:
                exit_price, exit_time = check_day.close, check_day.timestamp
                reason = ExitReason.EOD if j == 0 else ExitReason.TIME_EXIT

        return_percent = (exit_price - entry_price) / entry_price * 100
        logger.debug(f"🕳️ {symbol} gap {gap_percent:.2f}% -> {reason.value} {return_percent:+.2f}%")
        trades.append(ClosedTrade(
            symbol=symbol,
            side=Side.LONG,
            entry_time=today.timestamp,
            exit_time=exit_time,
            entry_price=entry_price,
            exit_price=exit_price,
            pnl=exit_price - entry_price,
            return_percent=return_percent,
            exit_reason=reason,
            quantity=1,
        ))

    return trades
