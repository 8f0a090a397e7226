"""
Gap fill strategy on daily candles
"""
from datetime import datetime, timedelta

import pytest

from orb_engine.core.models import Candle, ExitReason
from orb_engine.strategies.gap_fill import (
    GapFillParams, backtest_gap_fill, build_market_trend_map, calculate_avg_volume, calculate_rsi,
)

START = datetime(2024, 1, 2, 16, 0)


def _day(i, o, h, l, c, v=1_000_000.0):
    return Candle(timestamp=START + timedelta(days=i), open=o, high=h, low=l, close=c, volume=v)


def _history(days=20):
    """Steadily rising closes: RSI pinned near 100, prior close 51.9 on day 19"""
    candles = []
    for i in range(days):
        close = 50.0 + 0.1 * i
        candles.append(_day(i, close - 0.05, close + 0.1, close - 0.15, close))
    return candles


def _gap_down(h, l, c):
    """Day 20 opens at 50.0 against a 51.9 prior close (-3.7%)"""
    return _day(20, 50.0, h, l, c)


def test_rsi_on_rising_closes():
    rsi = calculate_rsi(_history())
    assert rsi[13] == 0
    assert rsi[14] > 99
    assert rsi[-1] > 99


def test_rsi_needs_enough_history():
    assert not calculate_rsi(_history(10)).any()


def test_avg_volume_needs_lookback():
    candles = _history()
    assert calculate_avg_volume(candles, 5) == 0.0
    assert calculate_avg_volume(candles, 20) == pytest.approx(1_000_000.0)


def test_gap_filled_is_a_target_exit():
    candles = _history() + [_gap_down(52.0, 49.8, 51.5)]
    trades = backtest_gap_fill(candles, "TEST", GapFillParams(hold_days=0))

    assert len(trades) == 1
    trade = trades[0]
    assert trade.exit_reason == ExitReason.TARGET
    assert trade.entry_price == pytest.approx(50.05)
    assert trade.exit_price == pytest.approx(51.9)
    assert trade.quantity == 1


def test_stop_exit():
    candles = _history() + [_gap_down(51.0, 48.0, 48.5)]
    trade = backtest_gap_fill(candles, "TEST", GapFillParams(hold_days=0))[0]

    assert trade.exit_reason == ExitReason.STOP
    assert trade.exit_price == pytest.approx(50.05 * 0.97)
    assert trade.return_percent == pytest.approx(-3.0)


def test_same_day_close_without_fill():
    candles = _history() + [_gap_down(51.0, 49.5, 50.5)]
    trade = backtest_gap_fill(candles, "TEST", GapFillParams(hold_days=0))[0]

    assert trade.exit_reason == ExitReason.EOD
    assert trade.exit_price == pytest.approx(50.5)


def test_holding_window_ends_in_time_exit():
    candles = _history() + [
        _gap_down(51.0, 49.5, 50.5),
        _day(21, 50.5, 51.5, 49.5, 51.0),
    ]
    trades = backtest_gap_fill(candles, "TEST", GapFillParams(hold_days=1))

    assert len(trades) == 1
    assert trades[0].exit_reason == ExitReason.TIME_EXIT
    assert trades[0].exit_time == candles[21].timestamp
    assert trades[0].exit_price == pytest.approx(51.0)


def test_small_gap_is_ignored():
    candles = _history() + [_day(20, 51.5, 52.0, 51.0, 51.8)]
    assert backtest_gap_fill(candles, "TEST", GapFillParams(hold_days=0)) == []


def test_thin_volume_is_ignored():
    candles = _history() + [_gap_down(52.0, 49.8, 51.5)]
    params = GapFillParams(hold_days=0, min_volume=2_000_000)
    assert backtest_gap_fill(candles, "TEST", params) == []


def test_bearish_market_blocks_entry():
    candles = _history() + [_gap_down(52.0, 49.8, 51.5)]
    params = GapFillParams(hold_days=0, use_market_filter=True)

    bearish = {candles[20].timestamp.date(): False}
    assert backtest_gap_fill(candles, "TEST", params, bearish) == []

    bullish = {candles[20].timestamp.date(): True}
    assert len(backtest_gap_fill(candles, "TEST", params, bullish)) == 1


def test_market_trend_map():
    index = _history(30)
    trend = build_market_trend_map(index, period=10)

    assert len(trend) == 20
    assert all(trend.values())
    assert index[9].timestamp.date() not in trend
