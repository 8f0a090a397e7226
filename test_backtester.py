"""
Per-symbol sequential backtest driver
"""
import asyncio
import logging
from datetime import date

import pytest

from orb_engine.backtest.backtester import ORBBacktester
from orb_engine.core.models import ExitReason
from orb_engine.core.orb_config import ORBConfig

DAY_TWO = date(2024, 1, 3)


def test_trail_stop_scenario(config, long_trail_session):
    trades = ORBBacktester(config).backtest_symbol("TEST", long_trail_session)

    assert len(trades) == 1
    trade = trades[0]
    assert trade.exit_reason == ExitReason.TRAIL_STOP
    assert trade.return_percent == pytest.approx(0.98, abs=0.01)


def test_stop_scenario(config, long_stop_session):
    trades = ORBBacktester(config).backtest_symbol("TEST", long_stop_session)
    assert trades[0].exit_reason == ExitReason.STOP
    assert trades[0].return_percent == pytest.approx(-1.96, abs=0.01)


def test_signal_on_last_bar_closes_eod(config, make_opening, make_bar):
    session = make_opening() + [make_bar(3, 101.5, 102.5, 101.2, 102.3, 1300.0)]
    trades = ORBBacktester(config).backtest_symbol("TEST", session)

    assert trades[0].exit_reason == ExitReason.EOD
    assert trades[0].exit_price == pytest.approx(102.3)


def test_open_position_closes_at_session_end(config, make_opening, make_bar):
    session = make_opening() + [
        make_bar(3, 101.5, 102.5, 101.2, 102.3, 1300.0),
        make_bar(4, 102.3, 103.0, 102.1, 102.7),
    ]
    trades = ORBBacktester(config).backtest_symbol("TEST", session)
    assert trades[0].exit_reason == ExitReason.EOD
    assert trades[0].exit_time == session[4].timestamp


def test_one_trade_per_day_and_prior_close_from_previous_session(long_stop_session, make_opening, make_bar):
    config = ORBConfig(opening_range_size=3, gap_threshold=0.002)
    # day one closes at 100.0; day two opens at 100.05 (0.05% gap) and is skipped
    day_two = make_opening(day=DAY_TWO, base=100.05) + [
        make_bar(3, 101.6, 103.0, 101.4, 102.8, 5000.0, day=DAY_TWO),
    ]
    trades = ORBBacktester(config).backtest_symbol("TEST", long_stop_session + day_two)

    assert len(trades) == 1
    assert trades[0].entry_time.date() == long_stop_session[0].timestamp.date()


def test_gap_day_trades_on_both_days(config, long_stop_session, make_opening, make_bar):
    day_two = make_opening(day=DAY_TWO, base=103.0) + [
        make_bar(3, 104.0, 105.5, 103.8, 105.2, 5000.0, day=DAY_TWO),
    ]
    trades = ORBBacktester(config).backtest_symbol("TEST", long_stop_session + day_two)
    assert [t.entry_time.date() for t in trades] == [date(2024, 1, 2), DAY_TWO]


def test_run_skips_empty_symbols(config, long_trail_session, long_stop_session):
    backtester = ORBBacktester(config)
    result = backtester.run({"AAA": long_trail_session, "BBB": [], "CCC": long_stop_session})

    assert backtester.skipped_symbols == ["BBB"]
    assert result.total_trades == 2
    assert result.wins == 1
    assert result.exit_reasons == {'TRAIL_STOP': 1, 'STOP': 1}


def test_run_async_uses_provider(config, long_trail_session):
    class FakeProvider:
        async def fetch_many(self, symbols, range_, interval, batch_size=5, timeout=None):
            return {"AAA": long_trail_session}

    backtester = ORBBacktester(config)
    result = asyncio.run(backtester.run_async(["AAA", "ZZZ"], FakeProvider()))

    assert result.total_trades == 1
    assert backtester.skipped_symbols == ["ZZZ"]


def test_signal_outside_session_opens_nothing(config, long_trail_session, make_opening, caplog):
    signal = ORBBacktester(config).detector.detect("TEST", long_trail_session)
    other_day = make_opening(day=DAY_TWO)

    with caplog.at_level(logging.INFO):
        assert ORBBacktester(config).simulate_trade(signal, other_day) is None

    assert "Opened" not in caplog.text
    assert "not in session" in caplog.text
