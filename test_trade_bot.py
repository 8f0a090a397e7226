"""
Live and inverse bot cycles against a paper broker and an in-memory state store
"""
from datetime import date

import pytest

from orb_engine.core.models import ExitReason, PositionStatus
from orb_engine.core.orb_config import ORBConfig
from orb_engine.core.state_store import InMemoryStateStore
from orb_engine.live.broker import PaperBroker
from orb_engine.live.trade_bot import ORBTradeBot
from orb_engine.strategies.action_mapper import OrderSide

TRADE_DAY = date(2024, 1, 2)


class FakeProvider:
    """Serves canned candles instead of Yahoo Finance"""

    def __init__(self, data=None):
        self.data = data or {}
        self.requests = []

    async def fetch_many(self, symbols, range_="5d", interval="5m", batch_size=5, timeout=None):
        self.requests.append((tuple(symbols), range_, interval))
        return {s: list(self.data[s]) for s in symbols if self.data.get(s)}


def _live_bot(data, broker=None, store=None, **overrides):
    params = dict(symbols=("TEST",), opening_range_size=3)
    params.update(overrides)
    config = ORBConfig.live_profile(**params)
    return ORBTradeBot(config, FakeProvider(data), broker or PaperBroker(), store or InMemoryStateStore())


def test_breakout_opens_position(long_trail_session):
    store = InMemoryStateStore()
    bot = _live_bot({"TEST": long_trail_session[:4]}, store=store)

    report = bot.run_cycle(TRADE_DAY)

    assert report.signals == 1
    assert report.positions_opened == 1
    assert report.orders_placed == 0
    state = store.load(TRADE_DAY)
    assert state.executed_trades == 1
    position = state.open_position("TEST")
    assert position.entry_price == pytest.approx(102.0)
    assert position.quantity == int(100000 * 0.24 / 102.0)
    assert bot.provider.requests == [(("TEST",), "5d", "5m")]
    assert "[OPEN] TEST (LONG)" in report.text


def test_full_lifecycle_with_execution(long_trail_session):
    store = InMemoryStateStore()
    broker = PaperBroker(cash=100000.0)
    bot = _live_bot({"TEST": long_trail_session[:4]}, broker=broker, store=store, auto_execute=True)

    first = bot.run_cycle(TRADE_DAY)
    assert first.orders_placed == 1
    assert broker.orders[0].side == OrderSide.BUY
    assert broker.orders[0].quantity == 235

    bot.provider.data["TEST"] = long_trail_session
    second = bot.run_cycle(TRADE_DAY)

    assert [t.exit_reason for t in second.closed_trades] == [ExitReason.TRAIL_STOP]
    assert [(o.side, o.quantity) for o in broker.orders[1:]] == [(OrderSide.SELL, 117), (OrderSide.SELL, 118)]
    assert "TEST" not in broker.holdings
    state = store.load(TRADE_DAY)
    assert state.positions[0].status == PositionStatus.CLOSED
    assert state.closed_today("TEST")

    third = bot.run_cycle(TRADE_DAY)
    assert third.signals == 0
    assert len(broker.orders) == 3
    assert "No candidates" in third.text


def test_rejected_entry_counts_as_failed(long_trail_session):
    store = InMemoryStateStore()
    broker = PaperBroker(reject_symbols=["TEST"])
    bot = _live_bot({"TEST": long_trail_session[:4]}, broker=broker, store=store, auto_execute=True)

    report = bot.run_cycle(TRADE_DAY)

    assert report.orders_failed == 1
    assert report.positions_opened == 0
    assert store.load(TRADE_DAY).positions == []


def test_held_symbol_is_skipped(long_trail_session):
    bot = _live_bot({"TEST": long_trail_session[:4]}, broker=PaperBroker(held_symbols=["TEST"]))
    assert bot.run_cycle(TRADE_DAY).positions_opened == 0


def test_range_forming_is_a_wait(long_trail_session):
    report = _live_bot({"TEST": long_trail_session[:3]}).run_cycle(TRADE_DAY)
    assert "[WAIT] TEST" in report.text
    assert report.signals == 0


def test_no_data_reports_no_candidates():
    report = _live_bot({}).run_cycle(TRADE_DAY)
    assert "No candidates" in report.text
    assert report.orders_failed == 0


def _inverse_bot(make_opening, make_bar, broker, **overrides):
    data = {
        "AAA": make_opening() + [make_bar(3, 100.5, 101.0, 99.4, 99.6, 2000.0)],
        "BBB": make_opening() + [make_bar(3, 101.5, 102.5, 101.2, 102.3, 500.0)],
        "CCC": make_opening() + [make_bar(3, 101.0, 101.5, 100.5, 101.2, 900.0)],
    }
    params = dict(symbols=("AAA", "BBB", "CCC"), opening_range_size=3)
    params.update(overrides)
    return ORBTradeBot(ORBConfig.inverse_profile(**params), FakeProvider(data), broker, InMemoryStateStore())


def test_inverse_buys_weakest_first(make_opening, make_bar):
    broker = PaperBroker(cash=10000.0)
    report = _inverse_bot(make_opening, make_bar, broker).run_cycle(TRADE_DAY)

    assert report.signals == 2
    assert [(o.symbol, o.side, o.quantity) for o in broker.orders] == [
        ("BBB", OrderSide.BUY, 24),
        ("AAA", OrderSide.BUY, 18),
    ]
    assert report.orders_placed == 2
    assert report.remaining_cash == pytest.approx(10000.0 - 24 * 102.3 - 18 * 99.6)
    assert "Falling Knife" in report.text
    assert "Buying the Top" in report.text


def test_inverse_stops_below_cash_reserve(make_opening, make_bar):
    broker = PaperBroker(cash=10000.0)
    report = _inverse_bot(make_opening, make_bar, broker, min_cash_reserve=9000.0).run_cycle(TRADE_DAY)
    assert report.orders_placed == 1
    assert [o.symbol for o in broker.orders] == ["BBB"]


def test_inverse_counts_failures_and_continues(make_opening, make_bar):
    broker = PaperBroker(cash=10000.0, reject_symbols=["BBB"])
    report = _inverse_bot(make_opening, make_bar, broker).run_cycle(TRADE_DAY)

    assert report.orders_failed == 1
    assert report.orders_placed == 1
    assert broker.orders[-1].quantity == int(10000.0 * 0.25 / 99.6)


def test_inverse_caps_new_positions(make_opening, make_bar):
    broker = PaperBroker(cash=10000.0)
    _inverse_bot(make_opening, make_bar, broker, max_new_positions=1).run_cycle(TRADE_DAY)
    assert [o.symbol for o in broker.orders] == ["BBB"]


def test_inverse_without_signals(make_opening, make_bar):
    broker = PaperBroker(cash=10000.0)
    report = _inverse_bot(make_opening, make_bar, broker, symbols=("CCC",)).run_cycle(TRADE_DAY)
    assert report.signals == 0
    assert "No candidates" in report.text
    assert broker.orders == []


def test_single_share_scale_out_sends_no_empty_order(long_trail_session):
    broker = PaperBroker(cash=10000.0)
    bot = _live_bot({"TEST": long_trail_session[:4]}, broker=broker, auto_execute=True, position_fraction=0.01)

    bot.run_cycle(TRADE_DAY)
    assert broker.orders[0].quantity == 1

    bot.provider.data["TEST"] = long_trail_session
    report = bot.run_cycle(TRADE_DAY)

    assert report.orders_failed == 0
    assert [(o.side, o.quantity) for o in broker.orders[1:]] == [(OrderSide.SELL, 1)]
    assert [t.exit_reason for t in report.closed_trades] == [ExitReason.TRAIL_STOP]
