"""
Shared fixtures: handcrafted candles on New York session time
"""
from datetime import date, datetime, time, timedelta

import pytest
import pytz

from orb_engine.core.models import Candle
from orb_engine.core.orb_config import ORBConfig

NY = pytz.timezone("America/New_York")
TRADE_DAY = date(2024, 1, 2)


def session_time(minute: int, day: date = TRADE_DAY, step: int = 1) -> datetime:
    return NY.localize(datetime.combine(day, time(9, 30))) + timedelta(minutes=minute * step)


def bar(minute: int, o: float, h: float, l: float, c: float, v: float = 1000.0,
        day: date = TRADE_DAY, step: int = 1) -> Candle:
    return Candle(timestamp=session_time(minute, day, step), open=o, high=h, low=l, close=c, volume=v)


def opening_bars(day: date = TRADE_DAY, step: int = 1, base: float = 100.0, volume: float = 1000.0):
    """Three bars spanning [base, base + 2]: range high 102, low 100 on a $100 stock"""
    return [
        bar(0, base, base + 1.0, base, base + 1.0, volume, day, step),
        bar(1, base + 1.0, base + 2.0, base + 0.5, base + 1.5, volume, day, step),
        bar(2, base + 1.5, base + 1.8, base + 0.2, base + 1.0, volume, day, step),
    ]


@pytest.fixture
def make_bar():
    return bar


@pytest.fixture
def make_opening():
    return opening_bars


@pytest.fixture
def config():
    """Three-candle opening window, default filters, no time exit"""
    return ORBConfig(symbols=("TEST",), opening_range_size=3)


@pytest.fixture
def long_trail_session():
    """Breakout at 102, target 104 touched, then back to breakeven"""
    return opening_bars() + [
        bar(3, 101.5, 102.5, 101.2, 102.3, 1300.0),
        bar(4, 102.3, 104.0, 102.5, 103.5, 1100.0),
        bar(5, 103.5, 103.6, 102.0, 102.1, 1100.0),
        bar(6, 102.1, 102.4, 101.0, 101.5, 1000.0),
    ]


@pytest.fixture
def long_stop_session():
    """Breakout at 102, next bar falls through the range low"""
    return opening_bars() + [
        bar(3, 101.5, 102.5, 101.2, 102.3, 1300.0),
        bar(4, 102.0, 102.2, 99.5, 99.8, 1500.0),
        bar(5, 99.8, 100.5, 99.0, 100.0, 1000.0),
    ]
