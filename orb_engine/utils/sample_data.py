"""
Synthetic intraday data for offline runs
"""
from datetime import datetime, time
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
import pytz

from orb_engine.core.candle_store import candles_from_frame
from orb_engine.core.models import Candle


def _is_market_hours(dt: datetime) -> bool:
    """Check if datetime is during regular market hours"""
    if dt.weekday() >= 5:  # Weekend
        return False
    return time(9, 30) <= dt.time() < time(16, 0)


def generate_sample_candles(symbol: str, start: str = "2024-01-02", days: int = 5,
                            base_price: float = 100.0, freq: str = "1min",
                            seed: int = 42, timezone: str = "America/New_York") -> List[Candle]:
    """
    Random-walk minute bars with an overnight gap each day and a volume
    surge after the opening half hour, so some sessions break out
    """
    tz = pytz.timezone(timezone)
    rng = np.random.default_rng(seed + sum(ord(ch) for ch in symbol))

    end = pd.Timestamp(start) + pd.tseries.offsets.BDay(days)
    dates = pd.date_range(start=f"{start} 09:30:00", end=end.strftime("%Y-%m-%d 16:00:00"),
                          freq=freq, tz=tz)
    dates = [d for d in dates if _is_market_hours(d)]

    price = base_price
    current_day = None
    minute_of_day = 0
    rows = []
    for stamp in dates:
        if stamp.date() != current_day:
            current_day = stamp.date()
            minute_of_day = 0
            price *= 1 + rng.choice([-1, 1]) * rng.uniform(0.003, 0.02)

        drift = rng.normal(0, price * 0.0015)
        open_price = price
        close = max(1.0, price + drift)
        high = max(open_price, close) + abs(rng.normal(0, price * 0.0008))
        low = min(open_price, close) - abs(rng.normal(0, price * 0.0008))

        volume = rng.integers(20_000, 60_000)
        if 30 <= minute_of_day < 90 and rng.random() < 0.15:
            volume *= 3

        rows.append({
            'timestamp': stamp,
            'open': open_price,
            'high': high,
            'low': low,
            'close': close,
            'volume': int(volume),
        })
        price = close
        minute_of_day += 1

    return candles_from_frame(pd.DataFrame(rows), timezone)


def generate_sample_universe(symbols: Sequence[str], **kwargs) -> Dict[str, List[Candle]]:
    """One independent synthetic series per symbol"""
    base_prices = np.linspace(20.0, 400.0, num=max(len(symbols), 1))
    return {
        symbol: generate_sample_candles(symbol, base_price=float(base_prices[i]), **kwargs)
        for i, symbol in enumerate(symbols)
    }
