"""
In-memory per-symbol candle store, partitioned into calendar-day sessions
"""
import logging
import math
from collections import OrderedDict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd
import pytz

from orb_engine.core.models import Candle

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


def is_valid_candle(candle: Candle) -> bool:
    """Finite prices and a sane high/low pair"""
    prices = (candle.open, candle.high, candle.low, candle.close)
    if any(p is None or not math.isfinite(p) for p in prices):
        return False
    return candle.high >= candle.low


def session_date(timestamp: datetime, tz: pytz.BaseTzInfo) -> date:
    """Calendar date of a timestamp in session-local time"""
    if timestamp.tzinfo is None:
        return timestamp.date()
    return timestamp.astimezone(tz).date()


def group_candles_by_session(candles: Iterable[Candle],
                             timezone: str = "America/New_York") -> "OrderedDict[date, List[Candle]]":
    """Group chronologically ordered candles into daily sessions"""
    tz = pytz.timezone(timezone)
    sessions: "OrderedDict[date, List[Candle]]" = OrderedDict()
    for candle in candles:
        sessions.setdefault(session_date(candle.timestamp, tz), []).append(candle)
    return sessions


def candles_from_frame(frame: pd.DataFrame, timezone: Optional[str] = None) -> List[Candle]:
    """Convert an OHLCV DataFrame (DatetimeIndex or 'timestamp' column) to candles"""
    if frame is None or frame.empty:
        return []

    df = frame.copy()
    df.columns = [str(col).lower() for col in df.columns]
    if 'timestamp' not in df.columns:
        df = df.reset_index()
        df = df.rename(columns={df.columns[0]: 'timestamp'})
        df.columns = [str(col).lower() for col in df.columns]

    missing = [col for col in OHLCV_COLUMNS if col not in df.columns]
    if missing:
        logger.warning(f"⚠️ Frame missing columns {missing}; no candles produced")
        return []

    df = df[['timestamp'] + OHLCV_COLUMNS].copy()
    df['timestamp'] = pd.to_datetime(df['timestamp'])
    if timezone is not None and df['timestamp'].dt.tz is not None:
        df['timestamp'] = df['timestamp'].dt.tz_convert(timezone)

    df = df.dropna(subset=['open', 'high', 'low', 'close'])
    df['volume'] = df['volume'].fillna(0)
    df = df.sort_values('timestamp')

    return [
        Candle(
            timestamp=row.timestamp.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


class CandleStore:
    """Per-symbol ordered OHLCV bars"""

    def __init__(self, timezone: str = "America/New_York"):
        self.timezone = timezone
        self._tz = pytz.timezone(timezone)
        self._candles: Dict[str, List[Candle]] = {}

    def add(self, symbol: str, candles: Iterable[Candle]) -> int:
        """Merge candles for a symbol, keeping timestamps strictly increasing"""
        merged = {c.timestamp: c for c in self._candles.get(symbol, [])}
        dropped = 0
        for candle in candles:
            if not is_valid_candle(candle):
                dropped += 1
                continue
            merged[candle.timestamp] = candle

        if dropped:
            logger.debug(f"🧹 {symbol}: dropped {dropped} malformed candles")

        ordered = [merged[ts] for ts in sorted(merged)]
        if ordered:
            self._candles[symbol] = ordered
        return len(ordered)

    def symbols(self) -> List[str]:
        return list(self._candles.keys())

    def candles(self, symbol: str) -> List[Candle]:
        return list(self._candles.get(symbol, []))

    def sessions(self, symbol: str) -> "OrderedDict[date, List[Candle]]":
        return group_candles_by_session(self._candles.get(symbol, []), self.timezone)

    def session_date(self, candle: Candle) -> date:
        return session_date(candle.timestamp, self._tz)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._candles

    def __len__(self) -> int:
        return len(self._candles)
