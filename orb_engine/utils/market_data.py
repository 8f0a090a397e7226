#!/usr/bin/env python3
"""
Market Data Provider using Yahoo Finance
Fetches intraday and daily OHLCV candles for the ORB engine
"""

import asyncio
import logging
from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional, Sequence

import yfinance as yf

from orb_engine.core.advanced_logger import PerformanceLogger
from orb_engine.core.candle_store import candles_from_frame
from orb_engine.core.errors import DataUnavailable
from orb_engine.core.models import Candle

logger = logging.getLogger(__name__)


class MarketDataProvider:
    """Provides OHLCV candles using the Yahoo Finance API; never raises on fetch failure"""

    def __init__(self, timezone: str = "America/New_York", cache_duration_minutes: int = 1):
        self.timezone = timezone
        self.cache_duration_minutes = cache_duration_minutes
        self._cache: Dict[tuple, List[Candle]] = {}
        self._cache_timestamps: Dict[tuple, datetime] = {}
        self.performance = PerformanceLogger()

    @lru_cache(maxsize=128)
    def get_ticker(self, symbol: str) -> yf.Ticker:
        """Get cached ticker object"""
        return yf.Ticker(symbol)

    def _is_cache_valid(self, key: tuple) -> bool:
        """Check if cached data is still valid"""
        if key not in self._cache_timestamps:
            return False
        age = (datetime.now() - self._cache_timestamps[key]).total_seconds()
        return age < self.cache_duration_minutes * 60

    def _download(self, symbol: str, range_: str, interval: str) -> List[Candle]:
        ticker = self.get_ticker(symbol)
        hist_data = ticker.history(period=range_, interval=interval, prepost=False)

        if hist_data is None or hist_data.empty:
            raise DataUnavailable(symbol, f"empty history for {range_}/{interval}")

        candles = candles_from_frame(hist_data, self.timezone)
        if not candles:
            raise DataUnavailable(symbol, "no valid OHLCV rows")
        return candles

    def fetch_candles(self, symbol: str, range_: str = "5d", interval: str = "1m") -> List[Candle]:
        """
        Fetch chronologically ordered candles

        Args:
            symbol: Stock symbol (e.g., 'NVDA')
            range_: Yahoo period ('1d', '5d', '1y', ...)
            interval: Bar size ('1m', '5m', '1d', ...)

        Returns:
            List of candles, empty on any failure
        """
        key = (symbol, range_, interval)
        if self._is_cache_valid(key):
            logger.debug(f"📊 Using cached candles for {symbol} ({range_}/{interval})")
            return list(self._cache[key])

        try:
            logger.info(f"📥 Fetching {range_}/{interval} candles for {symbol}...")
            candles = self._download(symbol, range_, interval)
        except DataUnavailable as e:
            logger.warning(f"⚠️ {e}")
            return []
        except Exception as e:
            logger.error(f"❌ Error fetching candles for {symbol}: {e}")
            return []

        self._cache[key] = candles
        self._cache_timestamps[key] = datetime.now()
        logger.info(f"✅ {symbol}: {len(candles)} candles")
        return list(candles)

    async def fetch_candles_async(self, symbol: str, range_: str = "5d", interval: str = "1m",
                                  timeout: Optional[float] = None) -> List[Candle]:
        """Run a blocking fetch in the default executor with a bounded timeout"""
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.fetch_candles, symbol, range_, interval)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Fetch for {symbol} timed out after {timeout}s")
            return []

    async def fetch_many(self, symbols: Sequence[str], range_: str = "5d", interval: str = "1m",
                         batch_size: int = 5, timeout: Optional[float] = None) -> Dict[str, List[Candle]]:
        """Fetch symbols concurrently in batches; symbols without data are left out"""
        timer_id = self.performance.start_timer(f"fetch_many[{len(symbols)}]")
        results: Dict[str, List[Candle]] = {}

        for i in range(0, len(symbols), batch_size):
            batch = list(symbols[i:i + batch_size])
            fetched = await asyncio.gather(
                *(self.fetch_candles_async(sym, range_, interval, timeout) for sym in batch)
            )
            for sym, candles in zip(batch, fetched):
                if candles:
                    results[sym] = candles
                else:
                    logger.warning(f"🚫 {sym}: excluded (no data)")
            logger.info(f"   Scanned {min(i + batch_size, len(symbols))}/{len(symbols)}...")

        self.performance.end_timer(timer_id, {'loaded': len(results), 'requested': len(symbols)})
        return results

    def clear_cache(self):
        """Clear the candle cache"""
        self._cache.clear()
        self._cache_timestamps.clear()
        logger.info("🧹 Candle cache cleared")
