#!/usr/bin/env python3
"""
Opening Range Breakout (ORB) Strategy with Volume and Gap Filters
Opening range construction and breakout/breakdown signal detection
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from orb_engine.core.errors import InsufficientSession, InvalidRange
from orb_engine.core.models import Candle, OpeningRange, RejectionReason, Side, Signal
from orb_engine.core.orb_config import ORBConfig

logger = logging.getLogger(__name__)


def compute_opening_range(session: Sequence[Candle], opening_range_size: int) -> Optional[OpeningRange]:
    """
    Opening range over the first ``opening_range_size`` candles.

    Returns None ("no range") unless at least one candle exists after the
    opening window.
    """
    if opening_range_size <= 0 or len(session) < opening_range_size + 1:
        return None

    window = session[:opening_range_size]
    high = max(c.high for c in window)
    low = min(c.low for c in window)
    average_volume = sum(c.volume for c in window) / opening_range_size

    return OpeningRange(
        high=high,
        low=low,
        height=high - low,
        average_volume=average_volume,
        size=opening_range_size,
    )


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of a session scan: a signal, or the reason there is none"""
    signal: Optional[Signal] = None
    reason: Optional[RejectionReason] = None
    opening_range: Optional[OpeningRange] = None


class SignalDetector:
    """Stateless ORB signal detector shared by the live bots, backtester and simulator"""

    def __init__(self, config: ORBConfig = None):
        self.config = config or ORBConfig()

    def _require_range(self, session: Sequence[Candle], prior_close: Optional[float]) -> OpeningRange:
        cfg = self.config

        opening_range = compute_opening_range(session, cfg.opening_range_size)
        if opening_range is None:
            raise InsufficientSession(
                f"{len(session)} candles, need {cfg.opening_range_size + 1}"
            )

        if session[0].close < cfg.min_price:
            raise InvalidRange(RejectionReason.BELOW_MIN_PRICE.value)

        if prior_close:
            gap = abs(session[0].open - prior_close) / prior_close
            if gap < cfg.gap_threshold:
                raise InvalidRange(RejectionReason.NO_GAP.value)

        if opening_range.height <= 0:
            raise InvalidRange(RejectionReason.INVALID_RANGE.value)

        range_pct = opening_range.range_percent
        if range_pct < cfg.range_percent_min or range_pct > cfg.range_percent_max:
            raise InvalidRange(RejectionReason.INVALID_RANGE.value)

        return opening_range

    def qualify_session(self, symbol: str, session: Sequence[Candle],
                        prior_close: Optional[float] = None) -> Tuple[Optional[OpeningRange], Optional[RejectionReason]]:
        """Filters 1-3: price, gap and range band. Returns (range, None) when tradable."""
        if not session:
            return None, RejectionReason.NO_DATA

        try:
            opening_range = self._require_range(session, prior_close)
        except InsufficientSession as e:
            logger.debug(f"⏳ {symbol}: range still forming ({e})")
            return None, RejectionReason.INSUFFICIENT_SESSION
        except InvalidRange as e:
            logger.debug(f"🚫 {symbol}: session not tradable ({e})")
            return None, RejectionReason(str(e))

        return opening_range, None

    def relative_volume(self, opening_range: OpeningRange, candle: Candle) -> float:
        if opening_range.average_volume <= 0:
            return 0.0
        return candle.volume / opening_range.average_volume

    def passes_volume_gate(self, opening_range: OpeningRange, candle: Candle) -> bool:
        if self.config.volume_multiple is None:
            return True
        return candle.volume >= self.config.volume_multiple * opening_range.average_volume

    def check_breakout(self, symbol: str, opening_range: OpeningRange, candle: Candle) -> Optional[Signal]:
        """Filter 4 for a single bar after the opening window"""
        long_breach = candle.high > opening_range.high
        short_breach = candle.low < opening_range.low
        if not (long_breach or short_breach):
            return None

        if not self.passes_volume_gate(opening_range, candle):
            logger.debug(f"🔇 {symbol}: breach at {candle.timestamp} rejected on volume "
                         f"({self.relative_volume(opening_range, candle):.2f}x)")
            return None

        slippage = self.config.entry_slippage
        height = opening_range.height

        # Breakout-first: a bar breaching both sides is a long
        if long_breach:
            trigger = opening_range.high + slippage
            side, stop, target = Side.LONG, opening_range.low, trigger + height
        else:
            trigger = opening_range.low - slippage
            side, stop, target = Side.SHORT, opening_range.high, trigger - height

        return Signal(
            symbol=symbol,
            side=side,
            trigger_price=trigger,
            stop=stop,
            target=target,
            range_height=height,
            relative_volume=self.relative_volume(opening_range, candle),
            trigger_timestamp=candle.timestamp,
            bar_close=candle.close,
        )

    def evaluate(self, symbol: str, session: Sequence[Candle],
                 prior_close: Optional[float] = None) -> DetectionResult:
        """Scan a whole session for its first qualifying breakout"""
        opening_range, reason = self.qualify_session(symbol, session, prior_close)
        if opening_range is None:
            return DetectionResult(reason=reason)

        volume_rejected = False
        for candle in session[opening_range.size:]:
            signal = self.check_breakout(symbol, opening_range, candle)
            if signal is not None:
                logger.info(f"🚀 {symbol} {signal.side.value} signal @ ${signal.trigger_price:.2f} "
                            f"(stop ${signal.stop:.2f}, target ${signal.target:.2f}, "
                            f"relVol {signal.relative_volume:.2f}x)")
                return DetectionResult(signal=signal, opening_range=opening_range)
            if candle.high > opening_range.high or candle.low < opening_range.low:
                volume_rejected = True

        reason = RejectionReason.LOW_VOLUME if volume_rejected else RejectionReason.NO_BREAKOUT
        return DetectionResult(reason=reason, opening_range=opening_range)

    def detect(self, symbol: str, session: Sequence[Candle],
               prior_close: Optional[float] = None) -> Optional[Signal]:
        return self.evaluate(symbol, session, prior_close).signal


def prior_session_close(sessions: List[List[Candle]], index: int) -> Optional[float]:
    """Closing price of the session before ``index`` (None for the first one)"""
    if index <= 0 or not sessions[index - 1]:
        return None
    return sessions[index - 1][-1].close
