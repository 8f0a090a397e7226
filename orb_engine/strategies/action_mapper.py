"""
Maps detector signals to order actions

Normal mode trades the signal's side. Inverted mode is buy-only: a breakdown
becomes a buy into the falling knife, a breakout becomes a buy at the top.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

from orb_engine.core.models import Side, Signal


class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"
    SELL_SHORT = "sell_short"
    BUY_TO_COVER = "buy_to_cover"


@dataclass(frozen=True)
class TradeAction:
    """What to send to the broker for one signal"""
    signal: Signal
    order_side: OrderSide
    price: float
    conviction: float
    reason: str


class ActionMapper:
    """Normal vs inverted side mapping at the call site"""

    def __init__(self, inverted: bool = False):
        self.inverted = inverted

    def entry_action(self, signal: Signal) -> TradeAction:
        if self.inverted:
            reason = "🔪 Falling Knife" if signal.side == Side.SHORT else "📈💀 Buying the Top"
            return TradeAction(signal, OrderSide.BUY, signal.bar_close or signal.trigger_price,
                               signal.relative_volume, reason)

        order_side = OrderSide.BUY if signal.side == Side.LONG else OrderSide.SELL_SHORT
        reason = "ORB breakout" if signal.side == Side.LONG else "ORB breakdown"
        return TradeAction(signal, order_side, signal.trigger_price, signal.relative_volume, reason)

    @staticmethod
    def exit_side(side: Side) -> OrderSide:
        """Order side that reduces a position"""
        return OrderSide.SELL if side == Side.LONG else OrderSide.BUY_TO_COVER

    def rank(self, actions: Sequence[TradeAction]) -> List[TradeAction]:
        """Highest conviction first; inverted mode takes the weakest setups first"""
        return sorted(actions, key=lambda a: a.conviction, reverse=not self.inverted)
