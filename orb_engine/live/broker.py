#!/usr/bin/env python3
"""
Order execution and account collaborators
IBKR (ib_insync) for real routing, PaperBroker for dry runs and tests
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from ib_insync import IB, MarketOrder, Stock

from orb_engine.core.errors import OrderRejected
from orb_engine.strategies.action_mapper import OrderSide

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    side: OrderSide
    quantity: int
    order_type: str = "market"
    duration: str = "day"
    reference_price: Optional[float] = None


@dataclass(frozen=True)
class OrderResult:
    success: bool
    message: str
    order_id: Optional[str] = None


@dataclass(frozen=True)
class AccountSnapshot:
    cash_available: float
    buying_power: float
    held_symbols: FrozenSet[str] = frozenset()


def position_size(cash: float, fraction: float, price: float) -> int:
    """max(1, floor(cash * fraction / price))"""
    if price <= 0:
        return 1
    return max(1, int(cash * fraction / price))


def ensure_filled(result: OrderResult, symbol: str) -> OrderResult:
    """Raise OrderRejected for an unsuccessful result"""
    if not result.success:
        raise OrderRejected(symbol, result.message)
    return result


class Broker(ABC):
    """Submits orders and reports account state"""

    @abstractmethod
    def submit_order(self, request: OrderRequest) -> OrderResult:
        ...

    @abstractmethod
    def get_account_snapshot(self) -> AccountSnapshot:
        ...

    def close(self):
        pass


class PaperBroker(Broker):
    """In-memory fills at the request's reference price"""

    def __init__(self, cash: float = 100000.0, held_symbols=(), reject_symbols=()):
        self.cash = cash
        self.holdings: Dict[str, int] = {symbol: 1 for symbol in held_symbols}
        self.reject_symbols = set(reject_symbols)
        self.orders: List[OrderRequest] = []
        self._ids = itertools.count(1)

    def submit_order(self, request: OrderRequest) -> OrderResult:
        self.orders.append(request)

        if request.symbol in self.reject_symbols:
            return OrderResult(False, f"{request.symbol} not tradable")
        if request.quantity <= 0:
            return OrderResult(False, "quantity must be positive")

        price = request.reference_price or 0.0
        notional = price * request.quantity
        signed = request.quantity

        if request.side in (OrderSide.BUY, OrderSide.BUY_TO_COVER):
            if request.side == OrderSide.BUY and notional > self.cash:
                return OrderResult(False, f"insufficient cash (${self.cash:,.2f} < ${notional:,.2f})")
            self.cash -= notional
        else:
            self.cash += notional
            signed = -request.quantity

        held = self.holdings.get(request.symbol, 0) + signed
        if held:
            self.holdings[request.symbol] = held
        else:
            self.holdings.pop(request.symbol, None)

        order_id = f"PAPER-{next(self._ids)}"
        logger.info(f"📝 [PAPER] {request.side.value} {request.quantity} {request.symbol} "
                    f"@ ${price:.2f} ({order_id})")
        return OrderResult(True, "filled", order_id)

    def get_account_snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(
            cash_available=self.cash,
            buying_power=self.cash,
            held_symbols=frozenset(self.holdings),
        )


class IBKRBroker(Broker):
    """Interactive Brokers via ib_insync market orders"""

    _ACTIONS = {
        OrderSide.BUY: 'BUY',
        OrderSide.SELL: 'SELL',
        OrderSide.SELL_SHORT: 'SELL',
        OrderSide.BUY_TO_COVER: 'BUY',
    }
    _DEAD_STATUSES = ('Cancelled', 'ApiCancelled', 'Inactive')

    def __init__(self, host: str = '127.0.0.1', port: int = 7497, client_id: int = 5,
                 ib: Optional[IB] = None, fill_wait_seconds: float = 1.0):
        self.host = host
        self.port = port
        self.client_id = client_id
        self.ib = ib or IB()
        self.fill_wait_seconds = fill_wait_seconds

    def connect(self) -> bool:
        """Connect to IBKR"""
        if self.ib.isConnected():
            return True
        try:
            logger.info(f"🔌 Connecting to IBKR at {self.host}:{self.port} (Client ID: {self.client_id})")
            self.ib.connect(self.host, self.port, clientId=self.client_id)
        except Exception as e:
            logger.error(f"❌ Connection error: {e}")
            return False

        if self.ib.isConnected():
            logger.info("✅ Connected to IBKR successfully")
            return True
        logger.error("❌ Failed to connect to IBKR")
        return False

    def close(self):
        if self.ib.isConnected():
            self.ib.disconnect()
            logger.info("👋 Disconnected from IBKR")

    def submit_order(self, request: OrderRequest) -> OrderResult:
        if not self.connect():
            return OrderResult(False, "not connected to IBKR")

        contract = Stock(request.symbol, 'SMART', 'USD')
        order = MarketOrder(self._ACTIONS[request.side], request.quantity,
                            tif=request.duration.upper())
        try:
            trade = self.ib.placeOrder(contract, order)
            self.ib.sleep(self.fill_wait_seconds)
        except Exception as e:
            logger.error(f"❌ Order error for {request.symbol}: {e}")
            return OrderResult(False, str(e))

        status = trade.orderStatus.status
        order_id = str(trade.order.orderId)
        if status in self._DEAD_STATUSES:
            messages = "; ".join(entry.message for entry in trade.log if entry.message)
            return OrderResult(False, messages or status, order_id)

        logger.info(f"📤 {request.side.value} {request.quantity} {request.symbol}: {status} (#{order_id})")
        return OrderResult(True, status, order_id)

    def get_account_snapshot(self) -> AccountSnapshot:
        if not self.connect():
            return AccountSnapshot(0.0, 0.0)

        values = {
            v.tag: float(v.value)
            for v in self.ib.accountValues()
            if v.currency == 'USD' and v.tag in ('AvailableFunds', 'TotalCashValue', 'BuyingPower')
        }
        held = frozenset(p.contract.symbol for p in self.ib.positions() if p.position)
        cash = values.get('AvailableFunds', values.get('TotalCashValue', 0.0))
        return AccountSnapshot(
            cash_available=cash,
            buying_power=values.get('BuyingPower', cash),
            held_symbols=held,
        )
