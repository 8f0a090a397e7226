"""
Data models for the ORB engine
Candles, opening ranges, signals, positions and closed trades
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple


class Side(Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class ExitReason(Enum):
    STOP = "STOP"
    TARGET = "TARGET"
    TIME_EXIT = "TIME_EXIT"
    EOD = "EOD"
    TRAIL_STOP = "TRAIL_STOP"


class PositionStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PositionState(Enum):
    OPEN_INITIAL = "OPEN_INITIAL"
    OPEN_SCALED = "OPEN_SCALED"
    CLOSED = "CLOSED"


class RejectionReason(Enum):
    NO_DATA = "no_data"
    INSUFFICIENT_SESSION = "insufficient_session"
    BELOW_MIN_PRICE = "below_min_price"
    NO_GAP = "no_gap"
    INVALID_RANGE = "invalid_range"
    NO_BREAKOUT = "no_breakout"
    LOW_VOLUME = "low_volume"


@dataclass(frozen=True)
class Candle:
    """OHLCV bar"""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class OpeningRange:
    """Opening range derived from the first N candles of a session"""
    high: float
    low: float
    height: float
    average_volume: float
    size: int

    @property
    def range_percent(self) -> float:
        return self.height / self.low if self.low > 0 else 0.0


@dataclass(frozen=True)
class Signal:
    """Breakout/breakdown signal, at most one per symbol per session"""
    symbol: str
    side: Side
    trigger_price: float
    stop: float
    target: float
    range_height: float
    relative_volume: float
    trigger_timestamp: datetime
    bar_close: float = 0.0


@dataclass
class Position:
    """Open position managed by the PositionManager"""
    symbol: str
    side: Side
    entry_price: float
    quantity: int
    initial_quantity: int
    stop_price: float
    initial_stop: float
    target_price: float
    range_height: float
    entry_time: datetime
    scaled_out: bool = False
    accumulated_pnl: float = 0.0
    status: PositionStatus = PositionStatus.OPEN
    last_update: Optional[datetime] = None

    def __post_init__(self):
        if self.last_update is None:
            self.last_update = self.entry_time

    @property
    def state(self) -> PositionState:
        if self.status == PositionStatus.CLOSED:
            return PositionState.CLOSED
        if self.scaled_out:
            return PositionState.OPEN_SCALED
        return PositionState.OPEN_INITIAL

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def to_dict(self) -> Dict:
        return {
            'symbol': self.symbol,
            'side': self.side.value,
            'entry_price': self.entry_price,
            'quantity': self.quantity,
            'initial_quantity': self.initial_quantity,
            'stop_price': self.stop_price,
            'initial_stop': self.initial_stop,
            'target_price': self.target_price,
            'range_height': self.range_height,
            'entry_time': self.entry_time.isoformat(),
            'scaled_out': self.scaled_out,
            'accumulated_pnl': self.accumulated_pnl,
            'status': self.status.value,
            'last_update': self.last_update.isoformat() if self.last_update else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Position':
        last_update = data.get('last_update')
        return cls(
            symbol=data['symbol'],
            side=Side(data['side']),
            entry_price=float(data['entry_price']),
            quantity=int(data['quantity']),
            initial_quantity=int(data.get('initial_quantity', data['quantity'])),
            stop_price=float(data['stop_price']),
            initial_stop=float(data.get('initial_stop', data['stop_price'])),
            target_price=float(data['target_price']),
            range_height=float(data['range_height']),
            entry_time=datetime.fromisoformat(data['entry_time']),
            scaled_out=bool(data.get('scaled_out', False)),
            accumulated_pnl=float(data.get('accumulated_pnl', 0.0)),
            status=PositionStatus(data.get('status', 'OPEN')),
            last_update=datetime.fromisoformat(last_update) if last_update else None,
        )


@dataclass(frozen=True)
class ClosedTrade:
    """Immutable record of a finished trade; pnl is per share"""
    symbol: str
    side: Side
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    pnl: float
    return_percent: float
    exit_reason: ExitReason
    quantity: int = 0

    @property
    def won(self) -> bool:
        return self.return_percent > 0

    @property
    def dollar_pnl(self) -> float:
        return self.pnl * self.quantity

    def to_dict(self) -> Dict:
        return {
            'symbol': self.symbol,
            'side': self.side.value,
            'entry_time': self.entry_time.isoformat(),
            'exit_time': self.exit_time.isoformat(),
            'entry_price': self.entry_price,
            'exit_price': self.exit_price,
            'pnl': self.pnl,
            'return_percent': self.return_percent,
            'exit_reason': self.exit_reason.value,
            'quantity': self.quantity,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Aggregate statistics over a ClosedTrade ledger"""
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    avg_win_percent: float = 0.0
    avg_loss_percent: float = 0.0
    profit_factor: float = 0.0
    total_return: float = 0.0
    max_drawdown: float = 0.0
    exit_reasons: Dict[str, int] = field(default_factory=dict)
    trades: Tuple[ClosedTrade, ...] = ()
