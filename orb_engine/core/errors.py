"""
Error taxonomy for the ORB engine

Only InvalidTransition and ConfigError are meant to propagate. The rest are
raised close to their source and handled by the caller that owns the policy
(skip symbol, fresh state, failed-trade count).
"""


class ORBError(Exception):
    """Base class for ORB engine errors"""


class DataUnavailable(ORBError):
    """Candle fetch failed or returned insufficient history"""

    def __init__(self, symbol: str, detail: str = ""):
        self.symbol = symbol
        self.detail = detail
        super().__init__(f"No market data for {symbol}" + (f": {detail}" if detail else ""))


class InsufficientSession(ORBError):
    """Fewer candles than the opening window requires"""


class InvalidRange(ORBError):
    """Range height is zero or outside the configured percent band"""


class OrderRejected(ORBError):
    """Execution collaborator reported a failure"""

    def __init__(self, symbol: str, message: str):
        self.symbol = symbol
        self.message = message
        super().__init__(f"Order for {symbol} rejected: {message}")


class PersistenceCorrupt(ORBError):
    """Daily state file unreadable or stamped with another date"""


class InvalidTransition(ORBError):
    """Position state machine asked to leave CLOSED"""


class ConfigError(ORBError):
    """Invalid strategy configuration"""
