"""
Daily bot state persistence

Schema: {"date": "YYYY-MM-DD", "positions": [...], "executedTrades": n}
A file stamped with another date, or one that cannot be parsed, is
replaced by a fresh state for the requested day.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Union

from orb_engine.core.errors import PersistenceCorrupt
from orb_engine.core.models import Position, PositionStatus

logger = logging.getLogger(__name__)


@dataclass
class DailyState:
    """Positions and trade count for one trading day"""
    date: str
    positions: List[Position] = field(default_factory=list)
    executed_trades: int = 0

    @classmethod
    def fresh(cls, day: Union[date, str]) -> 'DailyState':
        return cls(date=str(day))

    def open_position(self, symbol: str) -> Optional[Position]:
        return next((p for p in self.positions
                     if p.symbol == symbol and p.status == PositionStatus.OPEN), None)

    def closed_today(self, symbol: str) -> bool:
        return any(p.symbol == symbol and p.status == PositionStatus.CLOSED for p in self.positions)

    def open_positions(self) -> List[Position]:
        return [p for p in self.positions if p.status == PositionStatus.OPEN]

    def to_dict(self) -> Dict:
        return {
            'date': self.date,
            'positions': [p.to_dict() for p in self.positions],
            'executedTrades': self.executed_trades,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'DailyState':
        return cls(
            date=data['date'],
            positions=[Position.from_dict(p) for p in data.get('positions', [])],
            executed_trades=int(data.get('executedTrades', 0)),
        )


class StateStore(ABC):
    """Load/save interface for the daily bot state"""

    @abstractmethod
    def load(self, day: Union[date, str]) -> DailyState:
        ...

    @abstractmethod
    def save(self, state: DailyState) -> None:
        ...


class JsonFileStateStore(StateStore):
    """Single JSON file, overwritten wholesale on every save"""

    def __init__(self, path: Union[str, Path] = "bot_state.json"):
        self.path = Path(path)

    def _read(self, day: str) -> DailyState:
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            state = DailyState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceCorrupt(f"{self.path}: {e}") from e

        if state.date != day:
            raise PersistenceCorrupt(f"{self.path} is stamped {state.date}, expected {day}")
        return state

    def load(self, day: Union[date, str]) -> DailyState:
        day = str(day)
        if not self.path.exists():
            logger.info(f"🆕 No state file, starting fresh for {day}")
            return DailyState.fresh(day)

        try:
            state = self._read(day)
        except PersistenceCorrupt as e:
            logger.warning(f"⚠️ Discarding state: {e}")
            return DailyState.fresh(day)

        logger.info(f"📂 Loaded state for {day}: {len(state.positions)} positions, "
                    f"{state.executed_trades} executed trades")
        return state

    def save(self, state: DailyState) -> None:
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(state.to_dict(), f, indent=2)
        logger.debug(f"💾 State saved to {self.path}")


class InMemoryStateStore(StateStore):
    """Dict-backed store for tests and dry runs"""

    def __init__(self):
        self._data: Optional[Dict] = None

    def load(self, day: Union[date, str]) -> DailyState:
        day = str(day)
        if self._data is None or self._data.get('date') != day:
            return DailyState.fresh(day)
        return DailyState.from_dict(self._data)

    def save(self, state: DailyState) -> None:
        self._data = json.loads(json.dumps(state.to_dict()))
