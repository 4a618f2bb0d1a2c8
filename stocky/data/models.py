"""
Core value types: bars, symbols, actions and trades.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Union

Timestamp = Union[date, datetime]


@dataclass(frozen=True)
class Symbol:
    """Identifies an independent price series."""

    name: str
    exchange: str = ""

    def __str__(self) -> str:
        if self.exchange:
            return f"{self.exchange}:{self.name}"
        return self.name

    @classmethod
    def parse(cls, text: str) -> 'Symbol':
        """Parse ``EXCHANGE:NAME`` or a bare ``NAME``."""
        if ":" in text:
            exchange, name = text.split(":", 1)
            return cls(name=name.upper(), exchange=exchange.upper())
        return cls(name=text.upper())


@dataclass(frozen=True)
class Bar:
    """One end-of-day OHLCV observation."""

    time: Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    def __post_init__(self):
        if self.volume < 0:
            raise ValueError(f"Bar volume must be non-negative, got {self.volume}")


class Action(str, Enum):
    """Signal action at a point in time."""

    BUY = "buy"
    SELL = "sell"
    NONE = "none"


@dataclass(frozen=True)
class Trade:
    """A buy or sell at a price and time."""

    time: Timestamp
    price: float
    action: Action

    def to_dict(self) -> Dict[str, Any]:
        return {
            'time': self.time.isoformat(),
            'price': self.price,
            'action': self.action.value
        }


@dataclass(frozen=True)
class NamedTrade(Trade):
    """A trade tagged with the symbol it was made on."""

    symbol: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['symbol'] = self.symbol
        return data
