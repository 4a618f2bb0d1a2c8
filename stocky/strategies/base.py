"""
Base strategy class for signal-driven strategies.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import structlog

from stocky.backtest.trades import tradify
from stocky.data.models import Trade

logger = structlog.get_logger(__name__)


def _as_datetime(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def _bound(value: Any, end_of_day: bool = False) -> pd.Timestamp:
    stamp = pd.Timestamp(value)
    if end_of_day and isinstance(value, date) and not isinstance(value, datetime):
        stamp += pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
    return stamp


class BaseStrategy(ABC):
    """
    Abstract base class for all strategies.

    A strategy reads an OHLCV DataFrame (lowercase columns, indexed by
    ascending date) and emits buy/sell signals.
    """

    def __init__(self, name: str, parameters: Dict[str, Any] = None):
        self.name = name
        self.parameters = parameters or {}

    @property
    def warmup(self) -> int:
        """Bars needed before the first signal can be produced."""
        return 0

    @abstractmethod
    def calculate_indicators(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Calculate technical indicators from market data.

        Args:
            data: Market data DataFrame with OHLCV columns

        Returns:
            Copy of ``data`` with indicator columns added
        """
        pass

    @abstractmethod
    def generate_signals(self, data: pd.DataFrame) -> List[Trade]:
        """
        Generate buy and sell signals in time order.

        Args:
            data: Market data DataFrame with OHLCV columns

        Returns:
            List of signals
        """
        pass

    def get_trades(self, data: pd.DataFrame, start: Optional[date] = None,
                   end: Optional[date] = None) -> List[Trade]:
        """
        Completed trades from this strategy's signals.

        Indicators are computed over all of ``data`` so they are warmed up
        before ``start``; only signals inside ``[start, end]`` are traded.
        """
        signals = self.generate_signals(data)

        if start is not None:
            signals = [s for s in signals if pd.Timestamp(s.time) >= _bound(start)]
        if end is not None:
            signals = [s for s in signals if pd.Timestamp(s.time) <= _bound(end, end_of_day=True)]

        trades = tradify(signals)
        logger.debug("Trades assembled", strategy=self.name, signals=len(signals), trades=len(trades))
        return trades

    def _times(self, data: pd.DataFrame) -> List[Any]:
        return [_as_datetime(value) for value in data.index]

    def __repr__(self):
        params = ", ".join(f"{key}={value}" for key, value in self.parameters.items())
        return f"{self.__class__.__name__}({params})"
