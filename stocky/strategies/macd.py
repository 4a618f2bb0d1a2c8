"""
MACD crossover strategy.
"""

from typing import List

import pandas as pd
import structlog

from stocky.data.models import Trade
from stocky.indicators.technical import TechnicalIndicators
from stocky.strategies.base import BaseStrategy
from stocky.strategies.signals import SignalWindow, generate_signals

logger = structlog.get_logger(__name__)


class MACDCrossover(BaseStrategy):
    """
    Buys when the MACD line crosses above its signal line and sells on the
    reverse cross.

    With ``SignalWindow.CONSECUTIVE_DAYS`` the cross must hold for two bars
    on each side, which filters out one-bar noise.
    """

    def __init__(self, fast: int = 12, slow: int = 26, signal: int = 9,
                 window: SignalWindow = SignalWindow.SINGLE_DAY):
        if fast >= slow:
            raise ValueError(f"fast period ({fast}) must be shorter than slow period ({slow})")

        super().__init__("macd", {'fast': fast, 'slow': slow, 'signal': signal, 'window': int(window)})
        self.fast = fast
        self.slow = slow
        self.signal = signal
        self.window = SignalWindow(window)

    @property
    def warmup(self) -> int:
        return self.slow + self.signal - 2

    def calculate_indicators(self, data: pd.DataFrame) -> pd.DataFrame:
        result = data.copy()
        macd = TechnicalIndicators.macd(data['close'], self.fast, self.slow, self.signal)
        result['ema_fast'] = macd['fast']
        result['ema_slow'] = macd['slow']
        result['macd'] = macd['macd']
        result['macd_signal'] = macd['signal']
        return result

    def generate_signals(self, data: pd.DataFrame) -> List[Trade]:
        indicators = self.calculate_indicators(data)
        return generate_signals(
            self._times(indicators),
            indicators['close'],
            indicators['ema_fast'],
            indicators['ema_slow'],
            indicators['macd_signal'],
            self.window,
        )
