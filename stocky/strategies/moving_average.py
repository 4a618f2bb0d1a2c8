"""
Moving average with lookback strategy.
"""

from typing import List

import numpy as np
import pandas as pd

from stocky.data.models import Action, Trade
from stocky.indicators.technical import TechnicalIndicators
from stocky.strategies.base import BaseStrategy


class MovingAverageLookback(BaseStrategy):
    """
    Trend filter on close price.

    Buy when the close is above both the close ``lookback`` bars earlier
    and its EMA(``period``). Sell when it is below both.
    """

    def __init__(self, period: int = 50, lookback: int = 10):
        if period <= 0 or lookback <= 0:
            raise ValueError("period and lookback must be positive")

        super().__init__("ma-lookback", {'period': period, 'lookback': lookback})
        self.period = period
        self.lookback = lookback

    @property
    def warmup(self) -> int:
        return max(self.period - 1, self.lookback)

    def calculate_indicators(self, data: pd.DataFrame) -> pd.DataFrame:
        result = data.copy()
        result['ema'] = TechnicalIndicators.ema(data['close'], self.period)
        result['close_lookback'] = data['close'].shift(self.lookback)
        return result

    def generate_signals(self, data: pd.DataFrame) -> List[Trade]:
        indicators = self.calculate_indicators(data)
        close = indicators['close']

        rising = (close > indicators['close_lookback']) & (close > indicators['ema'])
        falling = (close < indicators['close_lookback']) & (close < indicators['ema'])
        actions = np.select([rising, falling], [Action.BUY.value, Action.SELL.value],
                            default=Action.NONE.value)

        return [
            Trade(time=time, price=float(price), action=Action(action))
            for time, price, action in zip(self._times(indicators), close, actions)
            if action != Action.NONE.value
        ]
