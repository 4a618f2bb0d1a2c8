"""
stocky - End-of-day technical analysis and backtesting toolkit
"""

__version__ = "0.1.0"

from stocky.data.models import Action, Bar, NamedTrade, Symbol, Trade
from stocky.indicators.technical import TechnicalIndicators
from stocky.strategies.signals import SignalWindow, classify
from stocky.backtest.trades import tradify

__all__ = [
    "Action",
    "Bar",
    "NamedTrade",
    "Symbol",
    "Trade",
    "TechnicalIndicators",
    "SignalWindow",
    "classify",
    "tradify",
]
