"""
Technical indicators for end-of-day price series.

Every indicator returns a float series with the same length as its input,
aligned by position. Entries without enough history are NaN.
"""

from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
import structlog

from stocky.data.timeseries import FieldSelector, leading_nan_count, to_series

logger = structlog.get_logger(__name__)

ANNUAL_TRADING_DAYS = 252


class RecordSeriesType(str, Enum):
    """Sampling frequency of a price series."""

    DAILY = "daily"
    MONTHLY = "monthly"

    @property
    def periods_per_year(self) -> int:
        return ANNUAL_TRADING_DAYS if self is RecordSeriesType.DAILY else 12


def _check_period(period: int, name: str = "period") -> None:
    if period is None or int(period) != period or period <= 0:
        raise ValueError(f"{name} must be a positive integer, got {period}")


def _like(source: pd.Series, values: np.ndarray) -> pd.Series:
    return pd.Series(values, index=source.index, dtype=float)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if np.isnan(avg_gain) or np.isnan(avg_loss):
        return np.nan
    # No losses in the window: the gain/loss ratio is unbounded.
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


class TechnicalIndicators:
    """
    Collection of technical analysis indicators.

    All methods are static. ``data`` may be a pandas Series, a numpy array,
    a list of numbers, or (with ``field``) a sequence of bars or a DataFrame.
    """

    @staticmethod
    def sma(data: Any, period: int, field: Optional[FieldSelector] = None) -> pd.Series:
        """
        Simple Moving Average.

        Args:
            data: Price series
            period: Number of periods
            field: Optional field selector for record input

        Returns:
            SMA series, the first ``period - 1`` values NaN
        """
        _check_period(period)
        prices = to_series(data, field)
        return prices.rolling(window=period).mean()

    @staticmethod
    def ema(data: Any, period: int, seed: Optional[float] = None,
            field: Optional[FieldSelector] = None) -> pd.Series:
        """
        Exponential Moving Average with weighting ``2 / (period + 1)``.

        Leading NaN input values pass straight through. Without a seed the
        average starts from the mean of the first ``period`` valid values,
        emitted at the last of them; with a seed it starts at the first
        valid value.

        Args:
            data: Price series
            period: Number of periods
            seed: Optional starting value
            field: Optional field selector for record input

        Returns:
            EMA series
        """
        _check_period(period)
        prices = to_series(data, field)
        values = prices.to_numpy(dtype=float)
        result = np.full(len(values), np.nan)

        nas = leading_nan_count(values)
        weighting = 2.0 / (period + 1)

        if seed is None or np.isnan(seed):
            start = nas + period - 1
            if start >= len(values):
                return _like(prices, result)
            current = values[nas:start + 1].mean()
        else:
            start = nas
            if start >= len(values):
                return _like(prices, result)
            current = float(seed)

        result[start] = current
        for index in range(start + 1, len(values)):
            current += (values[index] - current) * weighting
            result[index] = current

        return _like(prices, result)

    @staticmethod
    def dema(data: Any, period: int, seed: Optional[float] = None,
             field: Optional[FieldSelector] = None) -> pd.Series:
        """Double Exponential Moving Average: ``2*EMA - EMA(EMA)``."""
        first = TechnicalIndicators.ema(data, period, seed, field)
        second = TechnicalIndicators.ema(first, period)
        return 2 * first - second

    @staticmethod
    def tema(data: Any, period: int, seed: Optional[float] = None,
             field: Optional[FieldSelector] = None) -> pd.Series:
        """Triple Exponential Moving Average: ``3*EMA - 3*EMA(EMA) + EMA(EMA(EMA))``."""
        first = TechnicalIndicators.ema(data, period, seed, field)
        second = TechnicalIndicators.ema(first, period)
        third = TechnicalIndicators.ema(second, period)
        return 3 * first - 3 * second + third

    @staticmethod
    def std_dev(data: Any, period: int, field: Optional[FieldSelector] = None) -> pd.Series:
        """Rolling sample standard deviation."""
        _check_period(period)
        prices = to_series(data, field)
        return prices.rolling(window=period).std()

    @staticmethod
    def changes(data: Any, field: Optional[FieldSelector] = None) -> pd.Series:
        """Day-over-day change, NaN for the first observation."""
        prices = to_series(data, field)
        return prices.diff()

    @staticmethod
    def daily_returns(data: Any, field: Optional[FieldSelector] = None) -> pd.Series:
        """Day-over-day fractional return, NaN for the first observation."""
        prices = to_series(data, field)
        previous = prices.shift(1)
        return (prices - previous) / previous

    @staticmethod
    def annual_volatility(data: Any,
                          series_type: RecordSeriesType = RecordSeriesType.DAILY,
                          dividends: Any = None,
                          field: Optional[FieldSelector] = None) -> float:
        """
        Annualised volatility of log returns over the whole series.

        Args:
            data: Price series
            series_type: Daily (252 periods a year) or monthly (12)
            dividends: Optional dividends aligned with ``data``, added back
                to the later price of each return
            field: Optional field selector for record input

        Returns:
            Sample standard deviation of log returns scaled by ``sqrt(N)``
        """
        prices = to_series(data, field).to_numpy(dtype=float)
        if len(prices) < 3:
            return float('nan')

        later = prices[1:]
        if dividends is not None:
            paid = np.asarray(list(dividends), dtype=float)
            if len(paid) != len(prices):
                raise ValueError("dividends must be aligned with prices")
            later = later + np.nan_to_num(paid[1:])

        log_returns = np.log(later / prices[:-1])
        return float(np.std(log_returns, ddof=1) * np.sqrt(RecordSeriesType(series_type).periods_per_year))

    @staticmethod
    def yearly_volatility(data: Any, start_year: Optional[int] = None,
                          field: Optional[FieldSelector] = None) -> float:
        """
        Volatility of daily returns weighted towards recent years.

        Returns are grouped by calendar year and each year's sample
        deviation is averaged with weights 1..N, oldest to newest. Years
        with fewer than two returns are skipped.

        Args:
            data: Price series indexed by timestamp, or records with ``field``
            start_year: First calendar year to include
            field: Optional field selector for record input

        Returns:
            Weighted mean of yearly deviations, NaN without a usable year
        """
        prices = to_series(data, field)
        if isinstance(prices.index, pd.RangeIndex):
            raise ValueError("yearly_volatility needs timestamped prices")

        values = prices.to_numpy(dtype=float)
        returns = values[1:] / values[:-1] - 1
        years = pd.to_datetime(prices.index).year.to_numpy()[1:]
        if start_year is not None:
            keep = years >= start_year
            returns, years = returns[keep], years[keep]

        per_year = pd.Series(returns).groupby(years).std(ddof=1).dropna()
        if per_year.empty:
            return float('nan')
        weights = np.arange(1, len(per_year) + 1)
        return float((per_year.to_numpy() * weights).sum() / weights.sum())

    @staticmethod
    def sharpe_ratio(data: Any, period: int, field: Optional[FieldSelector] = None) -> pd.Series:
        """
        Rolling ``mean / stdev`` of daily returns.

        Daily returns are computed first and then windowed, so the first
        valid value needs ``period`` returns after the first price.
        Windows with zero deviation are NaN.
        """
        _check_period(period)
        returns = TechnicalIndicators.daily_returns(data, field)
        mean = returns.rolling(window=period).mean()
        std = returns.rolling(window=period).std()
        ratio = mean / std
        return ratio.where(std > 0)

    @staticmethod
    def rolling_returns(data: Any, period: int, field: Optional[FieldSelector] = None) -> pd.Series:
        """Mean daily return inside each trailing window of ``period`` prices."""
        _check_period(period)
        if period < 2:
            raise ValueError("period must be at least 2 to contain a return")
        returns = TechnicalIndicators.daily_returns(data, field)
        return returns.rolling(window=period - 1).mean()

    @staticmethod
    def high(data: Any, period: int, field: Optional[FieldSelector] = None) -> pd.Series:
        """Highest value over the trailing window."""
        _check_period(period)
        return to_series(data, field).rolling(window=period).max()

    @staticmethod
    def low(data: Any, period: int, field: Optional[FieldSelector] = None) -> pd.Series:
        """Lowest value over the trailing window."""
        _check_period(period)
        return to_series(data, field).rolling(window=period).min()

    @staticmethod
    def rsi(data: Any, period: int = 14, field: Optional[FieldSelector] = None) -> pd.Series:
        """
        Relative Strength Index using Wilder's smoothing.

        The first average gain and loss are plain means over the first
        ``period`` changes; later values are smoothed as
        ``((period - 1) * previous + current) / period``.

        Args:
            data: Price series (typically close prices)
            period: RSI period (default 14)
            field: Optional field selector for record input

        Returns:
            RSI series (0-100). A window without losses gives 100.
        """
        _check_period(period)
        prices = to_series(data, field)
        values = prices.to_numpy(dtype=float)
        result = np.full(len(values), np.nan)

        nas = leading_nan_count(values)
        seed_end = nas + period
        if seed_end >= len(values):
            return _like(prices, result)

        changes = np.diff(values, prepend=np.nan)
        window = changes[nas + 1:seed_end + 1]
        avg_gain = np.maximum(window, 0).mean()
        avg_loss = np.maximum(-window, 0).mean()
        result[seed_end] = _rsi_value(avg_gain, avg_loss)

        for index in range(seed_end + 1, len(values)):
            change = changes[index]
            avg_gain = ((period - 1) * avg_gain + max(change, 0.0)) / period
            avg_loss = ((period - 1) * avg_loss + max(-change, 0.0)) / period
            if np.isnan(change):
                avg_gain = avg_loss = np.nan
            result[index] = _rsi_value(avg_gain, avg_loss)

        return _like(prices, result)

    @staticmethod
    def stochastic(data: Any, lookback: int = 14, k_period: int = 1, d_period: int = 3,
                   high: Any = None, low: Any = None,
                   field: Optional[FieldSelector] = None) -> Dict[str, pd.Series]:
        """
        Stochastic Oscillator.

        Raw %K is ``(close - min) / (max - min)`` over the trailing
        ``lookback`` window, on close alone or on high/low when given. The
        first ``lookback - 1`` raw values are 0, as is any window with no
        range.

        Args:
            data: Close price series
            lookback: Number of periods to look back (typically 14)
            k_period: Moving average for the K line (1 for a "fast" K)
            d_period: Moving average for the D line
            high: Optional high series, or a field name for record input
            low: Optional low series, or a field name for record input
            field: Optional field selector for record input

        Returns:
            Dictionary with '%K' and '%D' values, as fractions
        """
        _check_period(lookback, "lookback")
        _check_period(k_period, "k_period")
        _check_period(d_period, "d_period")

        close = to_series(data, field)
        highs = close if high is None else (to_series(data, high) if isinstance(high, str) else to_series(high))
        lows = close if low is None else (to_series(data, low) if isinstance(low, str) else to_series(low))
        if len(highs) != len(close) or len(lows) != len(close):
            raise ValueError("high and low must be aligned with close")

        highest = highs.rolling(window=lookback).max().to_numpy()
        lowest = lows.rolling(window=lookback).min().to_numpy()
        spread = highest - lowest

        with np.errstate(divide='ignore', invalid='ignore'):
            raw = (close.to_numpy(dtype=float) - lowest) / spread
        raw = np.where(spread == 0, 0.0, raw)
        raw[:lookback - 1] = 0.0

        k_line = _like(close, raw).rolling(window=k_period).mean()
        d_line = k_line.rolling(window=d_period).mean()

        return {
            '%K': k_line,
            '%D': d_line
        }

    @staticmethod
    def bollinger_bands(data: Any, period: int = 20, std_dev: float = 2.0,
                        field: Optional[FieldSelector] = None) -> Dict[str, pd.Series]:
        """
        Bollinger Bands

        Args:
            data: Price series
            period: Moving average period
            std_dev: Standard deviation multiplier

        Returns:
            Dictionary with 'upper', 'middle', 'lower' bands
        """
        prices = to_series(data, field)
        sma = TechnicalIndicators.sma(prices, period)
        std = TechnicalIndicators.std_dev(prices, period)

        return {
            'upper': sma + (std * std_dev),
            'middle': sma,
            'lower': sma - (std * std_dev)
        }

    @staticmethod
    def macd(data: Any, fast: int = 12, slow: int = 26, signal: int = 9,
             field: Optional[FieldSelector] = None) -> Dict[str, pd.Series]:
        """
        MACD (Moving Average Convergence Divergence)

        Args:
            data: Price series
            fast: Fast EMA period
            slow: Slow EMA period
            signal: Signal line EMA period

        Returns:
            Dictionary with 'fast', 'slow', 'macd', 'signal', 'histogram'
        """
        prices = to_series(data, field)
        ema_fast = TechnicalIndicators.ema(prices, fast)
        ema_slow = TechnicalIndicators.ema(prices, slow)

        macd_line = ema_fast - ema_slow
        signal_line = TechnicalIndicators.ema(macd_line, signal)

        return {
            'fast': ema_fast,
            'slow': ema_slow,
            'macd': macd_line,
            'signal': signal_line,
            'histogram': macd_line - signal_line
        }


def calculate_all_indicators(df: pd.DataFrame, fast: int = 12, slow: int = 26, signal: int = 9,
                             rsi_period: int = 14, lookback: int = 14) -> pd.DataFrame:
    """
    Add the standard indicator columns to an OHLCV DataFrame.

    Args:
        df: DataFrame with columns open, high, low, close, volume

    Returns:
        Copy of ``df`` with indicator columns added
    """
    result = df.copy()
    close = df['close']

    result['sma_20'] = TechnicalIndicators.sma(close, 20)
    result[f'ema_{fast}'] = TechnicalIndicators.ema(close, fast)
    result[f'ema_{slow}'] = TechnicalIndicators.ema(close, slow)

    macd = TechnicalIndicators.macd(close, fast, slow, signal)
    result['macd'] = macd['macd']
    result['macd_signal'] = macd['signal']
    result['macd_histogram'] = macd['histogram']

    result[f'rsi_{rsi_period}'] = TechnicalIndicators.rsi(close, rsi_period)

    stoch = TechnicalIndicators.stochastic(close, lookback, 3, 3, high=df['high'], low=df['low'])
    result['stoch_k'] = stoch['%K']
    result['stoch_d'] = stoch['%D']

    bands = TechnicalIndicators.bollinger_bands(close)
    result['bb_upper'] = bands['upper']
    result['bb_middle'] = bands['middle']
    result['bb_lower'] = bands['lower']

    result['sharpe_20'] = TechnicalIndicators.sharpe_ratio(close, 20)

    logger.debug("Technical indicators calculated",
                 indicators=len([col for col in result.columns if col not in df.columns]),
                 rows=len(result))

    return result
