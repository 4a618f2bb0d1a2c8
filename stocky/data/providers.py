"""
Data providers for end-of-day price data.
"""

import json
import zlib
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import structlog

from stocky.data.models import Bar
from stocky.data.timeseries import OHLCV_COLUMNS, frame_to_bars
from stocky.exceptions import DataLoadError
from stocky.indicators.technical import RecordSeriesType

logger = structlog.get_logger(__name__)

TIINGO_COLUMNS = {
    'adjOpen': 'open',
    'adjHigh': 'high',
    'adjLow': 'low',
    'adjClose': 'close',
    'adjVolume': 'volume',
}


def simulated_price(price: float, mu: float, sigma: float,
                    series_type: RecordSeriesType = RecordSeriesType.DAILY,
                    rng: Optional[np.random.Generator] = None) -> float:
    """
    Next price of a geometric Brownian motion.

    Args:
        price: Current price
        mu: Annual drift
        sigma: Annual volatility
        series_type: Step size, one trading day or one month
        rng: Random generator, a fresh one if omitted

    Returns:
        Simulated price one period later
    """
    rng = rng or np.random.default_rng()
    periods = RecordSeriesType(series_type).periods_per_year
    shock = rng.standard_normal()
    return price * np.exp((mu - sigma ** 2 / 2) / periods + (sigma / np.sqrt(periods)) * shock)


def _normalise(frame: pd.DataFrame, start: Optional[date], end: Optional[date]) -> pd.DataFrame:
    """Sort, fill and trim a frame to the standard OHLCV layout."""
    frame = frame.copy()
    for column in OHLCV_COLUMNS:
        if column in frame.columns:
            frame[column] = pd.to_numeric(frame[column], errors='coerce')

    frame = frame[frame['close'].notna()].copy()
    for column in ('open', 'high', 'low'):
        if column not in frame.columns:
            frame[column] = frame['close']
        frame[column] = frame[column].fillna(frame['close'])
    if 'volume' not in frame.columns:
        frame['volume'] = 0
    frame['volume'] = frame['volume'].fillna(0).astype('int64')

    frame = frame[OHLCV_COLUMNS].sort_index()
    frame = frame[~frame.index.duplicated(keep='first')]

    if start is not None:
        frame = frame[frame.index >= pd.Timestamp(start)]
    if end is not None:
        frame = frame[frame.index <= pd.Timestamp(end)]
    return frame


class DataProvider(ABC):
    """Abstract base class for data providers."""

    @abstractmethod
    def get_historical_data(self, symbol: str, start_date: Optional[date] = None,
                            end_date: Optional[date] = None) -> pd.DataFrame:
        """
        Get historical data with lowercase OHLCV columns, indexed by date,
        ascending.
        """
        pass

    def get_bars(self, symbol: str, start_date: Optional[date] = None,
                 end_date: Optional[date] = None) -> Tuple[Bar, ...]:
        """Get historical data as an immutable tuple of bars."""
        return frame_to_bars(self.get_historical_data(symbol, start_date, end_date))


class CSVDataProvider(DataProvider):
    """
    Reads ``<data_dir>/<SYMBOL>.csv``.

    Column names are matched case-insensitively. The date column is the one
    named ``date``, or the first column when none is. ``Adj Close`` is
    ignored.
    """

    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)

    def path_for(self, symbol: str) -> Path:
        return self.data_dir / f"{symbol.upper()}.csv"

    def get_historical_data(self, symbol: str, start_date: Optional[date] = None,
                            end_date: Optional[date] = None) -> pd.DataFrame:
        path = self.path_for(symbol)
        try:
            frame = pd.read_csv(path)
            frame.columns = [str(column).strip().lower() for column in frame.columns]
            date_column = 'date' if 'date' in frame.columns else frame.columns[0]
            frame.index = pd.DatetimeIndex(pd.to_datetime(frame.pop(date_column)), name='time')
            if 'close' not in frame.columns:
                raise DataLoadError(f"No close column in {path}")
            frame = _normalise(frame.drop(columns=['adj close'], errors='ignore'), start_date, end_date)
        except (OSError, ValueError, pd.errors.ParserError) as e:
            logger.error("Failed to read CSV", symbol=symbol, path=str(path), error=str(e))
            raise DataLoadError(f"Failed to read {path} for {symbol}: {e}") from e

        logger.debug("CSV data loaded", symbol=symbol, rows=len(frame))
        return frame


class JSONDataProvider(DataProvider):
    """Reads Tiingo end-of-day JSON arrays from ``<data_dir>/<SYMBOL>.json``, using adjusted prices."""

    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)

    def path_for(self, symbol: str) -> Path:
        return self.data_dir / f"{symbol.upper()}.json"

    def get_historical_data(self, symbol: str, start_date: Optional[date] = None,
                            end_date: Optional[date] = None) -> pd.DataFrame:
        path = self.path_for(symbol)
        try:
            with open(path, 'r') as f:
                records = json.load(f)
            if not isinstance(records, list):
                raise DataLoadError(f"Expected a JSON array in {path}")

            frame = pd.DataFrame.from_records(records)
            missing = {'date', *TIINGO_COLUMNS} - set(frame.columns)
            if missing:
                raise DataLoadError(f"Missing fields in {path}: {', '.join(sorted(missing))}")

            frame.index = pd.DatetimeIndex(pd.to_datetime(frame['date'].astype(str).str[:10]), name='time')
            frame = _normalise(frame[list(TIINGO_COLUMNS)].rename(columns=TIINGO_COLUMNS), start_date, end_date)
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to read JSON", symbol=symbol, path=str(path), error=str(e))
            raise DataLoadError(f"Failed to read {path} for {symbol}: {e}") from e

        logger.debug("JSON data loaded", symbol=symbol, rows=len(frame))
        return frame


class DatabaseDataProvider(DataProvider):
    """Reads bars stored in a BarRepository."""

    def __init__(self, repository):
        self.repository = repository

    def get_bars(self, symbol: str, start_date: Optional[date] = None,
                 end_date: Optional[date] = None) -> Tuple[Bar, ...]:
        bars = self.repository.load(symbol, start_date, end_date)
        if not bars:
            raise DataLoadError(f"No data stored for {symbol}")
        return bars

    def get_historical_data(self, symbol: str, start_date: Optional[date] = None,
                            end_date: Optional[date] = None) -> pd.DataFrame:
        bars = self.get_bars(symbol, start_date, end_date)
        frame = pd.DataFrame(
            [[bar.open, bar.high, bar.low, bar.close, bar.volume] for bar in bars],
            columns=OHLCV_COLUMNS,
            index=pd.DatetimeIndex([pd.Timestamp(bar.time) for bar in bars], name='time'),
        )
        return frame


class MockDataProvider(DataProvider):
    """Deterministic simulated prices for testing."""

    def __init__(self, start_price: float = 100.0, mu: float = 0.08, sigma: float = 0.25,
                 days: int = 750, end: Optional[date] = None):
        self.start_price = start_price
        self.mu = mu
        self.sigma = sigma
        self.days = days
        self.end = end or date(2020, 12, 31)

    def get_historical_data(self, symbol: str, start_date: Optional[date] = None,
                            end_date: Optional[date] = None) -> pd.DataFrame:
        """Generate a geometric Brownian motion series, the same for each call."""
        # Consistent seed per symbol
        rng = np.random.default_rng(zlib.crc32(symbol.upper().encode()))
        dates = pd.bdate_range(end=pd.Timestamp(self.end), periods=self.days, name='time')

        closes = [self.start_price]
        for _ in range(len(dates) - 1):
            closes.append(simulated_price(closes[-1], self.mu, self.sigma, RecordSeriesType.DAILY, rng))
        closes = np.array(closes)

        opens = np.concatenate([[self.start_price], closes[:-1]])
        spread = np.abs(rng.normal(0, 0.005, len(dates)))
        frame = pd.DataFrame({
            'open': opens,
            'high': np.maximum(opens, closes) * (1 + spread),
            'low': np.minimum(opens, closes) * (1 - spread),
            'close': closes,
            'volume': rng.integers(100000, 1000000, len(dates)),
        }, index=dates)

        return _normalise(frame, start_date, end_date)


def create_provider(source: str, data_dir: str = "data", repository=None) -> DataProvider:
    """
    Build the provider named by ``source``.

    Args:
        source: One of csv, json, database, mock
        data_dir: Directory for file providers
        repository: BarRepository for the database provider
    """
    if source == "csv":
        return CSVDataProvider(data_dir)
    if source == "json":
        return JSONDataProvider(data_dir)
    if source == "database":
        if repository is None:
            raise ValueError("The database provider needs a repository")
        return DatabaseDataProvider(repository)
    if source == "mock":
        return MockDataProvider()
    raise ValueError(f"Unknown data source: {source}")
