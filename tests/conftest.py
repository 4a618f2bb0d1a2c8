import pytest
import pandas as pd
import numpy as np
from datetime import date, datetime
from typing import List

from stocky.config.settings import Settings
from stocky.data.models import Action, Bar, Trade
from stocky.database.repository import BarRepository


def make_trades(*legs) -> List[Trade]:
    """Build trades from ``(date, price, action)`` tuples, action as 'buy'/'sell'."""
    return [Trade(time=datetime.combine(day, datetime.min.time()), price=price, action=Action(action))
            for day, price, action in legs]


@pytest.fixture
def sample_price_data():
    """Generate sample OHLCV price data for testing."""
    np.random.seed(42)  # For reproducible tests

    # Generate 300 business days of data
    dates = pd.bdate_range(start='2022-01-03', periods=301)

    # Generate realistic price data
    start_price = 50.0
    daily_returns = np.random.normal(0.001, 0.02, 301)  # 0.1% daily return, 2% volatility

    prices = [start_price]
    for return_val in daily_returns[1:]:
        new_price = prices[-1] * (1 + return_val)
        prices.append(max(new_price, 1.0))  # Minimum $1

    # Generate OHLC
    opens = prices[:-1]
    closes = prices[1:]

    highs = []
    lows = []
    volumes = []

    for i in range(len(closes)):
        open_price = opens[i]
        close_price = closes[i]

        # Generate high/low with some spread
        daily_range = abs(close_price - open_price) + np.random.uniform(0.01, 0.1)
        highs.append(max(open_price, close_price) + np.random.uniform(0, daily_range * 0.3))
        lows.append(max(min(open_price, close_price) - np.random.uniform(0, daily_range * 0.3), 1.0))
        volumes.append(np.random.randint(100000, 1000000))

    df = pd.DataFrame({
        'open': opens,
        'high': highs,
        'low': lows,
        'close': closes,
        'volume': volumes
    }, index=pd.DatetimeIndex(dates[1:], name='time'))

    return df


@pytest.fixture
def sample_bars(sample_price_data):
    """The sample price data as a tuple of bars."""
    return tuple(
        Bar(time=index.date(), open=row.open, high=row.high, low=row.low,
            close=row.close, volume=int(row.volume))
        for index, row in sample_price_data.iterrows()
    )


@pytest.fixture
def ranked_trades():
    """Four completed trades going win, win, loss, draw."""
    return make_trades(
        (date(2000, 1, 1), 3.0, 'buy'),
        (date(2000, 1, 8), 4.0, 'sell'),
        (date(2001, 5, 3), 5.0, 'buy'),
        (date(2001, 5, 23), 5.5, 'sell'),
        (date(2002, 1, 1), 4.5, 'buy'),
        (date(2002, 1, 2), 4.2, 'sell'),
        (date(2002, 2, 1), 4.5, 'buy'),
        (date(2002, 2, 2), 4.5, 'sell'),
    )


@pytest.fixture
def scenario_trades():
    """One winning and one losing trade."""
    return make_trades(
        (date(2020, 1, 1), 3.0, 'buy'),
        (date(2020, 1, 2), 4.0, 'sell'),
        (date(2020, 1, 3), 4.5, 'buy'),
        (date(2020, 1, 4), 4.0, 'sell'),
    )


@pytest.fixture
def csv_data_dir(tmp_path, sample_price_data):
    """Directory holding BHP.csv and CBA.csv in Yahoo-style layout."""
    for i, symbol in enumerate(['BHP', 'CBA']):
        df = sample_price_data.copy()
        multiplier = 0.8 + (i * 0.4)  # Different price levels
        for col in ['open', 'high', 'low', 'close']:
            df[col] = df[col] * multiplier

        out = df.rename(columns=str.capitalize)
        out['Adj Close'] = out['Close']
        out.index.name = 'Date'
        out.to_csv(tmp_path / f"{symbol}.csv", date_format='%Y-%m-%d')

    return tmp_path


@pytest.fixture
def repository(tmp_path):
    """Bar repository backed by a temporary SQLite file."""
    return BarRepository(f"sqlite:///{tmp_path / 'test.db'}")


@pytest.fixture
def test_settings(csv_data_dir, tmp_path):
    """Settings pointing at the temporary CSV directory and database."""
    settings = Settings()
    settings.data.data_dir = str(csv_data_dir)
    settings.data.database_url = f"sqlite:///{tmp_path / 'test.db'}"
    settings.backtest.max_workers = 2
    return settings


def assert_same_length(result, source):
    """Check that an indicator kept the length of its input."""
    assert len(result) == len(source), f"Expected length {len(source)}, got {len(result)}"
