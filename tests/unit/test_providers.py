import json
import pytest
import pandas as pd
import numpy as np
from datetime import date

from stocky.data.models import Bar
from stocky.data.providers import (CSVDataProvider, DatabaseDataProvider, JSONDataProvider, MockDataProvider,
                                   create_provider, simulated_price)
from stocky.data.timeseries import OHLCV_COLUMNS, bars_to_frame, extract
from stocky.exceptions import DataLoadError, NonAscendingTimestampsError


class TestCSVDataProvider:
    """Test reading OHLCV CSV files."""

    def test_reads_yahoo_layout(self, csv_data_dir, sample_price_data):
        data = CSVDataProvider(str(csv_data_dir)).get_historical_data('bhp')

        assert list(data.columns) == OHLCV_COLUMNS
        assert len(data) == len(sample_price_data)
        assert data.index.is_monotonic_increasing
        assert data['close'].iloc[0] == pytest.approx(sample_price_data['close'].iloc[0] * 0.8)

    def test_date_range(self, csv_data_dir):
        data = CSVDataProvider(str(csv_data_dir)).get_historical_data(
            'BHP', date(2022, 3, 1), date(2022, 3, 31))

        assert data.index.min() >= pd.Timestamp('2022-03-01')
        assert data.index.max() <= pd.Timestamp('2022-03-31')
        assert len(data) > 15

    def test_unsorted_rows_and_missing_close(self, tmp_path):
        (tmp_path / "XYZ.csv").write_text(
            "date,open,high,low,close,volume\n"
            "2021-01-05,2,2,2,2.5,100\n"
            "2021-01-04,1,1,1,1.5,100\n"
            "2021-01-06,3,3,3,null,100\n"
        )
        data = CSVDataProvider(str(tmp_path)).get_historical_data('XYZ')

        assert data['close'].tolist() == [1.5, 2.5]

    def test_close_only_file(self, tmp_path):
        """The first column is the date when none is named; missing prices fall back to close."""
        (tmp_path / "ABC.csv").write_text("day,close\n2021-01-04,10\n2021-01-05,11\n")
        data = CSVDataProvider(str(tmp_path)).get_historical_data('ABC')

        assert data['open'].tolist() == [10.0, 11.0]
        assert data['volume'].tolist() == [0, 0]

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataLoadError):
            CSVDataProvider(str(tmp_path)).get_historical_data('NOPE')

    def test_get_bars(self, csv_data_dir):
        bars = CSVDataProvider(str(csv_data_dir)).get_bars('CBA')

        assert isinstance(bars, tuple)
        assert all(isinstance(bar, Bar) for bar in bars)
        assert all(a.time < b.time for a, b in zip(bars, bars[1:]))


class TestJSONDataProvider:
    """Test reading Tiingo JSON files."""

    def write(self, path, records):
        path.write_text(json.dumps(records))

    def test_reads_adjusted_prices(self, tmp_path):
        self.write(tmp_path / "SNN.json", [
            {'date': '2021-01-05T00:00:00.000Z', 'close': 30, 'adjOpen': 2.0, 'adjHigh': 2.2, 'adjLow': 1.9,
             'adjClose': 2.1, 'adjVolume': 500},
            {'date': '2021-01-04T00:00:00.000Z', 'close': 29, 'adjOpen': 1.8, 'adjHigh': 2.0, 'adjLow': 1.7,
             'adjClose': 1.95, 'adjVolume': 400},
        ])
        data = JSONDataProvider(str(tmp_path)).get_historical_data('SNN')

        assert data['close'].tolist() == [1.95, 2.1]
        assert data['volume'].tolist() == [400, 500]
        assert data.index[0] == pd.Timestamp('2021-01-04')

    def test_missing_fields(self, tmp_path):
        self.write(tmp_path / "SNN.json", [{'date': '2021-01-04', 'close': 1.0}])
        with pytest.raises(DataLoadError):
            JSONDataProvider(str(tmp_path)).get_historical_data('SNN')

    def test_invalid_json(self, tmp_path):
        (tmp_path / "SNN.json").write_text("{not json")
        with pytest.raises(DataLoadError):
            JSONDataProvider(str(tmp_path)).get_historical_data('SNN')


class TestMockDataProvider:
    """Test simulated data."""

    def test_deterministic_per_symbol(self):
        provider = MockDataProvider(days=100)
        first = provider.get_historical_data('AAA')
        again = provider.get_historical_data('AAA')
        other = provider.get_historical_data('BBB')

        pd.testing.assert_frame_equal(first, again)
        assert not first['close'].equals(other['close'])

    def test_ohlc_consistency(self):
        data = MockDataProvider(days=200).get_historical_data('AAA')

        assert len(data) == 200
        assert (data['high'] >= data[['open', 'close']].max(axis=1)).all()
        assert (data['low'] <= data[['open', 'close']].min(axis=1)).all()

    def test_simulated_price(self):
        rng = np.random.default_rng(1)
        price = simulated_price(100.0, 0.05, 0.0, rng=rng)
        assert price == pytest.approx(100.0 * np.exp(0.05 / 252))


class TestDatabaseDataProvider:

    def test_reads_repository(self, repository, sample_bars):
        repository.store('BHP', sample_bars)
        data = DatabaseDataProvider(repository).get_historical_data('BHP')

        assert len(data) == len(sample_bars)
        assert data['close'].iloc[-1] == pytest.approx(sample_bars[-1].close)

    def test_unknown_symbol(self, repository):
        with pytest.raises(DataLoadError):
            DatabaseDataProvider(repository).get_bars('NOPE')


class TestCreateProvider:

    def test_sources(self, repository):
        assert isinstance(create_provider('csv'), CSVDataProvider)
        assert isinstance(create_provider('json'), JSONDataProvider)
        assert isinstance(create_provider('mock'), MockDataProvider)
        assert isinstance(create_provider('database', repository=repository), DatabaseDataProvider)

    def test_database_needs_repository(self):
        with pytest.raises(ValueError):
            create_provider('database')


class TestTimeSeries:
    """Test field extraction from records."""

    def test_extract_indexes_by_time(self, sample_bars):
        series = extract(sample_bars, 'close')

        assert len(series) == len(sample_bars)
        assert series.index[0] == sample_bars[0].time

    def test_extract_rejects_unsorted(self, sample_bars):
        with pytest.raises(NonAscendingTimestampsError):
            extract(list(reversed(sample_bars)), 'close')

    def test_bars_round_trip_frame(self, sample_bars):
        frame = bars_to_frame(sample_bars)
        assert list(frame.columns) == OHLCV_COLUMNS
        assert frame['volume'].dtype == np.int64

    def test_negative_volume_rejected(self):
        with pytest.raises(ValueError):
            Bar(date(2021, 1, 1), 1, 1, 1, 1, -5)
