import pytest
import pandas as pd
import numpy as np
from datetime import date

from stocky.backtest.trades import is_well_formed
from stocky.data.models import Action
from stocky.strategies.macd import MACDCrossover
from stocky.strategies.moving_average import MovingAverageLookback
from stocky.strategies.signals import SignalWindow


def frame_from_closes(closes):
    index = pd.bdate_range(start='2021-01-04', periods=len(closes), name='time')
    closes = np.asarray(closes, dtype=float)
    return pd.DataFrame({
        'open': closes, 'high': closes * 1.01, 'low': closes * 0.99, 'close': closes,
        'volume': np.full(len(closes), 1000),
    }, index=index)


@pytest.fixture
def wave_data():
    """Close prices following a slow sine wave."""
    closes = 50 + 10 * np.sin(np.linspace(0, 6 * np.pi, 300))
    return frame_from_closes(closes)


class TestMACDCrossover:
    """Test MACD crossover strategy."""

    def test_initialization(self):
        strategy = MACDCrossover(12, 26, 9, SignalWindow.CONSECUTIVE_DAYS)

        assert strategy.name == "macd"
        assert strategy.parameters == {'fast': 12, 'slow': 26, 'signal': 9, 'window': 4}
        assert strategy.warmup == 33

    def test_rejects_fast_not_shorter(self):
        with pytest.raises(ValueError):
            MACDCrossover(26, 12, 9)

    def test_calculate_indicators(self, sample_price_data):
        result = MACDCrossover().calculate_indicators(sample_price_data)

        for column in ['ema_fast', 'ema_slow', 'macd', 'macd_signal']:
            assert column in result.columns, f"Missing indicator column {column}"
        assert len(result) == len(sample_price_data)

    def test_signals_on_wave(self, wave_data):
        signals = MACDCrossover().generate_signals(wave_data)
        actions = {signal.action for signal in signals}

        assert actions == {Action.BUY, Action.SELL}, "A wave should cross both ways"
        assert all(signal.time >= wave_data.index[33].to_pydatetime() for signal in signals), \
            "No signals before the MACD signal line is warmed up"

    def test_trades_are_well_formed(self, wave_data):
        trades = MACDCrossover().get_trades(wave_data)

        assert len(trades) >= 4
        assert is_well_formed(trades)

    def test_consecutive_days_gives_fewer_signals(self, sample_price_data):
        single = MACDCrossover(window=SignalWindow.SINGLE_DAY).generate_signals(sample_price_data)
        confirmed = MACDCrossover(window=SignalWindow.CONSECUTIVE_DAYS).generate_signals(sample_price_data)

        assert len(confirmed) <= len(single)

    def test_date_range(self, wave_data):
        start = date(2021, 6, 1)
        end = date(2021, 12, 31)
        trades = MACDCrossover().get_trades(wave_data, start, end)

        assert all(start <= trade.time.date() <= end for trade in trades)
        assert is_well_formed(trades)


class TestMovingAverageLookback:
    """Test moving average with lookback strategy."""

    def test_rising_prices_buy(self):
        data = frame_from_closes(np.arange(1.0, 41.0))
        signals = MovingAverageLookback(period=10, lookback=5).generate_signals(data)

        assert signals, "Rising prices should produce signals"
        assert all(signal.action == Action.BUY for signal in signals)
        assert signals[0].time == data.index[9].to_pydatetime()

    def test_falling_prices_sell(self):
        data = frame_from_closes(np.arange(40.0, 0.0, -1.0))
        signals = MovingAverageLookback(period=10, lookback=5).generate_signals(data)

        assert all(signal.action == Action.SELL for signal in signals)

    def test_round_trip(self):
        closes = np.concatenate([np.arange(10.0, 30.0), np.arange(30.0, 10.0, -1.0)])
        trades = MovingAverageLookback(period=5, lookback=3).get_trades(frame_from_closes(closes))

        assert len(trades) == 2
        assert trades[0].action == Action.BUY
        assert trades[1].action == Action.SELL
        assert trades[1].price < 30.0

    def test_rejects_bad_parameters(self):
        with pytest.raises(ValueError):
            MovingAverageLookback(period=0)
