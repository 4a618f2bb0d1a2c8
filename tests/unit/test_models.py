import pytest
from datetime import date

from stocky.data.models import Action, Bar, NamedTrade, Symbol, Trade


class TestSymbol:
    """Test symbol keys."""

    def test_parse_with_exchange(self):
        symbol = Symbol.parse('asx:bhp')

        assert symbol == Symbol('BHP', 'ASX')
        assert str(symbol) == 'ASX:BHP'

    def test_parse_bare_name(self):
        symbol = Symbol.parse('cba')

        assert symbol == Symbol('CBA')
        assert str(symbol) == 'CBA'

    def test_usable_as_key(self):
        counts = {Symbol('BHP', 'ASX'): 1}
        assert counts[Symbol.parse('ASX:BHP')] == 1


class TestBar:
    """Test bar construction."""

    def test_rejects_negative_volume(self):
        with pytest.raises(ValueError):
            Bar(date(2021, 1, 4), 1.0, 1.0, 1.0, 1.0, -5)

    def test_is_frozen(self):
        bar = Bar(date(2021, 1, 4), 1.0, 2.0, 0.5, 1.5, 100)
        with pytest.raises(AttributeError):
            bar.close = 3.0


class TestTrade:
    """Test trade serialisation."""

    def test_named_trade_to_dict(self):
        trade = NamedTrade(date(2021, 1, 4), 10.5, Action.BUY, symbol='BHP')

        assert trade.to_dict() == {'time': '2021-01-04', 'price': 10.5, 'action': 'buy', 'symbol': 'BHP'}
        assert isinstance(trade, Trade)
