"""
Trade statistics.

Every function takes a well-formed trade sequence (see
``stocky.backtest.trades.validate_trades``) and raises MalformedTradesError
otherwise. Returns are fractions: 0.05 means 5%.

``subtract`` removes a fixed fraction from every result before it is
classified, which is how a percentage brokerage cost is modelled.

``benchmark`` is the exception: it prices a buy-and-hold position from a
price series rather than from trades.
"""

import math
from typing import Any, Dict, List, Sequence, Union

import numpy as np
import pandas as pd
import structlog

from stocky.backtest.trades import pairs, validate_trades
from stocky.data.models import Trade

logger = structlog.get_logger(__name__)

NAN = float('nan')

PriceOrTrade = Union[Trade, float]


def _price(value: PriceOrTrade) -> float:
    return value.price if isinstance(value, Trade) else float(value)


def _span_days(trades: Sequence[Trade]) -> int:
    return (trades[-1].time - trades[0].time).days


def result(buy: PriceOrTrade, sell: PriceOrTrade) -> float:
    """Fractional gain of selling at ``sell`` what was bought at ``buy``."""
    buy_price = _price(buy)
    return (_price(sell) - buy_price) / buy_price


def results(trades: Sequence[Trade]) -> List[float]:
    """Result of each completed trade, in trade order."""
    return [result(buy, sell) for buy, sell in pairs(trades)]


def pair_count(trades: Sequence[Trade]) -> int:
    """Number of completed buy-sell pairs."""
    validate_trades(trades)
    return len(trades) // 2


def days_held(trades: Sequence[Trade]) -> int:
    """Total whole days between each buy and its sell."""
    return sum((sell.time - buy.time).days for buy, sell in pairs(trades))


def average_days_held(trades: Sequence[Trade]) -> float:
    """Mean holding period in days, NaN without trades."""
    count = pair_count(trades)
    if count == 0:
        return NAN
    return days_held(trades) / count


def years(trades: Sequence[Trade]) -> float:
    """Span from first to last trade in 365-day years."""
    validate_trades(trades)
    if not trades:
        return NAN
    return _span_days(trades) / 365.0


def trades_per_year(trades: Sequence[Trade]) -> float:
    """
    Average number of completed trades per year.

    Gives an idea of how busy a strategy is.
    """
    count = pair_count(trades)
    if count == 0:
        return NAN
    span = _span_days(trades)
    if span == 0:
        return NAN
    return count / (span / 365.25)


def market_return(trades: Sequence[Trade]) -> float:
    """Buy-and-hold return from the first trade price to the last."""
    validate_trades(trades)
    if not trades:
        return NAN
    return result(trades[0], trades[-1])


def benchmark(prices: pd.Series, start=None, end=None, start_value: float = 10000.0,
              brokerage: float = 0) -> float:
    """
    Return of holding a benchmark series from ``start`` to ``end``.

    The position is bought at the first price on or after ``start`` and sold
    at the first price on or after ``end``, or at the last price when the
    series ends sooner. Fractional units are bought with the capital left
    after brokerage.

    Args:
        prices: Closing prices indexed by date
        start: Buy date, the first price if omitted
        end: Sell date, the last price if omitted
        start_value: Initial capital
        brokerage: Fixed dollar cost charged on the buy and on the sell

    Returns:
        Profit as a fraction of ``start_value``
    """
    prices = prices.dropna()
    times = pd.to_datetime(prices.index)

    entry = prices[times >= pd.Timestamp(start)] if start is not None else prices
    if entry.empty:
        raise ValueError(f"No benchmark price on or after {start}")
    exit_ = prices[times >= pd.Timestamp(end)] if end is not None else entry.iloc[-1:]
    end_price = float(exit_.iloc[0]) if not exit_.empty else float(prices.iloc[-1])
    start_price = float(entry.iloc[0])

    units = (start_value - brokerage) / start_price
    return ((units * end_price - brokerage) - (units * start_price + brokerage)) / start_value


def _adjusted(trades: Sequence[Trade], subtract: float) -> List[float]:
    return [value - subtract for value in results(trades)]


def _rate(adjusted: List[float], hit, weighted: bool) -> float:
    if not adjusted:
        return NAN
    if weighted:
        total = len(adjusted) * (len(adjusted) + 1) / 2
        return sum(index for index, value in enumerate(adjusted, 1) if hit(value)) / total
    return sum(1 for value in adjusted if hit(value)) / len(adjusted)


def win_rate(trades: Sequence[Trade], subtract: float = 0, weighted: bool = False) -> float:
    """
    Fraction of trades with a positive result.

    Args:
        trades: Well-formed trade sequence
        subtract: Fraction subtracted from each result (i.e. brokerage)
        weighted: Weight each trade by its 1-based position, so recent
            trades count more

    Returns:
        Win rate, NaN when there are no trades
    """
    return _rate(_adjusted(trades, subtract), lambda value: value > 0, weighted)


def loss_rate(trades: Sequence[Trade], subtract: float = 0, weighted: bool = False) -> float:
    """Fraction of trades with a negative result. See win_rate."""
    return _rate(_adjusted(trades, subtract), lambda value: value < 0, weighted)


def wins(trades: Sequence[Trade], subtract: float = 0) -> List[float]:
    """Winning results after ``subtract``."""
    return [abs(value) for value in _adjusted(trades, subtract) if value > 0]


def losses(trades: Sequence[Trade], subtract: float = 0) -> List[float]:
    """Losing results after ``subtract``, as positive magnitudes."""
    return [abs(value) for value in _adjusted(trades, subtract) if value < 0]


def _sides(trades: Sequence[Trade], subtract: float):
    won = wins(trades, subtract)
    lost = losses(trades, subtract)
    win_side = np.mean(won) * win_rate(trades, subtract) if won else 0.0
    loss_side = np.mean(lost) * loss_rate(trades, subtract) if lost else 0.0
    return float(win_side), float(loss_side)


def profit_factor(trades: Sequence[Trade], subtract: float = 0) -> float:
    """
    Average win times win rate over average loss times loss rate.

    NaN when there are no trades or no losing trades.
    """
    if pair_count(trades) == 0:
        return NAN
    win_side, loss_side = _sides(trades, subtract)
    if loss_side == 0:
        return NAN
    return win_side / loss_side


def expectancy(trades: Sequence[Trade], subtract: float = 0) -> float:
    """Expected result per trade: average win times win rate less average loss times loss rate."""
    if pair_count(trades) == 0:
        return NAN
    win_side, loss_side = _sides(trades, subtract)
    return win_side - loss_side


def max_consecutive_losses(trades: Sequence[Trade], subtract: float = 0) -> int:
    """Longest run of consecutive losing trades."""
    longest = current = 0
    for value in _adjusted(trades, subtract):
        if value < 0:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def irr(trades: Sequence[Trade], start_value: float, brokerage: float = 0) -> float:
    """
    Annualised return when all capital is reinvested in every trade.

    Each buy purchases as many whole units as the capital allows after
    brokerage; each sell returns the proceeds less brokerage.

    Args:
        trades: Well-formed trade sequence
        start_value: Initial capital
        brokerage: Fixed dollar cost charged on each buy and each sell

    Returns:
        0 if capital is unchanged, -1 if it is exhausted, otherwise
        ``(capital / start_value) ** (1 / years) - 1``. A gain too large to
        annualise as a float, such as a tenfold gain in one day, gives inf.
    """
    capital = float(start_value)
    for buy, sell in pairs(trades):
        units = max(math.floor((capital - brokerage) / buy.price), 0)
        capital -= units * buy.price + brokerage
        capital += units * sell.price - brokerage

    if capital == start_value:
        return 0.0
    if capital <= 0:
        return -1.0

    span = years(trades)
    if not span:
        return NAN
    try:
        return math.expm1(math.log(capital / start_value) / span)
    except OverflowError:
        return math.inf


def _fixed_size_profits(trades: Sequence[Trade], invest: float, brokerage: float,
                        net_of_brokerage: bool) -> List[float]:
    profits = []
    for buy, sell in pairs(trades):
        budget = invest - brokerage if net_of_brokerage else invest
        units = max(math.floor(budget / buy.price), 0)
        profits.append((units * sell.price - brokerage) - (units * buy.price + brokerage))
    return profits


def static_invest(trades: Sequence[Trade], invest: float, brokerage: float = 0) -> float:
    """Cumulative dollar profit from investing the same amount in every trade."""
    return sum(_fixed_size_profits(trades, invest, brokerage, net_of_brokerage=False))


def annual_roi(trades: Sequence[Trade], cost: float, brokerage: float = 0) -> float:
    """Return on a fixed stake per trade, divided by the years traded."""
    profits = _fixed_size_profits(trades, cost, brokerage, net_of_brokerage=True)
    span = years(trades)
    if not profits or not span:
        return NAN
    return ((sum(profits) + cost) / cost) / span


def profit_per_day(trades: Sequence[Trade], cost: float, brokerage: float = 0) -> float:
    """Fixed-stake dollar profit per day held."""
    profits = _fixed_size_profits(trades, cost, brokerage, net_of_brokerage=True)
    held = days_held(trades)
    if not held:
        return NAN
    return sum(profits) / held


def weighted(values: Sequence[float], brokerage: float = 0) -> float:
    """Chronologically weighted mean: ``sum(i * (v - brokerage)) / sum(i)`` for i = 1..N."""
    values = list(values)
    if not values:
        return NAN
    total = len(values) * (len(values) + 1) / 2
    return sum(index * (value - brokerage) for index, value in enumerate(values, 1)) / total


def summarize(trades: Sequence[Trade], start_value: float = 10000.0, invest: float = 10000.0,
              brokerage: float = 0, subtract: float = 0, weighted_rates: bool = False) -> Dict[str, Any]:
    """
    Collect the scalar statistics of one trade sequence.

    Args:
        trades: Well-formed trade sequence
        start_value: Initial capital for irr
        invest: Fixed stake per trade for static_invest
        brokerage: Fixed dollar cost per buy and per sell
        subtract: Fraction subtracted from each result
        weighted_rates: Use chronologically weighted win/loss rates

    Returns:
        Dictionary of statistics
    """
    validate_trades(trades)
    per_trade = results(trades)

    stats = {
        'trades': len(per_trade),
        'days_held': days_held(trades),
        'average_days_held': average_days_held(trades),
        'trades_per_year': trades_per_year(trades),
        'market_return': market_return(trades),
        'win_rate': win_rate(trades, subtract, weighted_rates),
        'loss_rate': loss_rate(trades, subtract, weighted_rates),
        'profit_factor': profit_factor(trades, subtract),
        'expectancy': expectancy(trades, subtract),
        'max_consecutive_losses': max_consecutive_losses(trades, subtract),
        'average_result': float(np.mean(per_trade)) if per_trade else NAN,
        'weighted_result': weighted(per_trade, subtract),
        'irr': irr(trades, start_value, brokerage),
        'static_invest': static_invest(trades, invest, brokerage),
    }

    logger.debug("Trade statistics calculated", trades=stats['trades'], win_rate=stats['win_rate'])
    return stats
