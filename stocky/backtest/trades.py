"""
Trade assembly: from raw signals to completed buy/sell pairs.
"""

from typing import Iterable, Iterator, List, Sequence, Tuple

from stocky.data.models import Action, Trade
from stocky.exceptions import MalformedTradesError


def tradify(signals: Iterable[Trade]) -> List[Trade]:
    """
    Reduce a signal sequence to completed trades.

    NONE signals are dropped, runs of the same action keep only their
    first element, a leading sell and a trailing buy are removed. The
    result alternates buy/sell, starts with a buy and has even length.
    Applying it twice gives the same result as applying it once.

    Args:
        signals: Time-ordered signals

    Returns:
        Well-formed list of trades, possibly empty
    """
    actionable = [signal for signal in signals if signal.action is not Action.NONE]

    if len(actionable) < 2:
        return []
    if len(actionable) == 2 and actionable[0].action is not Action.BUY:
        return []

    trades = [actionable[0]]
    for signal in actionable[1:]:
        if signal.action is not trades[-1].action:
            trades.append(signal)

    if trades and trades[0].action is Action.SELL:
        trades.pop(0)
    if trades and trades[-1].action is Action.BUY:
        trades.pop()

    return trades


def validate_trades(trades: Sequence[Trade]) -> None:
    """
    Check that trades alternate buy/sell in completed, time-ordered pairs.

    Raises:
        MalformedTradesError: describing the first violation found
    """
    if len(trades) % 2 != 0:
        raise MalformedTradesError(f"Expected an even number of trades, got {len(trades)}")

    for index, trade in enumerate(trades):
        expected = Action.BUY if index % 2 == 0 else Action.SELL
        if trade.action is not expected:
            raise MalformedTradesError(
                f"Trade {index} should be a {expected.value}, got {Action(trade.action).value}"
            )

    for index in range(0, len(trades), 2):
        buy, sell = trades[index], trades[index + 1]
        if not buy.time < sell.time:
            raise MalformedTradesError(
                f"Sell at {sell.time} does not follow its buy at {buy.time}"
            )


def is_well_formed(trades: Sequence[Trade]) -> bool:
    """Boolean form of validate_trades."""
    try:
        validate_trades(trades)
    except MalformedTradesError:
        return False
    return True


def pairs(trades: Sequence[Trade]) -> Iterator[Tuple[Trade, Trade]]:
    """Yield ``(buy, sell)`` pairs of a well-formed sequence."""
    validate_trades(trades)
    for index in range(0, len(trades), 2):
        yield trades[index], trades[index + 1]
