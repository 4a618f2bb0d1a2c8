"""
Crossover signals.

A window of aligned indicator points is split in half. A buy is flagged when
the MACD-style line sits at or below its signal line for the whole first half
and strictly above it for the whole second half; a sell is the mirror.
"""

from enum import IntEnum
from typing import Any, List, Sequence, Tuple

import numpy as np
import structlog

from stocky.data.models import Action, Trade
from stocky.data.timeseries import to_series
from stocky.exceptions import InvalidWindowError

logger = structlog.get_logger(__name__)


class SignalWindow(IntEnum):
    """Number of aligned points examined for each signal."""

    SINGLE_DAY = 2
    CONSECUTIVE_DAYS = 4


def _line_and_signal(point: Sequence[float]) -> Tuple[float, float]:
    if len(point) == 3:
        fast, slow, signal = point
        return fast - slow, signal
    if len(point) == 2:
        line, signal = point
        return line, signal
    raise ValueError(f"Expected (fast, slow, signal) or (line, signal), got {len(point)} values")


def _check_window(size: int) -> None:
    if size <= 0 or size % 2 != 0:
        raise InvalidWindowError(f"Signal window must be a positive even size, got {size}")


def classify(window: Sequence[Sequence[float]]) -> Action:
    """
    Classify one window of aligned points.

    Args:
        window: ``(fast, slow, signal)`` tuples or ``(line, signal)`` pairs

    Returns:
        Action.BUY, Action.SELL or Action.NONE

    Raises:
        InvalidWindowError: if the window size is odd or zero
    """
    _check_window(len(window))

    points = [_line_and_signal(point) for point in window]
    midpoint = len(points) // 2
    first_half, last_half = points[:midpoint], points[midpoint:]

    if (all(signal >= line for line, signal in first_half) and
            all(signal < line for line, signal in last_half)):
        return Action.BUY

    if (all(signal <= line for line, signal in first_half) and
            all(signal > line for line, signal in last_half)):
        return Action.SELL

    return Action.NONE


def label_series(points: Sequence[Sequence[float]], window: int = SignalWindow.SINGLE_DAY) -> List[Action]:
    """
    Slide a window over aligned points and label the last point of each.

    Positions before the first full window are labelled NONE, so the
    result has one action per input point.
    """
    size = int(window)
    _check_window(size)

    labels = [Action.NONE] * min(size - 1, len(points))
    for end in range(size, len(points) + 1):
        labels.append(classify(points[end - size:end]))
    return labels


def generate_signals(times: Sequence[Any], prices: Any, fast: Any, slow: Any, signal_line: Any,
                     window: int = SignalWindow.SINGLE_DAY) -> List[Trade]:
    """
    Turn aligned indicator series into a time-ordered list of buy/sell trades.

    Args:
        times: Timestamp of each point
        prices: Price traded at each point (typically close)
        fast: Fast moving average
        slow: Slow moving average
        signal_line: Signal line compared against ``fast - slow``
        window: Window size, see SignalWindow

    Returns:
        One Trade per point labelled BUY or SELL
    """
    price_values = to_series(prices).to_numpy()
    columns = [to_series(values).to_numpy() for values in (fast, slow, signal_line)]
    lengths = {len(times), len(price_values)} | {len(column) for column in columns}
    if len(lengths) != 1:
        raise ValueError(f"Signal inputs must be aligned, got lengths {sorted(lengths)}")

    points = list(zip(*columns))
    labels = label_series(points, window)

    signals = [
        Trade(time=times[index], price=float(price_values[index]), action=action)
        for index, action in enumerate(labels)
        if action is not Action.NONE and not np.isnan(price_values[index])
    ]

    logger.debug("Signals generated", points=len(points), signals=len(signals), window=int(window))
    return signals
