"""
Adapters from bar sequences to numeric series.

Indicators only ever see plain float series; field selection happens once,
here, at the boundary.
"""

from typing import Any, Callable, Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from stocky.data.models import Bar
from stocky.exceptions import NonAscendingTimestampsError

FieldSelector = Union[str, Callable[[Any], float]]

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


def _select(field: FieldSelector) -> Callable[[Any], float]:
    if callable(field):
        return field
    if isinstance(field, str):
        def getter(record):
            if isinstance(record, dict):
                return record[field]
            return getattr(record, field)
        return getter
    raise TypeError(f"Field selector must be a name or a callable, got {type(field).__name__}")


def check_ascending(times: Sequence[Any]) -> None:
    """
    Raise if timestamps are not strictly increasing.

    Raises:
        NonAscendingTimestampsError: on the first out-of-order timestamp
    """
    for index in range(1, len(times)):
        if not times[index - 1] < times[index]:
            raise NonAscendingTimestampsError(
                f"Timestamps must be strictly increasing: {times[index - 1]} "
                f"followed by {times[index]} at position {index}"
            )


def extract(records: Iterable[Any], field: FieldSelector = "close",
            time_field: Optional[str] = "time") -> pd.Series:
    """
    Extract one numeric field from a sequence of records.

    Args:
        records: Bars, dicts or any objects exposing the field
        field: Field name or callable applied to each record
        time_field: Name of the timestamp attribute used for the index.
            ``None`` gives a plain positional index.

    Returns:
        Float series, indexed by timestamp when available
    """
    if isinstance(records, pd.DataFrame):
        if callable(field):
            values = records.apply(field, axis=1)
        else:
            values = records[field]
        return values.astype(float)

    records = list(records)
    getter = _select(field)
    values = [getter(record) for record in records]

    index = None
    if time_field is not None and records:
        time_getter = _select(time_field)
        try:
            times = [time_getter(record) for record in records]
        except (AttributeError, KeyError):
            times = None
        if times is not None:
            check_ascending(times)
            index = pd.Index(times, name=time_field)

    return pd.Series(values, index=index, dtype=float, name=field if isinstance(field, str) else None)


def to_series(data: Any, field: Optional[FieldSelector] = None) -> pd.Series:
    """
    Coerce indicator input into a float series.

    Series keep their index; arrays and lists get a positional one. When
    ``field`` is given the input is treated as a sequence of records.
    """
    if field is not None:
        return extract(data, field)
    if isinstance(data, pd.Series):
        return data.astype(float)
    if isinstance(data, pd.DataFrame):
        raise TypeError("DataFrame input needs a field selector")
    return pd.Series(np.asarray(list(data), dtype=float))


def leading_nan_count(values: Any) -> int:
    """Number of not-a-number values before the first valid one."""
    array = np.asarray(values, dtype=float)
    valid = np.flatnonzero(~np.isnan(array))
    return int(valid[0]) if len(valid) else len(array)


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Convert bars into an OHLCV DataFrame indexed by time."""
    check_ascending([bar.time for bar in bars])
    frame = pd.DataFrame(
        [[bar.open, bar.high, bar.low, bar.close, bar.volume] for bar in bars],
        columns=OHLCV_COLUMNS,
        index=pd.Index([bar.time for bar in bars], name='time'),
    )
    return frame.astype({'open': float, 'high': float, 'low': float, 'close': float, 'volume': 'int64'})


def frame_to_bars(frame: pd.DataFrame) -> tuple:
    """Convert an OHLCV DataFrame back into an immutable tuple of bars."""
    bars = []
    for time, row in frame.iterrows():
        if isinstance(time, pd.Timestamp):
            time = time.to_pydatetime()
        bars.append(Bar(
            time=time,
            open=float(row['open']),
            high=float(row['high']),
            low=float(row['low']),
            close=float(row['close']),
            volume=int(row['volume']) if not pd.isna(row['volume']) else 0
        ))
    return tuple(bars)
