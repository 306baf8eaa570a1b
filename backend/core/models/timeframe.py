"""Timeframe parsing and closed/forming candle separation."""

from __future__ import annotations

import re
from typing import Sequence

from core.errors import ConfigurationError
from core.models.candle import Candle

_TIMEFRAME_RE = re.compile(r"^(\d+)([mhdw])$")

_UNIT_SECONDS = {
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "w": 7 * 24 * 60 * 60,
}


def timeframe_to_seconds(timeframe: str) -> int:
    """Convert a timeframe string like ``15m`` or ``1h`` to seconds.

    Raises:
        ConfigurationError: If the string is not a valid timeframe.
    """
    match = _TIMEFRAME_RE.match(timeframe or "")
    if match is None or int(match.group(1)) <= 0:
        raise ConfigurationError(f"Invalid timeframe '{timeframe}'")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def bucket_start(timestamp: int, timeframe: str) -> int:
    """Align an epoch timestamp to the start of its timeframe bucket."""
    seconds = timeframe_to_seconds(timeframe)
    return (int(timestamp) // seconds) * seconds


def is_forming(candle: Candle, timeframe: str | None = None, now: int | None = None) -> bool:
    """Check whether a candle's bucket is still accumulating.

    A candle is forming when it is flagged as not closed, or when ``now``
    is given and its bucket end lies in the future.
    """
    if not candle.is_closed:
        return True
    if timeframe is not None and now is not None:
        return candle.time + timeframe_to_seconds(timeframe) > now
    return False


def split_forming(
    candles: Sequence[Candle],
    timeframe: str | None = None,
    now: int | None = None,
) -> tuple[tuple[Candle, ...], Candle | None]:
    """Separate closed candles from a trailing forming candle.

    Only the last element may be forming; anything before it is treated
    as closed history.

    Returns:
        Tuple of (closed candles, forming candle or None).
    """
    if not candles:
        return (), None
    last = candles[-1]
    if is_forming(last, timeframe, now):
        return tuple(candles[:-1]), last
    return tuple(candles), None


def first_unordered(candles: Sequence[Candle]) -> int | None:
    """Index of the first candle whose time does not strictly increase.

    Returns:
        The offending index, or None when the series is ordered.
    """
    for i in range(1, len(candles)):
        if candles[i].time <= candles[i - 1].time:
            return i
    return None
