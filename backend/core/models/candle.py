"""Candle (OHLCV bar) data models."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict


class Candle(BaseModel):
    """One OHLCV bar.

    ``time`` is the bucket open time as integer epoch seconds. A candle
    whose bucket has not elapsed yet carries ``is_closed=False``.
    """

    model_config = ConfigDict(frozen=True)

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    is_closed: bool = True


# Price fields a values-input indicator can read from a candle.
CANDLE_SOURCES = ("open", "high", "low", "close", "volume", "hl2", "hlc3", "ohlc4")


def candle_column(candles: Sequence[Candle], source: str) -> np.ndarray:
    """Extract one price column from candles as a float64 array.

    Args:
        candles: Oldest-first candles.
        source: One of ``CANDLE_SOURCES``.

    Returns:
        Array with one entry per candle.

    Raises:
        ValueError: If the source name is unknown.
    """
    if source in ("open", "high", "low", "close", "volume"):
        return np.fromiter((getattr(c, source) for c in candles), dtype=np.float64, count=len(candles))
    if source == "hl2":
        return np.fromiter(((c.high + c.low) / 2 for c in candles), dtype=np.float64, count=len(candles))
    if source == "hlc3":
        return np.fromiter(
            ((c.high + c.low + c.close) / 3 for c in candles), dtype=np.float64, count=len(candles)
        )
    if source == "ohlc4":
        return np.fromiter(
            ((c.open + c.high + c.low + c.close) / 4 for c in candles),
            dtype=np.float64,
            count=len(candles),
        )
    raise ValueError(f"Unknown candle source '{source}'")

