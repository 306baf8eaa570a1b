"""TA-Lib backed indicators (MACDEXT and BBANDS)."""

from __future__ import annotations

from typing import Callable, Mapping

import numpy as np
import talib
from talib import MA_Type

from core.indicators.kinds import IndicatorKind, get_definition

_MA_TYPES = {
    "SMA": MA_Type.SMA,
    "EMA": MA_Type.EMA,
    "DEMA": MA_Type.DEMA,
}


def _arr(values: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(values, dtype=np.float64)


def _trim(kind: IndicatorKind, options: Mapping, *columns: np.ndarray) -> tuple[np.ndarray, ...]:
    # TA-Lib pads the lookback with NaN; drop it to match the other backends.
    start = get_definition(kind).lookback(options)
    return tuple(np.asarray(c[start:], dtype=np.float64) for c in columns)


def macd_ext(inputs: Mapping[str, np.ndarray], options: Mapping) -> tuple[np.ndarray, ...]:
    """MACD with per-leg moving average types using TA-Lib MACDEXT.

    Args:
        inputs: Mapping with a ``values`` array.
        options: Resolved macd_ext options.

    Returns:
        Tuple of (macd, signal, histogram) arrays without the NaN warm-up.
    """
    value, signal, hist = talib.MACDEXT(
        _arr(inputs["values"]),
        fastperiod=options["fast_period"],
        fastmatype=_MA_TYPES[options["fast_ma_type"]],
        slowperiod=options["slow_period"],
        slowmatype=_MA_TYPES[options["slow_ma_type"]],
        signalperiod=options["signal_period"],
        signalmatype=_MA_TYPES[options["signal_ma_type"]],
    )
    return _trim(IndicatorKind.MACD_EXT, options, value, signal, hist)


def bbands(inputs: Mapping[str, np.ndarray], options: Mapping) -> tuple[np.ndarray, ...]:
    """Bollinger Bands using TA-Lib BBANDS.

    Returns:
        Tuple of (lower, middle, upper) arrays without the NaN warm-up.
    """
    upper, middle, lower = talib.BBANDS(
        _arr(inputs["values"]),
        timeperiod=options["length"],
        nbdevup=options["stddev"],
        nbdevdn=options["stddev"],
        matype=_MA_TYPES[options["ma_type"]],
    )
    return _trim(IndicatorKind.BB_TALIB, options, lower, middle, upper)


TALIB_FUNCTIONS: dict[IndicatorKind, Callable[[Mapping[str, np.ndarray], Mapping], tuple[np.ndarray, ...]]] = {
    IndicatorKind.MACD_EXT: macd_ext,
    IndicatorKind.BB_TALIB: bbands,
}
