"""Tulip Indicators (tulipy) backed implementations.

tulipy already drops the warm-up, so every function returns arrays of
length ``N - lookback``.
"""

from __future__ import annotations

from typing import Callable, Mapping

import numpy as np
import tulipy as ti

from core.indicators.kinds import IndicatorKind


def _arr(values: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(values, dtype=np.float64)


def _values(fn: Callable) -> Callable[[Mapping[str, np.ndarray], Mapping], tuple[np.ndarray, ...]]:
    return lambda inputs, o: (fn(_arr(inputs["values"]), o["length"]),)


def _hlc(inputs: Mapping[str, np.ndarray]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    return _arr(inputs["high"]), _arr(inputs["low"]), _arr(inputs["close"])


TULIP_FUNCTIONS: dict[IndicatorKind, Callable[[Mapping[str, np.ndarray], Mapping], tuple[np.ndarray, ...]]] = {
    IndicatorKind.SMA: _values(ti.sma),
    IndicatorKind.EMA: _values(ti.ema),
    IndicatorKind.WMA: _values(ti.wma),
    IndicatorKind.DEMA: _values(ti.dema),
    IndicatorKind.TEMA: _values(ti.tema),
    IndicatorKind.TRIMA: _values(ti.trima),
    IndicatorKind.KAMA: _values(ti.kama),
    IndicatorKind.HMA: _values(ti.hma),
    IndicatorKind.RSI: _values(ti.rsi),
    IndicatorKind.ROC: _values(ti.roc),
    IndicatorKind.VWMA: lambda i, o: (ti.vwma(_arr(i["close"]), _arr(i["volume"]), o["length"]),),
    IndicatorKind.CCI: lambda i, o: (ti.cci(*_hlc(i), o["length"]),),
    IndicatorKind.ATR: lambda i, o: (ti.atr(*_hlc(i), o["length"]),),
    IndicatorKind.MFI: lambda i, o: (ti.mfi(*_hlc(i), _arr(i["volume"]), o["length"]),),
    IndicatorKind.OBV: lambda i, o: (ti.obv(_arr(i["close"]), _arr(i["volume"])),),
    IndicatorKind.AO: lambda i, o: (ti.ao(_arr(i["high"]), _arr(i["low"])),),
    IndicatorKind.ADX: lambda i, o: (ti.adx(*_hlc(i), o["length"]),),
    IndicatorKind.PSAR: lambda i, o: (ti.psar(_arr(i["high"]), _arr(i["low"]), o["step"], o["max"]),),
    IndicatorKind.BB: lambda i, o: tuple(ti.bbands(_arr(i["values"]), o["length"], o["stddev"])),
    IndicatorKind.STOCH: lambda i, o: tuple(ti.stoch(*_hlc(i), o["length"], o["k"], o["d"])),
    IndicatorKind.MACD: lambda i, o: tuple(
        ti.macd(_arr(i["values"]), o["fast_length"], o["slow_length"], o["signal_length"])
    ),
}
