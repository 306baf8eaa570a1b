"""Pure NumPy indicator implementations.

These are the deterministic reference used whenever no native library
covers a kind. Each function reproduces the native library's lookback
and recurrence exactly, so for an input of length ``N`` it returns arrays
of length ``N - lookback`` (or empty arrays when ``N <= lookback``).

Kinds with Tulip semantics (EMA seeded from the first value, MACD with
the 0.15/0.075 constants for 12/26, Wilder RSI/ATR) follow Tulip
Indicators. ``macd_ext`` and ``bb_talib`` follow TA-Lib; ``stoch_rsi`` and
``heikin_ashi`` have no native counterpart.
"""

from __future__ import annotations

from typing import Callable, Mapping

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from core.indicators.kinds import IndicatorKind, hma_periods, ma_lookback

Inputs = Mapping[str, np.ndarray]
Columns = tuple[np.ndarray, ...]

_EMPTY = np.empty(0, dtype=np.float64)


# =============================================================================
# Moving averages
# =============================================================================

def sma(x: np.ndarray, length: int) -> np.ndarray:
    if len(x) < length:
        return _EMPTY
    return sliding_window_view(x, length).mean(axis=1)


def ema(x: np.ndarray, length: int) -> np.ndarray:
    """EMA seeded with the first input, one output per input."""
    if len(x) == 0:
        return _EMPTY
    k = 2.0 / (length + 1)
    out = np.empty(len(x), dtype=np.float64)
    val = x[0]
    out[0] = val
    for i in range(1, len(x)):
        val = (x[i] - val) * k + val
        out[i] = val
    return out


def wma(x: np.ndarray, length: int) -> np.ndarray:
    if len(x) < length:
        return _EMPTY
    weights = np.arange(1, length + 1, dtype=np.float64)
    return sliding_window_view(x, length) @ weights / weights.sum()


def dema(x: np.ndarray, length: int) -> np.ndarray:
    start = (length - 1) * 2
    if len(x) <= start:
        return _EMPTY
    per = 2.0 / (length + 1)
    per1 = 1.0 - per
    out = np.empty(len(x) - start, dtype=np.float64)
    e1 = x[0]
    e2 = e1
    for i in range(len(x)):
        e1 = e1 * per1 + x[i] * per
        if i == length - 1:
            e2 = e1
        if i >= length - 1:
            e2 = e2 * per1 + e1 * per
            if i >= start:
                out[i - start] = e1 * 2 - e2
    return out


def tema(x: np.ndarray, length: int) -> np.ndarray:
    start = (length - 1) * 3
    if len(x) <= start:
        return _EMPTY
    per = 2.0 / (length + 1)
    per1 = 1.0 - per
    out = np.empty(len(x) - start, dtype=np.float64)
    e1 = x[0]
    e2 = 0.0
    e3 = 0.0
    for i in range(len(x)):
        e1 = e1 * per1 + x[i] * per
        if i == length - 1:
            e2 = e1
        if i >= length - 1:
            e2 = e2 * per1 + e1 * per
            if i == (length - 1) * 2:
                e3 = e2
            if i >= (length - 1) * 2:
                e3 = e3 * per1 + e2 * per
                if i >= start:
                    out[i - start] = 3 * e1 - 3 * e2 + e3
    return out


def trima(x: np.ndarray, length: int) -> np.ndarray:
    first = (length + 1) // 2
    second = length // 2 + 1
    return sma(sma(x, first), second)


def kama(x: np.ndarray, length: int) -> np.ndarray:
    if len(x) < length:
        return _EMPTY
    short_per = 2.0 / (2.0 + 1)
    long_per = 2.0 / (30.0 + 1)
    out = np.empty(len(x) - length + 1, dtype=np.float64)

    volatility = float(np.abs(np.diff(x[:length])).sum())
    val = x[length - 1]
    out[0] = val
    for i in range(length, len(x)):
        volatility += abs(x[i] - x[i - 1])
        if i > length:
            volatility -= abs(x[i - length] - x[i - length - 1])
        er = abs(x[i] - x[i - length]) / volatility if volatility != 0.0 else 1.0
        sc = (er * (short_per - long_per) + long_per) ** 2
        val = val + sc * (x[i] - val)
        out[i - length + 1] = val
    return out


def hma(x: np.ndarray, length: int) -> np.ndarray:
    """Hull moving average from two WMA passes and a sqrt-period pass."""
    half, sqrt_n = hma_periods(length)
    fast = wma(x, half)
    slow = wma(x, length)
    if len(slow) == 0:
        return _EMPTY
    diff = 2 * fast[len(fast) - len(slow) :] - slow
    return wma(diff, sqrt_n)


def talib_ema(x: np.ndarray, length: int) -> np.ndarray:
    """EMA seeded with the simple average of the first ``length`` inputs."""
    if len(x) < length:
        return _EMPTY
    k = 2.0 / (length + 1)
    out = np.empty(len(x) - length + 1, dtype=np.float64)
    val = float(np.mean(x[:length]))
    out[0] = val
    for i in range(length, len(x)):
        val = (x[i] - val) * k + val
        out[i - length + 1] = val
    return out


def talib_dema(x: np.ndarray, length: int) -> np.ndarray:
    first = talib_ema(x, length)
    second = talib_ema(first, length)
    if len(second) == 0:
        return _EMPTY
    return 2 * first[len(first) - len(second) :] - second


def moving_average(x: np.ndarray, length: int, ma_type: str) -> np.ndarray:
    """TA-Lib style moving average by type name."""
    if ma_type == "SMA":
        return sma(x, length)
    if ma_type == "EMA":
        return talib_ema(x, length)
    if ma_type == "DEMA":
        return talib_dema(x, length)
    raise ValueError(f"Unsupported moving average type '{ma_type}'")


# =============================================================================
# Oscillators and volatility
# =============================================================================

def rsi(x: np.ndarray, length: int) -> np.ndarray:
    if len(x) <= length:
        return _EMPTY
    per = 1.0 / length
    delta = np.diff(x)
    ups = np.maximum(delta, 0.0)
    downs = np.maximum(-delta, 0.0)
    out = np.empty(len(x) - length, dtype=np.float64)
    smooth_up = float(ups[:length].sum()) / length
    smooth_down = float(downs[:length].sum()) / length
    with np.errstate(divide="ignore", invalid="ignore"):
        out[0] = 100.0 * np.float64(smooth_up) / (smooth_up + smooth_down)
        for i in range(length, len(delta)):
            smooth_up = (ups[i] - smooth_up) * per + smooth_up
            smooth_down = (downs[i] - smooth_down) * per + smooth_down
            out[i - length + 1] = 100.0 * np.float64(smooth_up) / (smooth_up + smooth_down)
    return out


def roc(x: np.ndarray, length: int) -> np.ndarray:
    if len(x) <= length:
        return _EMPTY
    with np.errstate(divide="ignore", invalid="ignore"):
        return (x[length:] - x[:-length]) / x[:-length]


def true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    """True range; the first bar uses ``high - low``."""
    if len(high) == 0:
        return _EMPTY
    tr = high - low
    prev_close = close[:-1]
    tr[1:] = np.maximum.reduce(
        [high[1:] - low[1:], np.abs(high[1:] - prev_close), np.abs(low[1:] - prev_close)]
    )
    return tr


def atr(high: np.ndarray, low: np.ndarray, close: np.ndarray, length: int) -> np.ndarray:
    if len(high) < length:
        return _EMPTY
    tr = true_range(high, low, close)
    per = 1.0 / length
    out = np.empty(len(tr) - length + 1, dtype=np.float64)
    val = float(tr[:length].sum()) / length
    out[0] = val
    for i in range(length, len(tr)):
        val = (tr[i] - val) * per + val
        out[i - length + 1] = val
    return out


def cci(high: np.ndarray, low: np.ndarray, close: np.ndarray, length: int) -> np.ndarray:
    start = (length - 1) * 2
    if len(close) <= start:
        return _EMPTY
    typical = (high + low + close) / 3.0
    windows = sliding_window_view(typical, length)[start - (length - 1) :]
    avg = windows.mean(axis=1)
    mean_dev = np.abs(windows - avg[:, None]).mean(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return (typical[start:] - avg) / (mean_dev * 0.015)


def mfi(
    high: np.ndarray,
    low: np.ndarray,
    close: np.ndarray,
    volume: np.ndarray,
    length: int,
) -> np.ndarray:
    if len(close) <= length:
        return _EMPTY
    typical = (high + low + close) / 3.0
    flow = typical[1:] * volume[1:]
    change = np.diff(typical)
    up = np.where(change > 0, flow, 0.0)
    down = np.where(change < 0, flow, 0.0)
    up_sum = sliding_window_view(up, length).sum(axis=1)
    down_sum = sliding_window_view(down, length).sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return up_sum / (up_sum + down_sum) * 100.0


def obv(close: np.ndarray, volume: np.ndarray) -> np.ndarray:
    """On-balance volume; a flat close contributes nothing."""
    if len(close) == 0:
        return _EMPTY
    direction = np.zeros(len(close), dtype=np.float64)
    direction[1:] = np.sign(np.diff(close))
    return np.cumsum(direction * volume)


def ao(high: np.ndarray, low: np.ndarray) -> np.ndarray:
    if len(high) < 34:
        return _EMPTY
    median = (high + low) / 2.0
    return sma(median, 5)[29:] - sma(median, 34)


def _directional_movement(
    high: np.ndarray, low: np.ndarray, i: int
) -> tuple[float, float]:
    up = high[i] - high[i - 1]
    down = low[i - 1] - low[i]
    if up < 0:
        up = 0.0
    elif up > down:
        down = 0.0
    if down < 0:
        down = 0.0
    elif down > up:
        up = 0.0
    return up, down


def adx(high: np.ndarray, low: np.ndarray, close: np.ndarray, length: int) -> np.ndarray:
    """Average directional index with Wilder smoothing.

    The first DX comes from sums over bars ``1..length-1``; ADX is the mean
    of the first ``length`` DX values, smoothed by ``(length-1)/length``
    afterwards.
    """
    start = (length - 1) * 2
    if len(close) <= start:
        return _EMPTY
    per = (length - 1) / length
    invper = 1.0 / length

    tr = true_range(high, low, close)
    atr_sum = float(tr[1:length].sum())
    dm_up = dm_down = 0.0
    for i in range(1, length):
        up, down = _directional_movement(high, low, i)
        dm_up += up
        dm_down += down

    out = np.empty(len(close) - start, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        di_up = np.float64(dm_up) / atr_sum
        di_down = np.float64(dm_down) / atr_sum
        total = abs(di_up - di_down) / (di_up + di_down) * 100
        for i in range(length, len(close)):
            atr_sum = atr_sum * per + tr[i]
            up, down = _directional_movement(high, low, i)
            dm_up = dm_up * per + up
            dm_down = dm_down * per + down
            di_up = np.float64(dm_up) / atr_sum
            di_down = np.float64(dm_down) / atr_sum
            dx = abs(di_up - di_down) / (di_up + di_down) * 100
            if i - length < length - 2:
                total += dx
            elif i - length == length - 2:
                total += dx
                out[i - start] = total * invper
            else:
                total = total * per + dx
                out[i - start] = total * invper
    return out


def psar(high: np.ndarray, low: np.ndarray, step: float, maximum: float) -> np.ndarray:
    """Parabolic SAR, one value per bar after the first.

    The initial direction is long when the first bar's midpoint is not
    above the second's.
    """
    if len(high) < 2:
        return _EMPTY
    is_long = high[0] + low[0] <= high[1] + low[1]
    if is_long:
        extreme, sar = high[0], low[0]
    else:
        extreme, sar = low[0], high[0]
    accel = step

    out = np.empty(len(high) - 1, dtype=np.float64)
    for i in range(1, len(high)):
        sar = (extreme - sar) * accel + sar
        if is_long:
            if i >= 2 and sar > low[i - 2]:
                sar = low[i - 2]
            if sar > low[i - 1]:
                sar = low[i - 1]
            if accel < maximum and high[i] > extreme:
                accel = min(accel + step, maximum)
            if high[i] > extreme:
                extreme = high[i]
        else:
            if i >= 2 and sar < high[i - 2]:
                sar = high[i - 2]
            if sar < high[i - 1]:
                sar = high[i - 1]
            if accel < maximum and low[i] < extreme:
                accel = min(accel + step, maximum)
            if low[i] < extreme:
                extreme = low[i]

        if (is_long and low[i] < sar) or (not is_long and high[i] > sar):
            accel = step
            sar = extreme
            is_long = not is_long
            extreme = high[i] if is_long else low[i]

        out[i - 1] = sar
    return out


def vwma(close: np.ndarray, volume: np.ndarray, length: int) -> np.ndarray:
    if len(close) < length:
        return _EMPTY
    weighted = sliding_window_view(close * volume, length).sum(axis=1)
    total = sliding_window_view(volume, length).sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return weighted / total


def rolling_stddev(x: np.ndarray, length: int) -> np.ndarray:
    """Population standard deviation over trailing windows."""
    if len(x) < length:
        return _EMPTY
    return sliding_window_view(x, length).std(axis=1)


def bbands(x: np.ndarray, length: int, stddev: float) -> Columns:
    middle = sma(x, length)
    if len(middle) == 0:
        return _EMPTY, _EMPTY, _EMPTY
    dev = rolling_stddev(x, length) * stddev
    return middle - dev, middle, middle + dev


def bbands_talib(x: np.ndarray, length: int, stddev: float, ma_type: str) -> Columns:
    middle = moving_average(x, length, ma_type)
    if len(middle) == 0:
        return _EMPTY, _EMPTY, _EMPTY
    dev = rolling_stddev(x, length)
    dev = dev[len(dev) - len(middle) :] * stddev
    return middle - dev, middle, middle + dev


def stoch(
    high: np.ndarray,
    low: np.ndarray,
    close: np.ndarray,
    length: int,
    k_period: int,
    d_period: int,
) -> Columns:
    start = length + k_period + d_period - 3
    if len(close) <= start:
        return _EMPTY, _EMPTY
    highest = sliding_window_view(high, length).max(axis=1)
    lowest = sliding_window_view(low, length).min(axis=1)
    spread = highest - lowest
    with np.errstate(divide="ignore", invalid="ignore"):
        fast_k = np.where(spread == 0.0, 0.0, 100.0 * (close[length - 1 :] - lowest) / spread)
    slow_k = sma(fast_k, k_period)
    slow_d = sma(slow_k, d_period)
    return slow_k[d_period - 1 :], slow_d


def stoch_rsi(x: np.ndarray, rsi_length: int, stoch_length: int, k_period: int, d_period: int) -> Columns:
    """Stochastic oscillator over RSI values.

    A window whose RSI range is zero (or undefined) yields 0 before the
    %K and %D smoothing.
    """
    start = rsi_length + stoch_length + k_period + d_period - 3
    if len(x) <= start:
        return _EMPTY, _EMPTY
    values = rsi(x, rsi_length)
    windows = sliding_window_view(values, stoch_length)
    highest = windows.max(axis=1)
    lowest = windows.min(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        raw = (values[stoch_length - 1 :] - lowest) / (highest - lowest) * 100.0
    raw = np.where(np.isnan(raw), 0.0, raw)
    slow_k = sma(raw, k_period)
    slow_d = sma(slow_k, d_period)
    return slow_k[d_period - 1 :], slow_d


def macd(x: np.ndarray, fast: int, slow: int, signal: int) -> Columns:
    """MACD with both EMAs seeded from the first input.

    Uses the fixed constants 0.15/0.075 for the 12/26 pair. The output
    starts at index ``slow - 1``; the signal line is seeded with the
    first MACD value there.
    """
    start = slow - 1
    if len(x) <= start:
        return _EMPTY, _EMPTY, _EMPTY
    short_per = 2.0 / (fast + 1)
    long_per = 2.0 / (slow + 1)
    signal_per = 2.0 / (signal + 1)
    if fast == 12 and slow == 26:
        short_per = 0.15
        long_per = 0.075

    size = len(x) - start
    value = np.empty(size, dtype=np.float64)
    sig = np.empty(size, dtype=np.float64)
    short_ema = long_ema = x[0]
    signal_ema = 0.0
    for i in range(1, len(x)):
        short_ema = (x[i] - short_ema) * short_per + short_ema
        long_ema = (x[i] - long_ema) * long_per + long_ema
        out = short_ema - long_ema
        if i == start:
            signal_ema = out
        if i >= start:
            signal_ema = (out - signal_ema) * signal_per + signal_ema
            value[i - start] = out
            sig[i - start] = signal_ema
    return value, sig, value - sig


def macd_ext(
    x: np.ndarray,
    fast: int,
    slow: int,
    signal: int,
    fast_type: str,
    slow_type: str,
    signal_type: str,
) -> Columns:
    """MACD with configurable moving average per leg.

    Both legs cover the same range, as if each had been started just far
    enough back to produce its first value at the largest leg lookback.
    """
    fast_lb = ma_lookback(fast, fast_type)
    slow_lb = ma_lookback(slow, slow_type)
    largest = max(fast_lb, slow_lb)
    if len(x) <= largest + ma_lookback(signal, signal_type):
        return _EMPTY, _EMPTY, _EMPTY
    fast_line = moving_average(x[largest - fast_lb :], fast, fast_type)
    slow_line = moving_average(x[largest - slow_lb :], slow, slow_type)
    line = fast_line - slow_line
    sig = moving_average(line, signal, signal_type)
    line = line[len(line) - len(sig) :]
    return line, sig, line - sig


# =============================================================================
# Candle transforms
# =============================================================================

def heikin_ashi(open_: np.ndarray, high: np.ndarray, low: np.ndarray, close: np.ndarray) -> Columns:
    """Heikin Ashi open, high, low and close columns.

    The first bar opens at the midpoint of its open and close and keeps
    its own high and low.
    """
    if len(close) == 0:
        return _EMPTY, _EMPTY, _EMPTY, _EMPTY
    ha_close = (open_ + high + low + close) / 4.0
    ha_open = np.empty(len(close), dtype=np.float64)
    ha_open[0] = (open_[0] + close[0]) / 2.0
    for i in range(1, len(close)):
        ha_open[i] = (ha_open[i - 1] + ha_close[i - 1]) / 2.0
    ha_high = np.maximum.reduce([high, ha_open, ha_close])
    ha_low = np.minimum.reduce([low, ha_open, ha_close])
    ha_high[0], ha_low[0] = high[0], low[0]
    return ha_open, ha_high, ha_low, ha_close


# =============================================================================
# Dispatch by kind
# =============================================================================

def _values(fn: Callable[..., np.ndarray]) -> Callable[[Inputs, Mapping], Columns]:
    return lambda inputs, o: (fn(inputs["values"], o["length"]),)


FALLBACK_FUNCTIONS: dict[IndicatorKind, Callable[[Inputs, Mapping], Columns]] = {
    IndicatorKind.SMA: _values(sma),
    IndicatorKind.EMA: _values(ema),
    IndicatorKind.WMA: _values(wma),
    IndicatorKind.DEMA: _values(dema),
    IndicatorKind.TEMA: _values(tema),
    IndicatorKind.TRIMA: _values(trima),
    IndicatorKind.KAMA: _values(kama),
    IndicatorKind.HMA: _values(hma),
    IndicatorKind.RSI: _values(rsi),
    IndicatorKind.ROC: _values(roc),
    IndicatorKind.VWMA: lambda i, o: (vwma(i["close"], i["volume"], o["length"]),),
    IndicatorKind.CCI: lambda i, o: (cci(i["high"], i["low"], i["close"], o["length"]),),
    IndicatorKind.ATR: lambda i, o: (atr(i["high"], i["low"], i["close"], o["length"]),),
    IndicatorKind.MFI: lambda i, o: (mfi(i["high"], i["low"], i["close"], i["volume"], o["length"]),),
    IndicatorKind.OBV: lambda i, o: (obv(i["close"], i["volume"]),),
    IndicatorKind.AO: lambda i, o: (ao(i["high"], i["low"]),),
    IndicatorKind.ADX: lambda i, o: (adx(i["high"], i["low"], i["close"], o["length"]),),
    IndicatorKind.PSAR: lambda i, o: (psar(i["high"], i["low"], o["step"], o["max"]),),
    IndicatorKind.BB: lambda i, o: bbands(i["values"], o["length"], o["stddev"]),
    IndicatorKind.BB_TALIB: lambda i, o: bbands_talib(i["values"], o["length"], o["stddev"], o["ma_type"]),
    IndicatorKind.STOCH: lambda i, o: stoch(i["high"], i["low"], i["close"], o["length"], o["k"], o["d"]),
    IndicatorKind.STOCH_RSI: lambda i, o: stoch_rsi(i["values"], o["rsi_length"], o["stoch_length"], o["k"], o["d"]),
    IndicatorKind.MACD: lambda i, o: macd(i["values"], o["fast_length"], o["slow_length"], o["signal_length"]),
    IndicatorKind.MACD_EXT: lambda i, o: macd_ext(
        i["values"],
        o["fast_period"],
        o["slow_period"],
        o["signal_period"],
        o["fast_ma_type"],
        o["slow_ma_type"],
        o["signal_ma_type"],
    ),
    IndicatorKind.HEIKIN_ASHI: lambda i, o: heikin_ashi(i["open"], i["high"], i["low"], i["close"]),
}
