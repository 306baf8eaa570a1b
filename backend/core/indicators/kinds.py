"""Indicator kinds, their input/output shapes, options and lookbacks.

Both backends share this table. The lookback of a kind is the number of
leading inputs consumed before the first output, so an input of length
``N`` always yields ``max(0, N - lookback)`` outputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping

from core.errors import InvalidIndicatorOptionsError, UnsupportedIndicatorError
from core.models.candle import CANDLE_SOURCES


class IndicatorKind(str, Enum):
    SMA = "sma"
    EMA = "ema"
    WMA = "wma"
    DEMA = "dema"
    TEMA = "tema"
    TRIMA = "trima"
    KAMA = "kama"
    HMA = "hma"
    VWMA = "vwma"
    RSI = "rsi"
    ROC = "roc"
    CCI = "cci"
    ATR = "atr"
    MFI = "mfi"
    OBV = "obv"
    AO = "ao"
    ADX = "adx"
    PSAR = "psar"
    BB = "bb"
    BB_TALIB = "bb_talib"
    STOCH = "stoch"
    STOCH_RSI = "stoch_rsi"
    MACD = "macd"
    MACD_EXT = "macd_ext"
    CANDLES = "candles"
    HEIKIN_ASHI = "heikin_ashi"


class OutputShape(str, Enum):
    SCALAR = "scalar"
    BAND = "band"
    CONVERGENCE = "convergence"
    STOCH = "stoch"
    CANDLES = "candles"


# Moving average types accepted by macd_ext legs and bb_talib.
MA_TYPES = ("SMA", "EMA", "DEMA")

VALUES = ("values",)


@dataclass(frozen=True)
class IndicatorDefinition:
    """Static description of an indicator kind.

    Attributes:
        kind: The indicator kind.
        inputs: Candle columns consumed, or ``("values",)`` for kinds that
            run over a single value series.
        shape: Output shape of the produced series.
        defaults: Default options.
        lookback: Function of resolved options returning the lookback.
    """

    kind: IndicatorKind
    inputs: tuple[str, ...]
    shape: OutputShape
    defaults: Mapping[str, Any] = field(default_factory=dict)
    lookback: Callable[[Mapping[str, Any]], int] = lambda options: 0

    @property
    def takes_values(self) -> bool:
        return self.inputs == VALUES


def ma_lookback(period: int, ma_type: str) -> int:
    """Lookback of one moving average leg used by macd_ext/bb_talib."""
    if ma_type == "DEMA":
        return 2 * (period - 1)
    return period - 1


def hma_periods(length: int) -> tuple[int, int]:
    """Return the (half, sqrt) periods of a Hull moving average.

    ``half = floor(n / 2)`` and ``sqrtN = floor(sqrt(n))``, both clamped
    to at least 1.
    """
    return max(1, length // 2), max(1, int(math.floor(math.sqrt(length))))


def _hma_lookback(options: Mapping[str, Any]) -> int:
    length = options["length"]
    half, sqrt_n = hma_periods(length)
    return max(length, half) - 1 + sqrt_n - 1


def _macd_ext_lookback(options: Mapping[str, Any]) -> int:
    fast = ma_lookback(options["fast_period"], options["fast_ma_type"])
    slow = ma_lookback(options["slow_period"], options["slow_ma_type"])
    return max(fast, slow) + ma_lookback(options["signal_period"], options["signal_ma_type"])


_DEFINITIONS: dict[IndicatorKind, IndicatorDefinition] = {
    d.kind: d
    for d in (
        IndicatorDefinition(IndicatorKind.SMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: o["length"] - 1),
        IndicatorDefinition(IndicatorKind.EMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: 0),
        IndicatorDefinition(IndicatorKind.WMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: o["length"] - 1),
        IndicatorDefinition(
            IndicatorKind.DEMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: 2 * (o["length"] - 1)
        ),
        IndicatorDefinition(
            IndicatorKind.TEMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: 3 * (o["length"] - 1)
        ),
        IndicatorDefinition(IndicatorKind.TRIMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: o["length"] - 1),
        IndicatorDefinition(IndicatorKind.KAMA, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: o["length"] - 1),
        IndicatorDefinition(IndicatorKind.HMA, VALUES, OutputShape.SCALAR, {"length": 9}, _hma_lookback),
        IndicatorDefinition(
            IndicatorKind.VWMA, ("close", "volume"), OutputShape.SCALAR, {"length": 20}, lambda o: o["length"] - 1
        ),
        IndicatorDefinition(IndicatorKind.RSI, VALUES, OutputShape.SCALAR, {"length": 14}, lambda o: o["length"]),
        IndicatorDefinition(IndicatorKind.ROC, VALUES, OutputShape.SCALAR, {"length": 9}, lambda o: o["length"]),
        IndicatorDefinition(
            IndicatorKind.CCI,
            ("high", "low", "close"),
            OutputShape.SCALAR,
            {"length": 20},
            lambda o: 2 * (o["length"] - 1),
        ),
        IndicatorDefinition(
            IndicatorKind.ATR, ("high", "low", "close"), OutputShape.SCALAR, {"length": 14}, lambda o: o["length"] - 1
        ),
        IndicatorDefinition(
            IndicatorKind.MFI,
            ("high", "low", "close", "volume"),
            OutputShape.SCALAR,
            {"length": 14},
            lambda o: o["length"],
        ),
        IndicatorDefinition(IndicatorKind.OBV, ("close", "volume"), OutputShape.SCALAR, {}, lambda o: 0),
        IndicatorDefinition(IndicatorKind.AO, ("high", "low"), OutputShape.SCALAR, {}, lambda o: 33),
        IndicatorDefinition(
            IndicatorKind.ADX,
            ("high", "low", "close"),
            OutputShape.SCALAR,
            {"length": 14},
            lambda o: 2 * (o["length"] - 1),
        ),
        IndicatorDefinition(
            IndicatorKind.PSAR, ("high", "low"), OutputShape.SCALAR, {"step": 0.02, "max": 0.2}, lambda o: 1
        ),
        IndicatorDefinition(
            IndicatorKind.BB, VALUES, OutputShape.BAND, {"length": 20, "stddev": 2.0}, lambda o: o["length"] - 1
        ),
        IndicatorDefinition(
            IndicatorKind.BB_TALIB,
            VALUES,
            OutputShape.BAND,
            {"length": 20, "stddev": 2.0, "ma_type": "SMA"},
            lambda o: ma_lookback(o["length"], o["ma_type"]),
        ),
        IndicatorDefinition(
            IndicatorKind.STOCH,
            ("high", "low", "close"),
            OutputShape.STOCH,
            {"length": 14, "k": 3, "d": 3},
            lambda o: o["length"] + o["k"] + o["d"] - 3,
        ),
        IndicatorDefinition(
            IndicatorKind.STOCH_RSI,
            VALUES,
            OutputShape.STOCH,
            {"rsi_length": 14, "stoch_length": 14, "k": 3, "d": 3},
            lambda o: o["rsi_length"] + o["stoch_length"] + o["k"] + o["d"] - 3,
        ),
        IndicatorDefinition(
            IndicatorKind.MACD,
            VALUES,
            OutputShape.CONVERGENCE,
            {"fast_length": 12, "slow_length": 26, "signal_length": 9},
            lambda o: o["slow_length"] - 1,
        ),
        IndicatorDefinition(
            IndicatorKind.MACD_EXT,
            VALUES,
            OutputShape.CONVERGENCE,
            {"fast_period": 12, "slow_period": 26, "signal_period": 9, "default_ma_type": "EMA"},
            _macd_ext_lookback,
        ),
        IndicatorDefinition(IndicatorKind.CANDLES, ("candles",), OutputShape.CANDLES, {}, lambda o: 0),
        IndicatorDefinition(
            IndicatorKind.HEIKIN_ASHI, ("open", "high", "low", "close"), OutputShape.CANDLES, {}, lambda o: 0
        ),
    )
}

_INT_OPTIONS = (
    "length",
    "k",
    "d",
    "fast_length",
    "slow_length",
    "signal_length",
    "fast_period",
    "slow_period",
    "signal_period",
    "rsi_length",
    "stoch_length",
)


def parse_kind(kind: IndicatorKind | str) -> IndicatorKind:
    """Normalise a kind name.

    Raises:
        UnsupportedIndicatorError: If the kind is unknown.
    """
    if isinstance(kind, IndicatorKind):
        return kind
    try:
        return IndicatorKind(str(kind).lower())
    except ValueError:
        raise UnsupportedIndicatorError(str(kind)) from None


def get_definition(kind: IndicatorKind | str) -> IndicatorDefinition:
    return _DEFINITIONS[parse_kind(kind)]


def supported_kinds() -> list[IndicatorKind]:
    return list(_DEFINITIONS)


def resolve_options(kind: IndicatorKind | str, options: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    """Merge options with the kind's defaults and validate them.

    macd_ext legs without an explicit MA type inherit ``default_ma_type``.
    Reserved options (``source``, ``field``, ``include_forming``) pass
    through untouched.

    Returns:
        Read-only mapping of resolved options.

    Raises:
        UnsupportedIndicatorError: If the kind is unknown.
        InvalidIndicatorOptionsError: If an option is malformed.
    """
    definition = get_definition(kind)
    resolved: dict[str, Any] = dict(definition.defaults)
    resolved.update(options or {})

    for name in _INT_OPTIONS:
        if name not in resolved:
            continue
        value = resolved[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value or value < 1:
            raise InvalidIndicatorOptionsError(
                f"{definition.kind.value}: option '{name}' must be a positive integer, got {value!r}"
            )
        resolved[name] = int(value)

    if "stddev" in resolved:
        stddev = resolved["stddev"]
        if isinstance(stddev, bool) or not isinstance(stddev, (int, float)) or stddev <= 0:
            raise InvalidIndicatorOptionsError(
                f"{definition.kind.value}: option 'stddev' must be positive, got {stddev!r}"
            )
        resolved["stddev"] = float(stddev)

    if definition.kind == IndicatorKind.MACD:
        if resolved["slow_length"] < 2 or resolved["slow_length"] < resolved["fast_length"]:
            raise InvalidIndicatorOptionsError(
                "macd: slow_length must be at least 2 and not shorter than fast_length"
            )

    if definition.kind == IndicatorKind.ADX and resolved["length"] < 2:
        raise InvalidIndicatorOptionsError("adx: length must be at least 2")

    if definition.kind == IndicatorKind.PSAR:
        for name in ("step", "max"):
            value = resolved[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise InvalidIndicatorOptionsError(f"psar: option '{name}' must be positive, got {value!r}")
            resolved[name] = float(value)
        if resolved["max"] <= resolved["step"]:
            raise InvalidIndicatorOptionsError("psar: max must be greater than step")

    if definition.kind == IndicatorKind.MACD_EXT:
        default_type = str(resolved.get("default_ma_type", "EMA")).upper()
        for leg in ("fast", "slow", "signal"):
            resolved[f"{leg}_ma_type"] = str(resolved.get(f"{leg}_ma_type", default_type)).upper()
        resolved["default_ma_type"] = default_type
        if resolved["slow_period"] < resolved["fast_period"]:
            # Legs are swapped so the slow leg always has the longer period.
            resolved["fast_period"], resolved["slow_period"] = resolved["slow_period"], resolved["fast_period"]
            resolved["fast_ma_type"], resolved["slow_ma_type"] = resolved["slow_ma_type"], resolved["fast_ma_type"]

    for name in ("ma_type", "fast_ma_type", "slow_ma_type", "signal_ma_type", "default_ma_type"):
        if name in resolved:
            resolved[name] = str(resolved[name]).upper()
            if resolved[name] not in MA_TYPES:
                raise InvalidIndicatorOptionsError(
                    f"{definition.kind.value}: option '{name}' must be one of {MA_TYPES}, got {resolved[name]!r}"
                )

    source = resolved.get("source", "close")
    if source not in CANDLE_SOURCES:
        raise InvalidIndicatorOptionsError(
            f"{definition.kind.value}: option 'source' must be one of {CANDLE_SOURCES}, got {source!r}"
        )

    return MappingProxyType(resolved)


def lookback(kind: IndicatorKind | str, options: Mapping[str, Any] | None = None) -> int:
    """Number of leading inputs consumed before the first output."""
    definition = get_definition(kind)
    return definition.lookback(resolve_options(definition.kind, options))
