"""Indicator output series.

Every indicator kind produces exactly one series type, decided by its
output shape. All series share the alignment rule: ``series[i]``
corresponds to ``candles[i + series.offset]`` of the candles the series
was computed from.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, ClassVar, NamedTuple, Sequence

import numpy as np

from core.models.candle import Candle


def _readonly(values: Any) -> np.ndarray:
    arr = np.array(values, dtype=np.float64, copy=True)
    arr.setflags(write=False)
    return arr


class BandPoint(NamedTuple):
    lower: float
    middle: float
    upper: float
    width: float


class ConvergencePoint(NamedTuple):
    value: float
    signal: float
    histogram: float


class StochPoint(NamedTuple):
    k: float
    d: float


class IndicatorSeries:
    """Common behaviour of all series types."""

    fields: ClassVar[tuple[str, ...]] = ()
    offset: int

    def __len__(self) -> int:
        raise NotImplementedError

    def __getitem__(self, index: int) -> Any:
        raise NotImplementedError

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def last(self, back: int = 0) -> Any | None:
        """Value ``back`` positions before the newest, or None if absent."""
        index = len(self) - 1 - back
        if back < 0 or index < 0:
            return None
        return self[index]

    def at(self, candle_index: int) -> Any | None:
        """Value aligned to ``candles[candle_index]``, or None if not covered."""
        index = candle_index - self.offset
        if index < 0 or index >= len(self):
            return None
        return self[index]

    def column(self, name: str) -> np.ndarray:
        if name not in self.fields:
            raise KeyError(f"{type(self).__name__} has no field '{name}'")
        return getattr(self, name)

    def field(self, name: str) -> ScalarSeries:
        """Project one field as a scalar series with the same offset."""
        return ScalarSeries(self.column(name), self.offset)


@dataclass(frozen=True, eq=False)
class ScalarSeries(IndicatorSeries):
    values: np.ndarray
    offset: int = 0

    fields: ClassVar[tuple[str, ...]] = ("values",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _readonly(self.values))

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> float:
        return float(self.values[index])

    def field(self, name: str) -> ScalarSeries:
        if name not in ("values", "value"):
            raise KeyError(f"ScalarSeries has no field '{name}'")
        return self

    def tolist(self) -> list[float]:
        return self.values.tolist()

    @classmethod
    def empty(cls, offset: int = 0) -> ScalarSeries:
        return cls(np.empty(0), offset)


@dataclass(frozen=True, eq=False)
class BandSeries(IndicatorSeries):
    """Banded output with ``width = (upper - lower) / middle``."""

    lower: np.ndarray
    middle: np.ndarray
    upper: np.ndarray
    offset: int = 0

    fields: ClassVar[tuple[str, ...]] = ("lower", "middle", "upper", "width")

    def __post_init__(self) -> None:
        for name in ("lower", "middle", "upper"):
            object.__setattr__(self, name, _readonly(getattr(self, name)))
        with np.errstate(divide="ignore", invalid="ignore"):
            width = (self.upper - self.lower) / self.middle
        object.__setattr__(self, "width", _readonly(width))

    def __len__(self) -> int:
        return len(self.middle)

    def __getitem__(self, index: int) -> BandPoint:
        return BandPoint(
            float(self.lower[index]),
            float(self.middle[index]),
            float(self.upper[index]),
            float(self.width[index]),
        )

    @classmethod
    def empty(cls, offset: int = 0) -> BandSeries:
        return cls(np.empty(0), np.empty(0), np.empty(0), offset)


@dataclass(frozen=True, eq=False)
class ConvergenceSeries(IndicatorSeries):
    """MACD-style output; ``histogram = value - signal``."""

    value: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray
    offset: int = 0

    fields: ClassVar[tuple[str, ...]] = ("value", "signal", "histogram")

    def __post_init__(self) -> None:
        for name in self.fields:
            object.__setattr__(self, name, _readonly(getattr(self, name)))

    def __len__(self) -> int:
        return len(self.value)

    def __getitem__(self, index: int) -> ConvergencePoint:
        return ConvergencePoint(
            float(self.value[index]),
            float(self.signal[index]),
            float(self.histogram[index]),
        )

    @classmethod
    def empty(cls, offset: int = 0) -> ConvergenceSeries:
        return cls(np.empty(0), np.empty(0), np.empty(0), offset)


@dataclass(frozen=True, eq=False)
class StochSeries(IndicatorSeries):
    k: np.ndarray
    d: np.ndarray
    offset: int = 0

    fields: ClassVar[tuple[str, ...]] = ("k", "d")

    def __post_init__(self) -> None:
        for name in self.fields:
            object.__setattr__(self, name, _readonly(getattr(self, name)))

    def __len__(self) -> int:
        return len(self.k)

    def __getitem__(self, index: int) -> StochPoint:
        return StochPoint(float(self.k[index]), float(self.d[index]))

    @classmethod
    def empty(cls, offset: int = 0) -> StochSeries:
        return cls(np.empty(0), np.empty(0), offset)


@dataclass(frozen=True, eq=False)
class CandleSeries(IndicatorSeries):
    """Passthrough of the raw candles an indicator was declared on."""

    candles: tuple[Candle, ...]
    offset: int = 0

    fields: ClassVar[tuple[str, ...]] = ("open", "high", "low", "close", "volume")

    def __post_init__(self) -> None:
        object.__setattr__(self, "candles", tuple(self.candles))

    def __len__(self) -> int:
        return len(self.candles)

    def __getitem__(self, index: int) -> Candle:
        return self.candles[index]

    def column(self, name: str) -> np.ndarray:
        if name not in self.fields:
            raise KeyError(f"CandleSeries has no field '{name}'")
        return _readonly([getattr(c, name) for c in self.candles])

    @classmethod
    def empty(cls, offset: int = 0) -> CandleSeries:
        return cls((), offset)


def is_finite(*values: float | None) -> bool:
    """True when every value is present and neither NaN nor infinite."""
    return all(v is not None and math.isfinite(v) for v in values)


def tail_values(series: IndicatorSeries, count: int, name: str | None = None) -> list[float] | None:
    """Newest ``count`` values of a series field, oldest first.

    Returns None when fewer than ``count`` values exist. NaN and infinite
    values are returned as is so callers can tell short history from
    corrupt data.
    """
    if len(series) < count:
        return None
    column: Sequence[float]
    if isinstance(series, ScalarSeries):
        column = series.values
    else:
        column = series.column(name or series.fields[0])
    return [float(v) for v in column[len(column) - count :]]
