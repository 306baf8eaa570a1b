"""Technical indicators (pure math, no I/O)."""

from core.indicators.backends import (
    FallbackBackend,
    IndicatorBackend,
    NativeBackend,
    default_backend,
    is_native_available,
    select_backend,
)
from core.indicators.builder import IndicatorBuilder, IndicatorSpec
from core.indicators.engine import IndicatorEngine
from core.indicators.kinds import (
    IndicatorKind,
    OutputShape,
    lookback,
    resolve_options,
    supported_kinds,
)
from core.indicators.series import (
    BandPoint,
    BandSeries,
    CandleSeries,
    ConvergencePoint,
    ConvergenceSeries,
    IndicatorSeries,
    ScalarSeries,
    StochPoint,
    StochSeries,
    is_finite,
)

__all__ = [
    "FallbackBackend",
    "IndicatorBackend",
    "NativeBackend",
    "default_backend",
    "is_native_available",
    "select_backend",
    "IndicatorBuilder",
    "IndicatorSpec",
    "IndicatorEngine",
    "IndicatorKind",
    "OutputShape",
    "lookback",
    "resolve_options",
    "supported_kinds",
    "BandPoint",
    "BandSeries",
    "CandleSeries",
    "ConvergencePoint",
    "ConvergenceSeries",
    "IndicatorSeries",
    "ScalarSeries",
    "StochPoint",
    "StochSeries",
    "is_finite",
]
