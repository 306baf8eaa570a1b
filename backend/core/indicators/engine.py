"""Indicator engine: turns candles or series into aligned indicator series."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence, Union

import numpy as np

from core.errors import IndicatorComputationError, InvalidIndicatorOptionsError
from core.indicators.backends import FallbackBackend, IndicatorBackend, NativeBackend, default_backend
from core.indicators.kinds import (
    IndicatorDefinition,
    IndicatorKind,
    OutputShape,
    get_definition,
    parse_kind,
    resolve_options,
)
from core.indicators.series import (
    BandSeries,
    CandleSeries,
    ConvergenceSeries,
    IndicatorSeries,
    ScalarSeries,
    StochSeries,
)
from core.models.candle import Candle, candle_column

logger = logging.getLogger(__name__)

Source = Union[Sequence[Candle], Sequence[float], np.ndarray, IndicatorSeries]

_EMPTY_SERIES = {
    OutputShape.SCALAR: ScalarSeries.empty,
    OutputShape.BAND: BandSeries.empty,
    OutputShape.CONVERGENCE: ConvergenceSeries.empty,
    OutputShape.STOCH: StochSeries.empty,
    OutputShape.CANDLES: CandleSeries.empty,
}


class IndicatorEngine:
    """Computes indicator series on top of a selected backend.

    ``compute`` is always awaitable; native calls are run in a worker
    thread when ``offload_native`` is set. ``compute_sync`` gives the same
    result for callers that need a snapshot without an event loop.
    """

    def __init__(
        self,
        backend: FallbackBackend | NativeBackend | IndicatorBackend | None = None,
        *,
        offload_native: bool = True,
    ):
        self.backend = backend if backend is not None else default_backend()
        self.offload_native = offload_native

    async def compute(
        self,
        kind: IndicatorKind | str,
        source: Source,
        options: Mapping[str, Any] | None = None,
    ) -> IndicatorSeries:
        """Compute an indicator series.

        Args:
            kind: Indicator kind.
            source: Candles, a plain value sequence, or another series.
            options: Indicator options; defaults fill the rest.

        Returns:
            Series whose ``offset`` maps it onto the source candles. Empty
            when the source is shorter than the lookback.
        """
        parsed = parse_kind(kind)
        if self.offload_native and self.backend.is_native and self.backend.supports(parsed):
            return await asyncio.to_thread(self.compute_sync, parsed, source, options)
        return self.compute_sync(parsed, source, options)

    def compute_sync(
        self,
        kind: IndicatorKind | str,
        source: Source,
        options: Mapping[str, Any] | None = None,
    ) -> IndicatorSeries:
        definition = get_definition(kind)
        resolved = resolve_options(definition.kind, options)

        if definition.kind == IndicatorKind.CANDLES:
            candles, base_offset = _as_candles(source)
            return CandleSeries(candles, base_offset)

        inputs, base_offset, size = _prepare_inputs(definition, source, resolved)
        lookback = definition.lookback(resolved)
        offset = base_offset + lookback
        if size <= lookback:
            logger.debug(
                "%s not ready: %d inputs, lookback %d", definition.kind.value, size, lookback
            )
            return _EMPTY_SERIES[definition.shape](offset)

        columns = self.backend.compute(definition.kind, inputs, resolved)
        expected = size - lookback
        for column in columns:
            if len(column) != expected:
                raise IndicatorComputationError(
                    f"{self.backend.name} backend returned {len(column)} values for "
                    f"{definition.kind.value}, expected {expected}"
                )
        if definition.shape == OutputShape.CANDLES:
            candles, _ = _as_candles(source)
            return _wrap_candles(candles[lookback:], columns, offset)
        return _wrap(definition.shape, columns, offset)


def _as_candles(source: Source) -> tuple[tuple[Candle, ...], int]:
    if isinstance(source, CandleSeries):
        return source.candles, source.offset
    if isinstance(source, (IndicatorSeries, np.ndarray)):
        raise InvalidIndicatorOptionsError("candles indicator needs a candle source")
    candles = tuple(source)
    if candles and not isinstance(candles[0], Candle):
        raise InvalidIndicatorOptionsError("candles indicator needs a candle source")
    return candles, 0


def _prepare_inputs(
    definition: IndicatorDefinition,
    source: Source,
    options: Mapping[str, Any],
) -> tuple[dict[str, np.ndarray], int, int]:
    """Build the input columns a kind needs.

    Returns:
        Tuple of (inputs by name, offset of the source, input length).
    """
    if isinstance(source, CandleSeries):
        return _candle_inputs(definition, source.candles, options, source.offset)

    if isinstance(source, IndicatorSeries):
        if not definition.takes_values:
            raise InvalidIndicatorOptionsError(
                f"{definition.kind.value} needs candles and cannot run over another indicator"
            )
        if isinstance(source, ScalarSeries):
            values = source.values
        else:
            field = options.get("field")
            if field is None:
                raise InvalidIndicatorOptionsError(
                    f"{definition.kind.value} over a {type(source).__name__} needs a 'field' option "
                    f"(one of {source.fields})"
                )
            try:
                values = source.column(field)
            except KeyError as e:
                raise InvalidIndicatorOptionsError(str(e)) from e
        return {"values": np.asarray(values, dtype=np.float64)}, source.offset, len(values)

    if isinstance(source, np.ndarray):
        return _value_inputs(definition, source)

    items = list(source)
    if items and isinstance(items[0], Candle):
        return _candle_inputs(definition, items, options, 0)
    return _value_inputs(definition, np.asarray(items, dtype=np.float64))


def _candle_inputs(
    definition: IndicatorDefinition,
    candles: Sequence[Candle],
    options: Mapping[str, Any],
    offset: int,
) -> tuple[dict[str, np.ndarray], int, int]:
    if definition.takes_values:
        inputs = {"values": candle_column(candles, options.get("source", "close"))}
    else:
        inputs = {name: candle_column(candles, name) for name in definition.inputs}
    return inputs, offset, len(candles)


def _value_inputs(
    definition: IndicatorDefinition,
    values: np.ndarray,
) -> tuple[dict[str, np.ndarray], int, int]:
    if not definition.takes_values:
        if len(values) == 0:
            return {name: values for name in definition.inputs}, 0, 0
        raise InvalidIndicatorOptionsError(f"{definition.kind.value} needs candles, got plain values")
    return {"values": np.asarray(values, dtype=np.float64)}, 0, len(values)


def _wrap(shape: OutputShape, columns: tuple[np.ndarray, ...], offset: int) -> IndicatorSeries:
    if shape == OutputShape.SCALAR:
        return ScalarSeries(columns[0], offset)
    if shape == OutputShape.BAND:
        lower, middle, upper = columns
        return BandSeries(lower, middle, upper, offset)
    if shape == OutputShape.CONVERGENCE:
        value, signal, histogram = columns
        return ConvergenceSeries(value, signal, histogram, offset)
    if shape == OutputShape.STOCH:
        k, d = columns
        return StochSeries(k, d, offset)
    raise IndicatorComputationError(f"Cannot wrap output shape {shape}")


def _wrap_candles(
    candles: Sequence[Candle], columns: tuple[np.ndarray, ...], offset: int
) -> CandleSeries:
    """Rebuild candles from transformed OHLC columns, keeping time and volume."""
    open_, high, low, close = columns
    return CandleSeries(
        tuple(
            Candle(
                time=c.time,
                open=float(open_[i]),
                high=float(high[i]),
                low=float(low[i]),
                close=float(close[i]),
                volume=c.volume,
                is_closed=c.is_closed,
            )
            for i, c in enumerate(candles)
        ),
        offset,
    )
