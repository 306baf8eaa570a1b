"""Per-tick evaluation context handed to strategies.

An ``IndicatorPeriod`` is built once per tick from the candles of every
declared timeframe. All indicator series are computed up front in
dependency order, so a strategy reading the same key twice within one
tick always sees the same object.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping, Sequence

from core.indicators.builder import IndicatorBuilder
from core.indicators.engine import IndicatorEngine
from core.indicators.series import IndicatorSeries
from core.models.candle import Candle
from core.models.signal import Side
from core.models.timeframe import first_unordered, split_forming

logger = logging.getLogger(__name__)


class IndicatorPeriod:
    """Read-only view of one tick: indicator series, candles, price and the
    previous decision."""

    def __init__(
        self,
        *,
        symbol: str,
        timeframe: str,
        indicators: Mapping[str, IndicatorSeries],
        candles: Mapping[str, Sequence[Candle]],
        forming: Mapping[str, Candle | None] | None = None,
        price: float | None = None,
        last_signal: Side | str | None = None,
        unordered_timeframe: str | None = None,
    ):
        self._symbol = symbol
        self._timeframe = timeframe
        self._indicators = MappingProxyType(dict(indicators))
        self._candles = MappingProxyType({tf: tuple(c) for tf, c in candles.items()})
        self._forming = MappingProxyType(dict(forming or {}))
        self._price = price
        self._last_signal = Side(last_signal) if last_signal is not None else None
        self._unordered_timeframe = unordered_timeframe

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def timeframe(self) -> str:
        """Primary (evaluation) timeframe."""
        return self._timeframe

    @property
    def indicators(self) -> Mapping[str, IndicatorSeries]:
        return self._indicators

    def get_indicator(self, key: str) -> IndicatorSeries:
        """Series computed for a declared indicator key.

        Raises:
            KeyError: If the key was never declared.
        """
        try:
            return self._indicators[key]
        except KeyError:
            raise KeyError(f"Indicator '{key}' was not declared") from None

    def get_lookbacks(self, timeframe: str | None = None, include_forming: bool = False) -> tuple[Candle, ...]:
        """Candles of a timeframe, oldest first.

        The forming candle is appended only when ``include_forming`` is set.
        """
        tf = timeframe or self._timeframe
        closed = self._candles.get(tf, ())
        forming = self._forming.get(tf)
        if include_forming and forming is not None:
            return closed + (forming,)
        return closed

    @property
    def closed_candle(self) -> Candle | None:
        """Newest closed candle of the primary timeframe."""
        closed = self._candles.get(self._timeframe, ())
        return closed[-1] if closed else None

    @property
    def forming_candle(self) -> Candle | None:
        return self._forming.get(self._timeframe)

    @property
    def candle_ts(self) -> int | None:
        candle = self.closed_candle
        return candle.time if candle is not None else None

    def get_price(self) -> float | None:
        """Current price: the explicit tick price, else the last closed close."""
        if self._price is not None:
            return self._price
        candle = self.closed_candle
        return candle.close if candle is not None else None

    def get_last_signal(self) -> Side | None:
        """Side resulting from the previous tick, if any."""
        return self._last_signal

    @property
    def unordered_timeframe(self) -> str | None:
        """Timeframe whose candle times do not strictly increase, if any.

        When set, every indicator series is empty.
        """
        return self._unordered_timeframe


async def build_period(
    builder: IndicatorBuilder,
    engine: IndicatorEngine,
    candles_by_timeframe: Mapping[str, Sequence[Candle]],
    *,
    symbol: str,
    timeframe: str,
    price: float | None = None,
    last_signal: Side | str | None = None,
    now: int | None = None,
) -> IndicatorPeriod:
    """Compute every declared indicator and package the tick context.

    Args:
        builder: Declared indicators.
        engine: Indicator engine.
        candles_by_timeframe: Oldest-first candles per timeframe, the last
            one possibly forming.
        symbol: Symbol being evaluated.
        timeframe: Primary timeframe.
        price: Explicit current price, if known.
        last_signal: Side resulting from the previous tick.
        now: Epoch seconds used to detect forming candles by time.

    Returns:
        The evaluation context.
    """
    closed: dict[str, tuple[Candle, ...]] = {}
    forming: dict[str, Candle | None] = {}
    unordered: str | None = None
    for tf in dict.fromkeys([timeframe, *builder.timeframes()]):
        candles = candles_by_timeframe.get(tf, ())
        index = first_unordered(candles)
        if index is not None and unordered is None:
            logger.warning(
                "Candle times for %s %s do not increase at index %d (%s after %s)",
                symbol,
                tf,
                index,
                candles[index].time,
                candles[index - 1].time,
            )
            unordered = tf
        closed[tf], forming[tf] = split_forming(candles, tf, now)

    series: dict[str, IndicatorSeries] = {}
    for spec in builder.resolve_order():
        if spec.source_indicator_key is not None:
            source = series[spec.source_indicator_key]
        elif unordered is not None:
            source = ()
        elif spec.include_forming and forming[spec.timeframe] is not None:
            source = closed[spec.timeframe] + (forming[spec.timeframe],)
        else:
            source = closed[spec.timeframe]
        series[spec.key] = await engine.compute(spec.kind, source, spec.options)

    logger.debug(
        "Built period for %s %s: %d indicators, %d closed candles",
        symbol,
        timeframe,
        len(series),
        len(closed[timeframe]),
    )
    return IndicatorPeriod(
        symbol=symbol,
        timeframe=timeframe,
        indicators=series,
        candles=closed,
        forming=forming,
        price=price,
        last_signal=last_signal,
        unordered_timeframe=unordered,
    )
