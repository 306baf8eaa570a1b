"""Candle sources for the strategy runner.

``CandleFeed.fetch_closed_candles`` returns up to ``limit`` closed candles,
oldest first, optionally followed by one forming candle.
"""

from __future__ import annotations

import bisect
import logging
from typing import Mapping, Protocol, Sequence, runtime_checkable

from app.services.candle_aggregator import aggregate_candles
from app.storage.ttl_cache import TTLCache
from core.models.candle import Candle
from core.models.timeframe import bucket_start, timeframe_to_seconds

logger = logging.getLogger(__name__)


@runtime_checkable
class CandleFeed(Protocol):
    """Source of candle history per (symbol, timeframe)."""

    async def fetch_closed_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        ...


class InMemoryCandleFeed:
    """Feed over preloaded base-timeframe candles.

    Higher timeframes are aggregated on demand. A replay cursor hides every
    base candle after a given time, so the same data can be stepped through
    as if it were arriving live.
    """

    def __init__(self, base_timeframe: str, candles: Mapping[str, Sequence[Candle]] | None = None):
        self.base_timeframe = base_timeframe
        self._candles: dict[str, list[Candle]] = {}
        self._times: dict[str, list[int]] = {}
        self._cursor: int | None = None
        for symbol, series in (candles or {}).items():
            self.load(symbol, series)

    def load(self, symbol: str, candles: Sequence[Candle]) -> None:
        """Replace the base candles of a symbol."""
        ordered = sorted(candles, key=lambda c: c.time)
        self._candles[symbol] = ordered
        self._times[symbol] = [c.time for c in ordered]

    def append(self, symbol: str, candle: Candle) -> None:
        """Add a newer base candle; a candle with the same time replaces it."""
        times = self._times.setdefault(symbol, [])
        candles = self._candles.setdefault(symbol, [])
        if times and candle.time == times[-1]:
            candles[-1] = candle
        elif times and candle.time < times[-1]:
            logger.warning("Ignoring out-of-order candle for %s at %d", symbol, candle.time)
        else:
            candles.append(candle)
            times.append(candle.time)

    def symbols(self) -> list[str]:
        return list(self._candles)

    def base_candles(self, symbol: str) -> list[Candle]:
        """All base candles of a symbol, ignoring the cursor."""
        return list(self._candles.get(symbol, ()))

    @property
    def cursor(self) -> int | None:
        return self._cursor

    def seek(self, time: int | None) -> None:
        """Show only base candles with ``time <= cursor``; None shows all."""
        self._cursor = time

    def _visible(self, symbol: str) -> tuple[list[Candle], list[int]]:
        candles = self._candles.get(symbol, [])
        times = self._times.get(symbol, [])
        if self._cursor is None:
            return candles, times
        end = bisect.bisect_right(times, self._cursor)
        return candles[:end], times[:end]

    async def fetch_closed_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        candles, times = self._visible(symbol)
        if not candles:
            return []

        # Start at a bucket boundary far enough back for ``limit`` closed buckets
        span = timeframe_to_seconds(timeframe) * (limit + 1)
        start = bucket_start(times[-1], timeframe) - span
        window = candles[bisect.bisect_left(times, start):]
        aggregated = aggregate_candles(window, self.base_timeframe, timeframe, symbol)

        forming = aggregated[-1] if aggregated and not aggregated[-1].is_closed else None
        closed = aggregated[:-1] if forming is not None else aggregated
        result = closed[-limit:] if limit > 0 else []
        if forming is not None:
            result.append(forming)
        return result


class CachedCandleFeed:
    """Wraps a feed with a caller-owned TTL cache."""

    def __init__(self, feed: CandleFeed, cache: TTLCache[list[Candle]]):
        self._feed = feed
        self._cache = cache

    async def fetch_closed_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        key = (symbol, timeframe, limit)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)
        candles = await self._feed.fetch_closed_candles(symbol, timeframe, limit)
        self._cache.set(key, list(candles))
        return candles
