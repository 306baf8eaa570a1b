"""Candle aggregator for generating higher timeframes from base candles.

Aggregation rules:
- Base candles are grouped by the start of their target bucket
- A bucket is complete when it holds every base candle of its period
- The trailing bucket may be incomplete: it is emitted as forming
- An incomplete bucket anywhere else is a gap: discarded and logged
"""

from __future__ import annotations

import logging
from typing import Sequence

from core.errors import ConfigurationError
from core.models.candle import Candle
from core.models.timeframe import bucket_start, timeframe_to_seconds

logger = logging.getLogger(__name__)


def _merge(bucket: list[Candle], start: int, is_closed: bool) -> Candle:
    return Candle(
        time=start,  # Period start time
        open=bucket[0].open,
        high=max(c.high for c in bucket),
        low=min(c.low for c in bucket),
        close=bucket[-1].close,
        volume=sum(c.volume for c in bucket),
        is_closed=is_closed,
    )


def aggregate_candles(
    candles: Sequence[Candle],
    base_timeframe: str,
    target_timeframe: str,
    symbol: str = "",
) -> list[Candle]:
    """Aggregate oldest-first base candles into ``target_timeframe``.

    Args:
        candles: Base candles, oldest first.
        base_timeframe: Timeframe of ``candles``.
        target_timeframe: Timeframe to build; a whole multiple of the base.
        symbol: Used only for log messages.

    Returns:
        Aggregated candles, oldest first. Only the last one may be forming.

    Raises:
        ConfigurationError: If the target is not a multiple of the base.
    """
    base_seconds = timeframe_to_seconds(base_timeframe)
    target_seconds = timeframe_to_seconds(target_timeframe)
    if target_seconds % base_seconds:
        raise ConfigurationError(
            f"Cannot aggregate {base_timeframe} candles into {target_timeframe}"
        )
    if target_seconds == base_seconds:
        return list(candles)

    per_bucket = target_seconds // base_seconds
    buckets: list[tuple[int, list[Candle]]] = []
    for candle in candles:
        start = bucket_start(candle.time, target_timeframe)
        if buckets and buckets[-1][0] == start:
            buckets[-1][1].append(candle)
        else:
            buckets.append((start, [candle]))

    result: list[Candle] = []
    for i, (start, bucket) in enumerate(buckets):
        complete = len(bucket) == per_bucket and all(c.is_closed for c in bucket)
        if complete:
            result.append(_merge(bucket, start, is_closed=True))
        elif i == len(buckets) - 1:
            result.append(_merge(bucket, start, is_closed=False))
        else:
            logger.warning(
                "Incomplete period for %s %s at %d: expected %d, got %d candles",
                symbol,
                target_timeframe,
                start,
                per_bucket,
                len(bucket),
            )
    return result
