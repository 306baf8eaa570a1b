"""Historical replay of a strategy over base-timeframe candles.

Steps through the candles in order as if they were arriving live and
evaluates the strategy each time a candle of its primary timeframe
closes.

Usage:
    result = await replay("unified_macd_cci", "BTCUSDT", candles_15m, "15m")
    print(result.summary.signals)
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from app.services.candle_feed import InMemoryCandleFeed
from app.services.strategy_runner import StrategyRunner
from app.storage.state_store import InMemoryStateStore
from core.indicators.engine import IndicatorEngine
from core.models.candle import Candle
from core.models.signal import SignalResult
from core.models.timeframe import timeframe_to_seconds

logger = logging.getLogger(__name__)


@dataclass
class ReplayStep:
    """One evaluated candle."""

    time: int
    close: float
    result: SignalResult

    @property
    def action(self) -> str | None:
        return self.result.debug.get("action")


@dataclass
class ReplaySummary:
    """Aggregate counts over a replay."""

    candles: int = 0
    evaluations: int = 0
    signals: Counter = field(default_factory=Counter)
    exit_reasons: Counter = field(default_factory=Counter)
    skipped: Counter = field(default_factory=Counter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candles": self.candles,
            "evaluations": self.evaluations,
            "signals": dict(self.signals),
            "exit_reasons": dict(self.exit_reasons),
            "skipped": dict(self.skipped),
        }


@dataclass
class ReplayResult:
    steps: list[ReplayStep]
    summary: ReplaySummary

    @property
    def signals(self) -> list[ReplayStep]:
        return [s for s in self.steps if s.result.signal is not None]


async def replay(
    strategy: str,
    symbol: str,
    candles: Sequence[Candle],
    timeframe: str,
    options: Mapping[str, Any] | None = None,
    engine: IndicatorEngine | None = None,
) -> ReplayResult:
    """Replay ``strategy`` over closed base candles of ``timeframe``.

    Args:
        strategy: Registered strategy name.
        symbol: Symbol the candles belong to.
        candles: Base candles, any order; the feed sorts them.
        timeframe: Timeframe of ``candles``; every strategy timeframe must
            be a multiple of it.
        options: Strategy options.
        engine: Indicator engine; the default selects a backend.

    Returns:
        Every evaluation step and the summary.
    """
    feed = InMemoryCandleFeed(timeframe, {symbol: candles})
    runner = StrategyRunner(feed, InMemoryStateStore(), engine)
    instance = runner.add_instance(symbol, strategy, options)

    base_seconds = timeframe_to_seconds(timeframe)
    primary_seconds = timeframe_to_seconds(instance.strategy.timeframe)

    steps: list[ReplayStep] = []
    summary = ReplaySummary()
    for candle in feed.base_candles(symbol):
        summary.candles += 1
        # Evaluate only when this base candle closes a primary bucket
        if (candle.time + base_seconds) % primary_seconds:
            continue
        feed.seek(candle.time)
        result = await runner.tick(symbol, strategy)
        steps.append(ReplayStep(time=candle.time, close=candle.close, result=result))

        if result.reason is not None:
            summary.skipped[result.reason] += 1
            continue
        summary.evaluations += 1
        if result.signal is not None:
            summary.signals[result.signal.value] += 1
        exit_reason = result.debug.get("exit_reason")
        if exit_reason:
            summary.exit_reasons[exit_reason] += 1

    feed.seek(None)
    logger.info(
        "Replayed %s on %s: %d candles, %d evaluations, signals=%s",
        strategy,
        symbol,
        summary.candles,
        summary.evaluations,
        dict(summary.signals),
    )
    return ReplayResult(steps=steps, summary=summary)
