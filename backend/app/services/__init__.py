"""Candle feeds, strategy runner and replay services."""

from app.services.candle_aggregator import aggregate_candles
from app.services.candle_feed import CachedCandleFeed, CandleFeed, InMemoryCandleFeed
from app.services.replay import ReplayResult, ReplayStep, ReplaySummary, replay
from app.services.strategy_runner import StrategyInstance, StrategyRunner

__all__ = [
    "aggregate_candles",
    "CandleFeed",
    "InMemoryCandleFeed",
    "CachedCandleFeed",
    "StrategyInstance",
    "StrategyRunner",
    "replay",
    "ReplayResult",
    "ReplayStep",
    "ReplaySummary",
]
