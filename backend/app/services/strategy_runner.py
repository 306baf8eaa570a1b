"""Strategy runner: drives registered strategies over live candle feeds.

One ``StrategyInstance`` exists per (symbol, strategy name). Each tick of
an instance runs under its own lock:

1. Load the persisted state (first tick only)
2. Fetch candles for every declared timeframe
3. Build the indicator period and evaluate
4. Record the emitted side in the state and save it

Instances share nothing mutable, so ``tick_all`` evaluates them
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from app.config import Settings, configure_logging
from app.instances import InstanceConfig, load_instances
from app.services.candle_feed import CachedCandleFeed, CandleFeed
from app.storage.redis_state_store import RedisStateStore
from app.storage.state_store import InMemoryStateStore, StateStore
from app.storage.ttl_cache import TTLCache
from core.errors import ConfigurationError
from core.indicators.backends import default_backend
from core.indicators.builder import IndicatorBuilder
from core.indicators.engine import IndicatorEngine
from core.models.signal import Side, SignalResult
from core.strategy import Strategy, build_period, create_strategy

logger = logging.getLogger(__name__)


@dataclass
class StrategyInstance:
    """A strategy bound to one symbol."""

    symbol: str
    strategy: Strategy
    builder: IndicatorBuilder
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    state_loaded: bool = False
    last_result: SignalResult | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.symbol, self.strategy.name)

    @property
    def last_signal(self) -> Side | None:
        return self.strategy.state.last_signal

    def fetch_plan(self) -> dict[str, int]:
        """Candles to fetch per timeframe, primary timeframe first."""
        timeframes = dict.fromkeys([self.strategy.timeframe, *self.builder.timeframes()])
        return {tf: self.builder.warmup(tf) + 1 for tf in timeframes}


class StrategyRunner:
    """Evaluates strategy instances against a candle feed."""

    def __init__(
        self,
        feed: CandleFeed,
        state_store: StateStore | None = None,
        engine: IndicatorEngine | None = None,
    ):
        self.feed = feed
        self.state_store = state_store if state_store is not None else InMemoryStateStore()
        self.engine = engine if engine is not None else IndicatorEngine()
        self._instances: dict[tuple[str, str], StrategyInstance] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        feed: CandleFeed,
        instances: list[InstanceConfig] | None = None,
    ) -> "StrategyRunner":
        """Wire logging, backend, state store and candle cache from settings.

        Instances are read from ``settings.instances_file`` unless given.
        """
        configure_logging(settings.log_level)
        if instances is None:
            instances = load_instances(settings.instances_file).instances
        engine = IndicatorEngine(
            default_backend(settings.indicator_backend),
            offload_native=settings.offload_native,
        )
        if settings.state_store == "redis":
            store: StateStore = RedisStateStore.from_url(
                settings.redis_url, key_prefix=settings.state_key_prefix
            )
        else:
            store = InMemoryStateStore()
        if settings.candle_cache_ttl > 0:
            feed = CachedCandleFeed(feed, TTLCache(settings.candle_cache_ttl))

        runner = cls(feed, store, engine)
        for inst in instances:
            if inst.enabled:
                runner.add_instance(inst.symbol, inst.strategy, inst.options)
        return runner

    # =========================================================================
    # Instances
    # =========================================================================

    def add_instance(
        self,
        symbol: str,
        strategy_name: str,
        options: Mapping[str, Any] | None = None,
    ) -> StrategyInstance:
        """Create and register a strategy instance for a symbol.

        Raises:
            KeyError: If the strategy is not registered.
            ConfigurationError: If the pair already exists or the options
                or declared indicators are invalid.
        """
        key = (symbol, strategy_name)
        if key in self._instances:
            raise ConfigurationError(f"Instance {symbol}/{strategy_name} already exists")

        strategy = create_strategy(strategy_name, config=dict(options or {}))
        builder = IndicatorBuilder()
        strategy.declare_indicators(builder)
        builder.resolve_order()

        instance = StrategyInstance(symbol=symbol, strategy=strategy, builder=builder)
        self._instances[key] = instance
        logger.info(
            "Added %s for %s (%s, %d indicators)",
            strategy_name,
            symbol,
            strategy.timeframe,
            len(builder),
        )
        return instance

    def get_instance(self, symbol: str, strategy_name: str) -> StrategyInstance:
        try:
            return self._instances[(symbol, strategy_name)]
        except KeyError:
            raise KeyError(f"No instance {symbol}/{strategy_name}") from None

    @property
    def instances(self) -> list[StrategyInstance]:
        return list(self._instances.values())

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def tick(
        self,
        symbol: str,
        strategy_name: str,
        price: float | None = None,
        now: int | None = None,
    ) -> SignalResult:
        """Evaluate one instance on the latest candles."""
        instance = self.get_instance(symbol, strategy_name)
        async with instance.lock:
            return await self._tick(instance, price, now)

    async def _tick(self, instance: StrategyInstance, price: float | None, now: int | None) -> SignalResult:
        strategy = instance.strategy
        if not instance.state_loaded:
            strategy.load_state(await self.state_store.load(instance.symbol, strategy.name))
            instance.state_loaded = True

        candles = {}
        for tf, limit in instance.fetch_plan().items():
            candles[tf] = await self.feed.fetch_closed_candles(instance.symbol, tf, limit)

        period = await build_period(
            instance.builder,
            self.engine,
            candles,
            symbol=instance.symbol,
            timeframe=strategy.timeframe,
            price=price,
            last_signal=strategy.state.last_signal,
            now=now,
        )
        result = strategy.evaluate(period)
        if result.signal is not None:
            strategy.load_state(strategy.state.model_copy(update={"last_signal": result.signal}))

        await self.state_store.save(instance.symbol, strategy.name, strategy.state)
        instance.last_result = result
        return result

    async def tick_all(
        self,
        now: int | None = None,
    ) -> dict[tuple[str, str], SignalResult]:
        """Evaluate every instance concurrently.

        A failing instance is logged and left out of the result; the
        others still run.
        """
        instances = self.instances
        results = await asyncio.gather(
            *(self.tick(inst.symbol, inst.strategy.name, now=now) for inst in instances),
            return_exceptions=True,
        )
        out: dict[tuple[str, str], SignalResult] = {}
        for inst, result in zip(instances, results):
            if isinstance(result, BaseException):
                logger.error("Tick failed for %s/%s: %s", inst.symbol, inst.strategy.name, result)
                continue
            out[inst.key] = result
        return out
