"""Strategy plugin system.

Public API:
- Strategy: Protocol that all strategies must implement
- StatefulStrategy: Base class owning option validation and StrategyState
- IndicatorPeriod / build_period: Per-tick evaluation context
- register_strategy: Decorator to register a strategy class
- create_strategy: Factory function to instantiate strategies by name
- list_strategies: Discover all registered strategies
- get_strategy_class: Get strategy class by name without instantiating

Importing this package auto-registers all built-in strategies.
"""

from core.strategy.base import StatefulStrategy
from core.strategy.period import IndicatorPeriod, build_period
from core.strategy.protocol import Strategy
from core.strategy.registry import (
    create_strategy,
    get_strategy_class,
    list_strategies,
    register_strategy,
)

# Import built-in strategies to trigger auto-registration
import core.strategy.unified_macd_cci  # noqa: F401
import core.strategy.cci  # noqa: F401
import core.strategy.mean_reversion_bb  # noqa: F401
import core.strategy.scalp_15m  # noqa: F401
import core.strategy.sma_macd_crypto_vol  # noqa: F401

__all__ = [
    "Strategy",
    "StatefulStrategy",
    "IndicatorPeriod",
    "build_period",
    "register_strategy",
    "create_strategy",
    "list_strategies",
    "get_strategy_class",
]
