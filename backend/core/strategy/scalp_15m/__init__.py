"""15-minute scalping strategy package.

Importing this package triggers strategy registration via the
@register_strategy decorator on Scalp15mStrategy.
"""

from core.strategy.scalp_15m.generator import Scalp15mStrategy
from core.strategy.scalp_15m.models import SCALP_15M_STRATEGY_NAME, Scalp15mConfig

__all__ = [
    "Scalp15mStrategy",
    "Scalp15mConfig",
    "SCALP_15M_STRATEGY_NAME",
]
