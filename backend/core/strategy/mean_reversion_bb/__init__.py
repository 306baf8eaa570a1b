"""Bollinger Band mean reversion strategy package.

Importing this package triggers strategy registration via the
@register_strategy decorator on MeanReversionBBStrategy.
"""

from core.strategy.mean_reversion_bb.generator import MeanReversionBBStrategy
from core.strategy.mean_reversion_bb.models import (
    MEAN_REVERSION_BB_STRATEGY_NAME,
    MeanReversionBBConfig,
)

__all__ = [
    "MeanReversionBBStrategy",
    "MeanReversionBBConfig",
    "MEAN_REVERSION_BB_STRATEGY_NAME",
]
