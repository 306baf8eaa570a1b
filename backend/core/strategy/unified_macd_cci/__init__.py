"""Unified MACD + CCI strategy package.

Importing this package triggers strategy registration via the
@register_strategy decorator on UnifiedMacdCciStrategy.
"""

from core.strategy.unified_macd_cci.generator import (
    IndicatorSnapshot,
    UnifiedMacdCciStrategy,
    determine_regime,
    position_size,
)
from core.strategy.unified_macd_cci.models import (
    UNIFIED_MACD_CCI_STRATEGY_NAME,
    UnifiedMacdCciConfig,
)

__all__ = [
    "IndicatorSnapshot",
    "UnifiedMacdCciStrategy",
    "determine_regime",
    "position_size",
    "UNIFIED_MACD_CCI_STRATEGY_NAME",
    "UnifiedMacdCciConfig",
]
