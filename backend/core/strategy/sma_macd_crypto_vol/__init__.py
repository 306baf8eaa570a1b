"""SMA + MACD crypto volatility strategy package.

Importing this package triggers strategy registration via the
@register_strategy decorator on SmaMacdCryptoVolStrategy.
"""

from core.strategy.sma_macd_crypto_vol.generator import ScoreBreakdown, SmaMacdCryptoVolStrategy
from core.strategy.sma_macd_crypto_vol.models import (
    SMA_MACD_CRYPTO_VOL_STRATEGY_NAME,
    SmaMacdCryptoVolConfig,
)

__all__ = [
    "SmaMacdCryptoVolStrategy",
    "SmaMacdCryptoVolConfig",
    "ScoreBreakdown",
    "SMA_MACD_CRYPTO_VOL_STRATEGY_NAME",
]
