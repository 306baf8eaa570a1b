"""CCI swing strategy package.

Importing this package triggers strategy registration via the
@register_strategy decorator on CciStrategy.
"""

from core.strategy.cci.generator import CciStrategy
from core.strategy.cci.models import CCI_STRATEGY_NAME, CciConfig

__all__ = [
    "CciStrategy",
    "CciConfig",
    "CCI_STRATEGY_NAME",
]
