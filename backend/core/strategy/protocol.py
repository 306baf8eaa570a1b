"""Strategy protocol defining the interface all strategies must implement.

A strategy is a stateful evaluator owned by exactly one (symbol,
strategy name) pair. It declares its indicators once, then is evaluated
once per new closed candle of its primary timeframe.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from core.indicators.builder import IndicatorBuilder
from core.models.signal import SignalResult
from core.models.state import StrategyState
from core.strategy.period import IndicatorPeriod


@runtime_checkable
class Strategy(Protocol):
    """Protocol that all trading strategies must implement."""

    @property
    def name(self) -> str:
        """Unique strategy identifier (e.g., 'unified_macd_cci')."""
        ...

    @property
    def version(self) -> str:
        """Strategy version string (e.g., '2.0.0')."""
        ...

    @property
    def timeframe(self) -> str:
        """Primary timeframe evaluated on every closed candle."""
        ...

    @property
    def state(self) -> StrategyState:
        """Current persistent state."""
        ...

    def load_state(self, state: StrategyState | None) -> None:
        """Replace the persistent state, e.g. after a restart."""
        ...

    def get_options(self) -> dict[str, Any]:
        """Effective options including defaults."""
        ...

    def declare_indicators(
        self,
        builder: IndicatorBuilder,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        """Register every indicator the strategy reads. Called once."""
        ...

    def evaluate(
        self,
        period: IndicatorPeriod,
        options: Mapping[str, Any] | None = None,
    ) -> SignalResult:
        """Evaluate one closed candle.

        Reads and mutates the strategy's own state. Evaluating the same
        closed candle twice is a no-op returning an empty signal.
        """
        ...
