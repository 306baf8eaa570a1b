"""Signal result model returned by strategies on every tick."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Side(str, Enum):
    """Decision emitted by a strategy."""

    LONG = "long"
    SHORT = "short"
    CLOSE = "close"


class SignalResult(BaseModel):
    """Decision for one evaluated candle.

    ``signal`` is None when the strategy holds or cannot decide. ``debug``
    carries enough context (candle time, regime, indicator values, levels)
    to reconstruct the decision from logs alone.
    """

    model_config = ConfigDict(frozen=True)

    signal: Side | None = None
    debug: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.signal is None

    @property
    def reason(self) -> str | None:
        """Reason an evaluation was skipped, if any."""
        return self.debug.get("reason")


def create_signal(side: Side | str, debug: dict[str, Any] | None = None) -> SignalResult:
    """Build a signal result for a long, short or close decision."""
    return SignalResult(signal=Side(side), debug=dict(debug or {}))


def create_empty_signal(debug: dict[str, Any] | None = None) -> SignalResult:
    """Build a result with no decision."""
    return SignalResult(signal=None, debug=dict(debug or {}))
