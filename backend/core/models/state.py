"""Persistent per (symbol, strategy) decision state."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from core.models.signal import Side


class Regime(str, Enum):
    """Directional bias of a strategy, independent of any open position."""

    NONE = "none"
    LONG = "long"
    SHORT = "short"


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class Position(BaseModel):
    """An open position tracked by the strategy itself."""

    side: PositionSide
    entry_price: float
    stop_loss: float
    take_profit1: float
    take_profit2: float
    tp1_hit: bool = False
    bars_since_entry: int = 0

    @property
    def risk(self) -> float:
        """Current distance between entry and stop (R once at entry)."""
        return abs(self.entry_price - self.stop_loss)

    def stop_touched(self, price: float) -> bool:
        if self.side == PositionSide.LONG:
            return price <= self.stop_loss
        return price >= self.stop_loss

    def tp1_touched(self, price: float) -> bool:
        if self.side == PositionSide.LONG:
            return price >= self.take_profit1
        return price <= self.take_profit1

    def tp2_touched(self, price: float) -> bool:
        if self.side == PositionSide.LONG:
            return price >= self.take_profit2
        return price <= self.take_profit2


class StrategyState(BaseModel):
    """State owned by exactly one strategy instance for one symbol.

    Attributes:
        regime: Regime computed on the last evaluated candle.
        position: Open position, or None when flat.
        extreme_reached: Oscillator reached the extreme threshold in the
            regime's direction and an entry cross is armed.
        extreme_value: Oscillator value that armed the extreme.
        last_loss_bar: ``bar_index`` of the last stop-loss exit.
        last_evaluated_candle_ts: Time of the last evaluated closed candle.
            Only moves forward.
        bar_index: Number of candles evaluated so far.
        last_signal: Side of the last non-empty signal, handed back to the
            strategy on the next tick.
        cooldown_until_ts: No entry on candles at or before this time.
        trade_day: UTC date (ISO format) that ``trades_today`` counts.
        trades_today: Entries taken on ``trade_day``.
    """

    regime: Regime = Regime.NONE
    position: Position | None = None
    extreme_reached: bool = False
    extreme_value: float | None = None
    last_loss_bar: int | None = None
    last_evaluated_candle_ts: int | None = None
    bar_index: int = 0
    last_signal: Side | None = None
    cooldown_until_ts: int | None = None
    trade_day: str | None = None
    trades_today: int = 0

    @property
    def is_flat(self) -> bool:
        return self.position is None

    def bars_since_loss(self) -> int | None:
        if self.last_loss_bar is None:
            return None
        return self.bar_index - self.last_loss_bar
