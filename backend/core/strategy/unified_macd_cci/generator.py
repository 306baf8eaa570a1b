"""Unified MACD + CCI strategy implementation.

Combines a slow-timeframe regime with fast-timeframe entry timing:
- Regime: HMA vs trend SMA plus MACD histogram sign on the 1h chart
- Entry: CCI reaches an extreme in the regime's direction, then crosses
  back through a tighter threshold on the 15m chart
- Risk: ATR based stop, TP1 at 1R (stop to breakeven), TP2 at 2.5R,
  regime flip / MACD flip / max bars exits, cooldown after a loss,
  entries skipped while ATR runs hot against its own average

This module is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from core.indicators.builder import IndicatorBuilder
from core.indicators.series import is_finite, tail_values
from core.models.signal import Side, SignalResult
from core.models.state import Position, PositionSide, Regime, StrategyState
from core.strategy.base import REASON_INSUFFICIENT, REASON_INVALID_VALUES, StatefulStrategy
from core.strategy.period import IndicatorPeriod
from core.strategy.registry import register_strategy
from core.strategy.unified_macd_cci.models import (
    ATR_KEY,
    ATR_SMA_KEY,
    BLOCKERS,
    CCI_KEY,
    HMA_KEY,
    MACD_KEY,
    TREND_SMA_KEY,
    UNIFIED_MACD_CCI_STRATEGY_NAME,
    UnifiedMacdCciConfig,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values read for one evaluated candle."""

    macd_histogram: float
    prev_macd_histogram: float
    hma: float
    trend_sma: float
    cci: float
    prev_cci: float
    atr: float
    atr_sma: float

    def is_finite(self) -> bool:
        return is_finite(*asdict(self).values())

    def as_debug(self) -> dict[str, float]:
        values = asdict(self)
        values["hma_vs_sma"] = self.hma - self.trend_sma
        return values


def determine_regime(hma: float, trend_sma: float, macd_histogram: float) -> Regime:
    """Regime from trend (HMA vs SMA) and momentum (MACD histogram).

    LONG needs HMA >= SMA and a positive histogram, SHORT needs HMA < SMA
    and a negative histogram; anything else is NONE.
    """
    if hma >= trend_sma and macd_histogram > 0:
        return Regime.LONG
    if hma < trend_sma and macd_histogram < 0:
        return Regime.SHORT
    return Regime.NONE


def position_size(balance: float, stop_distance: float, risk_fraction: float) -> float:
    """Units to trade so that a stop-out loses ``risk_fraction`` of balance."""
    if stop_distance <= 0:
        return 0.0
    return balance * risk_fraction / stop_distance


@register_strategy(UNIFIED_MACD_CCI_STRATEGY_NAME)
class UnifiedMacdCciStrategy(StatefulStrategy[UnifiedMacdCciConfig]):
    """Regime + CCI timing strategy with ATR risk management.

    Exit priority while in a position (first match wins):
    1. Stop loss touched
    2. TP2 touched
    3. Regime flipped against the position
    4. MACD histogram changed sign
    5. Max bars in trade reached

    TP1 never closes; it moves the stop to the entry price once.
    """

    strategy_version = "2.0.0"
    config_class = UnifiedMacdCciConfig
    decision_tag = "UNIFIED_DECISION"

    def declare_indicators(
        self,
        builder: IndicatorBuilder,
        options: UnifiedMacdCciConfig | Mapping[str, Any] | None = None,
    ) -> None:
        config = self.resolve_options(options)
        slow_tf = config.regime_timeframe
        fast_tf = config.period

        if config.macd_kind == "macd_ext":
            builder.add(
                MACD_KEY,
                "macd_ext",
                slow_tf,
                {
                    "fast_period": config.macd_fast,
                    "slow_period": config.macd_slow,
                    "signal_period": config.macd_signal,
                    "default_ma_type": config.macd_ma_type,
                },
            )
        else:
            builder.add(
                MACD_KEY,
                "macd",
                slow_tf,
                {
                    "fast_length": config.macd_fast,
                    "slow_length": config.macd_slow,
                    "signal_length": config.macd_signal,
                },
            )
        builder.add(HMA_KEY, "hma", slow_tf, {"length": config.hma_length})
        builder.add(TREND_SMA_KEY, "sma", slow_tf, {"length": config.trend_sma_length})

        builder.add(CCI_KEY, "cci", fast_tf, {"length": config.cci_length})
        builder.add(ATR_KEY, "atr", fast_tf, {"length": config.atr_length})
        builder.add(ATR_SMA_KEY, "sma", fast_tf, {"length": config.atr_sma_length}, source_indicator_key=ATR_KEY)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        period: IndicatorPeriod,
        options: UnifiedMacdCciConfig | Mapping[str, Any] | None = None,
    ) -> SignalResult:
        config = self.resolve_options(options)

        skipped = self.guard_candle(period)
        if skipped is not None:
            return skipped
        candle_ts = period.candle_ts

        snapshot = self._read_indicators(period)
        if snapshot is None:
            return self.skip(candle_ts, REASON_INSUFFICIENT)
        price = period.get_price()
        if not snapshot.is_finite() or not is_finite(price):
            return self.skip(candle_ts, REASON_INVALID_VALUES, indicators=snapshot.as_debug(), price=price)

        state = self.state.model_copy(deep=True)
        state.bar_index += 1
        state.last_evaluated_candle_ts = candle_ts

        new_regime = determine_regime(snapshot.hma, snapshot.trend_sma, snapshot.macd_histogram)
        blockers = dict.fromkeys(BLOCKERS, False)
        debug: dict[str, Any] = {
            "candle_ts": candle_ts,
            "price": price,
            "regime": state.regime.value,
            "new_regime": new_regime.value,
            **snapshot.as_debug(),
            "cci_extreme_reached": state.extreme_reached,
        }

        if state.position is not None:
            return self._manage_position(state, new_regime, snapshot, price, config, blockers, debug, period)
        return self._look_for_entry(state, new_regime, snapshot, price, config, blockers, debug, period)

    def _read_indicators(self, period: IndicatorPeriod) -> IndicatorSnapshot | None:
        macd = tail_values(period.get_indicator(MACD_KEY), 2, "histogram")
        hma = tail_values(period.get_indicator(HMA_KEY), 1)
        trend_sma = tail_values(period.get_indicator(TREND_SMA_KEY), 1)
        cci = tail_values(period.get_indicator(CCI_KEY), 2)
        atr = tail_values(period.get_indicator(ATR_KEY), 1)
        atr_sma = tail_values(period.get_indicator(ATR_SMA_KEY), 1)
        if macd is None or hma is None or trend_sma is None or cci is None or atr is None or atr_sma is None:
            return None
        return IndicatorSnapshot(
            macd_histogram=macd[1],
            prev_macd_histogram=macd[0],
            hma=hma[0],
            trend_sma=trend_sma[0],
            cci=cci[1],
            prev_cci=cci[0],
            atr=atr[0],
            atr_sma=atr_sma[0],
        )

    # ------------------------------------------------------------------
    # In position: exits, then TP1 breakeven
    # ------------------------------------------------------------------

    def _manage_position(
        self,
        state: StrategyState,
        new_regime: Regime,
        snapshot: IndicatorSnapshot,
        price: float,
        config: UnifiedMacdCciConfig,
        blockers: dict[str, bool],
        debug: dict[str, Any],
        period: IndicatorPeriod,
    ) -> SignalResult:
        position = state.position
        blockers["positionOpen"] = True
        position.bars_since_entry += 1

        exit_reason = self._exit_reason(position, new_regime, snapshot, price, config)
        if exit_reason is not None:
            debug.update(_position_debug(position))
            debug["exit_reason"] = exit_reason
            debug["exit_price"] = price
            if exit_reason == "stop_loss":
                state.last_loss_bar = state.bar_index
                debug["last_loss_bar"] = state.bar_index
            state.position = None
            state.extreme_reached = False
            state.extreme_value = None
            state.regime = new_regime
            self.commit(state)
            return self.decide("EXIT", Side.CLOSE, blockers, debug, period.symbol)

        if not position.tp1_hit and position.tp1_touched(price):
            position.tp1_hit = True
            position.stop_loss = position.entry_price
            debug["tp1_triggered"] = True
            debug["stop_moved_to_breakeven"] = True
            debug["tp1_close_fraction"] = config.tp1_close_fraction

        state.regime = new_regime
        debug.update(_position_debug(position))
        self.commit(state)
        return self.decide("HOLD", None, blockers, debug, period.symbol)

    def _exit_reason(
        self,
        position: Position,
        new_regime: Regime,
        snapshot: IndicatorSnapshot,
        price: float,
        config: UnifiedMacdCciConfig,
    ) -> str | None:
        if position.stop_touched(price):
            return "stop_loss"
        if position.tp2_touched(price):
            return "tp2_hit"
        if new_regime != Regime.NONE and new_regime.value != position.side.value:
            return "regime_flip"
        prev_hist, hist = snapshot.prev_macd_histogram, snapshot.macd_histogram
        if (prev_hist > 0 and hist < 0) or (prev_hist < 0 and hist > 0):
            return "macd_flip"
        if position.bars_since_entry >= config.max_bars_in_trade:
            return "max_bars"
        return None

    # ------------------------------------------------------------------
    # Flat: extreme tracking and entry gates
    # ------------------------------------------------------------------

    def _look_for_entry(
        self,
        state: StrategyState,
        new_regime: Regime,
        snapshot: IndicatorSnapshot,
        price: float,
        config: UnifiedMacdCciConfig,
        blockers: dict[str, bool],
        debug: dict[str, Any],
        period: IndicatorPeriod,
    ) -> SignalResult:
        previous_regime = state.regime
        state.regime = new_regime
        self._track_extreme(state, previous_regime, snapshot.cci, config)
        debug["cci_extreme_reached"] = state.extreme_reached
        debug["cci_extreme_value"] = state.extreme_value

        bars_since_loss = state.bars_since_loss()
        if bars_since_loss is not None and bars_since_loss < config.cooldown_bars:
            blockers["cooldownActive"] = True
            debug["cooldown_remaining"] = config.cooldown_bars - bars_since_loss
        if new_regime == Regime.NONE:
            blockers["noRegime"] = True
        if not state.extreme_reached:
            blockers["noExtreme"] = True
        if snapshot.atr > snapshot.atr_sma * config.volatility_gate_multiplier:
            blockers["volatilityTooHigh"] = True
            debug["atr_ratio"] = snapshot.atr / snapshot.atr_sma if snapshot.atr_sma else math.inf

        for name, reason in (
            ("noRegime", "no_regime"),
            ("cooldownActive", "cooldown"),
            ("noExtreme", "no_extreme"),
            ("volatilityTooHigh", "volatility_too_high"),
        ):
            if blockers[name]:
                debug["entry_blocked"] = reason
                self.commit(state)
                return self.decide("NO_TRADE", None, blockers, debug, period.symbol)

        entry = config.cci_entry_threshold
        if new_regime == Regime.LONG and snapshot.prev_cci < -entry <= snapshot.cci:
            side = PositionSide.LONG
        elif new_regime == Regime.SHORT and snapshot.prev_cci > entry >= snapshot.cci:
            side = PositionSide.SHORT
        else:
            debug["entry_blocked"] = "no_cross"
            self.commit(state)
            return self.decide("NO_TRADE", None, blockers, debug, period.symbol)

        stop_distance = snapshot.atr * config.atr_stop_multiplier
        direction = 1 if side == PositionSide.LONG else -1
        state.position = Position(
            side=side,
            entry_price=price,
            stop_loss=price - direction * stop_distance,
            take_profit1=price + direction * stop_distance * config.tp1_r_multiple,
            take_profit2=price + direction * stop_distance * config.tp2_r_multiple,
            tp1_hit=False,
            bars_since_entry=0,
        )
        state.extreme_reached = False
        state.extreme_value = None

        debug.update(_position_debug(state.position))
        debug["entry_type"] = side.value
        debug["stop_distance"] = stop_distance
        debug["r_value"] = stop_distance
        debug["risk_fraction"] = config.account_risk_fraction
        if config.account_balance is not None:
            debug["position_size"] = position_size(
                config.account_balance, stop_distance, config.account_risk_fraction
            )
        debug["cci_extreme_reached"] = False

        self.commit(state)
        action = "ENTER_LONG" if side == PositionSide.LONG else "ENTER_SHORT"
        return self.decide(action, Side(side.value), blockers, debug, period.symbol)

    @staticmethod
    def _track_extreme(
        state: StrategyState,
        previous_regime: Regime,
        cci: float,
        config: UnifiedMacdCciConfig,
    ) -> None:
        # An armed extreme only belongs to the regime it was seen in.
        if state.regime == Regime.NONE or state.regime != previous_regime:
            state.extreme_reached = False
            state.extreme_value = None
        extreme = config.cci_extreme_threshold
        if (state.regime == Regime.LONG and cci <= -extreme) or (
            state.regime == Regime.SHORT and cci >= extreme
        ):
            state.extreme_reached = True
            state.extreme_value = cci


def _position_debug(position: Position | None) -> dict[str, Any]:
    if position is None:
        return {"position_side": None}
    return {
        "position_side": position.side.value,
        "entry_price": position.entry_price,
        "stop_loss": position.stop_loss,
        "tp1": position.take_profit1,
        "tp2": position.take_profit2,
        "tp1_hit": position.tp1_hit,
        "bars_in_trade": position.bars_since_entry,
    }
