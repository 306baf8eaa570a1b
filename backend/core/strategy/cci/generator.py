"""CCI swing strategy implementation.

Trend-filtered CCI reversal:
- LONG: price above EMA(200), CCI crosses up through -100 and the lowest
  CCI of the previous 10 closed candles reached -150
- SHORT: mirrored around +100 / +150 with price below the EMA
- CLOSE: CCI crosses back through the entry level against the side held
  after the previous tick
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from core.indicators.builder import IndicatorBuilder
from core.indicators.series import is_finite, tail_values
from core.models.signal import Side, SignalResult
from core.strategy.base import REASON_INSUFFICIENT, REASON_INVALID_VALUES, StatefulStrategy
from core.strategy.cci.models import CCI_STRATEGY_NAME, CciConfig
from core.strategy.period import IndicatorPeriod
from core.strategy.registry import register_strategy

logger = logging.getLogger(__name__)


@register_strategy(CCI_STRATEGY_NAME)
class CciStrategy(StatefulStrategy[CciConfig]):
    """CCI swing entries filtered by a long EMA trend."""

    config_class = CciConfig
    decision_tag = "CCI_DECISION"

    def declare_indicators(
        self,
        builder: IndicatorBuilder,
        options: CciConfig | Mapping[str, Any] | None = None,
    ) -> None:
        config = self.resolve_options(options)
        builder.add(
            "cci", "cci", config.period, {"length": config.cci_length}, history=config.swing_lookback + 1
        )
        builder.add("ema200", "ema", config.period, {"length": config.trend_ema_length})

    def evaluate(
        self,
        period: IndicatorPeriod,
        options: CciConfig | Mapping[str, Any] | None = None,
    ) -> SignalResult:
        config = self.resolve_options(options)

        skipped = self.guard_candle(period)
        if skipped is not None:
            return skipped
        candle_ts = period.candle_ts

        # previous swing window + current value
        cci = tail_values(period.get_indicator("cci"), config.swing_lookback + 1)
        ema = tail_values(period.get_indicator("ema200"), 1)
        if cci is None or ema is None:
            return self.skip(candle_ts, REASON_INSUFFICIENT)

        price = period.get_price()
        current_cci, previous_cci = cci[-1], cci[-2]
        swing_window = cci[:-1]
        if not is_finite(price, ema[0], *cci):
            return self.skip(candle_ts, REASON_INVALID_VALUES, cci=current_cci, ema200=ema[0], price=price)

        state = self.state.model_copy(deep=True)
        state.bar_index += 1
        state.last_evaluated_candle_ts = candle_ts
        self.commit(state)

        last_signal = period.get_last_signal()
        entry, swing = config.entry_threshold, config.swing_threshold
        debug: dict[str, Any] = {
            "candle_ts": candle_ts,
            "price": price,
            "cci": current_cci,
            "prev_cci": previous_cci,
            "ema200": ema[0],
            "last_signal": last_signal.value if last_signal else None,
            "trigger_swing_value": None,
        }
        long_allowed = price > ema[0]
        short_allowed = price < ema[0]
        blockers = {
            "longTrendFilter": not long_allowed,
            "shortTrendFilter": not short_allowed,
        }

        if last_signal == Side.LONG and previous_cci > entry and current_cci < entry:
            debug["exit_reason"] = "exit_long"
            return self.decide("EXIT", Side.CLOSE, blockers, debug, period.symbol)
        if last_signal == Side.SHORT and previous_cci < -entry and current_cci > -entry:
            debug["exit_reason"] = "exit_short"
            return self.decide("EXIT", Side.CLOSE, blockers, debug, period.symbol)

        if long_allowed and last_signal != Side.LONG and previous_cci < -entry < current_cci:
            lowest = min(swing_window)
            if lowest <= -swing:
                debug["trigger_swing_value"] = lowest
                return self.decide("ENTER_LONG", Side.LONG, blockers, debug, period.symbol)

        if short_allowed and last_signal != Side.SHORT and previous_cci > entry > current_cci:
            highest = max(swing_window)
            if highest >= swing:
                debug["trigger_swing_value"] = highest
                return self.decide("ENTER_SHORT", Side.SHORT, blockers, debug, period.symbol)

        return self.decide("NO_TRADE", None, blockers, debug, period.symbol)
