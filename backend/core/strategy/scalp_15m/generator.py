"""15-minute scalping strategy implementation.

- LONG: RSI below ``rsi_oversold`` inside a stacked EMA uptrend
  (fast > medium > slow), positive MACD histogram and ``|CCI|`` beyond
  ``cci_extreme``
- SHORT: mirrored with RSI above ``rsi_overbought`` in a stacked downtrend

Bollinger Bands and MFI are reported for context only.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from core.indicators.builder import IndicatorBuilder
from core.indicators.series import is_finite
from core.models.signal import Side, SignalResult
from core.strategy.base import REASON_INSUFFICIENT, REASON_INVALID_VALUES, StatefulStrategy
from core.strategy.period import IndicatorPeriod
from core.strategy.registry import register_strategy
from core.strategy.scalp_15m.models import SCALP_15M_STRATEGY_NAME, Scalp15mConfig

logger = logging.getLogger(__name__)


@register_strategy(SCALP_15M_STRATEGY_NAME)
class Scalp15mStrategy(StatefulStrategy[Scalp15mConfig]):
    """Momentum scalps on stretched RSI inside an aligned EMA trend."""

    config_class = Scalp15mConfig
    decision_tag = "SCALP_DECISION"

    def declare_indicators(
        self,
        builder: IndicatorBuilder,
        options: Scalp15mConfig | Mapping[str, Any] | None = None,
    ) -> None:
        config = self.resolve_options(options)
        tf = config.period
        builder.add("rsi", "rsi", tf, {"length": config.rsi_length})
        builder.add("ema_fast", "ema", tf, {"length": config.ema_fast})
        builder.add("ema_medium", "ema", tf, {"length": config.ema_medium})
        builder.add("ema_slow", "ema", tf, {"length": config.ema_slow})
        builder.add("bb", "bb", tf, {"length": config.bb_length, "stddev": config.bb_offset})
        builder.add(
            "macd",
            "macd",
            tf,
            {
                "fast_length": config.macd_fast,
                "slow_length": config.macd_slow,
                "signal_length": config.macd_signal,
            },
        )
        builder.add("cci", "cci", tf, {"length": config.cci_length})
        builder.add("mfi", "mfi", tf, {"length": config.mfi_length})

    def evaluate(
        self,
        period: IndicatorPeriod,
        options: Scalp15mConfig | Mapping[str, Any] | None = None,
    ) -> SignalResult:
        config = self.resolve_options(options)

        skipped = self.guard_candle(period)
        if skipped is not None:
            return skipped
        candle_ts = period.candle_ts

        rsi = period.get_indicator("rsi").last()
        ema_fast = period.get_indicator("ema_fast").last()
        ema_medium = period.get_indicator("ema_medium").last()
        ema_slow = period.get_indicator("ema_slow").last()
        bb = period.get_indicator("bb").last()
        macd = period.get_indicator("macd").last()
        cci = period.get_indicator("cci").last()
        mfi = period.get_indicator("mfi").last()
        if None in (rsi, ema_fast, ema_medium, ema_slow, bb, macd):
            return self.skip(candle_ts, REASON_INSUFFICIENT)
        if not is_finite(rsi, ema_fast, ema_medium, ema_slow, macd.histogram):
            return self.skip(candle_ts, REASON_INVALID_VALUES, rsi=rsi)

        state = self.state.model_copy(deep=True)
        state.bar_index += 1
        state.last_evaluated_candle_ts = candle_ts
        self.commit(state)

        price = period.get_price()
        debug: dict[str, Any] = {
            "candle_ts": candle_ts,
            "price": price,
            "rsi": round(rsi, 1),
            "ema_fast": ema_fast,
            "ema_medium": ema_medium,
            "ema_slow": ema_slow,
            "bb_lower": bb.lower,
            "bb_upper": bb.upper,
            "macd_histogram": round(macd.histogram, 4),
            "cci": round(cci, 1) if is_finite(cci) else None,
            "mfi": round(mfi, 1) if is_finite(mfi) else None,
        }

        uptrend = ema_fast > ema_medium > ema_slow
        downtrend = ema_fast < ema_medium < ema_slow
        cci_strong = is_finite(cci) and abs(cci) > config.cci_extreme

        blockers = {
            "rsiNotExtreme": config.rsi_oversold <= rsi <= config.rsi_overbought,
            "emaNotAligned": not (uptrend or downtrend),
            "cciWeak": not cci_strong,
        }

        if rsi < config.rsi_oversold and uptrend and macd.histogram > 0 and cci_strong:
            debug["signal"] = "LONG"
            return self.decide("ENTER_LONG", Side.LONG, blockers, debug, period.symbol)

        if rsi > config.rsi_overbought and downtrend and macd.histogram < 0 and cci_strong:
            debug["signal"] = "SHORT"
            return self.decide("ENTER_SHORT", Side.SHORT, blockers, debug, period.symbol)

        return self.decide("NO_TRADE", None, blockers, debug, period.symbol)
