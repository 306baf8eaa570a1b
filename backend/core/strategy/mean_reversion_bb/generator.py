"""Bollinger Band mean reversion strategy implementation.

- LONG: close touches the lower band (within tolerance), RSI oversold,
  confirmed by a positive MACD histogram, a CCI extreme, an MFI extreme
  or an oversold Stoch-RSI %K
- SHORT: mirrored at the upper band with RSI overbought and an
  overbought Stoch-RSI %K

The strategy only opens; closing is left to the position manager.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from core.indicators.builder import IndicatorBuilder
from core.indicators.series import is_finite
from core.models.signal import Side, SignalResult
from core.strategy.base import REASON_INSUFFICIENT, REASON_INVALID_VALUES, StatefulStrategy
from core.strategy.mean_reversion_bb.models import (
    MEAN_REVERSION_BB_STRATEGY_NAME,
    MeanReversionBBConfig,
)
from core.strategy.period import IndicatorPeriod
from core.strategy.registry import register_strategy

logger = logging.getLogger(__name__)


def _touches(price: float, level: float, tolerance: float) -> bool:
    return level * (1 - tolerance) <= price <= level * (1 + tolerance)


@register_strategy(MEAN_REVERSION_BB_STRATEGY_NAME)
class MeanReversionBBStrategy(StatefulStrategy[MeanReversionBBConfig]):
    """Fade band touches when momentum is stretched."""

    config_class = MeanReversionBBConfig
    decision_tag = "MEAN_REVERSION_DECISION"

    def declare_indicators(
        self,
        builder: IndicatorBuilder,
        options: MeanReversionBBConfig | Mapping[str, Any] | None = None,
    ) -> None:
        config = self.resolve_options(options)
        tf = config.period
        builder.add("bb", "bb", tf, {"length": config.bb_length, "stddev": config.bb_offset})
        builder.add("rsi", "rsi", tf, {"length": config.rsi_length})
        builder.add("cci", "cci", tf, {"length": config.cci_length})
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
        builder.add("mfi", "mfi", tf, {"length": config.mfi_length})
        builder.add(
            "stoch_rsi",
            "stoch_rsi",
            tf,
            {
                "rsi_length": config.rsi_length,
                "stoch_length": config.stoch_length,
                "k": config.stoch_k,
                "d": config.stoch_d,
            },
        )

    def evaluate(
        self,
        period: IndicatorPeriod,
        options: MeanReversionBBConfig | Mapping[str, Any] | None = None,
    ) -> SignalResult:
        config = self.resolve_options(options)

        skipped = self.guard_candle(period)
        if skipped is not None:
            return skipped
        candle_ts = period.candle_ts

        bb = period.get_indicator("bb").last()
        rsi = period.get_indicator("rsi").last()
        macd = period.get_indicator("macd").last()
        # CCI, MFI and Stoch-RSI only confirm; missing values simply do not confirm.
        cci = period.get_indicator("cci").last()
        mfi = period.get_indicator("mfi").last()
        stoch = period.get_indicator("stoch_rsi").last()
        stoch_k = stoch.k if stoch is not None else None
        stoch_d = stoch.d if stoch is not None else None
        if bb is None or rsi is None or macd is None:
            return self.skip(candle_ts, REASON_INSUFFICIENT)

        price = period.get_price()
        if not is_finite(price, bb.lower, bb.upper, rsi, macd.histogram):
            return self.skip(candle_ts, REASON_INVALID_VALUES, price=price, rsi=rsi)

        state = self.state.model_copy(deep=True)
        state.bar_index += 1
        state.last_evaluated_candle_ts = candle_ts
        self.commit(state)

        band_range = bb.upper - bb.lower
        debug: dict[str, Any] = {
            "candle_ts": candle_ts,
            "price": price,
            "rsi": round(rsi, 1),
            "bb_lower": bb.lower,
            "bb_middle": bb.middle,
            "bb_upper": bb.upper,
            "bb_width": bb.width,
            "bb_pos": round((price - bb.lower) / band_range, 2) if band_range else None,
            "macd_histogram": round(macd.histogram, 4),
            "cci": round(cci, 1) if is_finite(cci) else None,
            "mfi": round(mfi, 1) if is_finite(mfi) else None,
            "stoch_rsi_k": round(stoch_k, 1) if is_finite(stoch_k) else None,
            "stoch_rsi_d": round(stoch_d, 1) if is_finite(stoch_d) else None,
        }

        cci_extreme = is_finite(cci) and abs(cci) > config.cci_extreme
        mfi_extreme = is_finite(mfi) and (mfi > config.mfi_overbought or mfi < config.mfi_oversold)
        stoch_oversold = is_finite(stoch_k) and stoch_k < config.stoch_rsi_oversold
        stoch_overbought = is_finite(stoch_k) and stoch_k > config.stoch_rsi_overbought
        confirmed_long = macd.histogram > 0 or cci_extreme or mfi_extreme or stoch_oversold
        confirmed_short = macd.histogram < 0 or cci_extreme or mfi_extreme or stoch_overbought

        blockers = {
            "noBandTouch": not (
                _touches(price, bb.lower, config.band_tolerance)
                or _touches(price, bb.upper, config.band_tolerance)
            ),
            "rsiNotExtreme": config.rsi_oversold <= rsi <= config.rsi_overbought,
        }

        if _touches(price, bb.lower, config.band_tolerance) and rsi < config.rsi_oversold and confirmed_long:
            debug["signal"] = "LONG - Mean Reversion"
            return self.decide("ENTER_LONG", Side.LONG, blockers, debug, period.symbol)

        if _touches(price, bb.upper, config.band_tolerance) and rsi > config.rsi_overbought and confirmed_short:
            debug["signal"] = "SHORT - Mean Reversion"
            return self.decide("ENTER_SHORT", Side.SHORT, blockers, debug, period.symbol)

        return self.decide("NO_TRADE", None, blockers, debug, period.symbol)
