"""SMA + MACD crypto volatility strategy implementation.

An entry needs a joint cross on the last closed candle: the close crosses
the SMA while the MACD line crosses its signal on the same side of zero.
The cross is then filtered, in order, by:

1. Cooldown after the previous entry
2. Daily (UTC) trade limit
3. Short side permission
4. ATR as a fraction of the close inside ``atr_pct_min..atr_pct_max``
5. No long or short already open
6. Setup score of at least ``min_score`` out of 100

The stop sits ``stop_mult`` ATR from the close with take-profits at 1R,
2R and 3R.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from core.indicators.builder import IndicatorBuilder
from core.indicators.series import ConvergencePoint, is_finite, tail_values
from core.models.signal import Side, SignalResult
from core.models.timeframe import timeframe_to_seconds
from core.strategy.base import REASON_INSUFFICIENT, REASON_INVALID_VALUES, StatefulStrategy
from core.strategy.period import IndicatorPeriod
from core.strategy.registry import register_strategy
from core.strategy.sma_macd_crypto_vol.models import (
    SMA_MACD_CRYPTO_VOL_STRATEGY_NAME,
    SmaMacdCryptoVolConfig,
)

logger = logging.getLogger(__name__)

REASON_INSUFFICIENT_CANDLES = "insufficient_candles"

# Blocker flag -> reported block reason, in check order
_BLOCK_REASONS = {
    "cooldownActive": "cooldown_active",
    "tradeLimitReached": "trade_limit_reached",
    "noCross": "no_cross",
    "shortingDisabled": "shorting_disabled",
    "atrRegime": "atr_regime_block",
    "positionOpen": "position_already_open",
    "scoreBelowThreshold": "score_below_threshold",
}


@dataclass(frozen=True)
class ScoreBreakdown:
    """Points per setup criterion plus the raw measurements behind them."""

    histogram: int
    distance: int
    atr: int
    volume: int
    trend: int
    dist_atr: float
    volume_ratio: float
    trend_count: int

    @property
    def total(self) -> int:
        return self.histogram + self.distance + self.atr + self.volume + self.trend

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "total": self.total}


def detect_cross(
    close: float,
    prev_close: float,
    sma: float,
    prev_sma: float,
    macd: ConvergencePoint,
    macd_prev: ConvergencePoint,
) -> Side | None:
    """Side of a joint SMA and MACD cross on the newest candle, if any."""
    if (
        prev_close <= prev_sma
        and close > sma
        and macd_prev.value <= macd_prev.signal
        and macd.value > macd.signal
        and macd.value > 0
    ):
        return Side.LONG
    if (
        prev_close >= prev_sma
        and close < sma
        and macd_prev.value >= macd_prev.signal
        and macd.value < macd.signal
        and macd.value < 0
    ):
        return Side.SHORT
    return None


def score_setup(
    direction: Side,
    closes: Sequence[float],
    volumes: Sequence[float],
    smas: Sequence[float],
    atr: float,
    atr_pct: float,
    macd: ConvergencePoint,
    macd_prev: ConvergencePoint,
    config: SmaMacdCryptoVolConfig,
) -> ScoreBreakdown:
    """Score a cross setup out of 100.

    Args:
        direction: Side of the cross.
        closes: Recent closes, oldest first, newest last.
        volumes: Volumes aligned with ``closes``.
        smas: The newest ``trend_window`` SMA values, aligned with the
            same number of newest closes.
        atr: Current ATR.
        atr_pct: ATR as a fraction of the close.
        macd: Current MACD point.
        macd_prev: Previous MACD point.
        config: Strategy configuration.
    """
    same_sign = macd.histogram * macd_prev.histogram > 0
    growing = abs(macd.histogram) > abs(macd_prev.histogram)
    hist_score = 30 if same_sign and growing else 15 if same_sign else 0

    dist_atr = abs(closes[-1] - smas[-1]) / atr if atr > 0 else 0.0
    dist_score = 25 if dist_atr >= 1 else 15 if dist_atr >= 0.5 else 0

    atr_score = 20 if config.atr_pct_min <= atr_pct <= config.atr_pct_max else 0

    window = volumes[-config.volume_window :]
    average = sum(window) / len(window)
    volume_ratio = volumes[-1] / average if average > 0 else 0.0
    vol_score = 15 if volume_ratio >= 1.2 else 10 if volume_ratio >= 1.0 else 0

    recent = closes[-config.trend_window :]
    if direction == Side.LONG:
        trend_count = sum(1 for c, s in zip(recent, smas) if c > s)
    else:
        trend_count = sum(1 for c, s in zip(recent, smas) if c < s)
    if trend_count >= config.trend_window - 1:
        trend_score = 10
    elif trend_count >= config.trend_window - 2:
        trend_score = 5
    else:
        trend_score = 0

    return ScoreBreakdown(
        histogram=hist_score,
        distance=dist_score,
        atr=atr_score,
        volume=vol_score,
        trend=trend_score,
        dist_atr=dist_atr,
        volume_ratio=volume_ratio,
        trend_count=trend_count,
    )


def utc_day(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat()


@register_strategy(SMA_MACD_CRYPTO_VOL_STRATEGY_NAME)
class SmaMacdCryptoVolStrategy(StatefulStrategy[SmaMacdCryptoVolConfig]):
    """Scored SMA and MACD crosses under ATR volatility limits."""

    config_class = SmaMacdCryptoVolConfig
    decision_tag = "SMA_MACD_DECISION"

    def declare_indicators(
        self,
        builder: IndicatorBuilder,
        options: SmaMacdCryptoVolConfig | Mapping[str, Any] | None = None,
    ) -> None:
        config = self.resolve_options(options)
        tf = config.period
        builder.add("candles", "candles", tf, history=config.min_warm_candles)
        builder.add("sma", "sma", tf, {"length": config.sma_length}, history=config.trend_window)
        builder.add(
            "macd",
            "macd_ext",
            tf,
            {
                "fast_period": config.fast_period,
                "slow_period": config.slow_period,
                "signal_period": config.signal_period,
                "default_ma_type": "EMA",
            },
        )
        builder.add("atr", "atr", tf, {"length": config.atr_length})

    def evaluate(
        self,
        period: IndicatorPeriod,
        options: SmaMacdCryptoVolConfig | Mapping[str, Any] | None = None,
    ) -> SignalResult:
        config = self.resolve_options(options)

        skipped = self.guard_candle(period)
        if skipped is not None:
            return skipped
        candle_ts = period.candle_ts

        candles = period.get_indicator("candles")
        if len(candles) < config.min_warm_candles:
            return self.skip(candle_ts, REASON_INSUFFICIENT_CANDLES, candles=len(candles))

        macd_series = period.get_indicator("macd")
        smas = tail_values(period.get_indicator("sma"), config.trend_window)
        macd = macd_series.last()
        macd_prev = macd_series.last(1)
        atr = period.get_indicator("atr").last()
        if smas is None or macd_prev is None or atr is None:
            return self.skip(candle_ts, REASON_INSUFFICIENT)

        window = max(config.volume_window, config.trend_window)
        recent = [candles.last(back) for back in range(min(window, len(candles)) - 1, -1, -1)]
        closes = [c.close for c in recent]
        volumes = [c.volume for c in recent]
        close, prev_close = closes[-1], closes[-2]
        if not is_finite(close, prev_close, atr, *smas, *macd, *macd_prev):
            return self.skip(candle_ts, REASON_INVALID_VALUES, close=close, atr=atr)

        state = self.state.model_copy(deep=True)
        state.bar_index += 1
        state.last_evaluated_candle_ts = candle_ts
        day = utc_day(candle_ts)
        if state.trade_day != day:
            state.trade_day = day
            state.trades_today = 0

        atr_pct = atr / close if atr > 0 and close > 0 else 0.0
        direction = detect_cross(close, prev_close, smas[-1], smas[-2], macd, macd_prev)
        last_signal = period.get_last_signal()

        debug: dict[str, Any] = {
            "candle_ts": candle_ts,
            "price": close,
            "direction": direction.value if direction else None,
            "sma": smas[-1],
            "macd": macd.value,
            "macd_signal": macd.signal,
            "macd_histogram": macd.histogram,
            "atr": atr,
            "atr_pct": atr_pct,
            "trades_today": state.trades_today,
            "last_signal": last_signal.value if last_signal else None,
        }

        blockers = {
            "cooldownActive": state.cooldown_until_ts is not None and candle_ts <= state.cooldown_until_ts,
            "tradeLimitReached": state.trades_today >= config.max_trades_per_day,
            "noCross": direction is None,
            "shortingDisabled": direction == Side.SHORT and not config.allow_short,
            "atrRegime": not config.atr_pct_min <= atr_pct <= config.atr_pct_max,
            "positionOpen": last_signal in (Side.LONG, Side.SHORT),
            "scoreBelowThreshold": False,
        }
        if direction is not None:
            score = score_setup(direction, closes, volumes, smas, atr, atr_pct, macd, macd_prev, config)
            debug["final_score"] = score.total
            debug["score_breakdown"] = score.to_dict()
            blockers["scoreBelowThreshold"] = score.total < config.min_score

        block_reason = next((_BLOCK_REASONS[name] for name, hit in blockers.items() if hit), None)
        if block_reason is not None:
            debug["block_reason"] = block_reason
            self.commit(state)
            return self.decide("NO_TRADE", None, blockers, debug, period.symbol)

        sign = 1 if direction == Side.LONG else -1
        risk = atr * config.stop_mult
        debug.update(
            {
                "stop_distance": risk,
                "stop_loss": close - sign * risk,
                "tp1": close + sign * risk,
                "tp2": close + sign * 2 * risk,
                "tp3": close + sign * 3 * risk,
            }
        )
        state.trades_today += 1
        state.cooldown_until_ts = candle_ts + config.cooldown_candles * timeframe_to_seconds(config.period)
        self.commit(state)

        action = "ENTER_LONG" if direction == Side.LONG else "ENTER_SHORT"
        return self.decide(action, direction, blockers, debug, period.symbol)
