"""Unified MACD + CCI strategy configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models.timeframe import timeframe_to_seconds

UNIFIED_MACD_CCI_STRATEGY_NAME = "unified_macd_cci"

# Indicator keys declared by the strategy.
MACD_KEY = "macd_1h"
HMA_KEY = "hma_1h"
TREND_SMA_KEY = "sma200_1h"
CCI_KEY = "cci_15m"
ATR_KEY = "atr_15m"
ATR_SMA_KEY = "atr_sma_15m"

# Blockers reported on every decision.
BLOCKERS = (
    "candleNotClosed",
    "duplicateEvaluation",
    "cooldownActive",
    "positionOpen",
    "noRegime",
    "noExtreme",
    "volatilityTooHigh",
)


class UnifiedMacdCciConfig(BaseModel):
    """Configuration for the Unified MACD + CCI strategy.

    Regime indicators (MACD, HMA, trend SMA) run on ``regime_timeframe``;
    entry timing (CCI) and risk (ATR) run on ``period``.
    """

    period: str = "15m"
    regime_timeframe: str = "1h"

    # Regime (slow timeframe)
    macd_kind: Literal["macd_ext", "macd"] = "macd_ext"
    macd_fast: int = Field(12, gt=0)
    macd_slow: int = Field(26, gt=1)
    macd_signal: int = Field(9, gt=0)
    macd_ma_type: Literal["SMA", "EMA", "DEMA"] = "EMA"
    hma_length: int = Field(9, gt=0)
    trend_sma_length: int = Field(200, gt=0)

    # Entry timing (fast timeframe)
    cci_length: int = Field(20, gt=0)
    atr_length: int = Field(14, gt=0)
    atr_sma_length: int = Field(20, gt=0)
    cci_extreme_threshold: float = Field(150.0, gt=0)
    cci_entry_threshold: float = Field(100.0, gt=0)

    # Risk management
    atr_stop_multiplier: float = Field(1.8, gt=0)
    volatility_gate_multiplier: float = Field(1.5, gt=0)
    tp1_r_multiple: float = Field(1.0, gt=0)
    tp2_r_multiple: float = Field(2.5, gt=0)
    tp1_close_fraction: float = Field(0.5, gt=0, le=1)
    max_bars_in_trade: int = Field(40, gt=0)
    cooldown_bars: int = Field(3, ge=0)
    account_risk_fraction: float = Field(0.01, gt=0, le=1)
    account_balance: float | None = Field(None, gt=0)

    @field_validator("period", "regime_timeframe")
    @classmethod
    def _valid_timeframe(cls, value: str) -> str:
        timeframe_to_seconds(value)
        return value

    @model_validator(mode="after")
    def _consistent_thresholds(self) -> "UnifiedMacdCciConfig":
        if self.cci_entry_threshold >= self.cci_extreme_threshold:
            raise ValueError("cci_entry_threshold must be below cci_extreme_threshold")
        if self.tp2_r_multiple <= self.tp1_r_multiple:
            raise ValueError("tp2_r_multiple must be greater than tp1_r_multiple")
        if self.macd_slow <= self.macd_fast:
            raise ValueError("macd_slow must be greater than macd_fast")
        return self
