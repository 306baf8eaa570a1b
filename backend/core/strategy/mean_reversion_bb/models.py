"""Bollinger Band mean reversion strategy configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from core.models.timeframe import timeframe_to_seconds

MEAN_REVERSION_BB_STRATEGY_NAME = "mean_reversion_bb"


class MeanReversionBBConfig(BaseModel):
    """Configuration for the Bollinger Band mean reversion strategy."""

    period: str = "15m"
    bb_length: int = Field(20, gt=0)
    bb_offset: float = Field(2.0, gt=0)
    rsi_length: int = Field(14, gt=0)
    cci_length: int = Field(20, gt=0)
    macd_fast: int = Field(12, gt=0)
    macd_slow: int = Field(26, gt=1)
    macd_signal: int = Field(9, gt=0)
    mfi_length: int = Field(14, gt=0)
    stoch_length: int = Field(14, gt=0)
    stoch_k: int = Field(3, gt=0)
    stoch_d: int = Field(3, gt=0)

    # Band touch tolerance as a fraction of the band level
    band_tolerance: float = Field(0.01, ge=0, lt=1)
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    cci_extreme: float = 100.0
    mfi_oversold: float = 20.0
    mfi_overbought: float = 80.0
    stoch_rsi_oversold: float = 20.0
    stoch_rsi_overbought: float = 80.0

    @field_validator("period")
    @classmethod
    def _valid_timeframe(cls, value: str) -> str:
        timeframe_to_seconds(value)
        return value
