"""15-minute scalping strategy configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from core.models.timeframe import timeframe_to_seconds

SCALP_15M_STRATEGY_NAME = "scalp_15m"


class Scalp15mConfig(BaseModel):
    """Configuration for the 15-minute scalping strategy."""

    period: str = "15m"
    rsi_length: int = Field(14, gt=0)
    ema_fast: int = Field(5, gt=0)
    ema_medium: int = Field(20, gt=0)
    ema_slow: int = Field(50, gt=0)
    bb_length: int = Field(20, gt=0)
    bb_offset: float = Field(2.0, gt=0)
    macd_fast: int = Field(12, gt=0)
    macd_slow: int = Field(26, gt=1)
    macd_signal: int = Field(9, gt=0)
    cci_length: int = Field(20, gt=0)
    mfi_length: int = Field(14, gt=0)

    rsi_oversold: float = 35.0
    rsi_overbought: float = 65.0
    cci_extreme: float = 100.0

    @field_validator("period")
    @classmethod
    def _valid_timeframe(cls, value: str) -> str:
        timeframe_to_seconds(value)
        return value
