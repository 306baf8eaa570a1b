"""SMA + MACD crypto volatility strategy configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models.timeframe import timeframe_to_seconds

SMA_MACD_CRYPTO_VOL_STRATEGY_NAME = "sma_macd_crypto_vol"


class SmaMacdCryptoVolConfig(BaseModel):
    """Configuration for the SMA + MACD crypto volatility strategy.

    ATR bounds are fractions of the close (0.0025 = 0.25%).
    """

    period: str = "5m"
    allow_short: bool = True
    sma_length: int = Field(10, gt=0)
    fast_period: int = Field(12, gt=0)
    slow_period: int = Field(26, gt=0)
    signal_period: int = Field(9, gt=0)
    atr_length: int = Field(14, gt=0)

    # Closed candles required before any decision
    min_warm_candles: int = Field(60, ge=2)
    atr_pct_min: float = Field(0.0025, ge=0)
    atr_pct_max: float = Field(0.025, gt=0)
    stop_mult: float = Field(1.5, gt=0)
    cooldown_candles: int = Field(3, ge=0)
    max_trades_per_day: int = Field(2, gt=0)
    min_score: float = 70.0
    volume_window: int = Field(20, gt=0)
    trend_window: int = Field(5, ge=3)

    @field_validator("period")
    @classmethod
    def _valid_timeframe(cls, value: str) -> str:
        timeframe_to_seconds(value)
        return value

    @model_validator(mode="after")
    def _atr_bounds(self):
        if self.atr_pct_min >= self.atr_pct_max:
            raise ValueError("atr_pct_min must be below atr_pct_max")
        return self
