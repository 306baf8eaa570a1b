"""CCI swing strategy configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models.timeframe import timeframe_to_seconds

CCI_STRATEGY_NAME = "cci"


class CciConfig(BaseModel):
    """Configuration for the CCI swing strategy."""

    period: str = "15m"
    cci_length: int = Field(20, gt=0)
    trend_ema_length: int = Field(200, gt=0)
    entry_threshold: float = Field(100.0, gt=0)
    swing_threshold: float = Field(150.0, gt=0)
    swing_lookback: int = Field(10, gt=0)

    @field_validator("period")
    @classmethod
    def _valid_timeframe(cls, value: str) -> str:
        timeframe_to_seconds(value)
        return value

    @model_validator(mode="after")
    def _swing_beyond_entry(self) -> "CciConfig":
        if self.swing_threshold <= self.entry_threshold:
            raise ValueError("swing_threshold must be greater than entry_threshold")
        return self
