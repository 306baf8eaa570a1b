"""Tests for historical replay."""

import math

import pytest

from app.services import replay
from core.indicators import FallbackBackend, IndicatorEngine
from core.models.candle import Candle

SMALL_UNIFIED = {
    "trend_sma_length": 10,
    "hma_length": 4,
    "macd_fast": 3,
    "macd_slow": 6,
    "macd_signal": 3,
    "cci_length": 5,
    "atr_length": 5,
    "atr_sma_length": 5,
}


def _wave(n, step=900):
    candles = []
    for i in range(n):
        close = 100 + 10 * math.sin(i / 9) + 3 * math.sin(i / 2.3)
        candles.append(
            Candle(
                time=i * step,
                open=close - 0.3,
                high=close + 0.9 + (i % 4) * 0.15,
                low=close - 0.8 - (i % 3) * 0.2,
                close=close,
                volume=100 + i % 13,
            )
        )
    return candles


@pytest.fixture
def engine():
    return IndicatorEngine(FallbackBackend())


class TestReplay:
    @pytest.mark.asyncio
    async def test_unified_replay(self, engine):
        result = await replay("unified_macd_cci", "BTCUSDT", _wave(400), "15m", SMALL_UNIFIED, engine)
        summary = result.summary
        assert summary.candles == 400
        assert len(result.steps) == 400
        assert summary.skipped["insufficient_indicators"] > 0
        assert summary.evaluations > 0
        assert summary.evaluations + sum(summary.skipped.values()) == len(result.steps)
        assert sum(summary.signals.values()) == len(result.signals)
        assert sum(summary.exit_reasons.values()) == summary.signals.get("close", 0)

    @pytest.mark.asyncio
    async def test_evaluates_on_primary_close_only(self, engine):
        candles = _wave(90, step=300)
        options = {"period": "15m", "cci_length": 5, "trend_ema_length": 10, "swing_lookback": 3}
        result = await replay("cci", "ETHUSDT", candles, "5m", options, engine)
        assert len(result.steps) == 30
        assert all((step.time + 300) % 900 == 0 for step in result.steps)
        assert result.summary.candles == 90

    @pytest.mark.asyncio
    async def test_steps_move_forward(self, engine):
        result = await replay("cci", "ETHUSDT", _wave(60), "15m", {"cci_length": 5, "swing_lookback": 3}, engine)
        assert not any(step.result.reason == "duplicate_candle" for step in result.steps)
        times = [step.time for step in result.steps]
        assert times == sorted(times)

    @pytest.mark.asyncio
    async def test_summary_dict(self, engine):
        result = await replay("cci", "ETHUSDT", _wave(30), "15m", {"cci_length": 5, "swing_lookback": 3}, engine)
        data = result.summary.to_dict()
        assert data["candles"] == 30
        assert set(data) == {"candles", "evaluations", "signals", "exit_reasons", "skipped"}
