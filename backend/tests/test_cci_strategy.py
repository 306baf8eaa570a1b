"""Tests for the CCI swing strategy."""

import pytest

from core.errors import ConfigurationError
from core.indicators import IndicatorBuilder, ScalarSeries
from core.models.candle import Candle
from core.models.signal import Side
from core.strategy import create_strategy
from core.strategy.cci import CCI_STRATEGY_NAME, CciStrategy
from core.strategy.period import IndicatorPeriod

# Previous ten values dip to -160, then CCI crosses up through -100
LONG_SETUP = [-50, -160, -140, -130, -120, -110, -110, -110, -110, -105, -95]
SHORT_SETUP = [-v for v in LONG_SETUP]


def _period(cci, price=105.0, ema=100.0, ts=900, last_signal=None):
    candle = Candle(time=ts, open=price, high=price + 1, low=price - 1, close=price)
    return IndicatorPeriod(
        symbol="ETHUSDT",
        timeframe="15m",
        indicators={
            "cci": ScalarSeries([float(v) for v in cci], 38),
            "ema200": ScalarSeries([ema], 0),
        },
        candles={"15m": [candle]},
        last_signal=last_signal,
    )


@pytest.fixture
def strategy():
    return CciStrategy()


class TestCciSetup:
    def test_registered(self):
        assert isinstance(create_strategy(CCI_STRATEGY_NAME), CciStrategy)

    def test_declares_swing_history(self, strategy):
        builder = IndicatorBuilder()
        strategy.declare_indicators(builder)
        assert builder.get("cci").history == 11
        assert builder.get("ema200").options["length"] == 200
        assert builder.warmup("15m") == 38 + 11

    def test_invalid_thresholds(self):
        with pytest.raises(ConfigurationError):
            CciStrategy({"entry_threshold": 150, "swing_threshold": 100})


class TestCciEntries:
    def test_long(self, strategy):
        result = strategy.evaluate(_period(LONG_SETUP))
        assert result.signal == Side.LONG
        assert result.debug["action"] == "ENTER_LONG"
        assert result.debug["trigger_swing_value"] == -160
        assert result.debug["blockers"]["longTrendFilter"] is False

    def test_short(self, strategy):
        result = strategy.evaluate(_period(SHORT_SETUP, price=95.0))
        assert result.signal == Side.SHORT
        assert result.debug["trigger_swing_value"] == 160

    def test_trend_filter_blocks_long(self, strategy):
        result = strategy.evaluate(_period(LONG_SETUP, price=95.0))
        assert result.is_empty
        assert result.debug["action"] == "NO_TRADE"
        assert result.debug["blockers"]["longTrendFilter"] is True

    def test_swing_not_deep_enough(self, strategy):
        shallow = [-120] * 9 + [-105, -95]
        result = strategy.evaluate(_period(shallow))
        assert result.is_empty

    def test_no_repeat_entry(self, strategy):
        result = strategy.evaluate(_period(LONG_SETUP, last_signal=Side.LONG))
        assert result.is_empty


class TestCciExits:
    def test_exit_long(self, strategy):
        falling = [0] * 9 + [110, 90]
        result = strategy.evaluate(_period(falling, last_signal=Side.LONG))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "exit_long"

    def test_exit_short(self, strategy):
        rising = [0] * 9 + [-110, -90]
        result = strategy.evaluate(_period(rising, price=95.0, last_signal=Side.SHORT))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "exit_short"

    def test_no_exit_when_flat(self, strategy):
        falling = [0] * 9 + [110, 90]
        result = strategy.evaluate(_period(falling))
        assert result.signal is None


class TestCciGuards:
    def test_insufficient_history(self, strategy):
        result = strategy.evaluate(_period([-160, -95]))
        assert result.reason == "insufficient_indicators"
        assert strategy.state.bar_index == 0

    def test_duplicate(self, strategy):
        period = _period(LONG_SETUP)
        strategy.evaluate(period)
        result = strategy.evaluate(period)
        assert result.reason == "duplicate_candle"
        assert strategy.state.bar_index == 1

    def test_nan(self, strategy):
        result = strategy.evaluate(_period(LONG_SETUP[:-1] + [float("nan")]))
        assert result.reason == "invalid_indicator_values"
