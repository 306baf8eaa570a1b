"""Tests for candle, timeframe, signal and state models."""

import pytest

from core.errors import ConfigurationError
from core.models.candle import Candle, candle_column
from core.models.signal import Side, SignalResult, create_empty_signal, create_signal
from core.models.state import Position, PositionSide, StrategyState
from core.models.timeframe import (
    bucket_start,
    first_unordered,
    is_forming,
    split_forming,
    timeframe_to_seconds,
)


def _candle(time, close=100.0, closed=True):
    return Candle(time=time, open=close, high=close + 2, low=close - 1, close=close, is_closed=closed)


class TestTimeframe:
    @pytest.mark.parametrize(
        "timeframe,seconds",
        [("1m", 60), ("15m", 900), ("1h", 3600), ("4h", 14400), ("1d", 86400), ("1w", 604800)],
    )
    def test_to_seconds(self, timeframe, seconds):
        assert timeframe_to_seconds(timeframe) == seconds

    @pytest.mark.parametrize("timeframe", ["", "15", "m15", "0m", "15x", "1M"])
    def test_invalid(self, timeframe):
        with pytest.raises(ConfigurationError):
            timeframe_to_seconds(timeframe)

    def test_bucket_start(self):
        assert bucket_start(3599, "1h") == 0
        assert bucket_start(3600, "1h") == 3600
        assert bucket_start(1000, "15m") == 900

    def test_is_forming(self):
        assert is_forming(_candle(0, closed=False))
        assert not is_forming(_candle(0))
        assert is_forming(_candle(900), "15m", now=1000)
        assert not is_forming(_candle(900), "15m", now=1800)

    def test_split_forming(self):
        closed, forming = split_forming([_candle(0), _candle(900, closed=False)])
        assert [c.time for c in closed] == [0]
        assert forming.time == 900
        assert split_forming([]) == ((), None)

    def test_first_unordered(self):
        assert first_unordered([_candle(0), _candle(900), _candle(1800)]) is None
        assert first_unordered([]) is None
        assert first_unordered([_candle(0), _candle(900), _candle(900, close=99)]) == 2
        assert first_unordered([_candle(0), _candle(1800), _candle(900)]) == 2
        assert first_unordered([_candle(900), _candle(0, closed=False)]) == 1


class TestCandle:
    def test_sources(self):
        candles = [Candle(time=0, open=1, high=4, low=2, close=3)]
        assert candle_column(candles, "hl2")[0] == 3
        assert candle_column(candles, "hlc3")[0] == 3
        assert candle_column(candles, "ohlc4")[0] == 2.5
        with pytest.raises(ValueError):
            candle_column(candles, "median")

    def test_frozen(self):
        with pytest.raises(Exception):
            _candle(0).close = 5


class TestSignal:
    def test_create_signal(self):
        result = create_signal("long", {"price": 1.0})
        assert result.signal == Side.LONG
        assert not result.is_empty

    def test_empty_signal_reason(self):
        result = create_empty_signal({"reason": "duplicate_candle"})
        assert result.is_empty
        assert result.reason == "duplicate_candle"
        assert SignalResult().reason is None


class TestState:
    def test_position_levels(self):
        short = Position(
            side=PositionSide.SHORT, entry_price=100, stop_loss=102, take_profit1=98, take_profit2=95
        )
        assert short.risk == 2
        assert short.stop_touched(102)
        assert short.tp1_touched(97.5)
        assert not short.tp2_touched(96)

    def test_bars_since_loss(self):
        state = StrategyState(bar_index=10)
        assert state.is_flat
        assert state.bars_since_loss() is None
        state.last_loss_bar = 7
        assert state.bars_since_loss() == 3

    def test_last_signal_round_trip(self):
        state = StrategyState(last_signal="short", cooldown_until_ts=1800, trade_day="2024-01-02", trades_today=1)
        restored = StrategyState.model_validate_json(state.model_dump_json())
        assert restored.last_signal == Side.SHORT
        assert restored.trades_today == 1
        assert StrategyState().last_signal is None
