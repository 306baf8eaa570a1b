"""Tests for the Unified MACD + CCI strategy state machine."""

import logging
import math

import numpy as np
import pytest

from core.errors import ConfigurationError
from core.indicators import ConvergenceSeries, IndicatorBuilder, ScalarSeries
from core.models.candle import Candle
from core.models.signal import Side
from core.models.state import Position, PositionSide, Regime, StrategyState
from core.strategy import Strategy, create_strategy
from core.strategy.unified_macd_cci import (
    UNIFIED_MACD_CCI_STRATEGY_NAME,
    UnifiedMacdCciConfig,
    UnifiedMacdCciStrategy,
)
from core.strategy.unified_macd_cci.generator import determine_regime, position_size
from core.strategy.unified_macd_cci.models import (
    ATR_KEY,
    ATR_SMA_KEY,
    CCI_KEY,
    HMA_KEY,
    MACD_KEY,
    TREND_SMA_KEY,
)
from core.strategy.period import IndicatorPeriod

BAR = 900


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class Market:
    """Feeds one hand-made indicator snapshot per 15m candle."""

    def __init__(self):
        self.tick = 0

    def period(
        self,
        price: float = 100.0,
        hist: tuple[float, float] = (0.5, 0.5),
        hma: float = 101.0,
        sma: float = 100.0,
        cci: tuple[float, float] = (0.0, 0.0),
        atr: float = 1.0,
        atr_sma: float = 1.0,
        ts: int | None = None,
    ) -> IndicatorPeriod:
        if ts is None:
            self.tick += 1
            ts = self.tick * BAR
        histogram = np.array(hist, dtype=float)
        indicators = {
            MACD_KEY: ConvergenceSeries(histogram, np.zeros(2), histogram, 33),
            HMA_KEY: ScalarSeries([hma], 10),
            TREND_SMA_KEY: ScalarSeries([sma], 199),
            CCI_KEY: ScalarSeries(list(cci), 38),
            ATR_KEY: ScalarSeries([atr], 13),
            ATR_SMA_KEY: ScalarSeries([atr_sma], 32),
        }
        candle = Candle(time=ts, open=price, high=price + 0.5, low=price - 0.5, close=price)
        return IndicatorPeriod(
            symbol="BTCUSDT",
            timeframe="15m",
            indicators=indicators,
            candles={"15m": [candle]},
        )


def _enter_long(strategy, market, price=100.0):
    """Arm the extreme on one bar and cross back on the next."""
    strategy.evaluate(market.period(cci=(-120.0, -160.0)))
    return strategy.evaluate(market.period(price=price, cci=(-160.0, -90.0)))


@pytest.fixture
def strategy():
    return UnifiedMacdCciStrategy()


@pytest.fixture
def market():
    return Market()


# ---------------------------------------------------------------------------
# Construction and declarations
# ---------------------------------------------------------------------------

class TestSetup:
    def test_registered(self):
        strategy = create_strategy(UNIFIED_MACD_CCI_STRATEGY_NAME)
        assert isinstance(strategy, UnifiedMacdCciStrategy)
        assert isinstance(strategy, Strategy)
        assert strategy.name == "unified_macd_cci"
        assert strategy.timeframe == "15m"

    def test_invalid_options(self):
        with pytest.raises(ConfigurationError):
            UnifiedMacdCciStrategy({"cci_entry_threshold": 200, "cci_extreme_threshold": 150})
        with pytest.raises(ConfigurationError):
            UnifiedMacdCciStrategy({"period": "fifteen"})

    def test_declares_indicators(self, strategy):
        builder = IndicatorBuilder()
        strategy.declare_indicators(builder)
        assert builder.get(MACD_KEY).kind.value == "macd_ext"
        assert builder.get(MACD_KEY).timeframe == "1h"
        assert builder.get(TREND_SMA_KEY).options["length"] == 200
        assert builder.get(ATR_SMA_KEY).source_indicator_key == ATR_KEY
        assert builder.timeframes() == ["1h", "15m"]
        order = [s.key for s in builder.resolve_order()]
        assert order.index(ATR_KEY) < order.index(ATR_SMA_KEY)

    def test_classic_macd_option(self):
        strategy = UnifiedMacdCciStrategy({"macd_kind": "macd"})
        builder = IndicatorBuilder()
        strategy.declare_indicators(builder)
        assert builder.get(MACD_KEY).kind.value == "macd"

    def test_get_options(self, strategy):
        assert strategy.get_options()["volatility_gate_multiplier"] == 1.5


class TestRegime:
    @pytest.mark.parametrize(
        "hma,sma,hist,expected",
        [
            (101, 100, 0.5, Regime.LONG),
            (100, 100, 0.5, Regime.LONG),
            (99, 100, -0.5, Regime.SHORT),
            (101, 100, -0.5, Regime.NONE),
            (99, 100, 0.5, Regime.NONE),
            (101, 100, 0.0, Regime.NONE),
        ],
    )
    def test_determine_regime(self, hma, sma, hist, expected):
        assert determine_regime(hma, sma, hist) == expected

    def test_position_size(self):
        assert position_size(10_000, 50, 0.01) == pytest.approx(2.0)
        assert position_size(10_000, 0, 0.01) == 0.0


# ---------------------------------------------------------------------------
# Evaluation guards
# ---------------------------------------------------------------------------

class TestGuards:
    def test_duplicate_candle_is_noop(self, strategy, market):
        period = market.period(cci=(-120.0, -160.0))
        strategy.evaluate(period)
        before = strategy.state.model_copy(deep=True)

        result = strategy.evaluate(period)
        assert result.is_empty
        assert result.reason == "duplicate_candle"
        assert result.debug["blockers"]["duplicateEvaluation"] is True
        assert strategy.state == before

    def test_stale_candle_is_noop(self, strategy, market):
        strategy.evaluate(market.period(ts=10 * BAR))
        before = strategy.state.model_copy(deep=True)
        result = strategy.evaluate(market.period(ts=5 * BAR))
        assert result.reason == "stale_candle"
        assert strategy.state == before

    def test_no_closed_candle(self, strategy):
        period = IndicatorPeriod(symbol="X", timeframe="15m", indicators={}, candles={})
        result = strategy.evaluate(period)
        assert result.reason == "no_closed_candle"
        assert result.debug["blockers"]["candleNotClosed"] is True

    def test_insufficient_indicators(self, strategy, market):
        period = market.period()
        indicators = dict(period.indicators)
        indicators[CCI_KEY] = ScalarSeries([5.0], 38)
        short = IndicatorPeriod(
            symbol="X", timeframe="15m", indicators=indicators, candles={"15m": period.get_lookbacks()}
        )
        result = strategy.evaluate(short)
        assert result.reason == "insufficient_indicators"
        assert strategy.state.bar_index == 0
        assert strategy.state.last_evaluated_candle_ts is None

    def test_nan_indicator(self, strategy, market):
        result = strategy.evaluate(market.period(atr=math.nan))
        assert result.is_empty
        assert result.reason == "invalid_indicator_values"
        assert strategy.state == StrategyState()

    def test_evaluation_records_candle(self, strategy, market):
        strategy.evaluate(market.period())
        assert strategy.state.bar_index == 1
        assert strategy.state.last_evaluated_candle_ts == BAR
        assert strategy.state.regime == Regime.LONG


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

class TestEntry:
    def test_long_entry_after_extreme_and_cross(self, strategy, market):
        armed = strategy.evaluate(market.period(cci=(-120.0, -160.0)))
        assert armed.is_empty
        assert armed.debug["entry_blocked"] == "no_cross"
        assert strategy.state.extreme_reached is True
        assert strategy.state.extreme_value == -160.0

        result = strategy.evaluate(market.period(price=100.0, cci=(-160.0, -90.0)))
        assert result.signal == Side.LONG
        assert result.debug["action"] == "ENTER_LONG"
        assert result.debug["stop_loss"] == pytest.approx(98.2)
        assert result.debug["tp1"] == pytest.approx(101.8)
        assert result.debug["tp2"] == pytest.approx(104.5)
        assert result.debug["stop_distance"] == pytest.approx(1.8)

        state = strategy.state
        assert state.position.side == PositionSide.LONG
        assert state.position.entry_price == 100.0
        assert state.extreme_reached is False

    def test_short_entry(self, strategy, market):
        bearish = dict(hist=(-0.5, -0.5), hma=99.0, sma=100.0)
        strategy.evaluate(market.period(cci=(120.0, 160.0), **bearish))
        result = strategy.evaluate(market.period(price=100.0, cci=(160.0, 90.0), **bearish))
        assert result.signal == Side.SHORT
        assert result.debug["stop_loss"] == pytest.approx(101.8)
        assert result.debug["tp2"] == pytest.approx(95.5)

    def test_no_entry_without_extreme(self, strategy, market):
        result = strategy.evaluate(market.period(cci=(-120.0, -90.0)))
        assert result.is_empty
        assert result.debug["entry_blocked"] == "no_extreme"
        assert result.debug["blockers"]["noExtreme"] is True

    def test_no_entry_without_regime(self, strategy, market):
        result = strategy.evaluate(market.period(hist=(0.5, -0.5), cci=(-160.0, -90.0)))
        assert result.is_empty
        assert result.debug["entry_blocked"] == "no_regime"

    def test_extreme_resets_on_regime_change(self, strategy, market):
        strategy.evaluate(market.period(cci=(-120.0, -160.0)))
        assert strategy.state.extreme_reached is True
        strategy.evaluate(market.period(hist=(-0.5, -0.5), hma=99.0, cci=(-160.0, -130.0)))
        assert strategy.state.regime == Regime.SHORT
        assert strategy.state.extreme_reached is False

    def test_volatility_gate(self, strategy, market):
        strategy.evaluate(market.period(cci=(-120.0, -160.0)))
        result = strategy.evaluate(market.period(cci=(-160.0, -90.0), atr=2.0, atr_sma=1.0))
        assert result.is_empty
        assert result.debug["entry_blocked"] == "volatility_too_high"
        assert result.debug["atr_ratio"] == pytest.approx(2.0)

    def test_volatility_gate_multiplier_is_configurable(self, market):
        strategy = UnifiedMacdCciStrategy({"volatility_gate_multiplier": 3.0})
        strategy.evaluate(market.period(cci=(-120.0, -160.0)))
        result = strategy.evaluate(market.period(cci=(-160.0, -90.0), atr=2.0, atr_sma=1.0))
        assert result.signal == Side.LONG

    def test_position_size_in_debug(self, market):
        strategy = UnifiedMacdCciStrategy({"account_balance": 18_000})
        result = _enter_long(strategy, market)
        # 18000 * 1% / 1.8
        assert result.debug["position_size"] == pytest.approx(100.0)

    def test_decision_logged(self, strategy, market, caplog):
        with caplog.at_level(logging.INFO, logger="core.strategy.base"):
            strategy.evaluate(market.period())
        lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("UNIFIED_DECISION")]
        assert len(lines) == 1
        assert '"action":"NO_TRADE"' in lines[0]


# ---------------------------------------------------------------------------
# Position management
# ---------------------------------------------------------------------------

class TestPosition:
    def test_stop_loss(self, strategy, market):
        _enter_long(strategy, market)
        result = strategy.evaluate(market.period(price=98.0))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "stop_loss"
        assert strategy.state.position is None
        assert strategy.state.last_loss_bar == 3

    def test_tp1_moves_stop_to_breakeven(self, strategy, market):
        _enter_long(strategy, market)
        result = strategy.evaluate(market.period(price=102.0))
        assert result.is_empty
        assert result.debug["action"] == "HOLD"
        assert result.debug["tp1_triggered"] is True
        assert result.debug["stop_moved_to_breakeven"] is True
        position = strategy.state.position
        assert position.tp1_hit is True
        assert position.stop_loss == 100.0

        # A later dip to entry is now a stop
        exit_result = strategy.evaluate(market.period(price=100.0))
        assert exit_result.signal == Side.CLOSE
        assert exit_result.debug["exit_reason"] == "stop_loss"

    def test_tp2(self, strategy, market):
        _enter_long(strategy, market)
        result = strategy.evaluate(market.period(price=105.0))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "tp2_hit"
        assert strategy.state.last_loss_bar is None

    def test_regime_flip(self, strategy, market):
        _enter_long(strategy, market)
        result = strategy.evaluate(market.period(hist=(0.5, -0.5), hma=99.0))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "regime_flip"
        assert strategy.state.regime == Regime.SHORT

    def test_macd_flip(self, strategy, market):
        _enter_long(strategy, market)
        result = strategy.evaluate(market.period(hist=(0.5, -0.1), hma=101.0))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "macd_flip"

    def test_max_bars(self, market):
        strategy = UnifiedMacdCciStrategy({"max_bars_in_trade": 2})
        _enter_long(strategy, market)
        hold = strategy.evaluate(market.period(price=100.5))
        assert hold.debug["action"] == "HOLD"
        assert hold.debug["blockers"]["positionOpen"] is True
        result = strategy.evaluate(market.period(price=100.5))
        assert result.signal == Side.CLOSE
        assert result.debug["exit_reason"] == "max_bars"

    def test_stop_has_priority_over_regime_flip(self, strategy, market):
        _enter_long(strategy, market)
        result = strategy.evaluate(market.period(price=97.0, hist=(0.5, -0.5), hma=99.0))
        assert result.debug["exit_reason"] == "stop_loss"

    def test_cooldown_after_loss(self, strategy, market):
        _enter_long(strategy, market)
        strategy.evaluate(market.period(price=98.0))  # stop at bar 3

        # bars 4 and 5: extreme and cross, still cooling down
        strategy.evaluate(market.period(cci=(-120.0, -160.0)))
        blocked = strategy.evaluate(market.period(cci=(-160.0, -90.0)))
        assert blocked.is_empty
        assert blocked.debug["entry_blocked"] == "cooldown"
        assert blocked.debug["blockers"]["cooldownActive"] is True
        assert blocked.debug["cooldown_remaining"] == 1

        # bar 6: cooldown over, extreme still armed
        result = strategy.evaluate(market.period(cci=(-160.0, -90.0)))
        assert result.signal == Side.LONG


class TestState:
    def test_load_state_resumes_position(self, market):
        state = StrategyState(
            regime=Regime.LONG,
            position=Position(
                side=PositionSide.LONG,
                entry_price=100.0,
                stop_loss=98.2,
                take_profit1=101.8,
                take_profit2=104.5,
            ),
            bar_index=7,
            last_evaluated_candle_ts=0,
        )
        strategy = UnifiedMacdCciStrategy()
        strategy.load_state(state)
        result = strategy.evaluate(market.period(price=98.0))
        assert result.debug["exit_reason"] == "stop_loss"
        assert strategy.state.last_loss_bar == 8
        # loaded object is copied, not shared
        assert state.position is not None

    def test_exception_leaves_state_untouched(self, strategy, market):
        strategy.evaluate(market.period())
        before = strategy.state.model_copy(deep=True)
        with pytest.raises(ConfigurationError):
            strategy.evaluate(market.period(), options={"cooldown_bars": -1})
        assert strategy.state == before
