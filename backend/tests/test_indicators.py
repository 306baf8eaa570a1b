"""Tests for indicator kinds, the NumPy fallback and the engine."""

import math

import numpy as np
import pytest

from core.errors import (
    IndicatorComputationError,
    InvalidIndicatorOptionsError,
    UnsupportedIndicatorError,
)
from core.indicators import (
    BandSeries,
    CandleSeries,
    ConvergenceSeries,
    FallbackBackend,
    IndicatorEngine,
    ScalarSeries,
    lookback,
    resolve_options,
)
from core.indicators.indicators import (
    adx,
    ema,
    heikin_ashi,
    hma,
    macd,
    macd_ext,
    obv,
    psar,
    sma,
    stoch_rsi,
    talib_ema,
)
from core.indicators.kinds import hma_periods
from core.models.candle import Candle


def _candles(closes, volume=1.0):
    return [
        Candle(time=i * 60, open=c, high=c + 1, low=c - 1, close=c, volume=volume)
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def engine():
    return IndicatorEngine(FallbackBackend())


class TestLookbacks:
    """Lookback table shared by both backends."""

    @pytest.mark.parametrize(
        "kind,options,expected",
        [
            ("sma", {"length": 20}, 19),
            ("ema", {"length": 200}, 0),
            ("rsi", {"length": 14}, 14),
            ("cci", {"length": 20}, 38),
            ("atr", {"length": 14}, 13),
            ("hma", {"length": 9}, 10),
            ("bb", {"length": 20}, 19),
            ("stoch", {}, 17),
            ("macd", {}, 25),
            ("macd_ext", {}, 33),
            ("macd_ext", {"default_ma_type": "SMA"}, 33),
            ("macd_ext", {"default_ma_type": "DEMA"}, 66),
            ("obv", {}, 0),
            ("ao", {}, 33),
            ("adx", {"length": 14}, 26),
            ("adx", {"length": 5}, 8),
            ("psar", {}, 1),
            ("stoch_rsi", {}, 31),
            ("stoch_rsi", {"rsi_length": 5, "stoch_length": 5, "k": 2, "d": 2}, 11),
            ("heikin_ashi", {}, 0),
        ],
    )
    def test_lookback(self, kind, options, expected):
        assert lookback(kind, options) == expected

    def test_hma_periods(self):
        assert hma_periods(9) == (4, 3)
        assert hma_periods(1) == (1, 1)
        assert hma_periods(16) == (8, 4)

    def test_unknown_kind(self):
        with pytest.raises(UnsupportedIndicatorError):
            lookback("supertrend")

    def test_invalid_length(self):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("sma", {"length": 0})
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("sma", {"length": 2.5})

    def test_invalid_stddev(self):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("bb", {"stddev": 0})

    def test_invalid_source(self):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("sma", {"source": "typical"})

    def test_macd_slow_shorter_than_fast(self):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("macd", {"fast_length": 26, "slow_length": 12})

    def test_macd_ext_swaps_legs(self):
        options = resolve_options("macd_ext", {"fast_period": 26, "slow_period": 12})
        assert options["fast_period"] == 12
        assert options["slow_period"] == 26

    def test_macd_ext_inherits_default_type(self):
        options = resolve_options("macd_ext", {"default_ma_type": "sma", "signal_ma_type": "ema"})
        assert options["fast_ma_type"] == "SMA"
        assert options["slow_ma_type"] == "SMA"
        assert options["signal_ma_type"] == "EMA"

    def test_bad_ma_type(self):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("bb_talib", {"ma_type": "KAMA"})

    def test_adx_needs_two_bars(self):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("adx", {"length": 1})

    @pytest.mark.parametrize("options", [{"step": 0}, {"step": -0.1}, {"step": 0.2, "max": 0.2}, {"max": "high"}])
    def test_invalid_psar_options(self, options):
        with pytest.raises(InvalidIndicatorOptionsError):
            resolve_options("psar", options)

    def test_psar_options_are_floats(self):
        options = resolve_options("psar", {"step": 1, "max": 2})
        assert options["step"] == 1.0 and isinstance(options["step"], float)


class TestFallbackFunctions:
    """Hand-checked values for the NumPy implementations."""

    def test_ema_seeded_with_first_value(self):
        result = ema(np.array([1.0, 2.0, 3.0]), 3)
        np.testing.assert_allclose(result, [1.0, 1.5, 2.25])

    def test_talib_ema_seeded_with_sma(self):
        result = talib_ema(np.array([1.0, 2.0, 3.0, 4.0]), 3)
        np.testing.assert_allclose(result, [2.0, 3.0])

    def test_sma(self):
        np.testing.assert_allclose(sma(np.arange(1.0, 6.0), 3), [2.0, 3.0, 4.0])

    def test_macd_first_histogram_is_zero(self):
        x = np.linspace(100.0, 140.0, 60)
        value, signal, histogram = macd(x, 12, 26, 9)
        assert len(value) == 60 - 25
        assert histogram[0] == 0.0
        np.testing.assert_allclose(histogram, value - signal)

    def test_macd_fixed_constants(self):
        # 0.15 / 0.075 smoothing for 12/26, 2/(9+1) for the signal
        x = np.zeros(27)
        x[26] = 10.0
        value, signal, histogram = macd(x, 12, 26, 9)
        np.testing.assert_allclose(value, [0.0, 0.75])
        np.testing.assert_allclose(signal, [0.0, 0.15])
        np.testing.assert_allclose(histogram, [0.0, 0.6])

    def test_macd_ext_length(self):
        x = np.linspace(1.0, 2.0, 50)
        value, signal, histogram = macd_ext(x, 12, 26, 9, "EMA", "EMA", "EMA")
        assert len(value) == len(signal) == len(histogram) == 50 - 33

    def test_macd_ext_constant_input(self):
        value, signal, histogram = macd_ext(np.full(40, 5.0), 12, 26, 9, "SMA", "SMA", "SMA")
        np.testing.assert_allclose(value, 0.0, atol=1e-12)
        np.testing.assert_allclose(histogram, 0.0, atol=1e-12)

    def test_hma_length(self):
        x = np.arange(30.0)
        assert len(hma(x, 9)) == 30 - 10

    def test_hma_tracks_linear_input(self):
        # On a straight line the Hull average has no lag
        x = np.arange(30.0)
        np.testing.assert_allclose(hma(x, 9), x[10:])

    def test_obv_flat_close_contributes_nothing(self):
        result = obv(np.array([1.0, 1.0, 2.0, 1.0]), np.array([10.0, 20.0, 30.0, 40.0]))
        np.testing.assert_allclose(result, [0.0, 0.0, 30.0, -10.0])

    def test_adx_steady_trend(self):
        # Every bar moves up with the same range: +DM only, so DX is 100
        close = np.arange(40.0)
        result = adx(close + 1, close - 1, close, 14)
        assert len(result) == 40 - 26
        np.testing.assert_allclose(result, 100.0)

    def test_psar_trails_an_uptrend(self):
        close = np.arange(30.0)
        low = close - 1
        result = psar(close + 1, low, 0.02, 0.2)
        assert len(result) == 29
        assert np.all(result < low[1:])
        assert np.all(np.diff(result) >= 0)

    def test_stoch_rsi_flat_input_is_zero(self):
        k, d = stoch_rsi(np.full(40, 5.0), 14, 14, 3, 3)
        assert len(k) == len(d) == 40 - 31
        np.testing.assert_allclose(k, 0.0)
        np.testing.assert_allclose(d, 0.0)

    def test_stoch_rsi_bounded(self):
        x = 100 + 5 * np.sin(np.arange(120) / 4)
        k, d = stoch_rsi(x, 14, 14, 3, 3)
        assert np.all((k >= 0) & (k <= 100))
        assert np.all((d >= 0) & (d <= 100))

    def test_heikin_ashi(self):
        ha_open, ha_high, ha_low, ha_close = heikin_ashi(
            np.array([10.0, 11.0]), np.array([12.0, 14.0]), np.array([9.0, 10.0]), np.array([11.0, 13.0])
        )
        np.testing.assert_allclose(ha_open, [10.5, 10.5])
        np.testing.assert_allclose(ha_close, [10.5, 12.0])
        np.testing.assert_allclose(ha_high, [12.0, 14.0])
        np.testing.assert_allclose(ha_low, [9.0, 10.0])


class TestEngine:
    """IndicatorEngine over the fallback backend."""

    @pytest.mark.asyncio
    async def test_scalar_offset(self, engine):
        series = await engine.compute("sma", _candles([1, 2, 3, 4, 5]), {"length": 3})
        assert isinstance(series, ScalarSeries)
        assert series.offset == 2
        assert series.tolist() == pytest.approx([2.0, 3.0, 4.0])
        assert series.at(2) == pytest.approx(2.0)
        assert series.at(1) is None
        assert series.last() == pytest.approx(4.0)
        assert series.last(1) == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_short_input_is_empty(self, engine):
        series = await engine.compute("sma", _candles([1, 2, 3, 4]), {"length": 5})
        assert series.is_empty
        assert series.offset == 4
        assert series.last() is None

    @pytest.mark.asyncio
    async def test_empty_input(self, engine):
        series = await engine.compute("cci", [], {"length": 20})
        assert series.is_empty

    @pytest.mark.asyncio
    async def test_exactly_lookback_plus_one(self, engine):
        series = await engine.compute("sma", _candles([1, 2, 3, 4, 5]), {"length": 5})
        assert len(series) == 1

    @pytest.mark.asyncio
    async def test_output_length_matches_lookback(self, engine):
        closes = [100 + math.sin(i / 3) * 5 for i in range(80)]
        for kind in ("sma", "ema", "wma", "dema", "tema", "trima", "kama", "hma", "rsi", "roc",
                     "cci", "atr", "mfi", "obv", "ao", "vwma", "macd", "macd_ext", "adx", "psar", "stoch",
                     "stoch_rsi", "bb", "heikin_ashi"):
            series = await engine.compute(kind, _candles(closes), None)
            assert len(series) == 80 - lookback(kind), kind

    @pytest.mark.asyncio
    async def test_bb_width(self, engine):
        series = await engine.compute("bb", [1.0, 2.0, 3.0], {"length": 3, "stddev": 2})
        assert isinstance(series, BandSeries)
        point = series.last()
        dev = 2 * math.sqrt(2 / 3)
        assert point.middle == pytest.approx(2.0)
        assert point.lower == pytest.approx(2.0 - dev)
        assert point.upper == pytest.approx(2.0 + dev)
        assert point.width == pytest.approx(2 * dev / 2.0)

    @pytest.mark.asyncio
    async def test_macd_series(self, engine):
        series = await engine.compute("macd", _candles(list(range(1, 41))), None)
        assert isinstance(series, ConvergenceSeries)
        assert series.offset == 25
        assert series[0].histogram == 0.0

    @pytest.mark.asyncio
    async def test_chained_series_offset(self, engine):
        candles = _candles([100 + i % 5 for i in range(40)])
        atr_series = await engine.compute("atr", candles, {"length": 14})
        atr_sma = await engine.compute("sma", atr_series, {"length": 20})
        assert atr_sma.offset == 13 + 19
        assert len(atr_sma) == 40 - 32

    @pytest.mark.asyncio
    async def test_structured_source_needs_field(self, engine):
        macd_series = await engine.compute("macd", _candles(list(range(40))), None)
        with pytest.raises(InvalidIndicatorOptionsError):
            await engine.compute("sma", macd_series, {"length": 3})
        hist_sma = await engine.compute("sma", macd_series, {"length": 3, "field": "histogram"})
        assert hist_sma.offset == 25 + 2

    @pytest.mark.asyncio
    async def test_candle_kind_needs_candles(self, engine):
        with pytest.raises(InvalidIndicatorOptionsError):
            await engine.compute("atr", [1.0, 2.0, 3.0], None)

    @pytest.mark.asyncio
    async def test_candles_passthrough(self, engine):
        candles = _candles([1, 2, 3])
        series = await engine.compute("candles", candles, None)
        assert len(series) == 3
        assert series.last().close == 3
        np.testing.assert_allclose(series.column("close"), [1, 2, 3])

    @pytest.mark.asyncio
    async def test_heikin_ashi_keeps_candle_fields(self, engine):
        candles = [
            Candle(time=0, open=10, high=12, low=9, close=11, volume=5),
            Candle(time=60, open=11, high=14, low=10, close=13, volume=7, is_closed=False),
        ]
        series = await engine.compute("heikin_ashi", candles, None)
        assert isinstance(series, CandleSeries)
        assert series.offset == 0
        assert [c.time for c in series] == [0, 60]
        assert series.last().close == pytest.approx(12.0)
        assert series.last().volume == 7
        assert series.last().is_closed is False

    @pytest.mark.asyncio
    async def test_source_option(self, engine):
        series = await engine.compute("sma", _candles([10, 20]), {"length": 1, "source": "hl2"})
        assert series.tolist() == pytest.approx([10.0, 20.0])

    def test_unsupported_kind(self, engine):
        with pytest.raises(UnsupportedIndicatorError):
            engine.compute_sync("ichimoku", _candles([1, 2, 3]), None)

    def test_series_are_read_only(self, engine):
        series = engine.compute_sync("sma", [1.0, 2.0, 3.0], {"length": 2})
        with pytest.raises(ValueError):
            series.values[0] = 5.0

    def test_backend_length_contract(self):
        class BrokenBackend(FallbackBackend):
            def compute(self, kind, inputs, options):
                return (np.zeros(1),)

        broken = IndicatorEngine(BrokenBackend())
        with pytest.raises(IndicatorComputationError):
            broken.compute_sync("sma", [1.0, 2.0, 3.0, 4.0], {"length": 2})
