"""Tests for backend selection and native delegation."""

import logging

import numpy as np
import pytest

from core.errors import ConfigurationError
from core.indicators import FallbackBackend, IndicatorEngine, NativeBackend, default_backend, select_backend
from core.indicators import backends
from core.indicators.kinds import IndicatorKind


class TestSelectBackend:
    def test_forced_fallback(self, caplog):
        with caplog.at_level(logging.INFO, logger="core.indicators.backends"):
            backend = select_backend("fallback")
        assert isinstance(backend, FallbackBackend)
        assert not backend.is_native
        assert "fallback" in caplog.text

    def test_auto_without_native(self, monkeypatch):
        monkeypatch.setattr(backends, "_TULIP_AVAILABLE", False)
        monkeypatch.setattr(backends, "_TALIB_AVAILABLE", False)
        assert isinstance(select_backend("auto"), FallbackBackend)

    def test_native_required_but_missing(self, monkeypatch):
        monkeypatch.setattr(backends, "TULIP_FUNCTIONS", {})
        monkeypatch.setattr(backends, "TALIB_FUNCTIONS", {})
        with pytest.raises(ConfigurationError):
            select_backend("native")

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            select_backend("gpu")


class TestDefaultBackend:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        backends._shared_backend.cache_clear()
        yield
        backends._shared_backend.cache_clear()

    def test_selected_once(self, monkeypatch):
        calls = []
        real = backends.select_backend

        def counting(prefer="auto"):
            calls.append(prefer)
            return real(prefer)

        monkeypatch.setattr(backends, "select_backend", counting)
        first = IndicatorEngine()
        second = IndicatorEngine()
        assert first.backend is second.backend
        assert default_backend("auto") is first.backend
        assert calls == ["auto"]

    def test_per_preference(self):
        assert isinstance(default_backend("fallback"), FallbackBackend)
        assert default_backend("fallback") is default_backend("fallback")


class TestNativeBackend:
    def test_delegates_unsupported_kinds(self):
        calls = []

        def fake_sma(inputs, options):
            calls.append(options["length"])
            return (np.full(len(inputs["values"]) - options["length"] + 1, 42.0),)

        backend = NativeBackend({IndicatorKind.SMA: fake_sma})
        assert backend.supports(IndicatorKind.SMA)
        assert not backend.supports(IndicatorKind.RSI)
        assert backend.native_kinds == [IndicatorKind.SMA]

        engine = IndicatorEngine(backend, offload_native=False)
        sma = engine.compute_sync("sma", [1.0, 2.0, 3.0], {"length": 2})
        assert sma.tolist() == [42.0, 42.0]
        assert calls == [2]

        ema = engine.compute_sync("ema", [1.0, 2.0, 3.0], {"length": 3})
        assert ema.tolist() == pytest.approx([1.0, 1.5, 2.25])

    @pytest.mark.asyncio
    async def test_offloaded_compute(self):
        def fake_sma(inputs, options):
            return (np.zeros(len(inputs["values"]) - options["length"] + 1),)

        engine = IndicatorEngine(NativeBackend({IndicatorKind.SMA: fake_sma}))
        series = await engine.compute("sma", [1.0, 2.0, 3.0], {"length": 2})
        assert len(series) == 2
