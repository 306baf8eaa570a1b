"""Indicator computation backends.

Two implementations:
1. NativeBackend - tulipy (Tulip Indicators) and TA-Lib, used for every
   kind an installed native library covers
2. FallbackBackend - pure NumPy, always available

``default_backend`` selects the backend once per process through
``select_backend`` and hands the same instance to every engine. A
NativeBackend delegates kinds its libraries do not cover to the fallback,
so both paths share the same lookbacks and output lengths.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Mapping, Protocol, runtime_checkable

import numpy as np

from core.errors import ConfigurationError, UnsupportedIndicatorError
from core.indicators.indicators import FALLBACK_FUNCTIONS
from core.indicators.kinds import IndicatorKind

logger = logging.getLogger(__name__)

# Try to import native implementations
try:
    from core.indicators.tulip_indicators import TULIP_FUNCTIONS
    _TULIP_AVAILABLE = True
except ImportError:
    TULIP_FUNCTIONS = {}
    _TULIP_AVAILABLE = False

try:
    from core.indicators.talib_indicators import TALIB_FUNCTIONS
    _TALIB_AVAILABLE = True
except ImportError:
    TALIB_FUNCTIONS = {}
    _TALIB_AVAILABLE = False

IndicatorFunction = Callable[[Mapping[str, np.ndarray], Mapping], tuple[np.ndarray, ...]]


@runtime_checkable
class IndicatorBackend(Protocol):
    """Capability-checked indicator calculator."""

    name: str
    is_native: bool

    def supports(self, kind: IndicatorKind) -> bool:
        """Whether this backend computes ``kind`` itself."""
        ...

    def compute(
        self,
        kind: IndicatorKind,
        inputs: Mapping[str, np.ndarray],
        options: Mapping,
    ) -> tuple[np.ndarray, ...]:
        """Compute raw output columns with the warm-up already dropped."""
        ...


class FallbackBackend:
    """Pure NumPy backend covering every indicator kind."""

    name = "fallback"
    is_native = False

    def supports(self, kind: IndicatorKind) -> bool:
        return kind in FALLBACK_FUNCTIONS

    def compute(
        self,
        kind: IndicatorKind,
        inputs: Mapping[str, np.ndarray],
        options: Mapping,
    ) -> tuple[np.ndarray, ...]:
        fn = FALLBACK_FUNCTIONS.get(kind)
        if fn is None:
            raise UnsupportedIndicatorError(getattr(kind, "value", str(kind)))
        return fn(inputs, options)


class NativeBackend:
    """Backend built on native libraries with per-kind NumPy fallback."""

    name = "native"
    is_native = True

    def __init__(
        self,
        providers: Mapping[IndicatorKind, IndicatorFunction] | None = None,
        fallback: FallbackBackend | None = None,
    ):
        self._providers: dict[IndicatorKind, IndicatorFunction] = dict(
            providers if providers is not None else native_functions()
        )
        if not self._providers:
            raise ConfigurationError("No native indicator library (tulipy, TA-Lib) is installed")
        self._fallback = fallback or FallbackBackend()

    @property
    def native_kinds(self) -> list[IndicatorKind]:
        return sorted(self._providers, key=lambda k: k.value)

    def supports(self, kind: IndicatorKind) -> bool:
        return kind in self._providers

    def compute(
        self,
        kind: IndicatorKind,
        inputs: Mapping[str, np.ndarray],
        options: Mapping,
    ) -> tuple[np.ndarray, ...]:
        fn = self._providers.get(kind)
        if fn is None:
            return self._fallback.compute(kind, inputs, options)
        return fn(inputs, options)


def native_functions() -> dict[IndicatorKind, IndicatorFunction]:
    """Native implementations of every kind an installed library covers."""
    functions: dict[IndicatorKind, IndicatorFunction] = {}
    functions.update(TULIP_FUNCTIONS)
    functions.update(TALIB_FUNCTIONS)
    return functions


def is_native_available() -> bool:
    """Check if any native indicator library is available."""
    return _TULIP_AVAILABLE or _TALIB_AVAILABLE


def select_backend(prefer: str = "auto") -> FallbackBackend | NativeBackend:
    """Pick the indicator backend once for the whole process.

    Args:
        prefer: ``auto`` uses native libraries when installed, ``native``
            requires them, ``fallback`` forces pure NumPy.

    Returns:
        The selected backend.

    Raises:
        ConfigurationError: If ``native`` is requested but unavailable, or
            ``prefer`` is not a known mode.
    """
    mode = (prefer or "auto").lower()
    if mode not in ("auto", "native", "fallback"):
        raise ConfigurationError(f"Unknown indicator backend '{prefer}'")

    backend: FallbackBackend | NativeBackend
    if mode == "fallback" or (mode == "auto" and not is_native_available()):
        backend = FallbackBackend()
        logger.info("Indicator backend: fallback (NumPy)")
    else:
        backend = NativeBackend()
        logger.info(
            "Indicator backend: native (tulipy=%s, talib=%s)",
            _TULIP_AVAILABLE,
            _TALIB_AVAILABLE,
        )
    return backend


def default_backend(prefer: str = "auto") -> FallbackBackend | NativeBackend:
    """Process-wide backend for ``prefer``, selected on first use."""
    return _shared_backend(prefer)


@lru_cache
def _shared_backend(prefer: str) -> FallbackBackend | NativeBackend:
    return select_backend(prefer)
