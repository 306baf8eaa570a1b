"""Shared plumbing for stateful strategies.

Handles option validation, state ownership, the per-candle evaluation
guard and the structured decision log line. Concrete strategies only
implement ``declare_indicators`` and ``evaluate``.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Generic, Mapping, TypeVar

import orjson
from pydantic import BaseModel, ValidationError

from core.errors import ConfigurationError
from core.models.signal import SignalResult, Side, create_empty_signal, create_signal
from core.models.state import StrategyState
from core.strategy.period import IndicatorPeriod

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)

# Reasons attached to empty signals when a tick is skipped.
REASON_NO_CLOSED_CANDLE = "no_closed_candle"
REASON_DUPLICATE = "duplicate_candle"
REASON_STALE = "stale_candle"
REASON_UNORDERED = "unordered_candles"
REASON_INSUFFICIENT = "insufficient_indicators"
REASON_INVALID_VALUES = "invalid_indicator_values"


def dumps_decision(payload: Mapping[str, Any]) -> str:
    """Serialise a decision payload for the log line."""
    return orjson.dumps(payload, option=orjson.OPT_NON_STR_KEYS | orjson.OPT_SERIALIZE_NUMPY).decode()


class StatefulStrategy(Generic[ConfigT]):
    """Base class for strategies that own a ``StrategyState``.

    Subclasses set ``strategy_name``, ``strategy_version`` and
    ``config_class``; the config model must have a ``period`` field with
    the primary timeframe.
    """

    strategy_name: ClassVar[str] = ""
    strategy_version: ClassVar[str] = "1.0.0"
    config_class: ClassVar[type[BaseModel]]
    decision_tag: ClassVar[str] = "DECISION"

    def __init__(
        self,
        config: ConfigT | Mapping[str, Any] | None = None,
        state: StrategyState | None = None,
    ):
        self.config: ConfigT = self._validate(config)
        self._state = state.model_copy(deep=True) if state is not None else StrategyState()

    # ------------------------------------------------------------------
    # Strategy Protocol properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.strategy_name

    @property
    def version(self) -> str:
        return self.strategy_version

    @property
    def timeframe(self) -> str:
        return self.config.period

    @property
    def state(self) -> StrategyState:
        return self._state

    def load_state(self, state: StrategyState | None) -> None:
        self._state = state.model_copy(deep=True) if state is not None else StrategyState()

    def get_options(self) -> dict[str, Any]:
        return self.config.model_dump()

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _validate(self, options: Any) -> ConfigT:
        if isinstance(options, self.config_class):
            return options
        try:
            return self.config_class.model_validate(dict(options or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid options for {self.strategy_name}: {e}") from e

    def resolve_options(self, options: ConfigT | Mapping[str, Any] | None = None) -> ConfigT:
        """Effective config for one call: instance config overridden by
        ``options``.

        Raises:
            ConfigurationError: If the merged options are invalid.
        """
        if options is None:
            return self.config
        if isinstance(options, self.config_class):
            return options
        return self._validate({**self.config.model_dump(), **dict(options)})

    def guard_candle(self, period: IndicatorPeriod) -> SignalResult | None:
        """Return an empty signal if this tick must not be evaluated.

        A closed candle at or before the last evaluated one is a no-op, and
        so is a candle window whose times do not strictly increase.
        """
        ts = period.candle_ts
        last = self._state.last_evaluated_candle_ts
        if period.unordered_timeframe is not None:
            return self.skip(
                ts,
                REASON_UNORDERED,
                timeframe=period.unordered_timeframe,
                blockers={"candleNotClosed": True},
            )
        if ts is None:
            return self.skip(None, REASON_NO_CLOSED_CANDLE, blockers={"candleNotClosed": True})
        if last is not None and ts == last:
            return self.skip(ts, REASON_DUPLICATE, blockers={"duplicateEvaluation": True})
        if last is not None and ts < last:
            return self.skip(ts, REASON_STALE, blockers={"duplicateEvaluation": True})
        return None

    def skip(self, candle_ts: int | None, reason: str, **extra: Any) -> SignalResult:
        """Empty signal for a tick that was not evaluated. State is untouched."""
        debug = {"candle_ts": candle_ts, "reason": reason, "regime": self._state.regime.value}
        debug.update(extra)
        logger.debug("%s %s skipped candle %s: %s", self.strategy_name, self.decision_tag, candle_ts, reason)
        return create_empty_signal(debug)

    def commit(self, state: StrategyState) -> None:
        self._state = state

    def decide(
        self,
        action: str,
        side: Side | None,
        blockers: Mapping[str, bool],
        debug: dict[str, Any],
        symbol: str | None = None,
    ) -> SignalResult:
        """Log the structured decision line and build the result."""
        debug["action"] = action
        debug["blockers"] = dict(blockers)
        payload = {"strategy": self.strategy_name, "symbol": symbol, **debug}
        logger.info("%s %s", self.decision_tag, dumps_decision(payload))
        if side is None:
            return create_empty_signal(debug)
        return create_signal(side, debug)
