"""Declarative indicator registration used by strategies.

Usage:
    builder = IndicatorBuilder()
    builder.add("atr", "atr", "15m", {"length": 14})
    builder.add("atr_sma", "sma", "15m", {"length": 20}, source_indicator_key="atr")

    for spec in builder.resolve_order():
        ...
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field

from core.errors import ConfigurationError, DuplicateIndicatorKeyError
from core.indicators.kinds import IndicatorKind, get_definition, parse_kind, resolve_options
from core.models.timeframe import timeframe_to_seconds


class IndicatorSpec(BaseModel):
    """One declared indicator.

    Attributes:
        key: Unique key within a strategy.
        kind: Indicator kind.
        timeframe: Timeframe whose candles feed the indicator.
        options: Resolved options, defaults included.
        source_indicator_key: Compute over this indicator's output instead
            of raw candles.
        history: Newest outputs the strategy reads on each tick.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    kind: IndicatorKind
    timeframe: str
    options: dict[str, Any] = Field(default_factory=dict)
    source_indicator_key: str | None = None
    history: int = Field(2, ge=1)

    @property
    def include_forming(self) -> bool:
        """Whether the forming candle is fed to this indicator."""
        return bool(self.options.get("include_forming", False))

    @property
    def lookback(self) -> int:
        return get_definition(self.kind).lookback(self.options)


class IndicatorBuilder:
    """Collects the indicators a strategy needs before any evaluation."""

    def __init__(self) -> None:
        self._specs: dict[str, IndicatorSpec] = {}

    def add(
        self,
        key: str,
        kind: IndicatorKind | str,
        timeframe: str,
        options: Mapping[str, Any] | None = None,
        source_indicator_key: str | None = None,
        history: int = 2,
    ) -> IndicatorSpec:
        """Declare an indicator.

        Args:
            key: Unique key the strategy reads the series by.
            kind: Indicator kind.
            timeframe: Source timeframe, e.g. ``15m``.
            options: Indicator options.
            source_indicator_key: Key of another indicator on the same
                timeframe to compute over.
            history: Newest outputs read per tick; sizes the warmup.

        Returns:
            The registered spec.

        Raises:
            DuplicateIndicatorKeyError: If ``key`` is already declared.
            UnsupportedIndicatorError: If ``kind`` is unknown.
            InvalidIndicatorOptionsError: If options are malformed.
            ConfigurationError: If the key or timeframe is invalid.
        """
        if not key:
            raise ConfigurationError("Indicator key must not be empty")
        if key in self._specs:
            raise DuplicateIndicatorKeyError(key)
        parsed = parse_kind(kind)
        timeframe_to_seconds(timeframe)
        resolved = resolve_options(parsed, options)

        spec = IndicatorSpec(
            key=key,
            kind=parsed,
            timeframe=timeframe,
            options=dict(resolved),
            source_indicator_key=source_indicator_key,
            history=history,
        )
        self._specs[key] = spec
        return spec

    def get(self, key: str) -> IndicatorSpec:
        return self._specs[key]

    def __contains__(self, key: object) -> bool:
        return key in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[IndicatorSpec]:
        return iter(self._specs.values())

    def timeframes(self) -> list[str]:
        """Distinct timeframes in declaration order."""
        return list(dict.fromkeys(spec.timeframe for spec in self._specs.values()))

    def resolve_order(self) -> list[IndicatorSpec]:
        """Specs ordered so every source precedes the indicators using it.

        Declaration order is kept wherever dependencies allow.

        Raises:
            ConfigurationError: On an unknown source key, a source on a
                different timeframe, or a dependency cycle.
        """
        for spec in self._specs.values():
            source_key = spec.source_indicator_key
            if source_key is None:
                continue
            source = self._specs.get(source_key)
            if source is None:
                raise ConfigurationError(
                    f"Indicator '{spec.key}' uses unknown source indicator '{source_key}'"
                )
            if source.timeframe != spec.timeframe:
                raise ConfigurationError(
                    f"Indicator '{spec.key}' ({spec.timeframe}) cannot use source "
                    f"'{source_key}' on another timeframe ({source.timeframe})"
                )

        ordered: list[IndicatorSpec] = []
        done: set[str] = set()
        for spec in self._specs.values():
            chain: list[IndicatorSpec] = []
            current: IndicatorSpec | None = spec
            while current is not None and current.key not in done:
                if current in chain:
                    keys = " -> ".join(s.key for s in chain + [current])
                    raise ConfigurationError(f"Indicator dependency cycle: {keys}")
                chain.append(current)
                source_key = current.source_indicator_key
                current = self._specs[source_key] if source_key is not None else None
            for item in reversed(chain):
                ordered.append(item)
                done.add(item.key)
        return ordered

    def chain_lookback(self, key: str) -> int:
        """Total lookback of an indicator including its source chain."""
        total = 0
        seen: set[str] = set()
        current: IndicatorSpec | None = self._specs[key]
        while current is not None:
            if current.key in seen:
                raise ConfigurationError(f"Indicator dependency cycle at '{current.key}'")
            seen.add(current.key)
            total += current.lookback
            source_key = current.source_indicator_key
            current = self._specs.get(source_key) if source_key is not None else None
        return total

    def warmup(self, timeframe: str) -> int:
        """Closed candles needed so every indicator on ``timeframe`` has the
        history it declared (current and previous value by default)."""
        lookbacks = [
            self.chain_lookback(spec.key) + spec.history
            for spec in self._specs.values()
            if spec.timeframe == timeframe
        ]
        if not lookbacks:
            return 1
        return max(lookbacks)
