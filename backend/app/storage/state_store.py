"""Strategy state persistence.

A ``StateStore`` keeps one ``StrategyState`` per (symbol, strategy name).
The runner loads it once per instance and saves it after every tick.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.models.state import StrategyState


@runtime_checkable
class StateStore(Protocol):
    """Persistence for strategy state."""

    async def load(self, symbol: str, strategy: str) -> StrategyState | None:
        """Stored state, or None if nothing was saved yet."""
        ...

    async def save(self, symbol: str, strategy: str, state: StrategyState) -> None:
        ...


class InMemoryStateStore:
    """Process-local state store. Stores copies so callers cannot mutate it."""

    def __init__(self):
        self._states: dict[tuple[str, str], StrategyState] = {}

    async def load(self, symbol: str, strategy: str) -> StrategyState | None:
        state = self._states.get((symbol, strategy))
        return state.model_copy(deep=True) if state is not None else None

    async def save(self, symbol: str, strategy: str, state: StrategyState) -> None:
        self._states[(symbol, strategy)] = state.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._states)
