"""Strategy registry for discovering and instantiating strategies.

Usage:
    @register_strategy("my_strategy")
    class MyStrategy(StatefulStrategy[MyConfig]):
        ...

    strategy = create_strategy("my_strategy", config={"period": "15m"})
    strategies = list_strategies()

The registry is filled at import time by the built-in strategy packages
and is read-only afterwards.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

# strategy_name -> strategy_class
_REGISTRY: dict[str, type] = {}


def register_strategy(name: str):
    """Decorator registering a strategy class under ``name``.

    The name is also stored on the class as ``strategy_name``.

    Raises:
        ValueError: If a strategy with the same name is already registered.
    """

    def decorator(cls):
        if name in _REGISTRY:
            raise ValueError(
                f"Strategy '{name}' is already registered by {_REGISTRY[name].__name__}"
            )
        cls.strategy_name = name
        _REGISTRY[name] = cls
        logger.debug("Registered strategy: %s -> %s", name, cls.__name__)
        return cls

    return decorator


def get_strategy_class(name: str) -> type:
    """Look up a strategy class without instantiating it.

    Raises:
        KeyError: If no strategy is registered under the given name.
    """
    cls = _REGISTRY.get(name)
    if cls is None:
        available = ", ".join(sorted(_REGISTRY)) or "(none)"
        raise KeyError(f"Unknown strategy '{name}'. Available: {available}")
    return cls


def create_strategy(name: str, **kwargs: Any):
    """Instantiate a registered strategy; ``kwargs`` go to its constructor."""
    return get_strategy_class(name)(**kwargs)


def list_strategies() -> list[str]:
    """Return a sorted list of registered strategy names."""
    return sorted(_REGISTRY)
