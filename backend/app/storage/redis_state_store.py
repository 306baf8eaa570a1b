"""Redis-backed strategy state store.

Data structure:
- strategy_state:{strategy}:{symbol} -> JSON serialized StrategyState

Uses orjson for serialization. Connection errors propagate to the caller;
an unreadable payload is logged and treated as missing state.
"""

from __future__ import annotations

import logging

import orjson
import redis.asyncio as redis
from pydantic import ValidationError

from core.models.state import StrategyState

logger = logging.getLogger(__name__)

KEY_PREFIX_STATE = "strategy_state"


class RedisStateStore:
    """StateStore persisting to Redis."""

    def __init__(self, client: redis.Redis, key_prefix: str = KEY_PREFIX_STATE, ttl: int | None = None):
        self._client = client
        self._prefix = key_prefix
        self._ttl = ttl

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStateStore":
        # We handle encoding ourselves with orjson
        client = redis.Redis.from_url(url, decode_responses=False)
        return cls(client, **kwargs)

    def key(self, symbol: str, strategy: str) -> str:
        return f"{self._prefix}:{strategy}:{symbol}"

    async def load(self, symbol: str, strategy: str) -> StrategyState | None:
        data = await self._client.get(self.key(symbol, strategy))
        if data is None:
            return None
        try:
            return StrategyState.model_validate(orjson.loads(data))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning("Discarding unreadable state for %s/%s: %s", strategy, symbol, e)
            return None

    async def save(self, symbol: str, strategy: str, state: StrategyState) -> None:
        data = orjson.dumps(state.model_dump(mode="json"))
        if self._ttl:
            await self._client.setex(self.key(symbol, strategy), self._ttl, data)
        else:
            await self._client.set(self.key(symbol, strategy), data)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis state store connection closed")
