"""State and cache storage layer."""

from app.storage.redis_state_store import RedisStateStore
from app.storage.state_store import InMemoryStateStore, StateStore
from app.storage.ttl_cache import TTLCache

__all__ = [
    "StateStore",
    "InMemoryStateStore",
    "RedisStateStore",
    "TTLCache",
]
