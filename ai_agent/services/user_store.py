# This module persists per-user JSON documents in Redis.
# Every concern (sessions, contacts, transactions) gets its own namespace and
# one key per user; read-modify-write cycles are serialized per key.
# Version: 0.1.0

import asyncio
import json
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Optional

from redis.asyncio import Redis, from_url

from ai_agent.core.config import get_settings
from ai_agent.utils.logger import console


@lru_cache
def get_redis_client() -> Redis:
    """Returns the process-wide async Redis client built from the settings."""
    settings = get_settings()
    client = from_url(settings.REDIS_URL, decode_responses=True)
    console.info("Async Redis client for the user store initialized.")
    return client


class UserStore:
    """
    A namespace of per-user JSON documents.

    Keys look like '<prefix>:<namespace>:<user_id>'. Values are whatever JSON
    the caller hands in; the store does not interpret them.
    """

    def __init__(self, namespace: str, redis_client: Optional[Redis] = None, key_prefix: Optional[str] = None):
        self.namespace = namespace
        self._redis = redis_client if redis_client is not None else get_redis_client()
        self._prefix = key_prefix if key_prefix is not None else get_settings().REDIS_KEY_PREFIX
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{self.namespace}:{user_id}"

    @asynccontextmanager
    async def locked(self, user_id: str) -> AsyncIterator[None]:
        """Mutual exclusion for one user's document. Other users never wait on it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # The entry goes away once nobody holds or waits for it.
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    async def load(self, user_id: str) -> Optional[Any]:
        raw = await self._redis.get(self._key(user_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def save(self, user_id: str, value: Any):
        await self._redis.set(self._key(user_id), json.dumps(value, ensure_ascii=False, default=str))

    async def delete(self, user_id: str) -> bool:
        removed = await self._redis.delete(self._key(user_id))
        return bool(removed)

    async def exists(self, user_id: str) -> bool:
        return bool(await self._redis.exists(self._key(user_id)))

    async def user_ids(self) -> List[str]:
        prefix = self._key("")
        user_ids = []
        async for key in self._redis.scan_iter(match=f"{prefix}*"):
            user_ids.append(key[len(prefix):])
        return user_ids
