"""
Key-value persistence: registered Last.fm usernames and short-lived caches.

Redis (``redis.asyncio``) when ``REDIS_URL`` is configured, a process-local
dict otherwise. There is no locking; concurrent writers race and the last
write wins.
"""
from __future__ import annotations

import fnmatch
import json
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .exceptions import APIError
from .utils.logging import get_logger

logger = get_logger(__name__)

USER_KEY_PREFIX = "lastfm:user:"


class KVStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None: ...

    async def keys(self, match: str) -> List[str]: ...

    async def mget(self, keys: List[str]) -> List[Optional[str]]: ...

    async def aclose(self) -> None: ...


class InMemoryKVStore:
    """Dict-backed store with per-key expiry, used in development and tests."""

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ex if ex else None
        self._data[key] = (value, expires_at)

    async def keys(self, match: str) -> List[str]:
        return [k for k in list(self._data) if fnmatch.fnmatchcase(k, match) and self._live(k) is not None]

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        return [self._live(k) for k in keys]

    async def aclose(self) -> None:
        self._data.clear()


class RedisKVStore:
    """``redis.asyncio`` adapter. Connection errors surface as ``APIError``."""

    def __init__(self, url: str):
        self._redis = aioredis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            raise APIError(f"KV get failed: {e}") from e

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        try:
            await self._redis.set(key, value, ex=ex)
        except RedisError as e:
            raise APIError(f"KV set failed: {e}") from e

    async def keys(self, match: str) -> List[str]:
        try:
            return [key async for key in self._redis.scan_iter(match=match)]
        except RedisError as e:
            raise APIError(f"KV scan failed: {e}") from e

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        try:
            return await self._redis.mget(keys)
        except RedisError as e:
            raise APIError(f"KV mget failed: {e}") from e

    async def aclose(self) -> None:
        await self._redis.aclose()


def create_kv_store(config: Dict[str, Any]) -> KVStore:
    url = config.get("REDIS_URL")
    if url:
        logger.info("🗄 Using Redis key-value store", extra={"subsys": "kv", "event": "init"})
        return RedisKVStore(url)
    logger.warning(
        "⚠ REDIS_URL not set; registrations live in memory and vanish on restart",
        extra={"subsys": "kv", "event": "init"},
    )
    return InMemoryKVStore()


class UserRegistry:
    """Discord user id -> Last.fm username. ``register`` overwrites, nothing deletes."""

    def __init__(self, kv: KVStore):
        self.kv = kv

    @staticmethod
    def key_for(user_id: str) -> str:
        return f"{USER_KEY_PREFIX}{user_id}"

    async def register(self, user_id: str, username: str) -> None:
        await self.kv.set(self.key_for(user_id), username)
        logger.info(
            f"📝 Registered Last.fm user {username} for {user_id}",
            extra={"subsys": "kv", "event": "register", "user_id": user_id},
        )

    async def lookup(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        return await self.kv.get(self.key_for(user_id))

    async def usernames(self) -> List[str]:
        """Every registered username, deduplicated, in key order."""
        keys = sorted(await self.kv.keys(f"{USER_KEY_PREFIX}*"))
        if not keys:
            return []
        seen: Dict[str, None] = {}
        for name in await self.kv.mget(keys):
            if name:
                seen.setdefault(name, None)
        return list(seen)


async def cache_get_json(kv: KVStore, key: str) -> Optional[Any]:
    raw = await kv.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"⚠ Dropping unreadable cache entry {key}", extra={"subsys": "kv"})
        return None


async def cache_set_json(kv: KVStore, key: str, value: Any, ttl: int) -> None:
    await kv.set(key, json.dumps(value), ex=ttl)
