"""Key-value backend holding the persisted annotations."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from annostore._redact import redact_url
from annostore.exceptions import BackendError

_logger = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    """Structural backend interface used by the store.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RedisHashBackend`) concrete.
    Implementations raise :class:`BackendError` for every failure.
    """

    async def get_all(self) -> dict[str, str]:
        ...

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class RedisHashBackend:
    """Backend that keeps every annotation as one field of a single Redis hash."""

    def __init__(self, client: aioredis.Redis, hash_key: str) -> None:
        self._client = client
        self._hash_key = hash_key

    @classmethod
    def from_url(cls, url: str, hash_key: str, **kwargs: Any) -> RedisHashBackend:
        """Build a backend with its own connection pool.

        The pool connects lazily on the first command and is reused for
        the lifetime of the backend.
        """
        _logger.debug("Redis backend url=%s hash=%s", redact_url(url), hash_key)
        client = aioredis.Redis.from_url(url, decode_responses=True, **kwargs)
        return cls(client, hash_key)

    @property
    def hash_key(self) -> str:
        return self._hash_key

    async def _run(self, command: str, coro: Any) -> Any:
        try:
            return await coro
        except (RedisError, OSError) as exc:
            raise BackendError(f"Redis {command} on {self._hash_key} failed: {exc}", command=command) from exc

    async def get_all(self) -> dict[str, str]:
        return await self._run("HGETALL", self._client.hgetall(self._hash_key))

    async def get(self, key: str) -> str | None:
        return await self._run("HGET", self._client.hget(self._hash_key, key))

    async def set(self, key: str, value: str) -> None:
        await self._run("HSET", self._client.hset(self._hash_key, key, value))

    async def delete(self, key: str) -> bool:
        removed = await self._run("HDEL", self._client.hdel(self._hash_key, key))
        return int(removed) > 0

    async def ping(self) -> bool:
        return bool(await self._run("PING", self._client.ping()))

    async def close(self) -> None:
        await self._client.aclose()
