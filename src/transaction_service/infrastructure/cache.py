import json
import re
from typing import TYPE_CHECKING, Any

import structlog
from redis.exceptions import RedisError

from transaction_service.domain.exceptions import CacheError


if TYPE_CHECKING:
    import redis.asyncio as redis

logger = structlog.get_logger()

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def transaction_key(transaction_id: str) -> str:
    return f"transaction:{transaction_id}"


def user_views_prefix(user_id: str) -> str:
    return f"user:{user_id}:"


def user_transactions_prefix(user_id: str) -> str:
    return f"user:{user_id}:transactions"


def user_transactions_key(user_id: str, limit: int, offset: int) -> str:
    return f"{user_transactions_prefix(user_id)}:{limit}:{offset}"


def user_stats_key(user_id: str) -> str:
    return f"user:{user_id}:stats"


class RedisCache:
    """
    Read-through projection cache backed by Redis.

    Values are stored as JSON documents. Every failure surfaces as CacheError,
    which callers treat as a miss or a skipped write.
    """

    def __init__(
        self,
        redis_client: "redis.Redis[bytes]",
        default_ttl_seconds: int = 900,
        scan_batch_size: int = 500,
    ) -> None:
        self._redis = redis_client
        self._default_ttl = default_ttl_seconds
        self._scan_batch_size = scan_batch_size

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    async def get(self, key: str) -> tuple[bool, Any]:
        """
        Look up a cached value.

        Returns:
            (found, value)
        """
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            raise CacheError("get", key, str(e)) from e
        if raw is None:
            return False, None
        try:
            return True, json.loads(raw)
        except ValueError as e:
            raise CacheError("decode", key, str(e)) from e

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise CacheError("encode", key, str(e)) from e
        try:
            await self._redis.set(key, payload, ex=ttl or self._default_ttl)
        except RedisError as e:
            raise CacheError("set", key, str(e)) from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            raise CacheError("delete", key, str(e)) from e

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``. Returns the number of keys removed."""
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        deleted = 0
        batch: list[bytes | str] = []
        try:
            async for key in self._redis.scan_iter(match=pattern, count=self._scan_batch_size):
                batch.append(key)
                if len(batch) >= self._scan_batch_size:
                    deleted += int(await self._redis.delete(*batch))
                    batch.clear()
            if batch:
                deleted += int(await self._redis.delete(*batch))
        except RedisError as e:
            raise CacheError("delete_by_prefix", prefix, str(e)) from e
        logger.debug("cache_prefix_invalidated", prefix=prefix, deleted=deleted)
        return deleted
