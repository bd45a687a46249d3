import redis.asyncio as redis
import structlog

from transaction_service.infrastructure.cache import RedisCache


logger = structlog.get_logger()


class RedisClient:
    """Owns the Redis connection backing the projection cache.

    Socket timeouts are kept short: a slow cache must degrade into a miss
    instead of holding up a transaction.
    """

    def __init__(
        self,
        url: str,
        socket_timeout: float = 1.0,
        health_check_interval: int = 30,
    ) -> None:
        self._url = url
        self._socket_timeout = socket_timeout
        self._health_check_interval = health_check_interval
        self._client: redis.Redis[bytes] | None = None

    @property
    def client(self) -> "redis.Redis[bytes]":
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        self._client = redis.from_url(
            self._url,
            decode_responses=False,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
            health_check_interval=self._health_check_interval,
        )
        await self._client.ping()
        logger.info("redis_connected", url=self._url.split("@")[-1])

    def cache(self, default_ttl_seconds: int) -> RedisCache:
        """Projection cache on top of this connection."""
        return RedisCache(self.client, default_ttl_seconds=default_ttl_seconds)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()
        except redis.RedisError:
            logger.warning("redis_health_check_failed", exc_info=True)
            return False
        return True
