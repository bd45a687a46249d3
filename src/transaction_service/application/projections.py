from typing import Any

import structlog

from transaction_service.application.ports import ProjectionCache
from transaction_service.domain.exceptions import CacheError
from transaction_service.infrastructure.metrics import CACHE_ERRORS_TOTAL


logger = structlog.get_logger()


class BestEffortCache:
    """Wraps the projection cache so its failures never decide an operation's outcome.

    A failed read is a miss, a failed write or invalidation is logged and skipped.
    """

    def __init__(self, cache: ProjectionCache) -> None:
        self._cache = cache

    async def get(self, key: str) -> tuple[bool, Any]:
        try:
            return await self._cache.get(key)
        except CacheError as e:
            self._record(e)
            return False, None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._cache.set(key, value, ttl)
        except CacheError as e:
            self._record(e)

    async def invalidate(self, keys: list[str] | None = None, prefixes: list[str] | None = None) -> None:
        for key in keys or []:
            try:
                await self._cache.delete(key)
            except CacheError as e:
                self._record(e)
        for prefix in prefixes or []:
            try:
                await self._cache.delete_by_prefix(prefix)
            except CacheError as e:
                self._record(e)

    @staticmethod
    def _record(error: CacheError) -> None:
        CACHE_ERRORS_TOTAL.labels(operation=error.operation).inc()
        logger.warning("cache_operation_failed", operation=error.operation, key=error.key, error=error.reason)
