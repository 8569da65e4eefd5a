"""
캐시 서비스
Redis-backed cache for the existing-stem sample.
A Redis outage disables caching; it never fails a request.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis

from qbgen.core.constants import Timeouts
from qbgen.core.settings import settings

logger = logging.getLogger("service.cache")

T = TypeVar('T')


class CacheService:
    """
    Redis 기반 캐싱 서비스
    """

    def __init__(
        self,
        redis_host: str = "localhost",
        redis_port: int = 6379,
        redis_db: int = 0,
        default_ttl: int = 600
    ):
        self.default_ttl = default_ttl
        try:
            self.redis_client = redis.Redis(
                host=redis_host,
                port=redis_port,
                db=redis_db,
                decode_responses=True,
                socket_connect_timeout=Timeouts.REDIS
            )
            self.redis_client.ping()
            self._available = True
        except redis.RedisError as e:
            logger.warning("cache_disabled", extra={"error": str(e)})
            self._available = False

    @property
    def is_available(self) -> bool:
        return self._available

    def get(self, key: str) -> Optional[Any]:
        """
        캐시에서 데이터 조회

        Returns:
            캐시된 데이터 또는 None
        """
        if not self._available:
            return None

        try:
            value = self.redis_client.get(key)
            if value is None:
                return None
            return json.loads(value)
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.warning("cache_get_failed", extra={"key": key, "error": str(e)})
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        캐시에 데이터 저장

        Args:
            ttl: TTL (초), None이면 기본값 사용
        """
        if not self._available:
            return False

        try:
            self.redis_client.setex(key, ttl or self.default_ttl, json.dumps(value, ensure_ascii=False))
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning("cache_set_failed", extra={"key": key, "error": str(e)})
            return False

    def delete(self, key: str) -> bool:
        if not self._available:
            return False

        try:
            self.redis_client.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", extra={"key": key, "error": str(e)})
            return False

    async def get_or_set_async(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: Optional[int] = None
    ) -> T:
        """
        캐시에서 조회하고, 없으면 factory 결과를 저장 후 반환
        동기 Redis 호출은 이벤트 루프 밖 스레드에서 실행
        """
        cached = await asyncio.to_thread(self.get, key)
        if cached is not None:
            logger.debug("cache_hit", extra={"key": key})
            return cached

        value = await factory()
        await asyncio.to_thread(self.set, key, value, ttl)
        return value


# ===========================================
# 싱글톤 인스턴스
# ===========================================

_cache_service: Optional[CacheService] = None


def get_cache_service() -> Optional[CacheService]:
    """CacheService 싱글톤, CACHE_ENABLED=false면 None"""
    global _cache_service
    if not settings.CACHE_ENABLED:
        return None
    if _cache_service is None:
        _cache_service = CacheService(
            redis_host=settings.REDIS_HOST,
            redis_port=settings.REDIS_PORT,
            redis_db=settings.REDIS_DB,
            default_ttl=settings.CACHE_TTL
        )
    return _cache_service
