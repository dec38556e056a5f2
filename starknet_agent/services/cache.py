"""
Redis cache for job retrieval results.

Entries are JSON-serialized ``JobRetrievalResult``s stored under
``job-result:<key>``.
"""
import logging
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis

from starknet_agent.domains.jobs import JobRetrievalResult

logger = logging.getLogger(__name__)

CACHE_PREFIX = "job-result:"


def _ttl_seconds(ttl_ms: int) -> int:
    # EXPIRE 0 deletes the key, so sub-second TTLs round up to one second
    return max(ttl_ms // 1000, 1)


class RedisCacheService:
    """Distributed cache shared by workers and clients."""

    def __init__(self, redis: Redis):
        self.redis = redis

    @staticmethod
    def _key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    async def connect(self) -> None:
        """Check the connection and credentials with a PING."""
        try:
            response = await self.redis.ping()
            if response is not True and response != "PONG":
                raise RuntimeError(f"Unexpected Redis PING response: {response}")
            logger.info("Redis cache connection established and authenticated")
        except Exception as e:
            logger.error(f"Redis authentication validation failed: {e}")
            raise RuntimeError(
                f"Redis authentication failed. Please verify REDIS_PASSWORD is correct: {e}"
            ) from e

    async def set_job_retrieval_result(
        self, key: str, result: JobRetrievalResult, ttl_ms: Optional[int] = None
    ) -> None:
        """Cache a result, expiring after ``ttl_ms`` milliseconds when given."""
        try:
            serialized = result.model_dump_json()
            if ttl_ms and ttl_ms > 0:
                await self.redis.setex(self._key(key), _ttl_seconds(ttl_ms), serialized)
            else:
                await self.redis.set(self._key(key), serialized)
            logger.debug(f"Cached job result in Redis for key: {key}")
        except Exception as e:
            logger.error(f"Failed to cache job result in Redis for key {key}: {e}")
            raise

    async def get_job_retrieval_result(self, key: str) -> Optional[JobRetrievalResult]:
        """Return the cached result, or None on a miss or any error."""
        try:
            raw = await self.redis.get(self._key(key))
            if not raw:
                return None
            result = JobRetrievalResult.model_validate_json(raw)
            logger.debug(f"Retrieved job result from Redis cache for key: {key}")
            return result
        except Exception as e:
            logger.error(f"Failed to get job result from Redis cache for key {key}: {e}")
            return None

    async def delete_job_retrieval_result(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
            logger.debug(f"Deleted job result from Redis cache for key: {key}")
        except Exception as e:
            logger.error(f"Failed to delete job result from Redis cache for key {key}: {e}")
            raise

    async def _scan_keys(self, count: int = 1000) -> List[str]:
        keys: List[str] = []
        cursor = 0
        while True:
            cursor, batch = await self.redis.scan(
                cursor=cursor, match=f"{CACHE_PREFIX}*", count=count
            )
            keys.extend(batch)
            if int(cursor) == 0:
                return keys

    async def clear(self) -> None:
        """Remove every cached job result."""
        try:
            keys = await self._scan_keys()
            if keys:
                await self.redis.unlink(*keys)
            logger.debug(f"Cleared all {CACHE_PREFIX}* entries")
        except Exception as e:
            logger.error(f"Failed to clear Redis cache: {e}")
            raise

    async def flush_all(self) -> None:
        await self.clear()

    async def get_cache_stats(self) -> Dict[str, Any]:
        try:
            keys = await self._scan_keys()
            return {"size": len(keys), "keys": keys}
        except Exception as e:
            logger.error(f"Failed to get Redis cache stats: {e}")
            return {"size": 0, "keys": []}

    async def set_ttl(self, key: str, ttl_ms: int) -> None:
        ttl_seconds = _ttl_seconds(ttl_ms)
        try:
            await self.redis.expire(self._key(key), ttl_seconds)
            logger.debug(f"Set TTL for key {key} to {ttl_seconds} seconds")
        except Exception as e:
            logger.error(f"Failed to set TTL for key {key}: {e}")
            raise

    async def exists(self, key: str) -> bool:
        try:
            return await self.redis.exists(self._key(key)) == 1
        except Exception as e:
            logger.error(f"Failed to check existence of key {key}: {e}")
            return False

    async def get_ttl(self, key: str) -> int:
        """Remaining lifetime in seconds, or -1 when it cannot be read."""
        try:
            return await self.redis.ttl(self._key(key))
        except Exception as e:
            logger.error(f"Failed to get TTL for key {key}: {e}")
            return -1

    async def close(self) -> None:
        try:
            await self.redis.aclose()
            logger.info("Redis cache disconnected")
        except Exception as e:
            logger.error(f"Error disconnecting Redis cache: {e}")
