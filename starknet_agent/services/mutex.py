"""
Distributed mutexes backed by Redis.

A user lock is a ``user_mutex:<user_id>`` key and a job lock a
``job_mutex:<job_id>`` key, both set with NX and a millisecond expiry. The
value is a random token, and only the holder of that token can delete it.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, List

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

MUTEX_PREFIX = "user_mutex:"
JOB_MUTEX_PREFIX = "job_mutex:"
# Key prefix and the id field reported for it in stats
_LOCK_KINDS = ((MUTEX_PREFIX, "user_id"), (JOB_MUTEX_PREFIX, "job_id"))

DEFAULT_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_RETRY_DELAY_MS = 100
DEFAULT_MAX_RETRIES = 50

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

ReleaseFn = Callable[[], Awaitable[None]]


class RedisMutexService:
    """Per-user and per-job locks shared by every worker connected to the same Redis."""

    def __init__(self, redis: Redis):
        self.redis = redis

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{MUTEX_PREFIX}{user_id}"

    async def acquire_user_mutex(
        self,
        user_id: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> ReleaseFn:
        """Acquire the lock for ``user_id``.

        Args:
            user_id: Lock owner
            timeout_ms: Lock expiry in milliseconds
            retry_delay_ms: Wait between attempts in milliseconds
            max_retries: Attempts before giving up

        Returns:
            An async callable releasing the lock

        Raises:
            TimeoutError: If the lock is still held after every attempt
        """
        return await self._acquire(
            self._key(user_id), f"user {user_id}", timeout_ms, retry_delay_ms, max_retries
        )

    async def acquire_job_mutex(
        self,
        job_id: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> ReleaseFn:
        """Acquire the lock for one job; same contract as ``acquire_user_mutex``."""
        return await self._acquire(
            f"{JOB_MUTEX_PREFIX}{job_id}", f"job {job_id}", timeout_ms, retry_delay_ms, max_retries
        )

    async def _acquire(
        self,
        lock_key: str,
        label: str,
        timeout_ms: int,
        retry_delay_ms: int,
        max_retries: int,
    ) -> ReleaseFn:
        lock_value = str(uuid.uuid4())

        acquired = False
        retries = 0
        while not acquired and retries < max_retries:
            try:
                if await self.redis.set(lock_key, lock_value, px=timeout_ms, nx=True):
                    acquired = True
                    logger.debug(f"Mutex acquired for {label} ({lock_key})")
                    break
            except Exception as e:
                logger.error(f"Error acquiring mutex for {label}: {e}")
            retries += 1
            if retries < max_retries:
                await asyncio.sleep(retry_delay_ms / 1000)

        if not acquired:
            raise TimeoutError(
                f"Failed to acquire mutex for {label} after {max_retries} retries"
            )

        async def release() -> None:
            try:
                await self._release(lock_key, lock_value)
                logger.debug(f"Mutex released for {label} ({lock_key})")
            except Exception as e:
                logger.error(f"Error releasing mutex for {label}: {e}")
                raise

        return release

    async def _release(self, lock_key: str, lock_value: str) -> None:
        result = await self.redis.eval(_RELEASE_SCRIPT, 1, lock_key, lock_value)
        if result != 1:
            raise RuntimeError(
                f"Failed to release mutex: lock not found or value mismatch (key: {lock_key})"
            )

    @asynccontextmanager
    async def user_mutex(self, user_id: str, **options) -> AsyncIterator[None]:
        """Hold the user's lock for the duration of the block."""
        release = await self.acquire_user_mutex(user_id, **options)
        try:
            yield
        finally:
            await release()

    async def is_user_mutex_held(self, user_id: str) -> bool:
        return await self.redis.exists(self._key(user_id)) == 1

    async def get_user_mutex_ttl(self, user_id: str) -> int:
        """Remaining lock time in ms; -2 when absent, -1 when it never expires."""
        return await self.redis.pttl(self._key(user_id))

    async def force_release_user_mutex(self, user_id: str) -> None:
        lock_key = self._key(user_id)
        await self.redis.delete(lock_key)
        logger.warning(f"Force released mutex for user {user_id} ({lock_key})")

    async def _scan_keys(self, prefix: str) -> List[str]:
        keys: List[str] = []
        cursor = 0
        while True:
            cursor, batch = await self.redis.scan(cursor=cursor, match=f"{prefix}*", count=100)
            keys.extend(batch)
            if int(cursor) == 0:
                return keys

    async def cleanup_orphaned_mutexes(self) -> int:
        """Delete lock keys left without an expiry. Returns how many were removed."""
        cleaned = 0
        for prefix, _ in _LOCK_KINDS:
            for key in await self._scan_keys(prefix):
                if await self.redis.pttl(key) == -1:
                    await self.redis.delete(key)
                    cleaned += 1
                    logger.warning(f"Cleaned up orphaned mutex: {key}")

        if cleaned:
            logger.info(f"Cleaned up {cleaned} orphaned mutexes")
        return cleaned

    async def get_mutex_stats(self) -> Dict[str, object]:
        mutexes = []
        for prefix, id_field in _LOCK_KINDS:
            for key in await self._scan_keys(prefix):
                mutexes.append(
                    {id_field: key[len(prefix) :], "ttl": await self.redis.pttl(key)}
                )
        return {"total_mutexes": len(mutexes), "mutexes": mutexes}

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Redis mutex connection closed")

