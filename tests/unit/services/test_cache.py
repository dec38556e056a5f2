import pytest
from unittest.mock import AsyncMock, MagicMock

from starknet_agent.domains.jobs import JobRetrievalResult, ResultSource, ResultStatus
from starknet_agent.services.cache import CACHE_PREFIX, RedisCacheService


@pytest.fixture
def redis():
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.set = AsyncMock()
    client.setex = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.delete = AsyncMock()
    client.unlink = AsyncMock()
    client.scan = AsyncMock(return_value=(0, []))
    client.expire = AsyncMock()
    client.exists = AsyncMock(return_value=0)
    client.ttl = AsyncMock(return_value=42)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def cache(redis):
    return RedisCacheService(redis)


@pytest.fixture
def result():
    return JobRetrievalResult(
        job_id="job-1",
        agent_id="agent-1",
        user_id="user-1",
        status=ResultStatus.COMPLETED,
        data={"chunks_count": 3},
        source=ResultSource.QUEUE,
    )


@pytest.mark.asyncio
async def test_connect(cache):
    await cache.connect()


@pytest.mark.asyncio
async def test_connect_failure(cache, redis):
    redis.ping.side_effect = ConnectionError("NOAUTH")
    with pytest.raises(RuntimeError, match="REDIS_PASSWORD"):
        await cache.connect()


@pytest.mark.asyncio
async def test_set_without_ttl(cache, redis, result):
    await cache.set_job_retrieval_result("job-1", result)
    key, payload = redis.set.call_args.args
    assert key == f"{CACHE_PREFIX}job-1"
    assert JobRetrievalResult.model_validate_json(payload) == result
    redis.setex.assert_not_called()


@pytest.mark.asyncio
async def test_set_with_ttl_rounds_to_seconds(cache, redis, result):
    await cache.set_job_retrieval_result("job-1", result, ttl_ms=500)
    assert redis.setex.call_args.args[1] == 1
    await cache.set_job_retrieval_result("job-1", result, ttl_ms=60_000)
    assert redis.setex.call_args.args[1] == 60


@pytest.mark.asyncio
async def test_get_hit(cache, redis, result):
    redis.get.return_value = result.model_dump_json()
    cached = await cache.get_job_retrieval_result("job-1")
    assert cached.status == ResultStatus.COMPLETED
    assert cached.data == {"chunks_count": 3}


@pytest.mark.asyncio
async def test_get_miss_and_corrupt(cache, redis):
    assert await cache.get_job_retrieval_result("job-1") is None
    redis.get.return_value = "{not json"
    assert await cache.get_job_retrieval_result("job-1") is None


@pytest.mark.asyncio
async def test_clear_unlinks_prefixed_keys(cache, redis):
    redis.scan = AsyncMock(side_effect=[(7, [f"{CACHE_PREFIX}a"]), (0, [f"{CACHE_PREFIX}b"])])
    await cache.clear()
    redis.unlink.assert_awaited_once_with(f"{CACHE_PREFIX}a", f"{CACHE_PREFIX}b")


@pytest.mark.asyncio
async def test_clear_empty(cache, redis):
    await cache.flush_all()
    redis.unlink.assert_not_called()


@pytest.mark.asyncio
async def test_stats(cache, redis):
    redis.scan = AsyncMock(return_value=(0, [f"{CACHE_PREFIX}a"]))
    assert await cache.get_cache_stats() == {"size": 1, "keys": [f"{CACHE_PREFIX}a"]}
    redis.scan = AsyncMock(side_effect=ConnectionError("down"))
    assert await cache.get_cache_stats() == {"size": 0, "keys": []}


@pytest.mark.asyncio
async def test_ttl_and_exists(cache, redis):
    await cache.set_ttl("job-1", 90_000)
    redis.expire.assert_awaited_once_with(f"{CACHE_PREFIX}job-1", 90)
    assert await cache.get_ttl("job-1") == 42
    assert await cache.exists("job-1") is False

    redis.ttl.side_effect = ConnectionError("down")
    assert await cache.get_ttl("job-1") == -1


@pytest.mark.asyncio
async def test_delete_and_close(cache, redis):
    await cache.delete_job_retrieval_result("job-1")
    redis.delete.assert_awaited_once_with(f"{CACHE_PREFIX}job-1")
    await cache.close()
    redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl_ms", [0, 1, 999])
async def test_sub_second_ttl_keeps_key(cache, redis, ttl_ms):
    await cache.set_ttl("job-1", ttl_ms)
    redis.expire.assert_awaited_once_with(f"{CACHE_PREFIX}job-1", 1)
