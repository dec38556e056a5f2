"""
Tests for the Redis connection helper.
"""

import pytest
from unittest.mock import patch

from starknet_agent.adapters.redis_adapter import (
    RedisSettings,
    check_redis_password,
    create_redis_client,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD", "REDIS_DB", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestRedisSettings:
    def test_defaults(self, clean_env):
        settings = RedisSettings.from_config()
        assert settings.host == "localhost"
        assert settings.port == 6379
        assert settings.password is None
        assert settings.db == 0

    def test_environment_fallback(self, clean_env):
        clean_env.setenv("REDIS_HOST", "redis.internal")
        clean_env.setenv("REDIS_PORT", "6380")
        clean_env.setenv("REDIS_PASSWORD", "secret")
        clean_env.setenv("REDIS_DB", "2")
        settings = RedisSettings.from_config({})
        assert (settings.host, settings.port, settings.password, settings.db) == (
            "redis.internal",
            6380,
            "secret",
            2,
        )

    def test_config_wins_over_environment(self, clean_env):
        clean_env.setenv("REDIS_HOST", "from-env")
        settings = RedisSettings.from_config({"host": "from-config", "port": 7000})
        assert settings.host == "from-config"
        assert settings.port == 7000


class TestCheckRedisPassword:
    def test_production_requires_password(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "production")
        with pytest.raises(ValueError, match="password is required"):
            check_redis_password(RedisSettings())

    def test_staging_warns(self, clean_env, caplog):
        clean_env.setenv("ENVIRONMENT", "staging")
        check_redis_password(RedisSettings())
        assert "without authentication" in caplog.text

    def test_development_is_silent(self, clean_env, caplog):
        check_redis_password(RedisSettings())
        assert "without authentication" not in caplog.text

    def test_password_present(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "production")
        check_redis_password(RedisSettings(password="secret"))


def test_create_redis_client(clean_env):
    with patch("starknet_agent.adapters.redis_adapter.Redis") as redis_cls:
        client = create_redis_client({"host": "cache", "password": "pw", "db": 1})

    assert client is redis_cls.return_value
    redis_cls.assert_called_once_with(
        host="cache", port=6379, password="pw", db=1, decode_responses=True
    )
