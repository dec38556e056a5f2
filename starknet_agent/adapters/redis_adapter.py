"""
Redis connection helper for the Starknet Agent system.

Builds an asyncio Redis client from the ``redis`` config section, falling
back to the REDIS_* environment variables.
"""
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisSettings(BaseModel):
    """Connection settings for Redis."""

    host: str = Field("localhost", description="Redis host")
    port: int = Field(6379, description="Redis port")
    password: Optional[str] = Field(None, description="Redis password")
    db: int = Field(0, description="Redis logical database")

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "RedisSettings":
        """Merge the config section over the REDIS_* environment variables."""
        config = config or {}
        return cls(
            host=config.get("host") or os.getenv("REDIS_HOST", "localhost"),
            port=int(config.get("port") or os.getenv("REDIS_PORT", "6379")),
            password=config.get("password") or os.getenv("REDIS_PASSWORD") or None,
            db=int(config.get("db") or os.getenv("REDIS_DB", "0")),
        )


def check_redis_password(settings: RedisSettings, purpose: str = "Redis") -> None:
    """Refuse to run without a password in production; warn elsewhere."""
    if settings.password:
        return
    environment = os.getenv("ENVIRONMENT", "development").lower()
    if environment == "production":
        raise ValueError(f"{purpose} password is required in production environment")
    if environment != "development":
        logger.warning(
            f"{purpose} is running without authentication - this is not recommended"
        )


def create_redis_client(config: Optional[Dict[str, Any]] = None) -> Redis:
    """Create an asyncio Redis client from configuration."""
    settings = RedisSettings.from_config(config)
    check_redis_password(settings)
    logger.info(f"Connecting to Redis at {settings.host}:{settings.port}/{settings.db}")
    return Redis(
        host=settings.host,
        port=settings.port,
        password=settings.password,
        db=settings.db,
        decode_responses=True,
    )
