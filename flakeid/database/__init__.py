"""
Redis Connection Module for the flakeid Service

Holds the Redis client used to share generator state between worker
processes. The client is only created when the service runs with
STATE_BACKEND=redis; the in-memory backend never touches Redis.

Connection Management:
    - A module-level client created once by connect_to_redis()
    - Handed to route handlers through get_redis_client() dependency injection
    - Closed with aclose() during application shutdown

Dependencies:
    - redis: Async Redis client for generator state storage
    - core.config: Environment configuration and settings management
    - services.logger: Structured logging for monitoring and debugging
"""

import redis.asyncio as redis
from redis.exceptions import ConnectionError

from flakeid.core.config import settings
from flakeid.services.logger import setup_logger

# Global Redis client instance
redis_client: redis.Redis = None

logger = setup_logger()


def connect_to_redis() -> redis.Redis:
    """
    Create the global Redis client from settings.

    Connection Features:
        - Automatic response decoding to string format
        - Retry on timeout and periodic health checks
        - Optional username/password authentication and SSL

    Returns:
        redis.Redis: The configured async Redis client.

    Raises:
        ConnectionError: If the client cannot be configured.

    Note:
        Called from the application lifespan handler. The connection pool
        persists for the application lifetime.
    """
    global redis_client

    logger.info("Initializing Redis connection...")

    try:
        logger.info(
            f"Connecting to Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT} "
            f"(SSL: {settings.REDIS_SSL}, Auth: {bool(settings.REDIS_USERNAME)})"
        )

        redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            username=settings.REDIS_USERNAME,
            password=settings.REDIS_PASSWORD,
            ssl=settings.REDIS_SSL,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
            socket_connect_timeout=20,
            socket_timeout=10,
        )

        logger.info("Redis connection established successfully.")

        return redis_client
    except ConnectionError as e:
        logger.error(f"Redis connection failed: {e}")
        raise e


def get_redis_client() -> redis.Redis:
    """
    Retrieve the global Redis client instance for dependency injection.

    Returns:
        redis.Redis: The async Redis client created by connect_to_redis().

    Raises:
        RuntimeError: If called before connect_to_redis().
    """
    if redis_client is None:
        logger.error("Redis client not initialized. Call connect_to_redis() first.")
        raise RuntimeError("Redis client not initialized")

    return redis_client
