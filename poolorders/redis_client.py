"""
Redis: the email job lists (queue.py, worker.py) and the order-placement idempotency claims.
The API shares one client; the worker opens its own for the blocking BRPOP loop.
"""
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from poolorders.config import settings

logger = logging.getLogger(__name__)

ORDER_CLAIM_PREFIX = "idempotency:order"

_client: redis.Redis | None = None


def connect() -> redis.Redis:
    return redis.from_url(
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        health_check_interval=30,
    )


async def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        _client = connect()
    return _client


async def open_redis() -> bool:
    """Create the shared client at startup. False when Redis does not answer; callers retry per request."""
    r = await get_redis()
    try:
        await r.ping()
    except RedisError as exc:
        logger.warning("Redis at %s not reachable at startup: %s", settings.redis_url, exc)
        return False
    return True


async def close_redis() -> None:
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()


def order_claim_key(dealer_id: str, idempotency_key: str) -> str:
    """Idempotency keys are scoped per dealer, so two tenants may reuse the same header value."""
    return f"{ORDER_CLAIM_PREFIX}:{dealer_id}:{idempotency_key}"


async def claim_idempotency_key(key: str, ttl_seconds: int | None = None) -> bool:
    """
    SET NX with a TTL. True: the key was free and now belongs to the caller.
    False: a request with the same key already ran or is running.
    """
    r = await get_redis()
    was_set = await r.set(key, "1", nx=True, ex=ttl_seconds or settings.idempotency_ttl_seconds)
    return bool(was_set)


async def release_idempotency_key(key: str) -> None:
    """Give the key back when the guarded operation failed, so the client can retry."""
    r = await get_redis()
    await r.delete(key)
