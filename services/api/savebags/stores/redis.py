"""Redis connection backing the local durable cache.

Keys:
- save:<record>   local records (merchants, orders, verifications, drafts, favorites)
- lock:<name>     short-lived run locks (one reconciliation at a time)

Every local record carries a TTL (LOCAL_CACHE_TTL_SECONDS, 7 days by default)
so abandoned entries age out on their own.
"""

import logging

import redis.asyncio as redis

from savebags.settings import get_settings

TTL_RUN_LOCK = 300  # 5 minutes

PREFIX_LOCAL = "save:"
PREFIX_LOCK = "lock:"

_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Connect and ping so a bad REDIS_URL fails at startup, not on first write."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def _client() -> redis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def local_key(name: str) -> str:
    return f"{PREFIX_LOCAL}{name}"


def lock_key(name: str) -> str:
    return f"{PREFIX_LOCK}{name}"


def record_ttl() -> int:
    return get_settings().local_cache_ttl_seconds


# ============================================================
# Local records
# ============================================================


async def load_entry(name: str) -> str | None:
    """Raw JSON stored for a local record, or None."""
    return await _client().get(local_key(name))


async def save_entry(name: str, payload: str, ttl: int) -> None:
    await _client().setex(local_key(name), ttl, payload)


async def drop_entry(name: str) -> None:
    await _client().delete(local_key(name))


# ============================================================
# Run locks
# ============================================================


async def try_lock(name: str, ttl: int = TTL_RUN_LOCK) -> bool:
    """SET NX with expiry. False when another holder has it."""
    return bool(await _client().set(lock_key(name), "1", nx=True, ex=ttl))


async def unlock(name: str) -> None:
    await _client().delete(lock_key(name))
