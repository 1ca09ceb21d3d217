"""Local durable cache with typed keys and in-process change notifications.

Every record the app keeps locally is addressed by a RecordKey[T]: a name plus
the pydantic TypeAdapter used to (de)serialize it. Writers go through
LocalCache.write(), which persists to Redis and then calls every subscriber of
that key synchronously, in registration order, before returning. Subscribers
register against a RecordKey, never a raw string.

Read failures degrade to the caller's fallback; write failures raise
CacheUnavailable.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from savebags.schemas.merchant import Merchant
from savebags.schemas.order import Order
from savebags.schemas.verification import Verification, VerificationDraft
from savebags.services.errors import CacheUnavailable
from savebags.stores.redis import drop_entry, load_entry, local_key, record_ttl, save_entry

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")


@dataclass(frozen=True)
class RecordKey(Generic[T]):
    name: str
    adapter: TypeAdapter = field(compare=False, hash=False, repr=False)

    @property
    def redis_key(self) -> str:
        return local_key(self.name)


_MERCHANT = TypeAdapter(Merchant)
_ORDER = TypeAdapter(Order)
_ORDERS = TypeAdapter(list[Order])
_VERIFICATION = TypeAdapter(Verification)
_DRAFT = TypeAdapter(VerificationDraft)
_IDS = TypeAdapter(list[str])


def merchant_record(merchant_id: str) -> RecordKey[Merchant]:
    return RecordKey(f"merchant:{merchant_id}", _MERCHANT)


def merchant_index() -> RecordKey[list[str]]:
    """Ids of every merchant that has a local record (the listing overlay)."""
    return RecordKey("merchants:index", _IDS)


def merchant_orders(merchant_id: str) -> RecordKey[list[Order]]:
    return RecordKey(f"merchant_orders:{merchant_id}", _ORDERS)


def customer_orders(customer_id: str) -> RecordKey[list[Order]]:
    return RecordKey(f"customer_orders:{customer_id}", _ORDERS)


def order_record(order_id: str) -> RecordKey[Order]:
    return RecordKey(f"order:{order_id}", _ORDER)


def verification_record(merchant_id: str) -> RecordKey[Verification]:
    return RecordKey(f"verification:{merchant_id}", _VERIFICATION)


def verification_draft(merchant_id: str) -> RecordKey[VerificationDraft]:
    return RecordKey(f"verification_draft:{merchant_id}", _DRAFT)


def favorites_record(user_id: str) -> RecordKey[list[str]]:
    return RecordKey(f"favorites:{user_id}", _IDS)


def pending_sync_merchants() -> RecordKey[list[str]]:
    return RecordKey("merchants:pending_sync", _IDS)


class LocalCache:
    """Read/write/subscribe facade over the Redis store."""

    def __init__(self, ttl: int | None = None):
        self._ttl = ttl
        self._subscribers: dict[str, list[Callable[[Any], None]]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def ttl(self) -> int:
        return self._ttl if self._ttl is not None else record_ttl()

    async def read(self, key: RecordKey[T], fallback: T) -> T:
        """Return the stored value, or `fallback` when missing or unreadable."""
        try:
            raw = await load_entry(key.name)
        except (RedisError, RuntimeError, OSError) as e:
            logger.warning(f"[local-cache] read {key.name} failed, using fallback: {e}")
            return fallback
        if raw is None:
            return fallback
        try:
            return key.adapter.validate_json(raw)
        except PydanticValidationError:
            logger.warning(f"[local-cache] discarding malformed entry {key.name}")
            await self._discard(key)
            return fallback

    async def write(self, key: RecordKey[T], value: T) -> None:
        """Persist `value`, then notify subscribers of `key` in registration order."""
        payload = key.adapter.dump_json(value, by_alias=True).decode("utf-8")
        try:
            await save_entry(key.name, payload, self.ttl)
        except (RedisError, RuntimeError, OSError) as e:
            raise CacheUnavailable(f"Local cache write failed for {key.name}") from e
        self._notify(key, value)

    async def delete(self, key: RecordKey[Any]) -> None:
        """Remove `key`; subscribers are notified with None."""
        try:
            await drop_entry(key.name)
        except (RedisError, RuntimeError, OSError) as e:
            raise CacheUnavailable(f"Local cache delete failed for {key.name}") from e
        self._notify(key, None)

    def lock(self, key: RecordKey[Any]) -> asyncio.Lock:
        """In-process lock for read-modify-write sequences on `key`. Not reentrant."""
        lock = self._locks.get(key.name)
        if lock is None:
            lock = self._locks[key.name] = asyncio.Lock()
        return lock

    async def update(self, key: RecordKey[T], fallback: T, change: Callable[[T], T]) -> T:
        """Read, apply `change`, write back, all under the key's lock."""
        async with self.lock(key):
            value = change(await self.read(key, fallback))
            await self.write(key, value)
            return value

    def subscribe(self, key: RecordKey[T], callback: Callable[[T | None], None]) -> Callable[[], None]:
        """Register `callback` for changes to `key`. Returns an unsubscribe function."""
        callbacks = self._subscribers[key.name]
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, key: RecordKey[Any], value: Any) -> None:
        for callback in list(self._subscribers.get(key.name, ())):
            try:
                callback(value)
            except Exception:
                logger.exception(f"[local-cache] subscriber for {key.name} failed")

    async def _discard(self, key: RecordKey[Any]) -> None:
        try:
            await drop_entry(key.name)
        except (RedisError, RuntimeError, OSError) as e:
            logger.warning(f"[local-cache] could not discard {key.name}: {e}")


# ============================================================
# Merchant overlay helpers
# ============================================================


async def store_local_merchant(cache: LocalCache, merchant: Merchant) -> None:
    """Write a merchant record and make sure it is part of the local overlay."""
    await cache.write(merchant_record(merchant.id), merchant)
    if merchant.id not in await cache.read(merchant_index(), []):
        await cache.update(merchant_index(), [], lambda ids: add_id(ids, merchant.id))


def add_id(ids: list[str], item: str) -> list[str]:
    return ids if item in ids else [*ids, item]


def remove_ids(ids: list[str], items: set[str]) -> list[str]:
    return [i for i in ids if i not in items]


async def load_local_overlay(cache: LocalCache) -> list[Merchant]:
    """All merchants with a local record, in the order they were first stored."""
    merchants: list[Merchant] = []
    for merchant_id in await cache.read(merchant_index(), []):
        merchant = await cache.read(merchant_record(merchant_id), None)
        if merchant is not None:
            merchants.append(merchant)
    return merchants


_local_cache: LocalCache | None = None


def get_local_cache() -> LocalCache:
    """Process-wide LocalCache (subscribers live for the life of the process)."""
    global _local_cache
    if _local_cache is None:
        _local_cache = LocalCache()
    return _local_cache
