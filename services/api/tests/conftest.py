"""Shared fixtures: in-memory Redis double, in-memory SQLite remote store, tokens."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import jwt
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from savebags.schemas import Coordinate, Merchant, VerificationStatus
from savebags.settings import get_settings
from savebags.stores import postgres
from savebags.stores import redis as redis_store
from savebags.stores.local_cache import LocalCache
from savebags.stores.remote import RemoteStore


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the local cache and locks."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key: str) -> str | None:
        # Suspend like a network round trip so gathered coroutines interleave.
        await asyncio.sleep(0)
        if self.fail_reads:
            raise RedisConnectionError("redis down")
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        await asyncio.sleep(0)
        if self.fail_writes:
            raise RedisConnectionError("redis down")
        self.data[key] = value
        self.ttls[key] = ttl

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if self.fail_writes:
            raise RedisConnectionError("redis down")
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, key: str) -> int:
        if self.fail_writes:
            raise RedisConnectionError("redis down")
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    fake = FakeRedis()
    monkeypatch.setattr(redis_store, "_redis", fake)
    return fake


@pytest.fixture
async def db():
    await postgres.init_db("sqlite+aiosqlite:///:memory:")
    await postgres.create_tables()
    yield
    await postgres.drop_tables()
    await postgres.close_db()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> LocalCache:
    return LocalCache(ttl=3600)


@pytest.fixture
def remote(db) -> RemoteStore:
    return RemoteStore()


@pytest.fixture
def remote_down(monkeypatch: pytest.MonkeyPatch) -> RemoteStore:
    """A RemoteStore whose every call fails as if Postgres were unreachable."""
    monkeypatch.setattr(postgres, "_session_factory", None)
    return RemoteStore()


def build_merchant(**overrides: Any) -> Merchant:
    data: dict[str, Any] = {
        "id": str(uuid4()),
        "owner_id": f"owner-{uuid4().hex[:8]}",
        "name": "Panadería Centro",
        "type": "Panadería",
        "category": "bakery",
        "location": Coordinate(lat=19.4326, lng=-99.1332),
        "original_price": 300,
        "save_price": 99,
        "bags_available": 5,
        "verified": True,
        "verification_status": VerificationStatus.APPROVED,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return Merchant(**data)


@pytest.fixture
def make_merchant():
    return build_merchant


@pytest.fixture
def make_token():
    """Sign an access token the way the auth service does."""

    def _make(
        user_id: str,
        *,
        user_type: str = "consumer",
        name: str = "Ana",
        email: str = "ana@example.com",
        app_role: str | None = None,
        expires_in: int = 3600,
    ) -> str:
        settings = get_settings()
        claims: dict[str, Any] = {
            "sub": user_id,
            "aud": settings.auth_jwt_audience,
            "email": email,
            "exp": int(time.time()) + expires_in,
            "user_metadata": {"name": name, "user_type": user_type},
            "app_metadata": {"role": app_role} if app_role else {},
        }
        return jwt.encode(claims, settings.auth_jwt_secret, algorithm="HS256")

    return _make
