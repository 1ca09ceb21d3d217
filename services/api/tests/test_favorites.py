import pytest

from savebags.services.errors import ValidationError
from savebags.services.favorites import list_favorites, toggle_favorite
from savebags.stores.local_cache import favorites_record


@pytest.mark.asyncio
async def test_toggle_adds_then_removes(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant())

    assert await toggle_favorite("u1", merchant.id, remote=remote, cache=cache) is True
    assert await list_favorites("u1", remote=remote, cache=cache) == [merchant.id]

    assert await toggle_favorite("u1", merchant.id, remote=remote, cache=cache) is False
    assert await list_favorites("u1", remote=remote, cache=cache) == []


@pytest.mark.asyncio
async def test_toggle_realigns_remote_drift(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant())
    # Remote already has it, local copy does not.
    await remote.favorites.toggle("u1", merchant.id)

    added = await toggle_favorite("u1", merchant.id, remote=remote, cache=cache)

    assert added is True
    assert await remote.favorites.get_all("u1") == [merchant.id]


@pytest.mark.asyncio
async def test_favorites_limit(cache, remote):
    ids = [f"m{i}" for i in range(50)]
    await cache.write(favorites_record("u1"), ids)

    with pytest.raises(ValidationError):
        await toggle_favorite("u1", "one-more", remote=remote, cache=cache)

    assert await cache.read(favorites_record("u1"), []) == ids


@pytest.mark.asyncio
async def test_favorites_work_locally_when_remote_down(remote_down, cache):
    assert await toggle_favorite("u1", "m1", remote=remote_down, cache=cache) is True
    assert await list_favorites("u1", remote=remote_down, cache=cache) == ["m1"]
