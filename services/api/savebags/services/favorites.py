"""Consumer favorites (bookmarked merchants)."""

import logging

from savebags.services.errors import RemoteUnavailable, ValidationError
from savebags.settings import get_settings
from savebags.stores.local_cache import LocalCache, favorites_record
from savebags.stores.remote import RemoteStore

logger = logging.getLogger("uvicorn.error")


async def list_favorites(user_id: str, *, remote: RemoteStore, cache: LocalCache) -> list[str]:
    try:
        favorites = await remote.favorites.get_all(user_id)
    except RemoteUnavailable as e:
        logger.warning(f"[favorites] remote unavailable for user={user_id}, using local copy: {e}")
        return await cache.read(favorites_record(user_id), [])
    await cache.write(favorites_record(user_id), favorites)
    return favorites


async def toggle_favorite(user_id: str, merchant_id: str, *, remote: RemoteStore, cache: LocalCache) -> bool:
    """Add or remove `merchant_id`. Returns True when it is now a favorite."""
    current = await cache.read(favorites_record(user_id), [])
    added = merchant_id not in current
    if added:
        limit = get_settings().max_favorites
        if len(current) >= limit:
            raise ValidationError(f"At most {limit} favorites", detail={"limit": limit})
        updated = [*current, merchant_id]
    else:
        updated = [m for m in current if m != merchant_id]
    await cache.write(favorites_record(user_id), updated)

    try:
        remote_added = await remote.favorites.toggle(user_id, merchant_id)
    except RemoteUnavailable as e:
        logger.warning(f"[favorites] remote toggle failed for user={user_id} merchant={merchant_id}: {e}")
        return added
    if remote_added != added:
        # Remote membership differed from the local copy; toggle again so both agree.
        logger.warning(f"[favorites] remote drift for user={user_id} merchant={merchant_id}, re-aligning")
        try:
            await remote.favorites.toggle(user_id, merchant_id)
        except RemoteUnavailable as e:
            logger.warning(f"[favorites] remote re-align failed: {e}")
    return added
