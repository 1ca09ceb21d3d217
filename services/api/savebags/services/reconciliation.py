"""Reconciliation: local merchant overlay <-> remote store.

Runs at startup (and on demand via scripts/reconcile_cache.py):
- Records the remote store knows are replaced by the remote copy, which is the
  system of record.
- Records flagged pending_sync (created while the remote was unreachable) are
  pushed. Each failed push counts an attempt; after
  PENDING_SYNC_MAX_ATTEMPTS the record is abandoned: it leaves the pending
  list and stays local-only.

Only one run at a time, guarded by a Redis lock.
"""

from dataclasses import dataclass
import logging

from savebags.schemas.merchant import Merchant
from savebags.services.errors import RemoteUnavailable
from savebags.settings import get_settings
from savebags.stores.local_cache import (
    LocalCache,
    merchant_index,
    merchant_record,
    pending_sync_merchants,
    remove_ids,
    store_local_merchant,
)
from savebags.stores.redis import try_lock, unlock
from savebags.stores.remote import RemoteStore

logger = logging.getLogger("uvicorn.error")

RECONCILE_LOCK_KEY = "reconcile-local-cache"


@dataclass
class ReconcileStats:
    scanned: int = 0
    refreshed: int = 0
    missing_remote: int = 0
    pushed: int = 0
    push_failed: int = 0
    abandoned: int = 0
    remote_unavailable: bool = False
    skipped_locked: bool = False


async def reconcile_local_cache(
    *,
    remote: RemoteStore,
    cache: LocalCache,
    max_attempts: int | None = None,
) -> ReconcileStats:
    stats = ReconcileStats()
    if not await try_lock(RECONCILE_LOCK_KEY):
        logger.info("[reconcile] another run holds the lock, skipping")
        stats.skipped_locked = True
        return stats
    try:
        await _reconcile(remote=remote, cache=cache, stats=stats, max_attempts=max_attempts)
    finally:
        await unlock(RECONCILE_LOCK_KEY)

    logger.info(
        f"[reconcile] scanned={stats.scanned} refreshed={stats.refreshed} pushed={stats.pushed} "
        f"push_failed={stats.push_failed} abandoned={stats.abandoned} missing_remote={stats.missing_remote}"
    )
    return stats


async def _reconcile(
    *,
    remote: RemoteStore,
    cache: LocalCache,
    stats: ReconcileStats,
    max_attempts: int | None,
) -> None:
    max_attempts = max_attempts or get_settings().pending_sync_max_attempts
    pending = await cache.read(pending_sync_merchants(), [])
    done: set[str] = set()

    for merchant_id in await cache.read(merchant_index(), []):
        local = await cache.read(merchant_record(merchant_id), None)
        if local is None:
            continue
        stats.scanned += 1

        if local.pending_sync:
            if merchant_id not in pending:
                continue
            async with cache.lock(merchant_record(merchant_id)):
                local = await cache.read(merchant_record(merchant_id), local)
                if await _push_pending(local, remote=remote, cache=cache, stats=stats, max_attempts=max_attempts):
                    done.add(merchant_id)
            continue

        if stats.remote_unavailable:
            continue
        try:
            fresh = await remote.merchants.get(merchant_id)
        except RemoteUnavailable as e:
            logger.warning(f"[reconcile] remote unavailable, keeping local overlay as is: {e}")
            stats.remote_unavailable = True
            continue
        if fresh is None:
            stats.missing_remote += 1
            continue
        async with cache.lock(merchant_record(merchant_id)):
            await store_local_merchant(cache, fresh)
        stats.refreshed += 1

    if done:
        # Ids appended while the run was in flight stay queued.
        await cache.update(pending_sync_merchants(), [], lambda ids: remove_ids(ids, done))


async def _push_pending(
    local: Merchant,
    *,
    remote: RemoteStore,
    cache: LocalCache,
    stats: ReconcileStats,
    max_attempts: int,
) -> bool:
    """Try to create `local` remotely. True when it should leave the pending list."""
    try:
        created = await remote.merchants.create(
            local.model_copy(update={"pending_sync": False, "sync_attempts": 0})
        )
    except RemoteUnavailable as e:
        attempts = local.sync_attempts + 1
        await store_local_merchant(cache, local.model_copy(update={"sync_attempts": attempts}))
        if attempts >= max_attempts:
            stats.abandoned += 1
            logger.warning(f"[reconcile] abandoning sync of merchant {local.id} after {attempts} attempts: {e}")
            return True
        stats.push_failed += 1
        logger.warning(f"[reconcile] push of merchant {local.id} failed (attempt {attempts}): {e}")
        return False

    await store_local_merchant(cache, created)
    stats.pushed += 1
    return True
