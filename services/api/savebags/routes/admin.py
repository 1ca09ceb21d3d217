"""Admin endpoints: verification review and cache reconciliation.

All endpoints require the admin role claim issued by the auth service.
"""

from dataclasses import asdict
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from savebags.routes.deps import get_cache, get_remote, get_verification_service, require_role
from savebags.schemas import Verification, VerificationStatus
from savebags.services.identity import Identity, Role
from savebags.services.reconciliation import reconcile_local_cache
from savebags.services.verification import VerificationService
from savebags.stores.local_cache import LocalCache
from savebags.stores.remote import RemoteStore

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

require_admin = require_role(Role.ADMIN)


class RejectRequest(BaseModel):
    """Request body for rejecting a verification."""

    reason: str = Field(max_length=1000)


class ReconcileResponse(BaseModel):
    """Response from reconciliation endpoint."""

    success: bool
    stats: dict


@router.get("/verifications", response_model=list[Verification])
async def list_verifications(
    status: VerificationStatus | None = Query(default=None),
    admin: Identity = Depends(require_admin),
    service: VerificationService = Depends(get_verification_service),
) -> list[Verification]:
    return await service.list_verifications(status)


@router.post("/verifications/{verification_id}/approve", response_model=Verification)
async def approve_verification(
    verification_id: str,
    admin: Identity = Depends(require_admin),
    service: VerificationService = Depends(get_verification_service),
) -> Verification:
    verification = await service.get_by_id(verification_id)
    logger.info(f"[admin] {admin.id} approving verification {verification_id}")
    return await service.approve(verification_id, verification.merchant_id)


@router.post("/verifications/{verification_id}/reject", response_model=Verification)
async def reject_verification(
    verification_id: str,
    request: RejectRequest,
    admin: Identity = Depends(require_admin),
    service: VerificationService = Depends(get_verification_service),
) -> Verification:
    verification = await service.get_by_id(verification_id)
    logger.info(f"[admin] {admin.id} rejecting verification {verification_id}")
    return await service.reject(verification_id, verification.merchant_id, request.reason)


@router.post("/reconcile", response_model=ReconcileResponse)
async def trigger_reconcile(
    admin: Identity = Depends(require_admin),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> ReconcileResponse:
    """Refresh the local merchant overlay from the remote store and push pending records."""
    stats = await reconcile_local_cache(remote=remote, cache=cache)
    return ReconcileResponse(success=not stats.skipped_locked, stats=asdict(stats))
