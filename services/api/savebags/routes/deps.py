"""Shared FastAPI dependencies: stores, services and the caller's identity."""

from collections.abc import Awaitable, Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from savebags.schemas.merchant import Merchant
from savebags.services.document_storage import get_document_storage
from savebags.services.errors import AuthError, Forbidden
from savebags.services.identity import Identity, Role, identity_from_token
from savebags.services.merchants import get_my_merchant
from savebags.services.reservations import ReservationEngine, log_feedback_request
from savebags.services.verification import VerificationService
from savebags.stores.local_cache import LocalCache, get_local_cache
from savebags.stores.remote import RemoteStore, get_remote_store

_bearer = HTTPBearer(auto_error=False)

# One engine per process: its per-merchant locks must be shared by every request.
_reservation_engine: ReservationEngine | None = None


def get_remote() -> RemoteStore:
    return get_remote_store()


def get_cache() -> LocalCache:
    return get_local_cache()


def get_reservation_engine() -> ReservationEngine:
    global _reservation_engine
    if _reservation_engine is None:
        _reservation_engine = ReservationEngine(
            get_remote_store(),
            get_local_cache(),
            on_collected=log_feedback_request,
        )
    return _reservation_engine


def get_verification_service() -> VerificationService:
    return VerificationService(get_remote_store(), get_local_cache(), get_document_storage())


async def current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Identity:
    if credentials is None:
        raise AuthError("Missing bearer token")
    return identity_from_token(credentials.credentials)


async def optional_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Identity | None:
    if credentials is None:
        return None
    return identity_from_token(credentials.credentials)


def require_role(*roles: Role) -> Callable[..., Awaitable[Identity]]:
    async def _dependency(identity: Identity = Depends(current_identity)) -> Identity:
        if identity.role not in roles:
            raise Forbidden(
                "This action requires another role",
                detail={"required": [r.value for r in roles], "role": identity.role.value},
            )
        return identity

    return _dependency


async def current_merchant(
    identity: Identity = Depends(require_role(Role.MERCHANT)),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> Merchant:
    return await get_my_merchant(identity.id, remote=remote, cache=cache)
