"""Account endpoints backed by the hosted auth service.

POST /v1/auth/signup  - consumer or business account (business also gets a draft merchant)
POST /v1/auth/signin  - password sign in
POST /v1/auth/signout - revoke the current session
GET  /v1/auth/me      - identity derived from the bearer token
"""

from typing import Any, Literal

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from savebags.routes.deps import current_identity, get_cache, get_remote
from savebags.schemas import Merchant, OkResponse
from savebags.schemas.merchant import MerchantSignup
from savebags.services.auth_client import get_auth_client
from savebags.services.errors import AuthError
from savebags.services.identity import Identity, derive_identity
from savebags.services.merchants import create_draft_merchant
from savebags.stores.local_cache import LocalCache
from savebags.stores.remote import RemoteStore

router = APIRouter()


class IdentityOut(BaseModel):
    id: str
    display_name: str = Field(alias="displayName")
    email: str
    role: str

    model_config = {"populate_by_name": True}

    @classmethod
    def of(cls, identity: Identity) -> "IdentityOut":
        return cls(id=identity.id, display_name=identity.display_name, email=identity.email, role=identity.role.value)


class SignupRequest(BaseModel):
    email: str = Field(min_length=3, max_length=200)
    password: str = Field(min_length=6, max_length=200)
    name: str = Field(min_length=1, max_length=200)
    user_type: Literal["consumer", "merchant"] = Field(alias="userType", default="consumer")
    business: MerchantSignup | None = None

    model_config = {"populate_by_name": True}


class SigninRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    session: dict[str, Any] | None = None
    identity: IdentityOut | None = None
    merchant: Merchant | None = None


def _user_of(payload: dict[str, Any]) -> dict[str, Any] | None:
    user = payload.get("user")
    if isinstance(user, dict):
        return user
    return payload if payload.get("id") else None


@router.post("/signup", response_model=SessionResponse)
async def signup(
    request: SignupRequest,
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> SessionResponse:
    """Create an account; business accounts get a draft merchant record."""
    payload = await get_auth_client().sign_up(
        request.email,
        request.password,
        name=request.name,
        user_type=request.user_type,
    )
    user = _user_of(payload)
    if user is None:
        raise AuthError("Auth service returned no user")
    identity = derive_identity(user)

    merchant = None
    if request.user_type == "merchant":
        business = request.business or MerchantSignup(name=request.name)
        if not business.email:
            business = business.model_copy(update={"email": request.email})
        merchant = await create_draft_merchant(identity.id, business, remote=remote, cache=cache)

    session = payload if payload.get("access_token") else None
    return SessionResponse(session=session, identity=IdentityOut.of(identity), merchant=merchant)


@router.post("/signin", response_model=SessionResponse)
async def signin(request: SigninRequest) -> SessionResponse:
    session = await get_auth_client().sign_in(request.email, request.password)
    user = _user_of(session)
    if user is None:
        raise AuthError("Auth service returned no user")
    return SessionResponse(session=session, identity=IdentityOut.of(derive_identity(user)))


@router.post("/signout", response_model=OkResponse)
async def signout(
    credentials: HTTPAuthorizationCredentials | None = Depends(HTTPBearer(auto_error=False)),
    identity: Identity = Depends(current_identity),
) -> OkResponse:
    if credentials is not None:
        await get_auth_client().sign_out(credentials.credentials)
    return OkResponse()


@router.get("/me", response_model=IdentityOut)
async def me(identity: Identity = Depends(current_identity)) -> IdentityOut:
    return IdentityOut.of(identity)
