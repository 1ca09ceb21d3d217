"""Session identity: who is calling and in which role.

Roles come only from claims issued by the auth service:
- app_metadata.role == "admin" -> admin
- user_metadata.user_type == "merchant" -> merchant
- otherwise consumer

There is no built-in admin account.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import jwt

from savebags.services.errors import AuthError
from savebags.settings import get_settings


class Role(str, Enum):
    CONSUMER = "consumer"
    MERCHANT = "merchant"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    id: str
    display_name: str
    email: str = ""
    role: Role = Role.CONSUMER


def derive_identity(user: dict[str, Any]) -> Identity:
    """Build an Identity from an auth user object or decoded access-token claims."""
    user_id = user.get("sub") or user.get("id")
    if not user_id:
        raise AuthError("Session has no user id")

    app_metadata = user.get("app_metadata") or {}
    user_metadata = user.get("user_metadata") or {}
    email = str(user.get("email") or "")

    if app_metadata.get("role") == Role.ADMIN.value:
        role = Role.ADMIN
    elif user_metadata.get("user_type") == Role.MERCHANT.value:
        role = Role.MERCHANT
    else:
        role = Role.CONSUMER

    display_name = str(user_metadata.get("name") or "").strip()
    if not display_name:
        display_name = email.split("@", 1)[0] if email else "Usuario"

    return Identity(id=str(user_id), display_name=display_name, email=email, role=role)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify an HS256 access token issued by the auth service.

    Raises:
        AuthError: Expired, malformed, or wrongly signed token.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            audience=settings.auth_jwt_audience,
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthError("token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("invalid token") from e


def identity_from_token(token: str) -> Identity:
    return derive_identity(decode_access_token(token))
