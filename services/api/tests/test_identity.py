"""Tests for role derivation and access-token verification."""

import jwt
import pytest

from savebags.services.errors import AuthError
from savebags.services.identity import Role, decode_access_token, derive_identity, identity_from_token


def test_admin_role_comes_only_from_app_metadata():
    admin = derive_identity({"id": "u1", "email": "ops@example.com", "app_metadata": {"role": "admin"}})
    assert admin.role == Role.ADMIN


def test_no_built_in_admin_account():
    # Neither a special email nor a user-editable claim grants admin.
    for user in (
        {"id": "u1", "email": "admin@savebags.mx"},
        {"id": "u1", "email": "x@example.com", "user_metadata": {"role": "admin", "user_type": "admin"}},
    ):
        assert derive_identity(user).role == Role.CONSUMER


def test_merchant_and_consumer_roles():
    assert derive_identity({"id": "u1", "user_metadata": {"user_type": "merchant"}}).role == Role.MERCHANT
    assert derive_identity({"id": "u1", "user_metadata": {"user_type": "consumer"}}).role == Role.CONSUMER


def test_display_name_fallbacks():
    assert derive_identity({"id": "u1", "user_metadata": {"name": " Ana "}}).display_name == "Ana"
    assert derive_identity({"id": "u1", "email": "luis@example.com"}).display_name == "luis"
    assert derive_identity({"id": "u1"}).display_name == "Usuario"


def test_missing_user_id_is_an_auth_error():
    with pytest.raises(AuthError):
        derive_identity({"email": "x@example.com"})


def test_token_round_trip(make_token):
    identity = identity_from_token(make_token("user-1", user_type="merchant", name="Rosa"))

    assert identity.id == "user-1"
    assert identity.role == Role.MERCHANT
    assert identity.display_name == "Rosa"


def test_admin_token(make_token):
    assert identity_from_token(make_token("ops-1", app_role="admin")).role == Role.ADMIN


def test_expired_token(make_token):
    with pytest.raises(AuthError, match="expired"):
        decode_access_token(make_token("user-1", expires_in=-60))


def test_token_signed_with_another_secret():
    token = jwt.encode(
        {"sub": "user-1", "aud": "authenticated", "app_metadata": {"role": "admin"}},
        "someone-elses-secret-that-is-long-enough",
        algorithm="HS256",
    )
    with pytest.raises(AuthError, match="invalid"):
        decode_access_token(token)


def test_garbage_token():
    with pytest.raises(AuthError):
        decode_access_token("not-a-jwt")
