"""
Unit tests for Supabase access token verification.

Covers the HS256 fallback and the JWKS (ES256) path with a locally
generated key pair.
"""

import time
from types import SimpleNamespace

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.api.dependencies import get_current_user, get_optional_user, verify_access_token
from conftest import TEST_USER_ID, make_token


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestHS256:

    def test_valid_token(self):
        claims = verify_access_token(make_token())
        assert claims["sub"] == str(TEST_USER_ID)
        assert claims["email"] == "cliente@example.com"

    def test_expired_token(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_access_token(make_token(expires_in=-60))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token has expired"

    def test_wrong_audience(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_access_token(make_token(audience="anon"))
        assert exc_info.value.status_code == 401

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": str(TEST_USER_ID), "aud": "authenticated", "exp": int(time.time()) + 60},
            "some-other-secret-with-enough-length-for-hs256",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException):
            verify_access_token(token)


class TestES256:

    def test_jwks_key_is_tried_first(self, no_jwks):
        private_key = ec.generate_private_key(ec.SECP256R1())
        no_jwks.get_signing_key_from_jwt.side_effect = None
        no_jwks.get_signing_key_from_jwt.return_value = SimpleNamespace(
            key=private_key.public_key()
        )

        token = jwt.encode(
            {
                "sub": str(TEST_USER_ID),
                "aud": "authenticated",
                "iss": "http://localhost:54321/auth/v1",
                "exp": int(time.time()) + 60,
            },
            private_key,
            algorithm="ES256",
        )

        assert verify_access_token(token)["sub"] == str(TEST_USER_ID)


class TestUserDependencies:

    @pytest.mark.asyncio
    async def test_current_user(self):
        user = await get_current_user(bearer(make_token()))
        assert user.id == TEST_USER_ID
        assert user.email == "cliente@example.com"

    @pytest.mark.asyncio
    async def test_missing_token(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_subject(self):
        token = jwt.encode(
            {
                "sub": "not-a-uuid",
                "aud": "authenticated",
                "iss": "http://localhost:54321/auth/v1",
                "exp": int(time.time()) + 60,
            },
            "test-jwt-secret-with-enough-length-for-hs256",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(bearer(token))
        assert exc_info.value.detail == "Invalid token: malformed user ID"

    @pytest.mark.asyncio
    async def test_optional_user_tolerates_bad_tokens(self):
        assert await get_optional_user(None) is None
        assert await get_optional_user(bearer("garbage")) is None
        user = await get_optional_user(bearer(make_token()))
        assert user.id == TEST_USER_ID
