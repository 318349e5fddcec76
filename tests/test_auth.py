"""
Tests for session tokens, password hashing and the register/login routes.
"""

import pytest
from sqlalchemy import select

from auth.jwt import create_session_token, verify_session_token
from auth.password import hash_password, verify_password
from connectors.errors import AuthenticationError
from database.models import User

SECRET = "unit-test-secret"


class TestSessionTokens:
    def test_roundtrip(self):
        token = create_session_token("user-42", secret=SECRET, expiry_seconds=60)
        assert verify_session_token(token, secret=SECRET) == "user-42"

    def test_wrong_secret(self):
        token = create_session_token("user-42", secret=SECRET, expiry_seconds=60)
        with pytest.raises(AuthenticationError):
            verify_session_token(token, secret="other")

    def test_expired(self):
        token = create_session_token("user-42", secret=SECRET, expiry_seconds=-1)
        with pytest.raises(AuthenticationError, match="expired"):
            verify_session_token(token, secret=SECRET)

    @pytest.mark.parametrize("garbage", ["", "abc", "not base64!.sig", "e30=.\u00e9"])
    def test_malformed(self, garbage):
        with pytest.raises(AuthenticationError):
            verify_session_token(garbage, secret=SECRET)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse", rounds=4)
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash(self):
        assert not verify_password("anything", "")
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestAuthRoutes:
    @pytest.mark.asyncio
    async def test_register_then_login(self, client):
        reg = await client.post(
            "/api/v1/auth/register",
            json={"display_name": "Ada", "email": "Ada@School.edu", "password": "s3cret-pass"},
        )
        assert reg.status_code == 200, reg.text
        assert reg.json()["email"] == "ada@school.edu"

        login = await client.post(
            "/api/v1/auth/login", json={"email": "ada@school.edu", "password": "s3cret-pass"}
        )
        assert login.status_code == 200
        assert login.json()["user_id"] == reg.json()["user_id"]

        token = login.json()["token"]
        connections = await client.get(
            "/api/v1/oauth/connections", headers={"Authorization": f"Bearer {token}"}
        )
        assert connections.status_code == 200

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client):
        body = {"display_name": "Ada", "email": "ada@school.edu", "password": "s3cret-pass"}
        assert (await client.post("/api/v1/auth/register", json=body)).status_code == 200
        assert (await client.post("/api/v1/auth/register", json=body)).status_code == 409

    @pytest.mark.asyncio
    async def test_bad_password(self, client):
        await client.post(
            "/api/v1/auth/register",
            json={"display_name": "Ada", "email": "ada@school.edu", "password": "s3cret-pass"},
        )
        resp = await client.post(
            "/api/v1/auth/login", json={"email": "ada@school.edu", "password": "wrong-pass"}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_non_ascii_signature_is_unauthorized(self, client):
        resp = await client.get(
            "/api/v1/gmail/messages", headers={"Authorization": b"Bearer e30=.\xe9"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "authentication_failed"

    @pytest.mark.asyncio
    async def test_register_writes_to_app_database(self, client, session_factory):
        reg = await client.post(
            "/api/v1/auth/register",
            json={"display_name": "Ada", "email": "ada@school.edu", "password": "s3cret-pass"},
        )
        assert reg.status_code == 200

        async with session_factory() as session:
            user = (await session.execute(select(User))).scalar_one()
        assert user.user_id == reg.json()["user_id"]
        assert user.email == "ada@school.edu"
