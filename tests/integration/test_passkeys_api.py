"""
Integration tests for the passkey endpoints.

Drives the full HTTP flow through the FastAPI app:
- Challenge issuance
- Registration and authentication
- Listing and revoking passkeys with a session token
- Request gating (origin check, rate limiting) and error responses

The database is in-memory SQLite and py_webauthn is replaced by the fake
verifier from conftest.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from passkey_api.core.database import get_db
from passkey_api.core.rate_limit import enforce_rate_limit
from passkey_api.main import app
from passkey_api.models.orm import User
from passkey_api.routers.passkeys import get_passkey_verifier


@pytest_asyncio.fixture
async def client(async_session_factory, fake_verifier):
    """Create an async HTTP client wired to the test database."""

    async def override_get_db():
        async with async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_passkey_verifier] = lambda: fake_verifier
    app.dependency_overrides[enforce_rate_limit] = no_rate_limit

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_user(session_context) -> User:
    """A committed user visible to request sessions."""
    async with session_context() as db:
        user = User(email="mobile@example.com", name="Mobile User", email_verified=True)
        db.add(user)
    return user


@pytest_asyncio.fixture
async def second_user(session_context) -> User:
    async with session_context() as db:
        user = User(email="second@example.com", name="Second User")
        db.add(user)
    return user


async def request_challenge(client: AsyncClient, user_id: str, challenge_type: str) -> str:
    response = await client.post(
        "/passkey/challenge", json={"user_id": user_id, "type": challenge_type}
    )
    assert response.status_code == 200, response.text
    return response.json()["challenge"]


async def register_device(client: AsyncClient, user: User, credential_id: str = "D1"):
    challenge = await request_challenge(client, str(user.id), "registration")
    return await client.post(
        "/passkey/register",
        json={
            "user_id": str(user.id),
            "credential": {"id": credential_id, "challenge": challenge},
            "platform": "ios",
            "metadata": {"device_name": "iPhone 16", "app_version": "3.2.0"},
        },
    )


async def sign_in(client: AsyncClient, subject_id: str, credential_id: str = "D1", counter=1):
    challenge = await request_challenge(client, subject_id, "authentication")
    return await client.post(
        "/passkey/authenticate",
        json={"credential": {"id": credential_id, "challenge": challenge, "counter": counter}},
    )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.integration
class TestHealthCheck:
    """Tests for health check endpoint."""

    async def test_health_check_returns_200(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"


@pytest.mark.integration
class TestRootEndpoint:
    """Tests for root endpoint."""

    async def test_root_returns_api_info(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "Passkey API"
        assert data["version"] == "1.0.0"


@pytest.mark.integration
class TestPasskeyLifecycle:
    """Register, sign in, list, revoke, and the lost-device case."""

    async def test_full_lifecycle(self, client: AsyncClient, api_user: User):
        """A device registers, signs in, is listed, then revoked and locked out."""
        user_id = str(api_user.id)

        # Register
        response = await register_device(client, api_user)
        assert response.status_code == 200, response.text
        assert response.json() == {"success": True, "rp_name": "Example", "rp_id": "example.com"}

        # Sign in
        response = await sign_in(client, user_id)
        assert response.status_code == 200, response.text
        session = response.json()
        assert session["token_type"] == "bearer"
        assert session["user"]["id"] == user_id
        assert session["user"]["email"] == "mobile@example.com"
        assert "access_token" in response.cookies
        assert "refresh_token" in response.cookies

        # List
        response = await client.get(f"/passkey/list/{user_id}", headers=bearer(session["token"]))
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["next_offset"] is None
        assert len(data["passkeys"]) == 1
        passkey = data["passkeys"][0]
        assert passkey["credential_id"] == "D1"
        assert passkey["status"] == "active"
        assert passkey["platform"] == "ios"
        assert passkey["metadata"]["device_name"] == "iPhone 16"
        assert "last_authentication_at" in passkey["metadata"]

        # Revoke (lost device)
        response = await client.post(
            "/passkey/revoke",
            json={"user_id": user_id, "credential_id": "D1", "reason": "lost_device"},
            headers=bearer(session["token"]),
        )
        assert response.status_code == 200, response.text
        assert response.json() == {"success": True}

        response = await client.get(f"/passkey/list/{user_id}", headers=bearer(session["token"]))
        assert response.json()["passkeys"] == []

        # The revoked device can no longer sign in
        response = await sign_in(client, user_id, counter=2)
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credential"

    async def test_discoverable_sign_in(self, client: AsyncClient, api_user: User):
        await register_device(client, api_user)

        response = await sign_in(client, "__discoverable__")

        assert response.status_code == 200, response.text
        assert response.json()["user"]["id"] == str(api_user.id)

    async def test_re_register_after_revocation(self, client: AsyncClient, api_user: User):
        await register_device(client, api_user)
        token = (await sign_in(client, str(api_user.id))).json()["token"]
        await client.post(
            "/passkey/revoke",
            json={"user_id": str(api_user.id), "credential_id": "D1"},
            headers=bearer(token),
        )

        response = await register_device(client, api_user)

        assert response.status_code == 200, response.text
        response = await sign_in(client, str(api_user.id), counter=1)
        assert response.status_code == 200

    async def test_pagination(self, client: AsyncClient, api_user: User):
        for credential_id in ("D1", "D2", "D3"):
            assert (await register_device(client, api_user, credential_id)).status_code == 200
        token = (await sign_in(client, str(api_user.id))).json()["token"]

        response = await client.get(
            f"/passkey/list/{api_user.id}", params={"limit": 2}, headers=bearer(token)
        )

        data = response.json()
        assert len(data["passkeys"]) == 2
        assert data["passkeys"][0]["credential_id"] == "D1"
        assert data["next_offset"] == 2


@pytest.mark.integration
class TestPasskeyErrors:
    """Error responses carry a stable code and status."""

    async def test_registration_challenge_for_unknown_user(self, client: AsyncClient):
        response = await client.post(
            "/passkey/challenge", json={"user_id": str(uuid4()), "type": "registration"}
        )

        assert response.status_code == 404
        assert response.json()["error"] == "user_not_found"

    async def test_invalid_challenge_type(self, client: AsyncClient, api_user: User):
        response = await client.post(
            "/passkey/challenge", json={"user_id": str(api_user.id), "type": "login"}
        )

        assert response.status_code == 422

    async def test_register_without_challenge(self, client: AsyncClient, api_user: User):
        response = await client.post(
            "/passkey/register",
            json={"user_id": str(api_user.id), "credential": {"id": "D1"}, "platform": "ios"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_challenge"

    async def test_register_twice(self, client: AsyncClient, api_user: User):
        await register_device(client, api_user)

        response = await register_device(client, api_user)

        assert response.status_code == 409
        assert response.json()["error"] == "credential_exists"
        assert response.json()["message"] == "Device already registered"

    async def test_verification_failure(self, client: AsyncClient, api_user: User):
        await request_challenge(client, str(api_user.id), "registration")

        response = await client.post(
            "/passkey/register",
            json={
                "user_id": str(api_user.id),
                "credential": {"id": "D1", "challenge": "forged"},
                "platform": "android",
            },
        )

        assert response.status_code == 400
        assert response.json()["error"] == "verification_failed"

    async def test_unknown_credential(self, client: AsyncClient):
        response = await client.post(
            "/passkey/authenticate", json={"credential": {"id": "nope", "challenge": "x"}}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credential"

    async def test_counter_regression(self, client: AsyncClient, api_user: User):
        await register_device(client, api_user)
        assert (await sign_in(client, str(api_user.id), counter=5)).status_code == 200

        response = await sign_in(client, str(api_user.id), counter=4)

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credential"


@pytest.mark.integration
class TestPasskeyAccessControl:
    """Listing and revoking require the owner's session."""

    async def test_list_requires_authentication(self, client: AsyncClient, api_user: User):
        response = await client.get(f"/passkey/list/{api_user.id}")

        assert response.status_code == 401

    async def test_revoke_requires_authentication(self, client: AsyncClient, api_user: User):
        response = await client.post(
            "/passkey/revoke", json={"user_id": str(api_user.id), "credential_id": "D1"}
        )

        assert response.status_code == 401

    async def test_cannot_list_other_users_passkeys(
        self, client: AsyncClient, api_user: User, second_user: User
    ):
        await register_device(client, api_user)
        token = (await sign_in(client, str(api_user.id))).json()["token"]

        response = await client.get(f"/passkey/list/{second_user.id}", headers=bearer(token))

        assert response.status_code == 403
        assert response.json()["error"] == "unauthorized_access"

    async def test_cannot_revoke_other_users_passkeys(
        self, client: AsyncClient, api_user: User, second_user: User
    ):
        await register_device(client, api_user)
        await register_device(client, second_user, "D2")
        token = (await sign_in(client, str(api_user.id))).json()["token"]

        response = await client.post(
            "/passkey/revoke",
            json={"user_id": str(second_user.id), "credential_id": "D2"},
            headers=bearer(token),
        )

        assert response.status_code == 403

    async def test_revoke_unknown_credential(self, client: AsyncClient, api_user: User):
        await register_device(client, api_user)
        token = (await sign_in(client, str(api_user.id))).json()["token"]

        response = await client.post(
            "/passkey/revoke",
            json={"user_id": str(api_user.id), "credential_id": "missing"},
            headers=bearer(token),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "credential_not_found"

    async def test_session_cookie_is_accepted(self, client: AsyncClient, api_user: User):
        await register_device(client, api_user)
        response = await sign_in(client, str(api_user.id))
        token = response.json()["token"]

        client.cookies.set("access_token", token)
        try:
            response = await client.get(f"/passkey/list/{api_user.id}")
        finally:
            client.cookies.clear()

        assert response.status_code == 200


@pytest.mark.integration
class TestRequestGating:
    """Origin check and rate limiting on the passkey router."""

    async def test_untrusted_origin_rejected(self, client: AsyncClient, api_user: User):
        response = await client.post(
            "/passkey/challenge",
            json={"user_id": str(api_user.id), "type": "authentication"},
            headers={"Origin": "https://evil.example.net"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_origin"

    async def test_trusted_origin_allowed(self, client: AsyncClient, api_user: User):
        response = await client.post(
            "/passkey/challenge",
            json={"user_id": str(api_user.id), "type": "authentication"},
            headers={"Origin": "https://example.com"},
        )

        assert response.status_code == 200

    async def test_rate_limited_request(self, client: AsyncClient, api_user: User):
        """Exceeding a window returns 429 with Retry-After."""
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[31, 42])
        pipeline_cm = MagicMock()
        pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
        pipeline_cm.__aexit__ = AsyncMock(return_value=False)
        redis = AsyncMock()
        redis.pipeline = MagicMock(return_value=pipeline_cm)

        app.dependency_overrides.pop(enforce_rate_limit)
        with patch("passkey_api.core.rate_limit.get_redis", AsyncMock(return_value=redis)):
            response = await client.post(
                "/passkey/challenge",
                json={"user_id": str(api_user.id), "type": "authentication"},
            )

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.json()["error"] == "rate_limited"
        assert response.json()["details"] == {"retry_after": 42}
