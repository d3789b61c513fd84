"""E2E test fixtures."""

import pytest
from httpx import AsyncClient

from app.services.totp import TOTPService

USER_EMAIL = "e2e@example.com"
USER_PASSWORD = "E2ePassword123"


@pytest.fixture
def credentials() -> dict[str, str]:
    return {"email": USER_EMAIL, "password": USER_PASSWORD}


@pytest.fixture
async def registered_user(client: AsyncClient, credentials: dict[str, str]) -> dict:
    """Register a user through the API."""
    response = await client.post(
        "/api/v1/auth/register", json={**credentials, "full_name": "E2E User"}
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def auth_headers(
    client: AsyncClient, registered_user: dict, credentials: dict[str, str]
) -> dict[str, str]:
    """Headers for a password-only session."""
    response = await client.post("/api/v1/auth/login", json=credentials)
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def two_factor_user(client: AsyncClient, auth_headers: dict[str, str]) -> dict:
    """Enroll and confirm two-factor authentication; returns the enrollment payload."""
    begin = await client.post("/api/v1/two-factor/enroll/begin", headers=auth_headers)
    assert begin.status_code == 200, begin.text
    enrollment = begin.json()

    secret = TOTPService.decode_secret(enrollment["secret"])
    confirm = await client.post(
        "/api/v1/two-factor/enroll/confirm",
        headers=auth_headers,
        json={"code": TOTPService.compute_code(secret, TOTPService.time_step())},
    )
    assert confirm.status_code == 200, confirm.text
    return enrollment


@pytest.fixture
async def step_up_headers(
    client: AsyncClient, two_factor_user: dict, auth_headers: dict[str, str]
) -> dict[str, str]:
    """Headers for a session that presented the second factor."""
    secret = TOTPService.decode_secret(two_factor_user["secret"])
    # The current step was spent on confirmation; the next one is inside the window
    code = TOTPService.compute_code(secret, TOTPService.time_step() + 1)

    response = await client.post(
        "/api/v1/two-factor/verify", headers=auth_headers, json={"code": code}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
