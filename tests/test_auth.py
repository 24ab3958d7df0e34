from typing import Dict
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.models import RefreshToken, User
from tuitiondesk.auth.security import create_access_token, decode_access_token, hash_password, verify_password
from tuitiondesk.core.enums import UserRole

from conftest import TEST_PASSWORD, create_user, login


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, teacher: User) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "RAMESH", "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["user"]["username"] == "ramesh"
    assert data["user"]["role"] == "TEACHER"
    assert "password_hash" not in data["user"]


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, teacher: User) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "ramesh", "password": "nope"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_unknown_user(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "ghost", "password": TEST_PASSWORD},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_inactive_account(client: AsyncClient, db_session: AsyncSession) -> None:
    await create_user(db_session, "dormant", is_active=False)
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "dormant", "password": TEST_PASSWORD},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_login_oauth_form(client: AsyncClient, teacher: User) -> None:
    response = await client.post(
        "/api/v1/auth/login-oauth",
        data={"username": "ramesh", "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    assert response.json()["access_token"]


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    response = await client.get("/api/v1/auth/me", headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["institute_name"] == "Ramesh Classes"


@pytest.mark.asyncio
async def test_unknown_role_in_token_is_rejected(client: AsyncClient, teacher: User) -> None:
    token = create_access_token(teacher.id, "teacher")
    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client: AsyncClient, teacher: User) -> None:
    token = create_access_token(teacher.id, UserRole.TEACHER, expires_minutes=-1)
    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_access_token_carries_user_and_role() -> None:
    user_id = uuid4()
    assert decode_access_token(create_access_token(user_id, UserRole.SUPER_ADMIN)) == (user_id, UserRole.SUPER_ADMIN)
    with pytest.raises(ValueError):
        decode_access_token("not-a-jwt")


def test_password_hashing() -> None:
    hashed = hash_password("secret1")
    assert verify_password("secret1", hashed)
    assert not verify_password("secret2", hashed)
    assert not verify_password("secret1", "not-a-bcrypt-hash")
    assert not verify_password("secret1", None)
    with pytest.raises(ValueError):
        hash_password("x" * 73)


@pytest.mark.asyncio
async def test_deactivated_user_token_stops_working(
    client: AsyncClient,
    db_session: AsyncSession,
    teacher: User,
    teacher_headers: Dict[str, str],
) -> None:
    teacher.is_active = False
    await db_session.commit()
    response = await client.get("/api/v1/auth/me", headers=teacher_headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_and_logout(client: AsyncClient, db_session: AsyncSession, teacher: User) -> None:
    login_resp = await client.post(
        "/api/v1/auth/login",
        json={"username": "ramesh", "password": TEST_PASSWORD},
    )
    tokens = login_resp.json()

    refresh_resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refresh_resp.status_code == 200
    assert refresh_resp.json()["access_token"]

    headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    logout_resp = await client.post("/api/v1/auth/logout", headers=headers)
    assert logout_resp.status_code == 200

    remaining = await db_session.execute(select(RefreshToken).where(RefreshToken.user_id == teacher.id))
    assert remaining.scalars().all() == []

    again = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert again.status_code == 401


@pytest.mark.asyncio
async def test_accept_terms(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    response = await client.post("/api/v1/auth/accept-terms", json={"version": "1.0"}, headers=teacher_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["has_accepted_terms"] is True
    assert data["accepted_version"] == "1.0"
    assert data["accepted_at"] is not None


@pytest.mark.asyncio
async def test_update_credentials(
    client: AsyncClient,
    db_session: AsyncSession,
    teacher_headers: Dict[str, str],
) -> None:
    wrong = await client.patch(
        "/api/v1/auth/credentials",
        json={"current_password": "bad", "username": "ramesh2", "password": "newpass"},
        headers=teacher_headers,
    )
    assert wrong.status_code == 400

    await create_user(db_session, "taken")
    clash = await client.patch(
        "/api/v1/auth/credentials",
        json={"current_password": TEST_PASSWORD, "username": "taken", "password": "newpass"},
        headers=teacher_headers,
    )
    assert clash.status_code == 409

    ok = await client.patch(
        "/api/v1/auth/credentials",
        json={"current_password": TEST_PASSWORD, "username": "ramesh2", "password": "newpass"},
        headers=teacher_headers,
    )
    assert ok.status_code == 200
    assert ok.json()["username"] == "ramesh2"
    await login(client, "ramesh2", "newpass")


@pytest.mark.asyncio
async def test_teacher_cannot_use_super_admin_routes(
    client: AsyncClient,
    teacher_headers: Dict[str, str],
) -> None:
    response = await client.get("/api/v1/teachers", headers=teacher_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_super_admin_cannot_use_teacher_routes(
    client: AsyncClient,
    super_admin_headers: Dict[str, str],
) -> None:
    response = await client.get("/api/v1/batches", headers=super_admin_headers)
    assert response.status_code == 403
