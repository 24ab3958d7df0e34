import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, Optional

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import tuitiondesk.auth.models  # noqa: F401
import tuitiondesk.core.models  # noqa: F401
from tuitiondesk.auth.models import User
from tuitiondesk.auth.security import hash_password
from tuitiondesk.core.enums import UserRole
from tuitiondesk.db.session import Base, enable_sqlite_foreign_keys, get_db
from tuitiondesk.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "secret123"


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test; one shared connection so every session sees the same tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    username: str,
    role: UserRole = UserRole.TEACHER,
    password: str = TEST_PASSWORD,
    is_active: bool = True,
    institute_name: Optional[str] = None,
) -> User:
    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role.value,
        full_name=username.title(),
        institute_name=institute_name,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def login(client: AsyncClient, username: str, password: str = TEST_PASSWORD) -> Dict[str, str]:
    resp = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture()
async def super_admin_headers(client: AsyncClient, db_session: AsyncSession) -> Dict[str, str]:
    await create_user(db_session, "admin", role=UserRole.SUPER_ADMIN)
    return await login(client, "admin")


@pytest.fixture()
async def teacher(db_session: AsyncSession) -> User:
    return await create_user(db_session, "ramesh", institute_name="Ramesh Classes")


@pytest.fixture()
async def teacher_headers(client: AsyncClient, teacher: User) -> Dict[str, str]:
    return await login(client, teacher.username)


@pytest.fixture()
async def other_teacher_headers(client: AsyncClient, db_session: AsyncSession) -> Dict[str, str]:
    await create_user(db_session, "suresh")
    return await login(client, "suresh")


async def create_batch(
    client: AsyncClient,
    headers: Dict[str, str],
    fee: int = 5000,
    fee_period: str = "month",
    name: str = "Maths 10A",
    registration_enabled: bool = True,
) -> dict:
    resp = await client.post(
        "/api/v1/batches",
        json={
            "name": name,
            "subject": "Mathematics",
            "standard": "Class 10",
            "fee": fee,
            "fee_period": fee_period,
            "registration_enabled": registration_enabled,
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_student(
    client: AsyncClient,
    headers: Dict[str, str],
    batch_id: str,
    phone: str = "9876543210",
    full_name: str = "Rahul Sharma",
    join_date: Optional[datetime] = None,
    custom_fee: Optional[int] = None,
) -> dict:
    payload = {
        "batch_id": batch_id,
        "full_name": full_name,
        "phone": phone,
        "standard": "Class 10",
    }
    if join_date is not None:
        payload["join_date"] = join_date.isoformat()
    if custom_fee is not None:
        payload["custom_fee"] = custom_fee
    resp = await client.post("/api/v1/students", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()
