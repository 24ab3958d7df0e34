import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.models import RefreshToken, User
from tuitiondesk.auth.schemas import (
    AccessTokenResponse,
    AcceptTermsRequest,
    LoginRequest,
    LoginResponse,
    UpdateCredentialsRequest,
    UserInfo,
)
from tuitiondesk.auth.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.core.timeutils import as_utc

logger = logging.getLogger(__name__)


def _access_token_for(user: User, issued_at: datetime) -> str:
    return create_access_token(user.id, user.role, issued_at=issued_at)


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    return user


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # 1. Find user by username (case-insensitive)
    user_stmt = select(User).where(func.lower(User.username) == payload.username.strip().lower())
    user_result = await db.execute(user_stmt)
    user: Optional[User] = user_result.scalar_one_or_none()
    if not user:
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 3. Check account status
    if not user.is_active:
        raise ServiceError("Account is inactive", status.HTTP_403_FORBIDDEN)

    issued_at = datetime.now(timezone.utc)
    access_token = _access_token_for(user, issued_at)

    # 4. Generate and store refresh token
    refresh_token_str, refresh_expires_at = create_refresh_token()
    db.add(
        RefreshToken(
            user_id=user.id,
            token=refresh_token_str,
            expires_at=refresh_expires_at,
        )
    )
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Failed to persist refresh token for user %s", user.id)
        raise ServiceError(
            "Failed to persist authentication state",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ) from e

    logger.info("User %s logged in", user.username)
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token_str,
        user=UserInfo.model_validate(user),
        issued_at=issued_at,
    )


async def refresh_access_token(db: AsyncSession, refresh_token: str) -> AccessTokenResponse:
    result = await db.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
    stored = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)
    if not stored or as_utc(stored.expires_at) <= now:
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)
    user = await db.get(User, stored.user_id)
    if not user or not user.is_active:
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)
    return AccessTokenResponse(access_token=_access_token_for(user, now))


async def logout_user(db: AsyncSession, user_id: UUID) -> None:
    """Revoke every refresh token of the user; access tokens expire on their own."""
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    await db.commit()


async def get_me(db: AsyncSession, user_id: UUID) -> UserInfo:
    return UserInfo.model_validate(await _get_user(db, user_id))


async def accept_terms(db: AsyncSession, user_id: UUID, payload: AcceptTermsRequest) -> UserInfo:
    user = await _get_user(db, user_id)
    user.has_accepted_terms = True
    user.accepted_at = datetime.now(timezone.utc)
    user.accepted_version = payload.version.strip()
    await db.commit()
    await db.refresh(user)
    return UserInfo.model_validate(user)


async def update_credentials(
    db: AsyncSession,
    user_id: UUID,
    payload: UpdateCredentialsRequest,
) -> UserInfo:
    user = await _get_user(db, user_id)
    if not verify_password(payload.current_password, user.password_hash):
        raise ServiceError("Current password is incorrect", status.HTTP_400_BAD_REQUEST)
    user.username = payload.username.strip()
    user.password_hash = hash_password(payload.password)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Username is already taken", status.HTTP_409_CONFLICT)
    await db.refresh(user)
    logger.info("User %s updated their credentials", user.id)
    return UserInfo.model_validate(user)
