from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.models import User
from tuitiondesk.auth.schemas import CurrentUser
from tuitiondesk.auth.security import decode_access_token
from tuitiondesk.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated, still-active user from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        user_id, role = decode_access_token(token)
    except ValueError:
        raise credentials_exception

    user = await db.get(User, user_id)
    if not user or not user.is_active or user.role != role.value:
        raise credentials_exception

    return CurrentUser(id=user.id, role=role)
