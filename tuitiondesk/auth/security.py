"""Password hashing, access/refresh token issuance and access token decoding."""

from datetime import datetime, timedelta, timezone
import secrets
import string
from typing import Optional, Tuple
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from tuitiondesk.core.config import settings
from tuitiondesk.core.enums import UserRole

# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def hash_password(plain_password: str) -> str:
    encoded = plain_password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    encoded = plain_password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def create_access_token(
    user_id: UUID,
    role: str,
    *,
    issued_at: Optional[datetime] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """JWT carrying the user id (sub) and role; get_current_user re-checks both against the users table."""
    issued_at = issued_at or datetime.now(timezone.utc)
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes
    claims = {
        "sub": str(user_id),
        "role": role.value if isinstance(role, UserRole) else role,
        "iat": int(issued_at.timestamp()),
        "exp": issued_at + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Tuple[UUID, UserRole]:
    """(user_id, role) from a valid token. Raises ValueError for a bad signature, expiry or unknown role."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise ValueError(str(e)) from e
    user_id, role = claims.get("sub"), claims.get("role")
    if not user_id or not role:
        raise ValueError("Token is missing sub or role")
    return UUID(str(user_id)), UserRole(role)


def create_refresh_token(*, expires_days: Optional[int] = None) -> Tuple[str, datetime]:
    """Opaque random token; the caller stores it with the returned expiry."""
    if expires_days is None:
        expires_days = settings.refresh_token_expire_days
    return secrets.token_urlsafe(48), datetime.now(timezone.utc) + timedelta(days=expires_days)


def generate_password(length: int = 10) -> str:
    """Random password for admin-initiated resets. Excludes ambiguous 0/O, 1/l/I."""
    alphabet = "".join(c for c in string.ascii_letters + string.digits if c not in "0O1lI")
    return "".join(secrets.choice(alphabet) for _ in range(length))
