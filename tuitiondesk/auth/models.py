import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from tuitiondesk.core.enums import UserRole
from tuitiondesk.core.timeutils import utcnow
from tuitiondesk.db.session import Base


class User(Base):
    """Login account: either the platform super-admin or a teacher who owns batches."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(100), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    # SUPER_ADMIN | TEACHER (see UserRole)
    role = Column(String(20), nullable=False, default=UserRole.TEACHER.value)
    full_name = Column(String(255), nullable=False)
    institute_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(20), nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    has_accepted_terms = Column(Boolean, nullable=False, default=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    accepted_version = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class RefreshToken(Base):
    """Stored refresh tokens for users."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(512), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User")
