"""Fee audit log: immutable tracking of payment and fee-override changes."""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from tuitiondesk.core.timeutils import utcnow
from tuitiondesk.db.session import Base


class FeeAuditLog(Base):
    """Immutable audit trail for fee-related financial changes."""

    __tablename__ = "fee_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    reference_table = Column(String(50), nullable=False)
    # Not a foreign key: the audited row may be deleted later
    reference_id = Column(Uuid, nullable=False)
    action_type = Column(String(30), nullable=False)  # CREATE, UPDATE, DELETE
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    changed_by_user = relationship("User", foreign_keys=[changed_by])
