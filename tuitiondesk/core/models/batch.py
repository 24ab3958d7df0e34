"""Batch: a teacher's class/cohort and the fee-bearing unit."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from tuitiondesk.core.enums import FeePeriod
from tuitiondesk.core.timeutils import utcnow
from tuitiondesk.db.session import Base


class Batch(Base):
    """Owned by exactly one teacher. Deleting the teacher deletes the batch."""

    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("fee > 0", name="chk_batch_fee_positive"),
        CheckConstraint("fee_period IN ('month','year')", name="chk_batch_fee_period"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)
    standard = Column(String(100), nullable=False)
    fee = Column(Integer, nullable=False)
    fee_period = Column(String(10), nullable=False, default=FeePeriod.MONTH.value)
    # Opaque token routing public self-registration to this batch
    registration_token = Column(String(64), nullable=False, unique=True, index=True)
    registration_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    # Written when a fee change takes the batch lock
    updated_at = Column(DateTime(timezone=True), nullable=True)

    teacher = relationship("User")
