"""Student enrolled in a batch. A phone number registers once per batch."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from tuitiondesk.core.timeutils import utcnow
from tuitiondesk.db.session import Base


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("batch_id", "phone", name="uq_student_batch_phone"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_id = Column(Uuid, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=True)
    standard = Column(String(100), nullable=False)
    # Per-student override of the batch fee; never above the batch fee
    custom_fee = Column(Integer, nullable=True)
    join_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    # Touched on every payment posting; the write takes the per-student lock
    last_activity_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    guardian_name = Column(String(100), nullable=True)
    guardian_phone = Column(String(20), nullable=True)
    school_name = Column(String(150), nullable=True)
    city = Column(String(100), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    batch = relationship("Batch")
