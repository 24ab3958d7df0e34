"""Payment: a manually recorded ledger entry against a student (whole rupees)."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from tuitiondesk.core.timeutils import utcnow
from tuitiondesk.db.session import Base


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_amount_positive"),
        UniqueConstraint("student_id", "entry_no", name="uq_payment_student_entry_no"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    # 1, 2, 3, ... per student in posting order; orders payments with equal paid_at
    entry_no = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)
    payment_method = Column(String(40), nullable=True)  # Cash, UPI, Bank Transfer, ... or free text
    paid_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("Student")
