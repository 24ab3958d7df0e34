"""
Payments service: posting, correcting and removing ledger entries.

Every write runs in one transaction that first locks the student row, so the
total paid read for validation cannot go stale before the new row is written.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import delete
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.api.v1.students.schemas import LedgerEntryResponse
from tuitiondesk.core.enums import FeeAuditAction
from tuitiondesk.core.exceptions import LockConflictError, ServiceError
from tuitiondesk.core.fee_ledger import (
    build_ledger,
    expected_total_fee,
    payment_amount,
    student_dues,
    validate_payment,
)
from tuitiondesk.core.models import Batch, Payment, Student
from tuitiondesk.core.services import (
    get_owned_student,
    get_payments_by_student,
    get_total_paid,
    log_fee_audit,
    next_entry_no,
)
from tuitiondesk.core.timeutils import utcnow

from .schemas import (
    PaymentCreate,
    PaymentCreateResponse,
    PaymentLedgerResponse,
    PaymentResponse,
    PaymentUpdate,
)

logger = logging.getLogger(__name__)

PREDEFINED_PAYMENT_METHODS = ["Cash", "UPI", "Bank Transfer", "Cheque", "Online"]

LOCK_CONFLICT_MESSAGE = "Another payment for this student is being recorded. Please retry."


def _payment_snapshot(payment: Payment) -> dict:
    return {
        "student_id": str(payment.student_id),
        "amount": payment.amount,
        "payment_method": payment.payment_method,
        "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
    }


async def _lock_student(
    db: AsyncSession,
    teacher_id: UUID,
    student_id: UUID,
) -> Tuple[Student, Batch]:
    """
    Row-lock the student and write last_activity_date. The write holds the
    lock on databases without SELECT ... FOR UPDATE (SQLite) too.
    """
    student, batch = await get_owned_student(db, teacher_id, student_id, for_update=True)
    student.last_activity_date = utcnow()
    await db.flush()
    return student, batch


async def _validated_amount(
    db: AsyncSession,
    student: Student,
    batch: Batch,
    amount,
    exclude_payment_id: Optional[UUID] = None,
) -> int:
    total_paid = await get_total_paid(db, student.id, exclude_payment_id=exclude_payment_id)
    expected = expected_total_fee(batch.fee, student.custom_fee, batch.fee_period, student.join_date)
    check = validate_payment(amount, expected, total_paid)
    if not check.accepted:
        logger.debug("Payment for student %s rejected: %s", student.id, check.reason.value)
        await db.rollback()
        raise ServiceError(check.message, status.HTTP_400_BAD_REQUEST)
    return payment_amount(amount)


async def record_payment(
    db: AsyncSession,
    teacher_id: UUID,
    payload: PaymentCreate,
) -> PaymentCreateResponse:
    try:
        student, batch = await _lock_student(db, teacher_id, payload.student_id)
        amount = await _validated_amount(db, student, batch, payload.amount)
        payment = Payment(
            student_id=student.id,
            entry_no=await next_entry_no(db, student.id),
            amount=amount,
            payment_method=payload.payment_method,
            paid_at=utcnow(),
        )
        db.add(payment)
        await db.flush()
        await log_fee_audit(
            db, batch.teacher_id, "payments", payment.id,
            FeeAuditAction.CREATE, None, _payment_snapshot(payment), teacher_id,
        )
        await db.commit()
    except OperationalError as e:
        await db.rollback()
        logger.exception("Payment posting for student %s failed on a database lock", payload.student_id)
        raise LockConflictError(LOCK_CONFLICT_MESSAGE) from e
    await db.refresh(payment)
    logger.info("Recorded payment of ₹%s for student %s", payment.amount, payment.student_id)
    return PaymentCreateResponse(payment=PaymentResponse.model_validate(payment))


async def _get_owned_payment(db: AsyncSession, teacher_id: UUID, payment_id: UUID) -> Payment:
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    # Ownership is checked through the student's batch
    await get_owned_student(db, teacher_id, payment.student_id)
    return payment


async def update_payment(
    db: AsyncSession,
    teacher_id: UUID,
    payment_id: UUID,
    payload: PaymentUpdate,
) -> PaymentResponse:
    """Correct an entry. The new amount is validated as if this payment had not been made."""
    try:
        payment = await _get_owned_payment(db, teacher_id, payment_id)
        student, batch = await _lock_student(db, teacher_id, payment.student_id)
        amount = await _validated_amount(db, student, batch, payload.amount, exclude_payment_id=payment.id)
        old_value = _payment_snapshot(payment)
        payment.amount = amount
        payment.payment_method = payload.payment_method
        payment.modified_at = utcnow()
        await log_fee_audit(
            db, batch.teacher_id, "payments", payment.id,
            FeeAuditAction.UPDATE, old_value, _payment_snapshot(payment), teacher_id,
        )
        await db.commit()
    except OperationalError as e:
        await db.rollback()
        logger.exception("Payment update %s failed on a database lock", payment_id)
        raise LockConflictError(LOCK_CONFLICT_MESSAGE) from e
    await db.refresh(payment)
    logger.info("Payment %s updated to ₹%s", payment.id, payment.amount)
    return PaymentResponse.model_validate(payment)


async def delete_payment(db: AsyncSession, teacher_id: UUID, payment_id: UUID) -> None:
    payment = await _get_owned_payment(db, teacher_id, payment_id)
    amount = payment.amount
    student, batch = await get_owned_student(db, teacher_id, payment.student_id)
    await log_fee_audit(
        db, batch.teacher_id, "payments", payment.id,
        FeeAuditAction.DELETE, _payment_snapshot(payment), None, teacher_id,
    )
    await db.execute(delete(Payment).where(Payment.id == payment.id))
    await db.commit()
    logger.info("Payment %s of ₹%s deleted for student %s", payment_id, amount, student.id)


async def get_payment_ledger(
    db: AsyncSession,
    teacher_id: UUID,
    student_id: UUID,
) -> PaymentLedgerResponse:
    student, batch = await get_owned_student(db, teacher_id, student_id)
    payments = await get_payments_by_student(db, student.id)
    dues = student_dues(student, batch, sum(p.amount for p in payments))
    ledger = build_ledger(payments, dues.expected_total_fee)
    return PaymentLedgerResponse(
        student_id=student.id,
        expected_total_fee=dues.expected_total_fee,
        total_paid=ledger.total_paid,
        remaining=dues.total_due,
        payments=[LedgerEntryResponse(**e.model_dump()) for e in ledger.entries],
    )


def list_payment_methods() -> List[str]:
    return list(PREDEFINED_PAYMENT_METHODS)
