"""Database helpers shared by the batch, student, payment and stats services."""

from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.core.enums import FeeAuditAction
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.core.models import Batch, FeeAuditLog, Payment, Student
from tuitiondesk.core.timeutils import utcnow


def _to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


# --- Audit helper ---
async def log_fee_audit(
    db: AsyncSession,
    teacher_id: UUID,
    reference_table: str,
    reference_id: UUID,
    action_type: FeeAuditAction,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    log = FeeAuditLog(
        teacher_id=teacher_id,
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type.value,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)


# --- Ownership lookups ---
async def get_owned_batch(
    db: AsyncSession,
    teacher_id: Optional[UUID],
    batch_id: UUID,
) -> Batch:
    """Load a batch; teacher_id=None skips the ownership check (super-admin reads)."""
    batch = await db.get(Batch, batch_id)
    if not batch:
        raise ServiceError("Batch not found", status.HTTP_404_NOT_FOUND)
    if teacher_id is not None and _to_uuid(batch.teacher_id) != teacher_id:
        raise ServiceError("Forbidden", status.HTTP_403_FORBIDDEN)
    return batch


FEE_LOCK_CONFLICT_MESSAGE = "The batch fee is being changed by another request. Please retry."


async def lock_batch(db: AsyncSession, teacher_id: UUID, batch_id: UUID) -> Batch:
    """
    Hold the batch row for the rest of the transaction and return it as read
    under the lock. Fee edits (batch fee, custom fees) serialise on this row.
    updated_at is written first so SQLite, which has no FOR UPDATE, takes its
    write lock before the read.
    """
    await get_owned_batch(db, teacher_id, batch_id)
    await db.execute(update(Batch).where(Batch.id == batch_id).values(updated_at=utcnow()))
    result = await db.execute(
        select(Batch)
        .where(Batch.id == batch_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_owned_student(
    db: AsyncSession,
    teacher_id: UUID,
    student_id: UUID,
    for_update: bool = False,
) -> Tuple[Student, Batch]:
    """Load a student and its batch, checking the batch belongs to the teacher."""
    stmt = (
        select(Student, Batch)
        .join(Batch, Student.batch_id == Batch.id)
        .where(Student.id == student_id)
    )
    if for_update:
        stmt = stmt.with_for_update(of=Student)
    row = (await db.execute(stmt)).one_or_none()
    if not row:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    student, batch = row
    if _to_uuid(batch.teacher_id) != teacher_id:
        raise ServiceError("Forbidden", status.HTTP_403_FORBIDDEN)
    return student, batch


# --- Ledger reads ---
async def get_payments_by_student(db: AsyncSession, student_id: UUID) -> List[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.student_id == student_id)
        .order_by(Payment.paid_at, Payment.entry_no)
    )
    return list(result.scalars().all())


async def next_entry_no(db: AsyncSession, student_id: UUID) -> int:
    """Next per-student posting number. Call with the student row locked."""
    stmt = select(func.coalesce(func.max(Payment.entry_no), 0)).where(Payment.student_id == student_id)
    return int((await db.execute(stmt)).scalar() or 0) + 1


async def get_total_paid(db: AsyncSession, student_id: UUID, exclude_payment_id: Optional[UUID] = None) -> int:
    stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.student_id == student_id)
    if exclude_payment_id is not None:
        stmt = stmt.where(Payment.id != exclude_payment_id)
    return int((await db.execute(stmt)).scalar() or 0)


async def fetch_dues_rows(
    db: AsyncSession,
    batch_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
) -> List[Tuple[Student, Batch, int]]:
    """
    (student, batch, total_paid) for every student in scope: one batch, one
    teacher's batches, or everything when neither filter is given. One query;
    students with no payments get 0.
    """
    paid = (
        select(Payment.student_id, func.sum(Payment.amount).label("total_paid"))
        .group_by(Payment.student_id)
        .subquery()
    )
    stmt = (
        select(Student, Batch, func.coalesce(paid.c.total_paid, 0))
        .join(Batch, Student.batch_id == Batch.id)
        .outerjoin(paid, paid.c.student_id == Student.id)
    )
    if batch_id is not None:
        stmt = stmt.where(Student.batch_id == batch_id)
    if teacher_id is not None:
        stmt = stmt.where(Batch.teacher_id == teacher_id)
    stmt = stmt.order_by(Student.full_name, Student.id)
    result = await db.execute(stmt)
    return [(student, batch, int(total or 0)) for student, batch, total in result.all()]
