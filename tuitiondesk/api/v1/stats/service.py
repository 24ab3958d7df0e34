"""Teacher dashboard and system-wide rollups. Dues come from the fee ledger engine."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.models import User
from tuitiondesk.core.enums import UserRole
from tuitiondesk.core.fee_ledger import aggregate_dues
from tuitiondesk.core.models import Batch
from tuitiondesk.core.services import fetch_dues_rows

from .schemas import SystemStats, TeacherStats


async def get_teacher_stats(db: AsyncSession, teacher_id: UUID) -> TeacherStats:
    batch_count = (
        await db.execute(select(func.count(Batch.id)).where(Batch.teacher_id == teacher_id))
    ).scalar() or 0
    _, summary = aggregate_dues(await fetch_dues_rows(db, teacher_id=teacher_id))
    return TeacherStats(
        batch_count=batch_count,
        student_count=summary.student_count,
        fees_collected=summary.total_collected,
        pending_payments=summary.total_pending,
        paid_count=summary.paid_count,
        pending_count=summary.pending_count,
    )


async def get_system_stats(db: AsyncSession) -> SystemStats:
    teachers = select(User).where(User.role == UserRole.TEACHER.value).subquery()
    teacher_count = (await db.execute(select(func.count()).select_from(teachers))).scalar() or 0
    active_teacher_count = (
        await db.execute(select(func.count()).select_from(teachers).where(teachers.c.is_active.is_(True)))
    ).scalar() or 0
    batch_count = (await db.execute(select(func.count(Batch.id)))).scalar() or 0
    _, summary = aggregate_dues(await fetch_dues_rows(db))
    return SystemStats(
        teacher_count=teacher_count,
        active_teacher_count=active_teacher_count,
        batch_count=batch_count,
        student_count=summary.student_count,
        total_collected=summary.total_collected,
        total_pending=summary.total_pending,
    )
