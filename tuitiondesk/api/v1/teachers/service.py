"""Super-admin management of teacher accounts."""

import logging
from collections import defaultdict
from typing import List
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.api.v1.batches.service import list_batches
from tuitiondesk.auth.models import User
from tuitiondesk.auth.security import generate_password, hash_password
from tuitiondesk.core.enums import UserRole
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.core.fee_ledger import aggregate_dues
from tuitiondesk.core.models import Batch
from tuitiondesk.core.services import fetch_dues_rows
from tuitiondesk.core.timeutils import utcnow

from .schemas import (
    TeacherCreate,
    TeacherDetailResponse,
    TeacherListItem,
    TeacherPasswordReset,
    TeacherResponse,
    TeacherStatusUpdate,
)

logger = logging.getLogger(__name__)


async def _get_teacher(db: AsyncSession, teacher_id: UUID) -> User:
    user = await db.get(User, teacher_id)
    if not user or user.role != UserRole.TEACHER.value:
        raise ServiceError("Teacher not found", status.HTTP_404_NOT_FOUND)
    return user


async def create_teacher(db: AsyncSession, payload: TeacherCreate) -> TeacherResponse:
    username = payload.username.strip()
    conditions = [func.lower(User.username) == username.lower()]
    if payload.email:
        conditions.append(User.email == payload.email)
    if payload.phone:
        conditions.append(User.phone == payload.phone)
    existing = await db.execute(select(User.id).where(or_(*conditions)))
    if existing.first() is not None:
        raise ServiceError("Username, email or phone already exists", status.HTTP_409_CONFLICT)

    teacher = User(
        username=username,
        password_hash=hash_password(payload.password),
        role=UserRole.TEACHER.value,
        full_name=payload.full_name.strip(),
        institute_name=(payload.institute_name or "").strip() or None,
        email=payload.email,
        phone=payload.phone,
        is_active=True,
    )
    db.add(teacher)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Username, email or phone already exists", status.HTTP_409_CONFLICT)
    await db.refresh(teacher)
    logger.info("Teacher account %s created", teacher.username)
    return TeacherResponse.model_validate(teacher)


async def list_teachers(db: AsyncSession) -> List[TeacherListItem]:
    """All teachers with batch/student counts and their collected/pending fee totals."""
    teachers = (
        await db.execute(
            select(User)
            .where(User.role == UserRole.TEACHER.value)
            .order_by(User.created_at.desc())
        )
    ).scalars().all()

    batch_counts = dict(
        (await db.execute(select(Batch.teacher_id, func.count(Batch.id)).group_by(Batch.teacher_id))).all()
    )
    rows_by_teacher = defaultdict(list)
    for row in await fetch_dues_rows(db):
        rows_by_teacher[row[1].teacher_id].append(row)

    as_of = utcnow()
    items = []
    for teacher in teachers:
        _, summary = aggregate_dues(rows_by_teacher.get(teacher.id, []), as_of)
        items.append(
            TeacherListItem(
                **TeacherResponse.model_validate(teacher).model_dump(),
                batch_count=int(batch_counts.get(teacher.id, 0)),
                student_count=summary.student_count,
                total_collected=summary.total_collected,
                total_pending=summary.total_pending,
            )
        )
    return items


async def get_teacher_details(db: AsyncSession, teacher_id: UUID) -> TeacherDetailResponse:
    teacher = await _get_teacher(db, teacher_id)
    batches = await list_batches(db, teacher.id)
    _, summary = aggregate_dues(await fetch_dues_rows(db, teacher_id=teacher.id))
    return TeacherDetailResponse(
        teacher=TeacherResponse.model_validate(teacher),
        batches=batches,
        stats=summary,
    )


async def set_teacher_status(
    db: AsyncSession,
    teacher_id: UUID,
    payload: TeacherStatusUpdate,
) -> TeacherResponse:
    """Soft (de)activation. A deactivated teacher's tokens stop working on the next request."""
    teacher = await _get_teacher(db, teacher_id)
    teacher.is_active = payload.is_active
    await db.commit()
    await db.refresh(teacher)
    logger.info("Teacher %s %s", teacher.username, "activated" if teacher.is_active else "deactivated")
    return TeacherResponse.model_validate(teacher)


async def reset_teacher_password(db: AsyncSession, teacher_id: UUID) -> TeacherPasswordReset:
    teacher = await _get_teacher(db, teacher_id)
    password = generate_password()
    teacher.password_hash = hash_password(password)
    await db.commit()
    logger.info("Password reset for teacher %s", teacher.username)
    return TeacherPasswordReset(username=teacher.username, password=password)


async def delete_teacher(db: AsyncSession, teacher_id: UUID) -> None:
    """Hard delete. Batches, students and payments go with the account (ON DELETE CASCADE)."""
    teacher = await _get_teacher(db, teacher_id)
    username = teacher.username
    await db.execute(delete(User).where(User.id == teacher.id))
    await db.commit()
    logger.info("Teacher %s deleted", username)
