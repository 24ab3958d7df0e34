"""Batches service: teacher-owned batches, registration links and batch-level dues."""

import io
import logging
import secrets
from typing import List, Optional
from uuid import UUID

import qrcode
from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.api.v1.students.service import student_with_dues
from tuitiondesk.core.config import settings
from tuitiondesk.core.exceptions import LockConflictError, ServiceError
from tuitiondesk.core.fee_ledger import aggregate_dues
from tuitiondesk.core.models import Batch, Student
from tuitiondesk.core.services import (
    FEE_LOCK_CONFLICT_MESSAGE,
    fetch_dues_rows,
    get_owned_batch,
    lock_batch,
)

from .schemas import (
    BatchCreate,
    BatchDetailResponse,
    BatchListItem,
    BatchRegistrationUpdate,
    BatchResponse,
    BatchUpdate,
)

logger = logging.getLogger(__name__)


async def generate_registration_token(db: AsyncSession, max_attempts: int = 20) -> str:
    """Unguessable URL-safe token, checked for uniqueness before returning."""
    for _ in range(max_attempts):
        candidate = secrets.token_urlsafe(16)
        existing = await db.execute(select(Batch.id).where(Batch.registration_token == candidate))
        if existing.scalar_one_or_none() is None:
            return candidate
    raise ServiceError("Could not generate a unique registration token", status.HTTP_500_INTERNAL_SERVER_ERROR)


def registration_link(batch: Batch) -> str:
    return f"{settings.public_base_url.rstrip('/')}/register/{batch.registration_token}"


async def create_batch(
    db: AsyncSession,
    teacher_id: UUID,
    payload: BatchCreate,
) -> BatchResponse:
    batch = Batch(
        teacher_id=teacher_id,
        name=payload.name.strip(),
        subject=(payload.subject or "").strip() or None,
        standard=payload.standard.strip(),
        fee=payload.fee,
        fee_period=payload.fee_period.value,
        registration_token=await generate_registration_token(db),
        registration_enabled=payload.registration_enabled,
    )
    db.add(batch)
    await db.commit()
    await db.refresh(batch)
    logger.info("Teacher %s created batch %s", teacher_id, batch.id)
    return BatchResponse.model_validate(batch)


async def list_batches(db: AsyncSession, teacher_id: UUID) -> List[BatchListItem]:
    counts = (
        select(Student.batch_id, func.count(Student.id).label("student_count"))
        .group_by(Student.batch_id)
        .subquery()
    )
    stmt = (
        select(Batch, func.coalesce(counts.c.student_count, 0))
        .outerjoin(counts, counts.c.batch_id == Batch.id)
        .where(Batch.teacher_id == teacher_id)
        .order_by(Batch.created_at.desc())
    )
    result = await db.execute(stmt)
    return [
        BatchListItem(
            **BatchResponse.model_validate(batch).model_dump(),
            student_count=int(student_count),
        )
        for batch, student_count in result.all()
    ]


async def get_batch_details(
    db: AsyncSession,
    teacher_id: Optional[UUID],
    batch_id: UUID,
) -> BatchDetailResponse:
    """Batch with every student's dues and the batch rollup. teacher_id=None for super-admin."""
    batch = await get_owned_batch(db, teacher_id, batch_id)
    rows = await fetch_dues_rows(db, batch_id=batch.id)
    dues, summary = aggregate_dues(rows)
    return BatchDetailResponse(
        batch=BatchResponse.model_validate(batch),
        students=[student_with_dues(student, d) for (student, _, _), d in zip(rows, dues)],
        summary=summary,
    )


async def update_batch(
    db: AsyncSession,
    teacher_id: UUID,
    batch_id: UUID,
    payload: BatchUpdate,
) -> BatchResponse:
    data = payload.model_dump(exclude_unset=True)
    if data.get("fee") is None:
        batch = await get_owned_batch(db, teacher_id, batch_id)
    else:
        try:
            batch = await lock_batch(db, teacher_id, batch_id)
            # Lowering the fee must not leave overrides above the new ceiling
            over = await db.execute(
                select(func.count(Student.id)).where(
                    Student.batch_id == batch.id,
                    Student.custom_fee > data["fee"],
                )
            )
            over_count = over.scalar() or 0
        except OperationalError as e:
            await db.rollback()
            logger.exception("Fee change for batch %s failed on a database lock", batch_id)
            raise LockConflictError(FEE_LOCK_CONFLICT_MESSAGE) from e
        if over_count:
            await db.rollback()
            raise ServiceError(
                f"{over_count} student(s) have a custom fee above ₹{data['fee']}; lower their custom fee first",
                status.HTTP_400_BAD_REQUEST,
            )
    if data.get("name"):
        batch.name = data["name"].strip()
    if "subject" in data:
        batch.subject = (data["subject"] or "").strip() or None
    if data.get("standard"):
        batch.standard = data["standard"].strip()
    if data.get("fee") is not None:
        batch.fee = data["fee"]
    if data.get("fee_period") is not None:
        batch.fee_period = payload.fee_period.value
    await db.commit()
    await db.refresh(batch)
    return BatchResponse.model_validate(batch)


async def set_registration_enabled(
    db: AsyncSession,
    teacher_id: UUID,
    batch_id: UUID,
    payload: BatchRegistrationUpdate,
) -> BatchResponse:
    batch = await get_owned_batch(db, teacher_id, batch_id)
    batch.registration_enabled = payload.registration_enabled
    await db.commit()
    await db.refresh(batch)
    return BatchResponse.model_validate(batch)


async def rotate_registration_token(
    db: AsyncSession,
    teacher_id: UUID,
    batch_id: UUID,
) -> BatchResponse:
    """Invalidate the old public link (e.g. after it leaked) by issuing a new token."""
    batch = await get_owned_batch(db, teacher_id, batch_id)
    batch.registration_token = await generate_registration_token(db)
    await db.commit()
    await db.refresh(batch)
    logger.info("Registration token rotated for batch %s", batch.id)
    return BatchResponse.model_validate(batch)


async def build_registration_qr(
    db: AsyncSession,
    teacher_id: UUID,
    batch_id: UUID,
) -> bytes:
    """PNG QR code encoding the batch's public registration link."""
    batch = await get_owned_batch(db, teacher_id, batch_id)
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_Q,
        box_size=8,
        border=2,
    )
    qr.add_data(registration_link(batch))
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


async def delete_batch(db: AsyncSession, teacher_id: UUID, batch_id: UUID) -> None:
    """Delete a batch; students and their payments go with it (ON DELETE CASCADE)."""
    batch = await get_owned_batch(db, teacher_id, batch_id)
    await db.execute(delete(Batch).where(Batch.id == batch.id))
    await db.commit()
    logger.info("Teacher %s deleted batch %s", teacher_id, batch_id)
