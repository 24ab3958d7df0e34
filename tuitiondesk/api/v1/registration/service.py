"""Public self-registration through a batch's link or QR code."""

import logging
from typing import Tuple

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.api.v1.students.schemas import StudentRegister
from tuitiondesk.api.v1.students.service import register_student
from tuitiondesk.auth.models import User
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.core.models import Batch

from .schemas import RegistrationBatchInfo, RegistrationResponse

logger = logging.getLogger(__name__)

DEFAULT_INSTITUTE_NAME = "Tuition Center"


async def _get_open_batch(db: AsyncSession, token: str) -> Tuple[Batch, User]:
    """Resolve a token to its batch. 404 for unknown tokens, 403 when signups are closed."""
    result = await db.execute(
        select(Batch, User)
        .join(User, Batch.teacher_id == User.id)
        .where(Batch.registration_token == token)
    )
    row = result.one_or_none()
    if not row:
        raise ServiceError("Invalid registration link", status.HTTP_404_NOT_FOUND)
    batch, teacher = row
    if not batch.registration_enabled:
        raise ServiceError("Registration is closed for this batch", status.HTTP_403_FORBIDDEN)
    if not teacher.is_active:
        raise ServiceError("This tuition center is not accepting registrations", status.HTTP_403_FORBIDDEN)
    return batch, teacher


async def get_registration_info(db: AsyncSession, token: str) -> RegistrationBatchInfo:
    batch, teacher = await _get_open_batch(db, token)
    return RegistrationBatchInfo(
        batch_name=batch.name,
        subject=batch.subject,
        standard=batch.standard,
        fee=batch.fee,
        fee_period=batch.fee_period,
        institute_name=teacher.institute_name or DEFAULT_INSTITUTE_NAME,
    )


async def register(db: AsyncSession, token: str, payload: StudentRegister) -> RegistrationResponse:
    batch, _ = await _get_open_batch(db, token)
    batch_name = batch.name
    student = await register_student(db, batch, payload)
    logger.info("Student %s self-registered into batch %s", student.id, batch.id)
    return RegistrationResponse(student=student, batch_name=batch_name)
