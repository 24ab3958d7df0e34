from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.rbac import require_super_admin
from tuitiondesk.auth.schemas import CurrentUser, SuccessResponse
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.db.session import get_db

from .schemas import (
    TeacherCreate,
    TeacherDetailResponse,
    TeacherListItem,
    TeacherPasswordReset,
    TeacherResponse,
    TeacherStatusUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/teachers", tags=["teachers"])


@router.post(
    "",
    response_model=TeacherResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_teacher(
    payload: TeacherCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> TeacherResponse:
    try:
        return await service.create_teacher(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[TeacherListItem])
async def list_teachers(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> List[TeacherListItem]:
    return await service.list_teachers(db)


@router.get("/{teacher_id}", response_model=TeacherDetailResponse)
async def get_teacher(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> TeacherDetailResponse:
    try:
        return await service.get_teacher_details(db, teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{teacher_id}/status", response_model=TeacherResponse)
async def set_teacher_status(
    teacher_id: UUID,
    payload: TeacherStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> TeacherResponse:
    try:
        return await service.set_teacher_status(db, teacher_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{teacher_id}/reset-password", response_model=TeacherPasswordReset)
async def reset_teacher_password(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> TeacherPasswordReset:
    """Generate a new password. It is shown only in this response."""
    try:
        return await service.reset_teacher_password(db, teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{teacher_id}", response_model=SuccessResponse)
async def delete_teacher(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> SuccessResponse:
    try:
        await service.delete_teacher(db, teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SuccessResponse(message="Teacher deleted")
