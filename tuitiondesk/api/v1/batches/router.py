from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.rbac import require_roles, require_teacher
from tuitiondesk.auth.schemas import CurrentUser, SuccessResponse
from tuitiondesk.core.enums import UserRole
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.db.session import get_db

from .schemas import (
    BatchCreate,
    BatchDetailResponse,
    BatchListItem,
    BatchRegistrationUpdate,
    BatchResponse,
    BatchUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/batches", tags=["batches"])


@router.post(
    "",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_batch(
    payload: BatchCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> BatchResponse:
    try:
        return await service.create_batch(db, current_user.id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[BatchListItem])
async def list_batches(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> List[BatchListItem]:
    return await service.list_batches(db, current_user.id)


@router.get("/{batch_id}", response_model=BatchDetailResponse)
async def get_batch(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(UserRole.TEACHER, UserRole.SUPER_ADMIN)),
) -> BatchDetailResponse:
    """Batch with per-student dues and the batch summary. Super-admins may view any batch."""
    teacher_id = None if current_user.role == UserRole.SUPER_ADMIN else current_user.id
    try:
        return await service.get_batch_details(db, teacher_id, batch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    batch_id: UUID,
    payload: BatchUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> BatchResponse:
    try:
        return await service.update_batch(db, current_user.id, batch_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{batch_id}/registration", response_model=BatchResponse)
async def set_registration(
    batch_id: UUID,
    payload: BatchRegistrationUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> BatchResponse:
    """Open or close the batch's public registration link."""
    try:
        return await service.set_registration_enabled(db, current_user.id, batch_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{batch_id}/registration-token", response_model=BatchResponse)
async def rotate_registration_token(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> BatchResponse:
    try:
        return await service.rotate_registration_token(db, current_user.id, batch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{batch_id}/qr")
async def get_registration_qr(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> Response:
    """PNG QR code of the public registration link, for printing or sharing."""
    try:
        content = await service.build_registration_qr(db, current_user.id, batch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(content=content, media_type="image/png")


@router.delete("/{batch_id}", response_model=SuccessResponse)
async def delete_batch(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> SuccessResponse:
    try:
        await service.delete_batch(db, current_user.id, batch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SuccessResponse(message="Batch deleted")
