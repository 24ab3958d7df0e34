from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.rbac import require_teacher
from tuitiondesk.auth.schemas import CurrentUser, SuccessResponse
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.db.session import get_db

from .schemas import (
    PaymentCreate,
    PaymentCreateResponse,
    PaymentLedgerResponse,
    PaymentResponse,
    PaymentUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> PaymentCreateResponse:
    """Record a payment. Rejected with 400 if it is not a positive whole amount or exceeds the remaining balance."""
    try:
        return await service.record_payment(db, current_user.id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/methods", response_model=List[str])
async def list_payment_methods(
    current_user: CurrentUser = Depends(require_teacher),
) -> List[str]:
    return service.list_payment_methods()


@router.get("/student/{student_id}", response_model=PaymentLedgerResponse)
async def get_student_payments(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> PaymentLedgerResponse:
    try:
        return await service.get_payment_ledger(db, current_user.id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: UUID,
    payload: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> PaymentResponse:
    try:
        return await service.update_payment(db, current_user.id, payment_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{payment_id}", response_model=SuccessResponse)
async def delete_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> SuccessResponse:
    try:
        await service.delete_payment(db, current_user.id, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SuccessResponse(message="Payment deleted")
