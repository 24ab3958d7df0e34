from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.api.v1.students.schemas import StudentRegister
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.db.session import get_db

from .schemas import RegistrationBatchInfo, RegistrationResponse
from . import service

# No authentication: the unguessable token is the credential
router = APIRouter(prefix="/api/v1/register", tags=["registration"])


@router.get("/{token}", response_model=RegistrationBatchInfo)
async def get_registration_info(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> RegistrationBatchInfo:
    try:
        return await service.get_registration_info(db, token)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{token}",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_student(
    token: str,
    payload: StudentRegister,
    db: AsyncSession = Depends(get_db),
) -> RegistrationResponse:
    try:
        return await service.register(db, token, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
