from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.rbac import require_teacher
from tuitiondesk.auth.schemas import CurrentUser, SuccessResponse
from tuitiondesk.core.exceptions import ServiceError
from tuitiondesk.db.session import get_db

from .schemas import (
    StudentBulkCreate,
    StudentBulkResponse,
    StudentCreate,
    StudentDetailResponse,
    StudentFeeUpdate,
    StudentResponse,
    StudentUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/students", tags=["students"])

# Bulk enrolment is addressed through the target batch
batch_students_router = APIRouter(prefix="/api/v1/batches", tags=["students"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> StudentResponse:
    try:
        return await service.create_student(db, current_user.id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{student_id}", response_model=StudentDetailResponse)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> StudentDetailResponse:
    """Student with dues and the running payment ledger."""
    try:
        return await service.get_student_detail(db, current_user.id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> StudentResponse:
    try:
        return await service.update_student(db, current_user.id, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{student_id}/fee", response_model=StudentResponse)
async def update_student_fee(
    student_id: UUID,
    payload: StudentFeeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> StudentResponse:
    """Set (or clear with null) the student's custom fee. Must not exceed the batch fee."""
    try:
        return await service.update_custom_fee(db, current_user.id, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{student_id}", response_model=SuccessResponse)
async def delete_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> SuccessResponse:
    try:
        await service.delete_student(db, current_user.id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SuccessResponse(message="Student deleted")


@batch_students_router.post(
    "/{batch_id}/students/bulk",
    response_model=StudentBulkResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_students_bulk_json(
    batch_id: UUID,
    payload: StudentBulkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> StudentBulkResponse:
    """Valid rows are created; invalid rows and rows whose phone is taken come back in `failed`."""
    try:
        return await service.import_students(db, current_user.id, batch_id, payload.students)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@batch_students_router.get("/{batch_id}/students/bulk-excel/template")
async def download_student_upload_template(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> Response:
    try:
        await service.get_owned_batch(db, current_user.id, batch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(
        content=service.build_student_upload_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=student_upload_template.xlsx"},
    )


@batch_students_router.post(
    "/{batch_id}/students/bulk-excel",
    response_model=StudentBulkResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_students_bulk_excel(
    batch_id: UUID,
    file: UploadFile = File(
        ...,
        description="Excel from the template, columns: Full Name, Phone, Email, Class/Standard, Join Date",
    ),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> StudentBulkResponse:
    """
    Bulk enrol students from Excel. Valid rows are created; rows that fail
    validation or duplicate an existing phone are listed in `failed` with
    their spreadsheet row number.
    """
    try:
        return await service.import_students_excel(db, current_user.id, batch_id, file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
