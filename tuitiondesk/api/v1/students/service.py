"""Students service: enrolment (manual, bulk, Excel, public link), edits, fee overrides."""

import io
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import UploadFile, status
from openpyxl import Workbook, load_workbook
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.core.enums import FeeAuditAction
from tuitiondesk.core.exceptions import LockConflictError, ServiceError
from tuitiondesk.core.fee_ledger import (
    StudentDues,
    build_ledger,
    student_dues,
    validate_custom_fee,
)
from tuitiondesk.core.models import Batch, Student
from tuitiondesk.core.services import (
    FEE_LOCK_CONFLICT_MESSAGE,
    get_owned_batch,
    get_owned_student,
    get_payments_by_student,
    lock_batch,
    log_fee_audit,
)
from tuitiondesk.core.timeutils import utcnow

from .schemas import (
    LedgerEntryResponse,
    StudentBulkFailureItem,
    StudentBulkItem,
    StudentBulkResponse,
    StudentCreate,
    StudentDetailResponse,
    StudentFeeUpdate,
    StudentFields,
    StudentResponse,
    StudentUpdate,
    StudentWithDues,
)

logger = logging.getLogger(__name__)

DUPLICATE_PHONE_MESSAGE = "A student with this phone number is already registered in this batch"


def student_with_dues(student: Student, dues: StudentDues) -> StudentWithDues:
    return StudentWithDues(
        **StudentResponse.model_validate(student).model_dump(),
        expected_total_fee=dues.expected_total_fee,
        total_paid=dues.total_paid,
        total_due=dues.total_due,
    )


def _require_valid_custom_fee(custom_fee: Optional[int], batch: Batch) -> None:
    check = validate_custom_fee(custom_fee, batch.fee)
    if not check.accepted:
        raise ServiceError(check.message, status.HTTP_400_BAD_REQUEST)


def _student_from_fields(
    batch_id: UUID,
    fields: StudentFields,
    custom_fee: Optional[int] = None,
    join_date: Optional[datetime] = None,
) -> Student:
    return Student(
        batch_id=batch_id,
        full_name=fields.full_name.strip(),
        phone=fields.phone,
        email=fields.email,
        standard=fields.standard.strip(),
        custom_fee=custom_fee,
        join_date=join_date or utcnow(),
        guardian_name=fields.guardian_name,
        guardian_phone=fields.guardian_phone,
        school_name=fields.school_name,
        city=fields.city,
        date_of_birth=fields.date_of_birth,
        notes=fields.notes,
    )


async def _insert_student(db: AsyncSession, student: Student) -> StudentResponse:
    db.add(student)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(DUPLICATE_PHONE_MESSAGE, status.HTTP_409_CONFLICT)
    await db.refresh(student)
    return StudentResponse.model_validate(student)


async def create_student(
    db: AsyncSession,
    teacher_id: UUID,
    payload: StudentCreate,
) -> StudentResponse:
    if payload.custom_fee is None:
        batch = await get_owned_batch(db, teacher_id, payload.batch_id)
    else:
        try:
            batch = await lock_batch(db, teacher_id, payload.batch_id)
        except OperationalError as e:
            await db.rollback()
            raise LockConflictError(FEE_LOCK_CONFLICT_MESSAGE) from e
        _require_valid_custom_fee(payload.custom_fee, batch)
    student = _student_from_fields(batch.id, payload, payload.custom_fee, payload.join_date)
    return await _insert_student(db, student)


async def register_student(db: AsyncSession, batch: Batch, payload: StudentFields) -> StudentResponse:
    """Self-registration through a batch's public link. The caller has already checked the link is open."""
    return await _insert_student(db, _student_from_fields(batch.id, payload))


async def get_student_detail(
    db: AsyncSession,
    teacher_id: UUID,
    student_id: UUID,
) -> StudentDetailResponse:
    student, batch = await get_owned_student(db, teacher_id, student_id)
    payments = await get_payments_by_student(db, student.id)
    ledger_total = sum(p.amount for p in payments)
    dues = student_dues(student, batch, ledger_total)
    ledger = build_ledger(payments, dues.expected_total_fee)
    return StudentDetailResponse(
        student=student_with_dues(student, dues),
        payments=[LedgerEntryResponse(**e.model_dump()) for e in ledger.entries],
    )


async def update_student(
    db: AsyncSession,
    teacher_id: UUID,
    student_id: UUID,
    payload: StudentUpdate,
) -> StudentResponse:
    student, _ = await get_owned_student(db, teacher_id, student_id)
    student.full_name = payload.full_name.strip()
    student.phone = payload.phone
    student.email = payload.email
    student.standard = payload.standard.strip()
    student.join_date = payload.join_date
    student.guardian_name = payload.guardian_name
    student.guardian_phone = payload.guardian_phone
    student.school_name = payload.school_name
    student.city = payload.city
    student.date_of_birth = payload.date_of_birth
    student.notes = payload.notes
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(DUPLICATE_PHONE_MESSAGE, status.HTTP_409_CONFLICT)
    await db.refresh(student)
    return StudentResponse.model_validate(student)


async def update_custom_fee(
    db: AsyncSession,
    teacher_id: UUID,
    student_id: UUID,
    payload: StudentFeeUpdate,
) -> StudentResponse:
    """
    Set or clear a student's fee override. Payments already recorded are not
    re-validated if the new expected fee is lower than what was paid; the due
    simply clamps at zero.
    """
    student, batch = await get_owned_student(db, teacher_id, student_id)
    try:
        # Checked against the fee as read under the batch lock
        batch = await lock_batch(db, teacher_id, batch.id)
        check = validate_custom_fee(payload.custom_fee, batch.fee)
        if not check.accepted:
            await db.rollback()
            raise ServiceError(check.message, status.HTTP_400_BAD_REQUEST)
        old_fee = student.custom_fee
        student.custom_fee = payload.custom_fee
        await log_fee_audit(
            db, teacher_id, "students", student.id,
            FeeAuditAction.UPDATE,
            {"custom_fee": old_fee},
            {"custom_fee": payload.custom_fee, "batch_fee": batch.fee},
            teacher_id,
        )
        await db.commit()
    except OperationalError as e:
        await db.rollback()
        logger.exception("Custom fee change for student %s failed on a database lock", student_id)
        raise LockConflictError(FEE_LOCK_CONFLICT_MESSAGE) from e
    await db.refresh(student)
    logger.info("Custom fee for student %s changed from %s to %s", student.id, old_fee, payload.custom_fee)
    return StudentResponse.model_validate(student)


async def delete_student(db: AsyncSession, teacher_id: UUID, student_id: UUID) -> None:
    student, _ = await get_owned_student(db, teacher_id, student_id)
    await db.execute(delete(Student).where(Student.id == student.id))
    await db.commit()


# --- Bulk import ---
def _validation_reason(e: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())


async def create_students_bulk_with_failures(
    db: AsyncSession,
    batch: Batch,
    indexed_items: List[Tuple[int, StudentBulkItem]],
) -> Tuple[List[StudentResponse], List[StudentBulkFailureItem]]:
    """
    Create every row whose phone is new to the batch (and not repeated earlier
    in the same import). Returns (created, failed); failed rows carry their index.
    """
    existing = await db.execute(select(Student.phone).where(Student.batch_id == batch.id))
    seen_phones = set(existing.scalars().all())
    students: List[Student] = []
    failed: List[StudentBulkFailureItem] = []
    for index, item in indexed_items:
        if item.phone in seen_phones:
            failed.append(
                StudentBulkFailureItem(
                    index=index,
                    full_name=item.full_name,
                    phone=item.phone,
                    reason=DUPLICATE_PHONE_MESSAGE,
                )
            )
            continue
        seen_phones.add(item.phone)
        students.append(_student_from_fields(batch.id, item, join_date=item.join_date))
    db.add_all(students)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent registration took one of the phones between the check and the insert
        await db.rollback()
        raise ServiceError(DUPLICATE_PHONE_MESSAGE, status.HTTP_409_CONFLICT)
    created = []
    for student in students:
        await db.refresh(student)
        created.append(StudentResponse.model_validate(student))
    return created, failed


async def import_students(
    db: AsyncSession,
    teacher_id: UUID,
    batch_id: UUID,
    rows: List[Dict[str, Any]],
) -> StudentBulkResponse:
    batch = await get_owned_batch(db, teacher_id, batch_id)
    parsed: List[Tuple[int, StudentBulkItem]] = []
    failed: List[StudentBulkFailureItem] = []
    for index, row in enumerate(rows):
        try:
            parsed.append((index, StudentBulkItem.model_validate(row)))
        except ValidationError as e:
            failed.append(
                StudentBulkFailureItem(
                    index=index,
                    full_name=str(row.get("full_name") or ""),
                    phone=str(row.get("phone") or ""),
                    reason=_validation_reason(e),
                )
            )
    created, rows_failed = await create_students_bulk_with_failures(db, batch, parsed)
    failed.extend(rows_failed)
    failed.sort(key=lambda f: f.index)
    logger.info("Imported %d student(s) into batch %s (%d failed)", len(created), batch.id, len(failed))
    return StudentBulkResponse(count=len(created), students=created, failed=failed or None)


EXCEL_MAX_ROWS = 500
TEMPLATE_HEADERS = ("Full Name", "Phone", "Email", "Class/Standard", "Join Date")
STUDENTS_SHEET_NAME = "Students"
# Normalised header -> StudentBulkItem field
EXCEL_COLUMNS = {
    "full_name": "full_name",
    "phone": "phone",
    "email": "email",
    "class/standard": "standard",
    "join_date": "join_date",
}
EXCEL_REQUIRED_COLUMNS = ("full_name", "phone", "class/standard")
EXCEL_EPOCH = datetime(1899, 12, 30)


def build_student_upload_template() -> bytes:
    """Excel template with the import columns and two sample rows."""
    wb = Workbook()
    ws = wb.active
    ws.title = STUDENTS_SHEET_NAME
    ws.append(list(TEMPLATE_HEADERS))
    ws.append(["Rahul Sharma", "+91 98765 43210", "rahul@example.com", "Class 10", "2024-01-15"])
    ws.append(["Priya Patel", "+91 98765 43211", "priya@example.com", "Class 10", "2024-01-15"])
    for column, width in zip("ABCDE", (20, 18, 25, 18, 12)):
        ws.column_dimensions[column].width = width
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


def normalize_phone(raw) -> str:
    """Keep digits only and drop a leading 91 country code: '+91 98765 43210' -> '9876543210'."""
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    digits = re.sub(r"\D", "", str(raw or ""))
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    return digits


def parse_join_date(raw) -> Optional[datetime]:
    """Excel date cell, Excel serial number, or YYYY-MM-DD text. Blank -> None."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    if isinstance(raw, (int, float)) and raw > 0:
        return EXCEL_EPOCH + timedelta(days=float(raw))
    text = str(raw).strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError("Invalid date format (use YYYY-MM-DD or Excel date)")


def _cell_str(row: tuple, idx: Optional[int]) -> str:
    if idx is None or idx >= len(row) or row[idx] is None:
        return ""
    return str(row[idx]).strip()


async def parse_students_excel_with_errors(
    file: UploadFile,
) -> Tuple[List[Tuple[int, StudentBulkItem]], List[StudentBulkFailureItem]]:
    """
    Parse Excel row by row. Returns (parsed, failed) where parsed holds
    (row_number, item). Raises ValueError when the file itself is unusable.
    """
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise ValueError("File must be an Excel file (.xlsx)")
    content = await file.read()
    if not content:
        raise ValueError("File is empty")
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError(f"Invalid Excel file: {e}") from e
    try:
        ws = wb.active
        if ws is None:
            raise ValueError("Excel file has no active sheet")
        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if not header_row:
            raise ValueError("Excel file has no header row")

        def _norm(s) -> str:
            return (str(s).strip().lower() if s is not None else "").replace(" ", "_")

        header = [_norm(c) for c in header_row]
        missing = [h for h in EXCEL_REQUIRED_COLUMNS if h not in header]
        if missing:
            raise ValueError(f"Missing required column(s): {', '.join(missing)}. Found: {header}")
        col_idx = {key: header.index(key) for key in EXCEL_COLUMNS if key in header}

        parsed: List[Tuple[int, StudentBulkItem]] = []
        failed: List[StudentBulkFailureItem] = []
        for row_num, row in enumerate(rows_iter, start=2):
            if row_num - 1 > EXCEL_MAX_ROWS:
                raise ValueError(f"Maximum {EXCEL_MAX_ROWS} data rows allowed")
            if not row or all(c is None or (isinstance(c, str) and not c.strip()) for c in row):
                continue
            full_name = _cell_str(row, col_idx.get("full_name"))
            phone_idx = col_idx.get("phone")
            phone = normalize_phone(row[phone_idx] if phone_idx < len(row) else None)
            try:
                join_idx = col_idx.get("join_date")
                join_date = parse_join_date(row[join_idx] if join_idx is not None and join_idx < len(row) else None)
                item = StudentBulkItem(
                    full_name=full_name,
                    phone=phone,
                    email=_cell_str(row, col_idx.get("email")) or None,
                    standard=_cell_str(row, col_idx.get("class/standard")),
                    join_date=join_date,
                )
            except ValidationError as e:
                failed.append(
                    StudentBulkFailureItem(index=row_num, full_name=full_name, phone=phone, reason=_validation_reason(e))
                )
                continue
            except ValueError as e:
                failed.append(StudentBulkFailureItem(index=row_num, full_name=full_name, phone=phone, reason=str(e)))
                continue
            parsed.append((row_num, item))
        return parsed, failed
    finally:
        wb.close()


async def import_students_excel(
    db: AsyncSession,
    teacher_id: UUID,
    batch_id: UUID,
    file: UploadFile,
) -> StudentBulkResponse:
    batch = await get_owned_batch(db, teacher_id, batch_id)
    try:
        parsed, failed = await parse_students_excel_with_errors(file)
    except ValueError as e:
        raise ServiceError(str(e), status.HTTP_400_BAD_REQUEST)
    if not parsed and not failed:
        raise ServiceError("Excel file has no data rows", status.HTTP_400_BAD_REQUEST)
    created, rows_failed = await create_students_bulk_with_failures(db, batch, parsed)
    failed.extend(rows_failed)
    failed.sort(key=lambda f: f.index)
    logger.info("Excel import into batch %s: %d created, %d failed", batch.id, len(created), len(failed))
    return StudentBulkResponse(count=len(created), students=created, failed=failed or None)
