"""Student schemas."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

PHONE_PATTERN = r"^\d{10}$"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class StudentFields(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., pattern=PHONE_PATTERN, description="Exactly 10 digits")
    email: Optional[EmailStr] = None
    standard: str = Field(..., min_length=1, max_length=100)
    guardian_name: Optional[str] = Field(None, max_length=100)
    guardian_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    school_name: Optional[str] = Field(None, max_length=150)
    city: Optional[str] = Field(None, max_length=100)
    date_of_birth: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("email", "guardian_name", "guardian_phone", "school_name", "city", "notes", mode="before")
    @classmethod
    def empty_string_is_none(cls, v):
        return _blank_to_none(v)


class StudentCreate(StudentFields):
    batch_id: UUID
    # Range is checked against the batch fee by the fee ledger engine
    custom_fee: Optional[int] = None
    join_date: Optional[datetime] = None


class StudentRegister(StudentFields):
    """Public self-registration: no fee override, join date is now."""


class StudentUpdate(StudentFields):
    join_date: datetime


class StudentFeeUpdate(BaseModel):
    custom_fee: Optional[int] = None


class StudentResponse(BaseModel):
    id: UUID
    batch_id: UUID
    full_name: str
    phone: str
    email: Optional[str] = None
    standard: str
    custom_fee: Optional[int] = None
    join_date: datetime
    last_activity_date: datetime
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    school_name: Optional[str] = None
    city: Optional[str] = None
    date_of_birth: Optional[date] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class StudentWithDues(StudentResponse):
    expected_total_fee: int
    total_paid: int
    total_due: int


class LedgerEntryResponse(BaseModel):
    payment_id: UUID
    amount: int
    paid_at: datetime
    payment_method: Optional[str] = None
    paid_so_far: int
    remaining: int


class StudentDetailResponse(BaseModel):
    student: StudentWithDues
    payments: List[LedgerEntryResponse]


# --- Bulk import ---
class StudentBulkItem(StudentFields):
    join_date: Optional[datetime] = None


class StudentBulkCreate(BaseModel):
    # Rows are validated one by one in the service so a bad row fails alone
    students: List[Dict[str, Any]] = Field(..., min_length=1, max_length=500)


class StudentBulkFailureItem(BaseModel):
    index: int = Field(..., description="0-based position in the request (or data row offset for Excel)")
    full_name: str = ""
    phone: str = ""
    reason: str


class StudentBulkResponse(BaseModel):
    count: int
    students: List[StudentResponse]
    failed: Optional[List[StudentBulkFailureItem]] = None
