"""Teacher account schemas (super-admin)."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from tuitiondesk.api.v1.batches.schemas import BatchListItem
from tuitiondesk.api.v1.students.schemas import PHONE_PATTERN
from tuitiondesk.core.fee_ledger import DuesSummary


class TeacherCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=4, max_length=72)
    institute_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("institute_name", "email", "phone", mode="before")
    @classmethod
    def empty_string_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class TeacherResponse(BaseModel):
    id: UUID
    username: str
    full_name: str
    institute_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TeacherListItem(TeacherResponse):
    batch_count: int = 0
    student_count: int = 0
    total_collected: int = 0
    total_pending: int = 0


class TeacherDetailResponse(BaseModel):
    teacher: TeacherResponse
    batches: List[BatchListItem]
    stats: DuesSummary


class TeacherStatusUpdate(BaseModel):
    is_active: bool


class TeacherPasswordReset(BaseModel):
    """Returned once; the plain password is not stored."""

    username: str
    password: str
