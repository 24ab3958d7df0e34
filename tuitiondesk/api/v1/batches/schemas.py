"""Batch schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from tuitiondesk.api.v1.students.schemas import StudentWithDues
from tuitiondesk.core.enums import FeePeriod
from tuitiondesk.core.fee_ledger import DuesSummary


class BatchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subject: Optional[str] = Field(None, max_length=255)
    standard: str = Field(..., min_length=1, max_length=100)
    fee: int = Field(..., gt=0)
    fee_period: FeePeriod
    registration_enabled: bool = True


class BatchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    subject: Optional[str] = Field(None, max_length=255)
    standard: Optional[str] = Field(None, min_length=1, max_length=100)
    fee: Optional[int] = Field(None, gt=0)
    fee_period: Optional[FeePeriod] = None


class BatchRegistrationUpdate(BaseModel):
    registration_enabled: bool


class BatchResponse(BaseModel):
    id: UUID
    teacher_id: UUID
    name: str
    subject: Optional[str] = None
    standard: str
    fee: int
    fee_period: FeePeriod
    registration_token: str
    registration_enabled: bool
    created_at: datetime

    class Config:
        from_attributes = True


class BatchListItem(BatchResponse):
    student_count: int = 0


class BatchDetailResponse(BaseModel):
    batch: BatchResponse
    students: List[StudentWithDues]
    summary: DuesSummary
