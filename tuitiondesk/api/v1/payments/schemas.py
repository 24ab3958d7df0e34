"""Payment schemas."""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from tuitiondesk.api.v1.students.schemas import LedgerEntryResponse


class PaymentFields(BaseModel):
    # Raw JSON value, unconverted; validate_payment decides what is a valid amount
    amount: Any
    payment_method: Optional[str] = Field(None, max_length=40)

    @field_validator("payment_method", mode="before")
    @classmethod
    def strip_method(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class PaymentCreate(PaymentFields):
    student_id: UUID


class PaymentUpdate(PaymentFields):
    pass


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    amount: int
    paid_at: datetime
    payment_method: Optional[str] = None
    modified_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentCreateResponse(BaseModel):
    payment: PaymentResponse


class PaymentLedgerResponse(BaseModel):
    student_id: UUID
    expected_total_fee: int
    total_paid: int
    remaining: int
    payments: List[LedgerEntryResponse]
