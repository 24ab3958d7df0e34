"""Public self-registration schemas."""

from typing import Optional

from pydantic import BaseModel

from tuitiondesk.api.v1.students.schemas import StudentResponse
from tuitiondesk.core.enums import FeePeriod


class RegistrationBatchInfo(BaseModel):
    """What an unauthenticated visitor of the link may see."""

    batch_name: str
    subject: Optional[str] = None
    standard: str
    fee: int
    fee_period: FeePeriod
    institute_name: str


class RegistrationResponse(BaseModel):
    student: StudentResponse
    batch_name: str
