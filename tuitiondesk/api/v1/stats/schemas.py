"""Dashboard statistics schemas."""

from pydantic import BaseModel


class TeacherStats(BaseModel):
    batch_count: int
    student_count: int
    fees_collected: int
    pending_payments: int
    paid_count: int
    pending_count: int


class SystemStats(BaseModel):
    teacher_count: int
    active_teacher_count: int
    batch_count: int
    student_count: int
    total_collected: int
    total_pending: int
