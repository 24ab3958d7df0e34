from tuitiondesk.core.models.batch import Batch
from tuitiondesk.core.models.student import Student
from tuitiondesk.core.models.payment import Payment
from tuitiondesk.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Batch",
    "Student",
    "Payment",
    "FeeAuditLog",
]
