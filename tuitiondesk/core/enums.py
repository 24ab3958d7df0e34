from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    TEACHER = "TEACHER"


class FeePeriod(str, Enum):
    MONTH = "month"
    YEAR = "year"


class FeeRejection(str, Enum):
    """Reasons the fee ledger engine refuses a payment or a fee override."""

    INVALID_AMOUNT = "invalid_amount"
    AMOUNT_MUST_BE_POSITIVE = "amount_must_be_positive"
    EXCEEDS_REMAINING_BALANCE = "exceeds_remaining_balance"
    CUSTOM_FEE_EXCEEDS_BATCH_FEE = "custom_fee_exceeds_batch_fee"
    CUSTOM_FEE_NOT_POSITIVE = "custom_fee_not_positive"


class FeeAuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
