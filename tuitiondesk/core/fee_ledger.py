"""
Fee ledger engine: the single place where dues are computed and payments are judged.

Pure, synchronous functions over already-fetched rows. Callers (batch details,
payment posting, teacher/system stats, fee override edits) do all database work
and import from here instead of re-deriving the formulas.

- Elapsed periods: ceil((as_of - join_date) / 30 days), at least 1.
- Expected fee: (custom_fee or batch fee) * elapsed periods for monthly batches,
  flat (custom_fee or batch fee) for yearly batches.
- Due: max(0, expected - paid).
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from tuitiondesk.core.enums import FeePeriod, FeeRejection
from tuitiondesk.core.timeutils import as_utc, utcnow

# Billing periods are 30-day blocks, not calendar months.
BILLING_PERIOD = timedelta(days=30)


class FeeValidation(BaseModel):
    """Outcome of a payment or fee-override check. Rejection is a routine result, not an error."""

    accepted: bool
    reason: Optional[FeeRejection] = None
    message: Optional[str] = None
    remaining: Optional[int] = None

    @classmethod
    def ok(cls, remaining: Optional[int] = None) -> "FeeValidation":
        return cls(accepted=True, remaining=remaining)

    @classmethod
    def rejected(cls, reason: FeeRejection, message: str, remaining: Optional[int] = None) -> "FeeValidation":
        return cls(accepted=False, reason=reason, message=message, remaining=remaining)


class LedgerEntry(BaseModel):
    payment_id: Any
    amount: int
    paid_at: datetime
    payment_method: Optional[str] = None
    paid_so_far: int
    # Today's expected fee minus paid_so_far; not a historical snapshot
    remaining: Optional[int] = None


class Ledger(BaseModel):
    total_paid: int
    entries: List[LedgerEntry]


class StudentDues(BaseModel):
    expected_total_fee: int
    total_paid: int
    total_due: int


class DuesSummary(BaseModel):
    student_count: int = 0
    total_collected: int = 0
    total_pending: int = 0
    paid_count: int = 0
    pending_count: int = 0


# --- Elapsed-period calculator ---
def elapsed_months(join_date: datetime, as_of: Optional[datetime] = None) -> int:
    """Number of 30-day billing periods started since join_date; a student who joined today owes one."""
    as_of = as_utc(as_of) if as_of is not None else utcnow()
    elapsed = as_of - as_utc(join_date)
    return max(1, math.ceil(elapsed / BILLING_PERIOD))


# --- Fee resolver ---
def resolve_expected_fee(
    batch_fee: int,
    custom_fee: Optional[int],
    fee_period: Union[FeePeriod, str],
    elapsed_periods: int,
) -> int:
    base = custom_fee if custom_fee is not None else batch_fee
    if FeePeriod(fee_period) == FeePeriod.MONTH:
        return base * elapsed_periods
    return base


def expected_total_fee(
    batch_fee: int,
    custom_fee: Optional[int],
    fee_period: Union[FeePeriod, str],
    join_date: datetime,
    as_of: Optional[datetime] = None,
) -> int:
    """Expected fee for a student as of a moment. Yearly plans never consult the join date."""
    if FeePeriod(fee_period) == FeePeriod.YEAR:
        return resolve_expected_fee(batch_fee, custom_fee, FeePeriod.YEAR, 1)
    periods = elapsed_months(join_date, as_of)
    return resolve_expected_fee(batch_fee, custom_fee, FeePeriod.MONTH, periods)


def validate_custom_fee(custom_fee: Optional[int], batch_fee: int) -> FeeValidation:
    """Edit-boundary rule for fee overrides: None clears it, otherwise 0 < custom_fee <= batch_fee."""
    if custom_fee is None:
        return FeeValidation.ok()
    if custom_fee <= 0:
        return FeeValidation.rejected(
            FeeRejection.CUSTOM_FEE_NOT_POSITIVE,
            "Custom fee must be greater than 0",
        )
    if custom_fee > batch_fee:
        return FeeValidation.rejected(
            FeeRejection.CUSTOM_FEE_EXCEEDS_BATCH_FEE,
            f"Custom fee (₹{custom_fee}) cannot exceed the batch fee (₹{batch_fee})",
        )
    return FeeValidation.ok()


# --- Payment ledger ---
def build_ledger(payments: Iterable[Any], expected_fee: Optional[int] = None) -> Ledger:
    """
    Order payments by paid_at (stable, so equal timestamps keep input order) and
    attach running totals. Payments are any objects with id, amount, paid_at and
    payment_method attributes (ORM rows in practice).
    """
    ordered = sorted(payments, key=lambda p: as_utc(p.paid_at))
    entries: List[LedgerEntry] = []
    paid_so_far = 0
    for p in ordered:
        paid_so_far += p.amount
        entries.append(
            LedgerEntry(
                payment_id=p.id,
                amount=p.amount,
                paid_at=p.paid_at,
                payment_method=p.payment_method,
                paid_so_far=paid_so_far,
                remaining=expected_fee - paid_so_far if expected_fee is not None else None,
            )
        )
    return Ledger(total_paid=paid_so_far, entries=entries)


# --- Payment validator ---
def _parse_amount(amount: Any) -> Optional[Decimal]:
    if amount is None or isinstance(amount, bool):
        return None
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def validate_payment(amount: Any, expected_fee: int, total_paid: int) -> FeeValidation:
    """
    Judge a proposed payment against the current ledger state.

    Checked in order: parseable finite amount, positive, whole rupees, and not
    above the remaining balance (expected_fee - total_paid). Paying exactly the
    remaining balance is accepted.
    """
    remaining = expected_fee - total_paid
    value = _parse_amount(amount)
    if value is None:
        return FeeValidation.rejected(
            FeeRejection.INVALID_AMOUNT,
            "Payment amount must be a valid number",
            remaining,
        )
    if value <= 0:
        return FeeValidation.rejected(
            FeeRejection.AMOUNT_MUST_BE_POSITIVE,
            "Payment amount must be greater than 0",
            remaining,
        )
    if value != value.to_integral_value():
        return FeeValidation.rejected(
            FeeRejection.INVALID_AMOUNT,
            "Payment amount must be a whole number of rupees",
            remaining,
        )
    if value > remaining:
        return FeeValidation.rejected(
            FeeRejection.EXCEEDS_REMAINING_BALANCE,
            f"Payment amount (₹{int(value)}) exceeds remaining balance (₹{remaining})",
            remaining,
        )
    return FeeValidation.ok(remaining)


def payment_amount(amount: Any) -> int:
    """Integer rupees of an amount that validate_payment accepted."""
    return int(_parse_amount(amount))


# --- Dues aggregator ---
def student_dues(student: Any, batch: Any, total_paid: int, as_of: Optional[datetime] = None) -> StudentDues:
    """Per-student dues. student needs custom_fee and join_date; batch needs fee and fee_period."""
    expected = expected_total_fee(batch.fee, student.custom_fee, batch.fee_period, student.join_date, as_of)
    return StudentDues(
        expected_total_fee=expected,
        total_paid=total_paid,
        total_due=max(0, expected - total_paid),
    )


def summarize_dues(dues: Iterable[StudentDues]) -> DuesSummary:
    summary = DuesSummary()
    for d in dues:
        summary.student_count += 1
        summary.total_collected += d.total_paid
        summary.total_pending += d.total_due
        if d.total_due == 0:
            summary.paid_count += 1
        else:
            summary.pending_count += 1
    return summary


def aggregate_dues(
    rows: Sequence[Tuple[Any, Any, int]],
    as_of: Optional[datetime] = None,
) -> Tuple[List[StudentDues], DuesSummary]:
    """
    Roll up (student, batch, total_paid) rows for any scope: one batch, one
    teacher, or the whole system. The same as_of is used for every row.
    """
    as_of = as_of if as_of is not None else utcnow()
    dues = [student_dues(student, batch, paid, as_of) for student, batch, paid in rows]
    return dues, summarize_dues(dues)
