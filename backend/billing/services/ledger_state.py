# Overview: Bill lifecycle state machine and ledger invariants.

"""
Bill Lifecycle

STATUS:
    DRAFT -> PENDING | CANCELLED | VOID
    PENDING -> PARTIAL | PAID (payments), OVERDUE (maintenance), CANCELLED | VOID
    PARTIAL -> PAID (payments), OVERDUE (maintenance)
    OVERDUE -> PARTIAL | PAID (payments), CANCELLED | VOID when unpaid

PAID, CANCELLED and VOID accept no further allocations. DRAFT bills are
never FIFO candidates; a targeted payment publishes a DRAFT to PENDING
before allocating.

PAYMENT STATUS follows the balance: COMPLETED once settled, PENDING while
anything is owed.
"""

from __future__ import annotations

from ..errors import BusinessRuleError, InvariantViolationError, ValidationError
from .calculator import compute_total

# =============================================================================
# BILL STATUS (CONSTANTS)
# =============================================================================

BILL_STATUS_DRAFT = "DRAFT"
BILL_STATUS_PENDING = "PENDING"
BILL_STATUS_PAID = "PAID"
BILL_STATUS_PARTIAL = "PARTIAL"
BILL_STATUS_OVERDUE = "OVERDUE"
BILL_STATUS_CANCELLED = "CANCELLED"
BILL_STATUS_VOID = "VOID"

BILL_STATUSES = (
    BILL_STATUS_DRAFT,
    BILL_STATUS_PENDING,
    BILL_STATUS_PAID,
    BILL_STATUS_PARTIAL,
    BILL_STATUS_OVERDUE,
    BILL_STATUS_CANCELLED,
    BILL_STATUS_VOID,
)

# Statuses that reserve no stock and owe nothing yet
NON_BILLABLE_STATUSES = frozenset({BILL_STATUS_DRAFT, BILL_STATUS_VOID, BILL_STATUS_CANCELLED})

# Never picked by FIFO allocation
FIFO_EXCLUDED_STATUSES = frozenset({BILL_STATUS_DRAFT, BILL_STATUS_CANCELLED, BILL_STATUS_VOID})

# Reject any allocation outright
CLOSED_STATUSES = frozenset({BILL_STATUS_CANCELLED, BILL_STATUS_VOID})

# A bill cannot start life as paid
INITIAL_STATUSES = (
    BILL_STATUS_DRAFT,
    BILL_STATUS_PENDING,
    BILL_STATUS_OVERDUE,
    BILL_STATUS_CANCELLED,
    BILL_STATUS_VOID,
)

# Manual (non-payment) transitions
MANUAL_TRANSITIONS = {
    BILL_STATUS_DRAFT: frozenset({BILL_STATUS_PENDING, BILL_STATUS_CANCELLED, BILL_STATUS_VOID}),
    BILL_STATUS_PENDING: frozenset({BILL_STATUS_CANCELLED, BILL_STATUS_VOID}),
    BILL_STATUS_OVERDUE: frozenset({BILL_STATUS_CANCELLED, BILL_STATUS_VOID}),
}

# =============================================================================
# PAYMENT / APPROVAL STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_FAILED = "FAILED"
PAYMENT_STATUS_REFUNDED = "REFUNDED"
PAYMENT_STATUS_PROCESSING = "PROCESSING"
PAYMENT_STATUS_CANCELLED = "CANCELLED"

APPROVAL_NOT_REQUIRED = "NOT_REQUIRED"
APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"

# A balance at or below one cent counts as settled
SETTLEMENT_TOLERANCE_CENTS = 1


def initial_status(requested: str | None) -> str:
    if requested is None:
        return BILL_STATUS_DRAFT
    if requested not in INITIAL_STATUSES:
        raise ValidationError(
            f"Invalid initial status: {requested}. Must be one of {list(INITIAL_STATUSES)}",
            details={"status": requested},
        )
    return requested


def initial_approval_status(requires_approval: bool) -> str:
    return APPROVAL_PENDING if requires_approval else APPROVAL_NOT_REQUIRED


def is_settled(balance_cents: int) -> bool:
    return balance_cents <= SETTLEMENT_TOLERANCE_CENTS


def apply_allocation(bill, allocation_cents: int) -> tuple[int, int]:
    """
    Apply one allocation to a locked bill and move its statuses.

    Returns (balance_before, balance_after).
    """
    balance_before = bill.balance_cents
    if allocation_cents <= 0:
        raise BusinessRuleError("Allocation must be positive", details={"bill_id": bill.id})
    if allocation_cents > balance_before:
        raise InvariantViolationError(
            "Allocation exceeds bill balance",
            details={"bill_id": bill.id, "allocation_cents": allocation_cents, "balance_cents": balance_before},
        )

    bill.paid_cents = bill.paid_cents + allocation_cents
    bill.balance_cents = bill.total_cents - bill.paid_cents

    if is_settled(bill.balance_cents):
        bill.status = BILL_STATUS_PAID
        bill.payment_status = PAYMENT_STATUS_COMPLETED
    elif bill.paid_cents > 0:
        bill.status = BILL_STATUS_PARTIAL
        bill.payment_status = PAYMENT_STATUS_PENDING

    check_bill_invariants(bill)
    return balance_before, bill.balance_cents


def transition_status(bill, new_status: str) -> None:
    """Manual status change (cancel, void, publish a draft)."""
    if new_status == bill.status:
        return
    if new_status not in BILL_STATUSES:
        raise ValidationError(f"Invalid status: {new_status}", details={"status": new_status})

    allowed = MANUAL_TRANSITIONS.get(bill.status, frozenset())
    if new_status not in allowed:
        raise BusinessRuleError(
            f"Cannot change bill status from {bill.status} to {new_status}",
            code="INVALID_TRANSITION",
            details={"from": bill.status, "to": new_status},
        )
    if new_status in CLOSED_STATUSES and bill.paid_cents > 0:
        raise BusinessRuleError(
            "Cannot cancel or void a bill that has payments",
            code="INVALID_TRANSITION",
            details={"from": bill.status, "to": new_status, "paid_cents": bill.paid_cents},
        )
    bill.status = new_status


def is_overdue(bill, as_of) -> bool:
    if bill.status not in (BILL_STATUS_PENDING, BILL_STATUS_PARTIAL):
        return False
    if bill.due_date is None or bill.balance_cents <= 0:
        return False
    return bill.due_date.date() < as_of.date()


def check_bill_invariants(bill) -> None:
    expected_total = compute_total(
        subtotal_cents=bill.subtotal_cents,
        discount_cents=bill.discount_cents,
        tax_cents=bill.tax_cents,
        shipping_cents=bill.shipping_cents,
        adjustment_cents=bill.adjustment_cents,
        round_off_cents=bill.round_off_cents,
    )
    if expected_total != bill.total_cents:
        raise InvariantViolationError(
            "Bill total does not match its components",
            details={"bill_id": bill.id, "total_cents": bill.total_cents, "expected_cents": expected_total},
        )
    if bill.balance_cents < 0:
        raise InvariantViolationError(
            "Bill balance cannot be negative",
            details={"bill_id": bill.id, "balance_cents": bill.balance_cents},
        )
    if abs(bill.paid_cents + bill.balance_cents - bill.total_cents) > SETTLEMENT_TOLERANCE_CENTS:
        raise InvariantViolationError(
            "Bill paid + balance does not equal total",
            details={
                "bill_id": bill.id,
                "paid_cents": bill.paid_cents,
                "balance_cents": bill.balance_cents,
                "total_cents": bill.total_cents,
            },
        )


def check_payment_invariants(payment) -> None:
    if payment.allocated_cents + payment.unallocated_cents != payment.amount_cents:
        raise InvariantViolationError(
            "Payment allocated + unallocated does not equal amount",
            details={
                "payment_id": payment.id,
                "amount_cents": payment.amount_cents,
                "allocated_cents": payment.allocated_cents,
                "unallocated_cents": payment.unallocated_cents,
            },
        )
    if payment.unallocated_cents < 0:
        raise InvariantViolationError(
            "Payment cannot be over-allocated",
            details={"payment_id": payment.id, "unallocated_cents": payment.unallocated_cents},
        )
