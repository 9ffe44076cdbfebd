# Overview: Service-layer operations for payment; allocates customer payments onto bills.

"""
Payment Allocation Service

WHY: Record money received against bills, either against one named bill or
spread across a customer's open bills oldest-first, without ever pushing a
balance below zero.

DESIGN PRINCIPLES:
- Bills and customers are read FOR UPDATE before any balance math
- Customer row is locked before bill rows in both modes
- Excess over open debt stays on the payment as unallocated credit
- Every allocation snapshots the bill balance before and after

INVARIANTS:
- payment.allocated_cents + payment.unallocated_cents == payment.amount_cents
- bill.paid_cents + bill.balance_cents == bill.total_cents (within one cent)
"""

from __future__ import annotations

from flask import current_app

from ..errors import AlreadySettledError, BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, Customer, Payment, PaymentAllocation
from ..money import require_positive_cents
from ..time_utils import parse_datetime_field, utcnow
from . import audit_service, ledger_state
from .billing_service import book_status_change
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .sequence_service import SEQUENCE_PAYMENT, next_number


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_UPI = "UPI"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_CHEQUE = "CHEQUE"
METHOD_DIGITAL_WALLET = "DIGITAL_WALLET"
METHOD_NET_BANKING = "NET_BANKING"
METHOD_OTHER = "OTHER"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_UPI,
    METHOD_BANK_TRANSFER,
    METHOD_CHEQUE,
    METHOD_DIGITAL_WALLET,
    METHOD_NET_BANKING,
    METHOD_OTHER,
]


def _validate_request(amount_cents, method: str) -> int:
    amount_cents = require_positive_cents(amount_cents)
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}",
            details={"method": method},
        )
    return amount_cents


def _new_payment(session, *, business_id, customer_id, amount_cents, method,
                 reference_number, payment_date, notes, actor_user_id) -> Payment:
    payment = Payment(
        business_id=business_id,
        customer_id=customer_id,
        payment_number=next_number(session, business_id=business_id, kind=SEQUENCE_PAYMENT),
        payment_date=payment_date or utcnow(),
        amount_cents=amount_cents,
        allocated_cents=0,
        unallocated_cents=amount_cents,
        method=method,
        status=ledger_state.PAYMENT_STATUS_COMPLETED,
        reference_number=reference_number,
        notes=notes,
        created_by_user_id=actor_user_id,
    )
    session.add(payment)
    session.flush()
    return payment


def _allocate(session, payment: Payment, bill: Bill, allocation_cents: int, order: int) -> PaymentAllocation:
    before, after = ledger_state.apply_allocation(bill, allocation_cents)
    allocation = PaymentAllocation(
        payment_id=payment.id,
        bill_id=bill.id,
        allocated_cents=allocation_cents,
        bill_balance_before_cents=before,
        bill_balance_after_cents=after,
        allocation_order=order,
        allocated_at=utcnow(),
    )
    session.add(allocation)
    return allocation


def _finalize(payment: Payment, allocated_cents: int) -> None:
    payment.allocated_cents = allocated_cents
    payment.unallocated_cents = payment.amount_cents - allocated_cents
    ledger_state.check_payment_invariants(payment)


def _apply_to_customer(customer: Customer | None, payment: Payment) -> None:
    if customer is None:
        return
    customer.total_payments_cents = (customer.total_payments_cents or 0) + payment.amount_cents
    customer.outstanding_balance_cents = (customer.outstanding_balance_cents or 0) - payment.allocated_cents


# =============================================================================
# TARGETED PAYMENT
# =============================================================================

def record_payment(
    business_id: int,
    actor_user_id: int | None,
    bill_id: int,
    amount_cents: int,
    method: str,
    reference_number: str | None = None,
    payment_date=None,
    notes: str | None = None,
) -> dict:
    """
    Record a payment against one bill.

    The allocation is capped at the bill balance; anything above it stays
    on the payment as unallocated.

    Returns:
        {"payment", "allocation", "new_balance_cents", "new_status"}

    Raises:
        InvalidAmountError: amount is not a positive integer of cents
        ValidationError: unknown payment method or unparseable payment_date
        NotFoundError: bill not in this business
        AlreadySettledError: bill has nothing left to pay
        BusinessRuleError: bill is CANCELLED or VOID

    A DRAFT bill is published to PENDING and booked onto the customer
    before the allocation, in the same transaction.
    """
    amount_cents = _validate_request(amount_cents, method)
    payment_date = parse_datetime_field(payment_date, "payment_date")

    def _op():
        with unit_of_work() as session:
            customer_id = (
                session.query(Bill.customer_id)
                .filter_by(id=bill_id, business_id=business_id)
                .scalar()
            )
            customer = None
            if customer_id is not None:
                customer = lock_for_update(session.query(Customer).filter_by(id=customer_id)).first()

            bill = lock_for_update(
                session.query(Bill).filter_by(id=bill_id, business_id=business_id)
            ).first()
            if not bill:
                raise NotFoundError(f"Bill {bill_id} not found")
            if bill.status in ledger_state.CLOSED_STATUSES:
                raise BusinessRuleError(
                    f"Cannot record payment for a {bill.status} bill",
                    code="BILL_NOT_PAYABLE",
                    details={"bill_id": bill.id, "status": bill.status},
                )
            if bill.balance_cents <= 0:
                raise AlreadySettledError(
                    "Bill is already fully paid",
                    details={"bill_id": bill.id, "balance_cents": bill.balance_cents},
                )

            # Auto-publish a draft inside the same transaction
            published = bill.status == ledger_state.BILL_STATUS_DRAFT
            if published:
                ledger_state.transition_status(bill, ledger_state.BILL_STATUS_PENDING)
                book_status_change(session, bill, ledger_state.BILL_STATUS_DRAFT, customer)

            payment = _new_payment(
                session,
                business_id=business_id,
                customer_id=bill.customer_id,
                amount_cents=amount_cents,
                method=method,
                reference_number=reference_number,
                payment_date=payment_date,
                notes=notes,
                actor_user_id=actor_user_id,
            )
            balance_before = bill.balance_cents
            allocation = _allocate(session, payment, bill, min(amount_cents, balance_before), 1)
            _finalize(payment, allocation.allocated_cents)
            _apply_to_customer(customer, payment)

        return payment, allocation, bill, balance_before, published

    payment, allocation, bill, balance_before, published = run_with_retry(_op)

    if published:
        current_app.logger.info("Draft bill %s published by payment", bill.id)
        audit_service.log_bill_action(
            "UPDATE",
            business_id,
            actor_user_id,
            bill.id,
            {"status": ledger_state.BILL_STATUS_DRAFT},
            {"status": ledger_state.BILL_STATUS_PENDING, "payment_id": payment.id},
        )

    current_app.logger.info(
        "Payment recorded: number=%s bill=%s amount_cents=%s allocated_cents=%s",
        payment.payment_number, bill.id, payment.amount_cents, payment.allocated_cents,
    )
    audit_service.log_payment_action("CREATE", business_id, actor_user_id, payment.id, None, payment.to_dict())
    audit_service.log_bill_action(
        "PAY",
        business_id,
        actor_user_id,
        bill.id,
        {"balance_cents": balance_before},
        {"balance_cents": bill.balance_cents, "status": bill.status, "payment_id": payment.id},
    )

    return {
        "payment": payment,
        "allocation": allocation,
        "new_balance_cents": bill.balance_cents,
        "new_status": bill.status,
    }


# =============================================================================
# FIFO (BULK) PAYMENT
# =============================================================================

def record_bulk_payment(
    business_id: int,
    actor_user_id: int | None,
    customer_id: int,
    amount_cents: int,
    method: str,
    reference_number: str | None = None,
    bill_ids: list[int] | None = None,
    payment_date=None,
    notes: str | None = None,
) -> dict:
    """
    Spread one customer payment over their open bills, oldest first.

    Candidates are bills with a balance whose status is not DRAFT, CANCELLED
    or VOID, ordered by (bill_date, created_at, id). bill_ids narrows the
    candidates; paying more than their combined balance is rejected.
    Without bill_ids any excess is kept as unallocated credit.

    Returns:
        {"payment", "allocations"}
    """
    amount_cents = _validate_request(amount_cents, method)
    payment_date = parse_datetime_field(payment_date, "payment_date")
    if bill_ids is not None and not bill_ids:
        raise ValidationError("bill_ids cannot be empty")

    def _op():
        with unit_of_work() as session:
            customer = lock_for_update(
                session.query(Customer).filter_by(id=customer_id, business_id=business_id)
            ).first()
            if not customer:
                raise NotFoundError(f"Customer {customer_id} not found")

            query = session.query(Bill).filter(
                Bill.business_id == business_id,
                Bill.customer_id == customer_id,
                Bill.balance_cents > 0,
                Bill.status.notin_(sorted(ledger_state.FIFO_EXCLUDED_STATUSES)),
            )
            if bill_ids is not None:
                query = query.filter(Bill.id.in_(bill_ids))
            candidates = lock_for_update(
                query.order_by(Bill.bill_date.asc(), Bill.created_at.asc(), Bill.id.asc())
            ).all()

            if bill_ids is not None:
                selected_balance = sum(b.balance_cents for b in candidates)
                if amount_cents - selected_balance > ledger_state.SETTLEMENT_TOLERANCE_CENTS:
                    raise BusinessRuleError(
                        "Payment amount exceeds the balance of the selected bills",
                        code="AMOUNT_EXCEEDS_SELECTED_BALANCE",
                        details={"amount_cents": amount_cents, "selected_balance_cents": selected_balance},
                    )

            payment = _new_payment(
                session,
                business_id=business_id,
                customer_id=customer_id,
                amount_cents=amount_cents,
                method=method,
                reference_number=reference_number,
                payment_date=payment_date,
                notes=notes,
                actor_user_id=actor_user_id,
            )

            remaining = amount_cents
            allocations = []
            for bill in candidates:
                if remaining <= 0:
                    break
                share = min(remaining, bill.balance_cents)
                allocations.append(_allocate(session, payment, bill, share, len(allocations) + 1))
                remaining -= share

            _finalize(payment, amount_cents - remaining)
            _apply_to_customer(customer, payment)

        return payment, allocations

    payment, allocations = run_with_retry(_op)

    current_app.logger.info(
        "Bulk payment recorded: number=%s customer=%s amount_cents=%s bills=%s unallocated_cents=%s",
        payment.payment_number, customer_id, payment.amount_cents, len(allocations), payment.unallocated_cents,
    )
    audit_service.log_payment_action(
        "CREATE",
        business_id,
        actor_user_id,
        payment.id,
        None,
        {**payment.to_dict(), "allocations": [a.to_dict() for a in allocations]},
    )

    return {"payment": payment, "allocations": allocations}


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(business_id: int, payment_id: int) -> dict:
    payment = db.session.query(Payment).filter_by(id=payment_id, business_id=business_id).first()
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    result = payment.to_dict()
    result["allocations"] = [a.to_dict() for a in payment.allocations]
    return result


def get_bill_payments(business_id: int, bill_id: int) -> list[dict]:
    """Payments allocated to a bill, oldest allocation first."""
    bill = db.session.query(Bill.id).filter_by(id=bill_id, business_id=business_id).first()
    if not bill:
        raise NotFoundError(f"Bill {bill_id} not found")

    allocations = (
        db.session.query(PaymentAllocation)
        .filter(PaymentAllocation.bill_id == bill_id)
        .order_by(PaymentAllocation.allocated_at.asc(), PaymentAllocation.id.asc())
        .all()
    )
    return [
        {**allocation.payment.to_dict(), "allocation": allocation.to_dict()}
        for allocation in allocations
    ]
