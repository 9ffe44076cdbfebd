# Overview: Service-layer operations for bills; encapsulates business logic and database work.

"""
Bill Service

WHY: Issue bills whose totals are reproducible from their inputs, and keep
every bill, item and stock movement of one creation in a single transaction.

DESIGN PRINCIPLES:
- Validation and arithmetic happen before the transaction opens
- Bill items snapshot product name/unit/rate at billing time
- Stock moves exactly once, when a bill is first persisted as billable
- Audit and purchase-pattern updates run after commit and never undo it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..errors import BillingError, BusinessRuleError, InvariantViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, BillItem, Business, Customer, Payment, PaymentAllocation
from ..money import require_cents, to_decimal
from ..time_utils import parse_datetime_field, to_utc_z, utcnow
from . import audit_service, ledger_state, purchase_pattern_service
from .calculator import BillTotals, LineItemResult, aggregate_bill, calculate_line
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .inventory_service import apply_bill_stock, load_bill_products
from .sequence_service import SEQUENCE_BILL, next_number

DEFAULT_UNIT = "PIECE"

RECURRING_FREQUENCIES = ("DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", "QUARTERLY", "YEARLY")

# Explicit sort key -> column mapping for list_bills
BILL_SORT_COLUMNS = {
    "bill_date": Bill.bill_date,
    "due_date": Bill.due_date,
    "created_at": Bill.created_at,
    "bill_number": Bill.bill_number,
    "status": Bill.status,
    "total_amount": Bill.total_cents,
    "balance_amount": Bill.balance_cents,
    "paid_amount": Bill.paid_cents,
}

# Metadata fields update_bill may change
EDITABLE_FIELDS = (
    "notes",
    "terms",
    "internal_notes",
    "customer_notes",
    "billing_address",
    "shipping_address",
    "due_date",
)

# Audit actions that make up a bill's approval history
APPROVAL_AUDIT_ACTIONS = ("BILL_SUBMIT", "BILL_APPROVE", "BILL_REJECT")


@dataclass
class PreparedItem:
    data: dict
    quantity: Decimal
    result: LineItemResult


@dataclass
class PreparedBill:
    items: list[PreparedItem]
    totals: BillTotals
    status: str
    requires_approval: bool
    bill_date: object
    due_date: object
    extras: dict = field(default_factory=dict)


# =============================================================================
# VALIDATION & CALCULATION (no I/O)
# =============================================================================

def _optional_percent(item: dict, key: str):
    value = item.get(key)
    if value is None:
        return None
    pct = to_decimal(value, key)
    if pct < 0 or pct > 100:
        raise ValidationError(f"{key} must be between 0 and 100", details={"field": key, "value": str(pct)})
    return pct


def _optional_cents(data: dict, key: str, *, allow_negative: bool = False):
    value = data.get(key)
    if value is None:
        return None
    return require_cents(value, key, allow_negative=allow_negative)


def _prepare_item(index: int, item: dict) -> PreparedItem:
    if "quantity" not in item or item["quantity"] is None:
        raise ValidationError("Valid quantity is required for all items", details={"item": index})
    quantity = to_decimal(item["quantity"], "quantity")
    if quantity <= 0:
        raise ValidationError("Valid quantity is required for all items", details={"item": index})

    rate_cents = item.get("rate_cents")
    if rate_cents is None:
        raise ValidationError("Valid rate is required for all items", details={"item": index})
    require_cents(rate_cents, "rate_cents")

    discount_percent = _optional_percent(item, "discount_percent")
    tax_percent = _optional_percent(item, "tax_percent")
    discount_cents = _optional_cents(item, "discount_cents")
    tax_cents = _optional_cents(item, "tax_cents")

    result = calculate_line(
        rate_cents=rate_cents,
        quantity=quantity,
        discount_percent=discount_percent,
        discount_cents=discount_cents,
        tax_percent=tax_percent,
        tax_cents=tax_cents,
    )
    data = dict(item)
    data["discount_percent"] = discount_percent
    data["tax_percent"] = tax_percent
    return PreparedItem(data=data, quantity=quantity, result=result)


def prepare_bill(bill_input: dict) -> PreparedBill:
    """Validate a bill request and compute every amount. Pure."""
    items = bill_input.get("items") or []
    if not items:
        raise ValidationError("At least one item is required")

    prepared_items = [_prepare_item(i, item) for i, item in enumerate(items)]

    totals = aggregate_bill(
        [p.result for p in prepared_items],
        subtotal_override=_optional_cents(bill_input, "subtotal_cents"),
        discount_override=_optional_cents(bill_input, "discount_cents"),
        tax_override=_optional_cents(bill_input, "tax_cents"),
        shipping_cents=_optional_cents(bill_input, "shipping_cents") or 0,
        adjustment_cents=_optional_cents(bill_input, "adjustment_cents", allow_negative=True) or 0,
        round_off_cents=_optional_cents(bill_input, "round_off_cents", allow_negative=True) or 0,
    )

    bill_date = parse_datetime_field(bill_input.get("bill_date"), "bill_date") or utcnow()
    due_date = parse_datetime_field(bill_input.get("due_date"), "due_date")

    frequency = bill_input.get("recurring_frequency")
    if frequency is not None and frequency not in RECURRING_FREQUENCIES:
        raise ValidationError(f"Invalid recurring frequency: {frequency}")

    extras = {
        key: bill_input.get(key)
        for key in (
            "payment_method",
            "billing_address",
            "shipping_address",
            "notes",
            "terms",
            "internal_notes",
            "customer_notes",
        )
    }
    extras["bill_type"] = bill_input.get("bill_type") or "SALE"
    extras["is_recurring"] = bool(bill_input.get("is_recurring", False))
    extras["recurring_frequency"] = frequency

    requires_approval = bool(bill_input.get("requires_approval", False))
    return PreparedBill(
        items=prepared_items,
        totals=totals,
        status=ledger_state.initial_status(bill_input.get("status")),
        requires_approval=requires_approval,
        bill_date=bill_date,
        due_date=due_date,
        extras=extras,
    )


# =============================================================================
# BILL CREATION
# =============================================================================

def _require_business(business_id: int) -> Business:
    business = db.session.get(Business, business_id)
    if not business:
        raise NotFoundError(f"Business {business_id} not found")
    return business


def create_bill(business_id: int, actor_user_id: int | None, bill_input: dict) -> Bill:
    """
    Create a bill with its items in one transaction.

    Args:
        business_id: Owning business
        actor_user_id: User creating the bill (audit attribution)
        bill_input: items[] (product_id?, variant_id?, name?, unit?, quantity,
            rate_cents, discount_percent?|discount_cents?, tax_percent?|tax_cents?),
            bill_date, due_date?, customer_id?, subtotal_cents?/discount_cents?/
            tax_cents? overrides, shipping_cents, adjustment_cents,
            round_off_cents, status, requires_approval, plus metadata

    Returns:
        Bill record

    Raises:
        ValidationError, NotFoundError, BusinessRuleError, ConcurrencyError
    """
    prepared = prepare_bill(bill_input)
    _require_business(business_id)
    customer_id = bill_input.get("customer_id")

    def _op():
        with unit_of_work() as session:
            customer = None
            if customer_id is not None:
                customer = lock_for_update(
                    session.query(Customer).filter_by(id=customer_id, business_id=business_id)
                ).first()
                if not customer:
                    raise NotFoundError(f"Customer {customer_id} not found")

            products = load_bill_products(
                session, business_id, [p.data.get("product_id") for p in prepared.items]
            )

            totals = prepared.totals
            bill = Bill(
                business_id=business_id,
                customer_id=customer_id,
                bill_number=next_number(session, business_id=business_id, kind=SEQUENCE_BILL),
                bill_date=prepared.bill_date,
                due_date=prepared.due_date,
                status=prepared.status,
                payment_status=ledger_state.PAYMENT_STATUS_PENDING,
                approval_status=ledger_state.initial_approval_status(prepared.requires_approval),
                requires_approval=prepared.requires_approval,
                subtotal_cents=totals.subtotal_cents,
                discount_cents=totals.discount_cents,
                tax_cents=totals.tax_cents,
                shipping_cents=totals.shipping_cents,
                adjustment_cents=totals.adjustment_cents,
                round_off_cents=totals.round_off_cents,
                total_cents=totals.total_cents,
                paid_cents=totals.paid_cents,
                balance_cents=totals.balance_cents,
                created_by_user_id=actor_user_id,
                **prepared.extras,
            )
            ledger_state.check_bill_invariants(bill)
            session.add(bill)
            session.flush()

            items = []
            for position, prepared_item in enumerate(prepared.items):
                data = prepared_item.data
                product = products.get(data.get("product_id"))
                result = prepared_item.result
                item = BillItem(
                    bill_id=bill.id,
                    product_id=data.get("product_id"),
                    variant_id=data.get("variant_id"),
                    item_type=data.get("item_type") or "PRODUCT",
                    product_name=data.get("name") or (product.name if product else None) or "Unknown Item",
                    product_code=data.get("product_code") or (product.sku if product else None),
                    description=data.get("description"),
                    hsn_code=data.get("hsn_code"),
                    sac_code=data.get("sac_code"),
                    unit=data.get("unit") or (product.unit if product else None) or DEFAULT_UNIT,
                    quantity=prepared_item.quantity,
                    rate_cents=data["rate_cents"],
                    discount_percent=data.get("discount_percent"),
                    discount_cents=result.discount_cents,
                    tax_percent=data.get("tax_percent"),
                    tax_cents=result.tax_cents,
                    subtotal_cents=result.subtotal_cents,
                    total_cents=result.total_cents,
                    sort_order=position,
                )
                session.add(item)
                items.append(item)
            session.flush()

            apply_bill_stock(session, bill, items, products, actor_user_id)

            if customer is not None and bill.status not in ledger_state.NON_BILLABLE_STATUSES:
                customer.total_billed_cents = (customer.total_billed_cents or 0) + bill.total_cents
                customer.outstanding_balance_cents = (customer.outstanding_balance_cents or 0) + bill.total_cents

        return bill

    bill = run_with_retry(_op)

    current_app.logger.info(
        "Bill created: id=%s number=%s total_cents=%s status=%s",
        bill.id, bill.bill_number, bill.total_cents, bill.status,
    )
    audit_service.log_bill_action("CREATE", business_id, actor_user_id, bill.id, None, bill.to_dict())
    purchase_pattern_service.record_bill_purchases(bill.id)
    return bill


# =============================================================================
# QUERIES
# =============================================================================

def get_bill(business_id: int, bill_id: int) -> dict:
    """Bill with its items and the payments allocated to it."""
    bill = db.session.query(Bill).filter_by(id=bill_id, business_id=business_id).first()
    if not bill:
        raise NotFoundError(f"Bill {bill_id} not found")

    rows = (
        db.session.query(Payment, PaymentAllocation)
        .join(PaymentAllocation, PaymentAllocation.payment_id == Payment.id)
        .filter(PaymentAllocation.bill_id == bill.id)
        .order_by(PaymentAllocation.allocated_at, PaymentAllocation.id)
        .all()
    )

    result = bill.to_dict()
    result["items"] = [item.to_dict() for item in bill.items]
    result["payments"] = [
        {**payment.to_dict(), "allocation": allocation.to_dict()}
        for payment, allocation in rows
    ]
    return result


def list_bills(
    business_id: int,
    *,
    search: str | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    start_date=None,
    end_date=None,
    min_amount_cents: int | None = None,
    max_amount_cents: int | None = None,
    has_balance: bool = False,
    sort_by: str = "bill_date",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> dict:
    column = BILL_SORT_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError(
            f"Invalid sort key: {sort_by}. Must be one of {sorted(BILL_SORT_COLUMNS)}",
            details={"sort_by": sort_by},
        )
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    query = db.session.query(Bill).filter(Bill.business_id == business_id)
    if search:
        query = query.filter(Bill.bill_number.ilike(f"%{search}%"))
    if customer_id is not None:
        query = query.filter(Bill.customer_id == customer_id)
    if status:
        query = query.filter(Bill.status == status)
    if payment_status:
        query = query.filter(Bill.payment_status == payment_status)
    start_date = parse_datetime_field(start_date, "start_date")
    end_date = parse_datetime_field(end_date, "end_date")
    if start_date is not None:
        query = query.filter(Bill.bill_date >= start_date)
    if end_date is not None:
        query = query.filter(Bill.bill_date <= end_date)
    if min_amount_cents is not None:
        query = query.filter(Bill.total_cents >= min_amount_cents)
    if max_amount_cents is not None:
        query = query.filter(Bill.total_cents <= max_amount_cents)
    if has_balance:
        query = query.filter(Bill.balance_cents > 0)

    total = query.count()
    order = column.asc() if sort_order == "asc" else column.desc()
    bills = (
        query.order_by(order, Bill.id.asc() if sort_order == "asc" else Bill.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )

    return {
        "bills": [b.to_dict() for b in bills],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


# =============================================================================
# METADATA & LIFECYCLE
# =============================================================================

def update_bill(business_id: int, actor_user_id: int | None, bill_id: int, changes: dict) -> Bill:
    """
    Edit bill metadata and/or move it along a manual status edge.

    Amounts and items are immutable here. Publishing a DRAFT does not move
    stock; stock is only decremented when a bill is created billable.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS) - {"status"}
    if unknown:
        raise ValidationError(
            f"Fields cannot be updated: {sorted(unknown)}",
            details={"fields": sorted(unknown)},
        )
    values = {key: changes[key] for key in EDITABLE_FIELDS if key in changes}
    if "due_date" in values:
        values["due_date"] = parse_datetime_field(values["due_date"], "due_date")

    def _op():
        with unit_of_work() as session:
            bill = lock_for_update(
                session.query(Bill).filter_by(id=bill_id, business_id=business_id)
            ).first()
            if not bill:
                raise NotFoundError(f"Bill {bill_id} not found")

            before = _audit_snapshot(bill)
            old_status = bill.status

            for key, value in values.items():
                setattr(bill, key, value)

            new_status = changes.get("status")
            if new_status:
                ledger_state.transition_status(bill, new_status)
            book_status_change(session, bill, old_status)

            after = _audit_snapshot(bill)
        return bill, before, after

    bill, before, after = run_with_retry(_op)
    if before["status"] == ledger_state.BILL_STATUS_DRAFT and after["status"] == ledger_state.BILL_STATUS_PENDING:
        # TODO: decide with product owners whether publishing a draft should reserve stock
        current_app.logger.info("Draft bill %s published without stock movement", bill.id)
    audit_service.log_bill_action("UPDATE", business_id, actor_user_id, bill.id, before, after)
    return bill


def _audit_snapshot(bill: Bill) -> dict:
    snapshot = {"status": bill.status}
    for key in EDITABLE_FIELDS:
        snapshot[key] = getattr(bill, key)
    snapshot["due_date"] = to_utc_z(bill.due_date)
    return snapshot


def _adds_customer_debt(old_status: str, new_status: str) -> bool:
    return (
        old_status in ledger_state.NON_BILLABLE_STATUSES
        and new_status not in ledger_state.NON_BILLABLE_STATUSES
    )


def _removes_customer_debt(old_status: str, new_status: str) -> bool:
    return (
        old_status not in ledger_state.NON_BILLABLE_STATUSES
        and new_status in ledger_state.NON_BILLABLE_STATUSES
    )


def book_status_change(session, bill: Bill, old_status: str, customer: Customer | None = None) -> None:
    """
    Keep the customer's billed/outstanding aggregates in step with a status move.

    A bill entering the billable set adds its total and balance; leaving it
    takes them back. Pass ``customer`` when the caller already holds its lock.
    Must run inside the caller's transaction.
    """
    if bill.customer_id is None:
        return
    adds = _adds_customer_debt(old_status, bill.status)
    if not adds and not _removes_customer_debt(old_status, bill.status):
        return
    if customer is None:
        customer = lock_for_update(
            session.query(Customer).filter_by(id=bill.customer_id)
        ).first()
    if customer is None:
        return
    sign = 1 if adds else -1
    customer.total_billed_cents += sign * bill.total_cents
    customer.outstanding_balance_cents += sign * bill.balance_cents


def _decide_approval(business_id: int, actor_user_id: int, bill_id: int, approve: bool, reason: str | None) -> Bill:
    def _op():
        with unit_of_work() as session:
            bill = lock_for_update(
                session.query(Bill).filter_by(id=bill_id, business_id=business_id)
            ).first()
            if not bill:
                raise NotFoundError(f"Bill {bill_id} not found")
            if bill.approval_status != ledger_state.APPROVAL_PENDING:
                raise BusinessRuleError(
                    f"Bill approval is {bill.approval_status}, not PENDING",
                    code="INVALID_TRANSITION",
                    details={"approval_status": bill.approval_status},
                )

            now = utcnow()
            if approve:
                bill.approval_status = ledger_state.APPROVAL_APPROVED
                bill.approved_by_user_id = actor_user_id
                bill.approved_at = now
            else:
                bill.approval_status = ledger_state.APPROVAL_REJECTED
                bill.rejected_by_user_id = actor_user_id
                bill.rejected_at = now
                bill.rejection_reason = reason
        return bill

    bill = run_with_retry(_op)
    audit_service.log_bill_action(
        "APPROVE" if approve else "REJECT",
        business_id,
        actor_user_id,
        bill.id,
        {"approval_status": ledger_state.APPROVAL_PENDING},
        {"approval_status": bill.approval_status, "reason": reason},
    )
    return bill


def approve_bill(business_id: int, actor_user_id: int, bill_id: int) -> Bill:
    return _decide_approval(business_id, actor_user_id, bill_id, True, None)


def reject_bill(business_id: int, actor_user_id: int, bill_id: int, reason: str | None = None) -> Bill:
    return _decide_approval(business_id, actor_user_id, bill_id, False, reason)


def submit_for_approval(business_id: int, actor_user_id: int | None, bill_id: int) -> Bill:
    """
    Publish a DRAFT bill to PENDING and queue it for approval.

    Publishing books the bill onto the customer's aggregates the same way
    update_bill does. Non-DRAFT bills are rejected with INVALID_TRANSITION.
    """
    def _op():
        with unit_of_work() as session:
            bill = lock_for_update(
                session.query(Bill).filter_by(id=bill_id, business_id=business_id)
            ).first()
            if not bill:
                raise NotFoundError(f"Bill {bill_id} not found")
            if bill.status != ledger_state.BILL_STATUS_DRAFT:
                raise BusinessRuleError(
                    "Only draft bills can be submitted for approval",
                    code="INVALID_TRANSITION",
                    details={"from": bill.status, "to": ledger_state.BILL_STATUS_PENDING},
                )

            before = {"status": bill.status, "approval_status": bill.approval_status}
            ledger_state.transition_status(bill, ledger_state.BILL_STATUS_PENDING)
            bill.requires_approval = True
            bill.approval_status = ledger_state.APPROVAL_PENDING
            book_status_change(session, bill, before["status"])
        return bill, before

    bill, before = run_with_retry(_op)
    current_app.logger.info("Bill %s submitted for approval by user %s", bill.id, actor_user_id)
    audit_service.log_bill_action(
        "SUBMIT",
        business_id,
        actor_user_id,
        bill.id,
        before,
        {"status": bill.status, "approval_status": bill.approval_status},
    )
    return bill


def list_pending_approval(business_id: int, page: int = 1, limit: int = 20) -> dict:
    """Bills waiting on an approval decision, oldest submission first."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    query = db.session.query(Bill).filter(
        Bill.business_id == business_id,
        Bill.requires_approval.is_(True),
        Bill.approval_status == ledger_state.APPROVAL_PENDING,
    )
    total = query.count()
    bills = (
        query.order_by(Bill.created_at.asc(), Bill.id.asc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )
    return {
        "bills": [b.to_dict() for b in bills],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def bulk_approve_bills(business_id: int, actor_user_id: int, bill_ids: list[int]) -> dict:
    """
    Approve each bill in its own transaction.

    One bill failing does not stop the rest.

    Returns:
        {"approved": [bill_id, ...], "failed": [{"bill_id", "error"}, ...]}
    """
    if not bill_ids:
        raise ValidationError("bill_ids cannot be empty")

    approved, failed = [], []
    for bill_id in bill_ids:
        try:
            approve_bill(business_id, actor_user_id, bill_id)
        except BillingError as exc:
            current_app.logger.warning("Bulk approval skipped bill %s: %s", bill_id, exc.message)
            failed.append({"bill_id": bill_id, "error": exc.to_dict()})
        else:
            approved.append(bill_id)
    return {"approved": approved, "failed": failed}


def get_approval_history(business_id: int, bill_id: int) -> list[dict]:
    """Submit/approve/reject entries for a bill, read back from the audit log."""
    if not db.session.query(Bill.id).filter_by(id=bill_id, business_id=business_id).first():
        raise NotFoundError(f"Bill {bill_id} not found")
    return [
        entry.to_dict()
        for entry in audit_service.get_entity_history("bill", bill_id)
        if entry.action in APPROVAL_AUDIT_ACTIONS
    ]


def mark_overdue_bills(business_id: int, as_of=None) -> int:
    """
    Flag PENDING/PARTIAL bills whose due date has passed with a balance.

    Returns the number of bills marked OVERDUE.
    """
    as_of = parse_datetime_field(as_of, "as_of") or utcnow()

    def _op():
        with unit_of_work() as session:
            candidates = lock_for_update(
                session.query(Bill).filter(
                    Bill.business_id == business_id,
                    Bill.status.in_([ledger_state.BILL_STATUS_PENDING, ledger_state.BILL_STATUS_PARTIAL]),
                    Bill.balance_cents > 0,
                    Bill.due_date.isnot(None),
                    Bill.due_date < as_of,
                )
            ).all()
            marked = 0
            for bill in candidates:
                if ledger_state.is_overdue(bill, as_of):
                    bill.status = ledger_state.BILL_STATUS_OVERDUE
                    marked += 1
        return marked

    marked = run_with_retry(_op)
    if marked:
        current_app.logger.info("Marked %s bill(s) overdue for business %s", marked, business_id)
    return marked


def find_invariant_violations(business_id: int) -> list[dict]:
    """Sweep every bill and payment of a business and report ledger invariant breaks."""
    violations = []
    for bill in db.session.query(Bill).filter_by(business_id=business_id).order_by(Bill.id).all():
        try:
            ledger_state.check_bill_invariants(bill)
        except InvariantViolationError as exc:
            violations.append({"entity": "bill", "id": bill.id, **exc.to_dict()})
    for payment in db.session.query(Payment).filter_by(business_id=business_id).order_by(Payment.id).all():
        try:
            ledger_state.check_payment_invariants(payment)
        except InvariantViolationError as exc:
            violations.append({"entity": "payment", "id": payment.id, **exc.to_dict()})
    return violations
