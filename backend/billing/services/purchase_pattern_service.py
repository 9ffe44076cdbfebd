# Overview: Service-layer operations for customer purchase patterns; best-effort statistics.

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Bill, BillItem, CustomerPurchasePattern
from ..money import round_cents
from .ledger_state import NON_BILLABLE_STATUSES


def _rolling_average(previous, count: int, value):
    """Average over count samples given the average of the first count-1."""
    if previous is None or count <= 1:
        return value
    return (Decimal(previous) * (count - 1) + Decimal(value)) / count


def _apply_purchase(pattern: CustomerPurchasePattern, item: BillItem, purchased_at) -> None:
    if pattern.purchase_count is None:
        pattern.purchase_count = 1
        pattern.first_purchase_date = purchased_at
        pattern.avg_quantity = Decimal(item.quantity)
        pattern.avg_price_cents = item.rate_cents
    else:
        count = pattern.purchase_count + 1
        interval_days = max((purchased_at - pattern.last_purchase_date).days, 0)
        pattern.avg_purchase_interval_days = int(round(
            _rolling_average(pattern.avg_purchase_interval_days, count - 1, interval_days)
        ))
        pattern.avg_quantity = _rolling_average(pattern.avg_quantity, count, item.quantity).quantize(Decimal("0.01"))
        pattern.avg_price_cents = round_cents(_rolling_average(pattern.avg_price_cents, count, item.rate_cents))
        pattern.purchase_count = count

    pattern.last_purchase_date = purchased_at
    pattern.last_price_cents = item.rate_cents
    if pattern.avg_purchase_interval_days:
        pattern.predicted_next_purchase = purchased_at + timedelta(days=pattern.avg_purchase_interval_days)


def record_bill_purchases(bill_id: int) -> int:
    """
    Fold a bill's product lines into the customer's purchase patterns.

    Skips walk-in bills and non-billable statuses. Returns the number of
    patterns touched; failures are logged and return 0.
    """
    try:
        bill = db.session.get(Bill, bill_id)
        if bill is None or bill.customer_id is None or bill.status in NON_BILLABLE_STATUSES:
            return 0

        touched = 0
        for item in bill.items:
            if item.product_id is None:
                continue
            pattern = (
                db.session.query(CustomerPurchasePattern)
                .filter_by(customer_id=bill.customer_id, product_id=item.product_id)
                .first()
            )
            if pattern is None:
                pattern = CustomerPurchasePattern(
                    business_id=bill.business_id,
                    customer_id=bill.customer_id,
                    product_id=item.product_id,
                )
                db.session.add(pattern)
            _apply_purchase(pattern, item, bill.bill_date)
            touched += 1

        db.session.commit()
        return touched
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update purchase patterns for bill %s", bill_id)
        return 0
