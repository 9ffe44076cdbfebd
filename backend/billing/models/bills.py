from __future__ import annotations

from ..extensions import db
from billing.money import format_cents
from billing.time_utils import to_utc_z


class Bill(db.Model):
    """
    Bill (invoice) document.

    MONEY: All amounts are integer cents; to_dict renders exact decimal strings.

    INVARIANTS:
    - total = subtotal - discount + tax + shipping + adjustment + round_off
    - paid + balance = total (within one cent), balance >= 0

    Created once by billing_service.create_bill; afterwards only the payment
    allocator touches paid/balance/status, and update_bill edits metadata.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.UniqueConstraint("business_id", "bill_number", name="uq_bills_business_bill_number"),
        # FIFO candidate scan: open bills per customer, oldest first
        db.Index("ix_bills_business_customer_date", "business_id", "customer_id", "bill_date"),
        db.Index("ix_bills_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable number (e.g., "INV-2026-00042")
    bill_number = db.Column(db.String(64), nullable=False)
    bill_type = db.Column(db.String(32), nullable=False, default="SALE")
    bill_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    # Lifecycle
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    approval_status = db.Column(db.String(16), nullable=False, default="NOT_REQUIRED", index=True)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False)

    # Amounts (cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    adjustment_cents = db.Column(db.Integer, nullable=False, default=0)  # signed
    round_off_cents = db.Column(db.Integer, nullable=False, default=0)  # signed
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0, index=True)

    payment_method = db.Column(db.String(32), nullable=True)

    billing_address = db.Column(db.JSON, nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)
    customer_notes = db.Column(db.Text, nullable=True)

    # Recurring flag only; scheduling happens elsewhere
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurring_frequency = db.Column(db.String(16), nullable=True)

    # Approval attribution
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    business = db.relationship("Business", backref=db.backref("bills", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("bills", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Bill id={self.id} number={self.bill_number!r} status={self.status} balance={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "customer_id": self.customer_id,
            "bill_number": self.bill_number,
            "bill_type": self.bill_type,
            "bill_date": to_utc_z(self.bill_date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "status": self.status,
            "payment_status": self.payment_status,
            "approval_status": self.approval_status,
            "requires_approval": self.requires_approval,
            "subtotal": format_cents(self.subtotal_cents),
            "discount_amount": format_cents(self.discount_cents),
            "tax_amount": format_cents(self.tax_cents),
            "shipping_cost": format_cents(self.shipping_cents),
            "adjustment_amount": format_cents(self.adjustment_cents),
            "round_off_amount": format_cents(self.round_off_cents),
            "total_amount": format_cents(self.total_cents),
            "paid_amount": format_cents(self.paid_cents),
            "balance_amount": format_cents(self.balance_cents),
            "payment_method": self.payment_method,
            "billing_address": self.billing_address,
            "shipping_address": self.shipping_address,
            "notes": self.notes,
            "terms": self.terms,
            "internal_notes": self.internal_notes,
            "customer_notes": self.customer_notes,
            "is_recurring": self.is_recurring,
            "recurring_frequency": self.recurring_frequency,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "rejection_reason": self.rejection_reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class BillItem(db.Model):
    """
    Snapshot of one billed line.

    WHY: Copies product name/unit/rate at billing time so historical bills
    stay stable when the product record changes later.
    """
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    variant_id = db.Column(db.Integer, nullable=True)

    item_type = db.Column(db.String(32), nullable=False, default="PRODUCT")
    product_name = db.Column(db.String(255), nullable=False)
    product_code = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    hsn_code = db.Column(db.String(50), nullable=True)
    sac_code = db.Column(db.String(50), nullable=True)

    unit = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)

    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_percent = db.Column(db.Numeric(5, 2), nullable=True)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)

    # subtotal is post-discount, pre-tax
    subtotal_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    bill = db.relationship(
        "Bill",
        backref=db.backref("items", lazy=True, order_by="BillItem.sort_order", cascade="all, delete-orphan"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "item_type": self.item_type,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "description": self.description,
            "hsn_code": self.hsn_code,
            "sac_code": self.sac_code,
            "unit": self.unit,
            "quantity": str(self.quantity),
            "rate": format_cents(self.rate_cents),
            "discount_percent": str(self.discount_percent) if self.discount_percent is not None else None,
            "discount_amount": format_cents(self.discount_cents),
            "tax_percent": str(self.tax_percent) if self.tax_percent is not None else None,
            "tax_amount": format_cents(self.tax_cents),
            "subtotal": format_cents(self.subtotal_cents),
            "total_amount": format_cents(self.total_cents),
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
        }
