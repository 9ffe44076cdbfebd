from __future__ import annotations

from ..extensions import db
from billing.money import format_cents
from billing.time_utils import to_utc_z


class Payment(db.Model):
    """
    Money received from a customer.

    DESIGN: Payments are not tied to a single bill. PaymentAllocation rows
    record which bills a payment settled:
    - Targeted payments allocate to one named bill (capped at its balance)
    - Bulk payments allocate FIFO across the customer's open bills

    INVARIANT: allocated_cents + unallocated_cents == amount_cents.
    Any unallocated remainder is customer credit.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("business_id", "payment_number", name="uq_payments_business_payment_number"),
        db.Index("ix_payments_business_customer", "business_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable number (e.g., "PAY-2026-00007")
    payment_number = db.Column(db.String(64), nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    allocated_cents = db.Column(db.Integer, nullable=False, default=0)
    unallocated_cents = db.Column(db.Integer, nullable=False, default=0)

    method = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    # Reference info (card auth code, cheque number, UPI ref, etc.)
    reference_number = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Payment id={self.id} number={self.payment_number!r} amount={self.amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "customer_id": self.customer_id,
            "payment_number": self.payment_number,
            "payment_date": to_utc_z(self.payment_date),
            "amount": format_cents(self.amount_cents),
            "allocated_amount": format_cents(self.allocated_cents),
            "unallocated_amount": format_cents(self.unallocated_cents),
            "method": self.method,
            "status": self.status,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PaymentAllocation(db.Model):
    """
    Portion of one payment applied to one bill.

    IMMUTABLE: Records are never updated or deleted. Balance before/after
    capture the bill's state at the instant of allocation; corrections need
    a new compensating row.
    """
    __tablename__ = "payment_allocations"
    __table_args__ = (
        db.UniqueConstraint("payment_id", "bill_id", name="uq_payment_allocations_payment_bill"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)

    allocated_cents = db.Column(db.Integer, nullable=False)
    bill_balance_before_cents = db.Column(db.Integer, nullable=False)
    bill_balance_after_cents = db.Column(db.Integer, nullable=False)

    # 1-based position within the payment (FIFO order for bulk payments)
    allocation_order = db.Column(db.Integer, nullable=False, default=1)
    allocated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payment = db.relationship(
        "Payment",
        backref=db.backref("allocations", lazy=True, order_by="PaymentAllocation.allocation_order"),
    )
    bill = db.relationship("Bill", backref=db.backref("allocations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "bill_id": self.bill_id,
            "allocated_amount": format_cents(self.allocated_cents),
            "bill_balance_before": format_cents(self.bill_balance_before_cents),
            "bill_balance_after": format_cents(self.bill_balance_after_cents),
            "allocation_order": self.allocation_order,
            "allocated_at": to_utc_z(self.allocated_at),
        }
