from __future__ import annotations

from ..extensions import db
from billing.money import format_cents
from billing.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data referenced by bills and payments.

    Owned by the customer subsystem; the billing engine only reads it and
    keeps the denormalized balance aggregates in step with bills/payments.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_business_active", "business_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Denormalized aggregates (updated when bills are issued and payments recorded)
    total_billed_cents = db.Column(db.Integer, nullable=False, default=0)
    total_payments_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    business = db.relationship("Business", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "total_billed": format_cents(self.total_billed_cents),
            "total_payments": format_cents(self.total_payments_cents),
            "outstanding_balance": format_cents(self.outstanding_balance_cents),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerPurchasePattern(db.Model):
    """
    Rolling per-customer/per-product purchase statistics.

    One row per (customer, product); refreshed after each billable bill.
    """
    __tablename__ = "customer_purchase_patterns"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_purchase_patterns_customer_product"),
        db.Index("ix_purchase_patterns_last_purchase", "last_purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    purchase_count = db.Column(db.Integer, nullable=False, default=1)
    first_purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)
    avg_purchase_interval_days = db.Column(db.Integer, nullable=True)

    avg_quantity = db.Column(db.Numeric(10, 2), nullable=True)
    avg_price_cents = db.Column(db.Integer, nullable=True)
    last_price_cents = db.Column(db.Integer, nullable=True)

    predicted_next_purchase = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "purchase_count": self.purchase_count,
            "first_purchase_date": to_utc_z(self.first_purchase_date),
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "avg_purchase_interval_days": self.avg_purchase_interval_days,
            "avg_quantity": str(self.avg_quantity) if self.avg_quantity is not None else None,
            "avg_price": format_cents(self.avg_price_cents),
            "last_price": format_cents(self.last_price_cents),
            "predicted_next_purchase": to_utc_z(self.predicted_next_purchase),
        }
