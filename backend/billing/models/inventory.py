from __future__ import annotations

from ..extensions import db
from billing.money import format_cents
from billing.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data as far as billing needs it.

    STOCK: current_stock is decremented atomically when a billable bill is
    created (see inventory_service). Services and products with
    track_quantity=False never move stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        # SKUs are unique within a business
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        db.Index("ix_products_business_name", "business_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="PIECE")

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)

    is_service = db.Column(db.Boolean, nullable=False, default=False)
    track_quantity = db.Column(db.Boolean, nullable=False, default=True)
    current_stock = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    business = db.relationship("Business", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} business_id={self.business_id}>"

    @property
    def moves_stock(self) -> bool:
        return not self.is_service and self.track_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "price": format_cents(self.price_cents),
            "is_service": self.is_service,
            "track_quantity": self.track_quantity,
            "current_stock": str(self.current_stock) if self.current_stock is not None else None,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only record of stock moved by billing.

    IMMUTABLE: one row per bill line that decremented stock.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=True, index=True)
    bill_item_id = db.Column(db.Integer, db.ForeignKey("bill_items.id"), nullable=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)  # SALE
    quantity_delta = db.Column(db.Numeric(10, 2), nullable=False)
    stock_after = db.Column(db.Numeric(10, 2), nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "bill_id": self.bill_id,
            "bill_item_id": self.bill_item_id,
            "movement_type": self.movement_type,
            "quantity_delta": str(self.quantity_delta),
            "stock_after": str(self.stock_after) if self.stock_after is not None else None,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
