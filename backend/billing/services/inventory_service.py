# Overview: Service-layer operations for inventory; stock decrements triggered by billing.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..errors import NotFoundError
from ..models import Product, InventoryMovement
from ..time_utils import utcnow
from .ledger_state import NON_BILLABLE_STATUSES

MOVEMENT_SALE = "SALE"


def load_bill_products(session, business_id: int, product_ids) -> dict[int, Product]:
    """
    Load every product referenced by a bill, scoped to the business.

    Raises NotFoundError (before any write) if one is missing.
    """
    wanted = {pid for pid in product_ids if pid is not None}
    if not wanted:
        return {}

    products = (
        session.query(Product)
        .filter(Product.business_id == business_id, Product.id.in_(wanted))
        .all()
    )
    found = {p.id: p for p in products}
    missing = sorted(wanted - set(found))
    if missing:
        raise NotFoundError(
            f"Product {missing[0]} not found",
            details={"product_ids": missing},
        )
    return found


def reserves_stock(bill_status: str) -> bool:
    return bill_status not in NON_BILLABLE_STATUSES


def apply_bill_stock(session, bill, items, products: dict[int, Product], actor_user_id: int | None = None) -> list[InventoryMovement]:
    """
    Decrement stock for a newly created bill.

    Only at creation and only for billable statuses. Each trackable,
    non-service product is decremented with a single in-place UPDATE in the
    caller's transaction. Stock sufficiency is not checked here.
    """
    if not reserves_stock(bill.status):
        return []

    movements = []
    for item in items:
        product = products.get(item.product_id) if item.product_id is not None else None
        if product is None or not product.moves_stock:
            continue

        quantity = Decimal(item.quantity)
        session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(
                current_stock=Product.current_stock - quantity,
                version_id=Product.version_id + 1,
            )
            .execution_options(synchronize_session="fetch")
        )
        stock_after = (
            session.query(Product.current_stock)
            .filter(Product.id == product.id)
            .scalar()
        )

        movement = InventoryMovement(
            business_id=bill.business_id,
            product_id=product.id,
            bill_id=bill.id,
            bill_item_id=item.id,
            movement_type=MOVEMENT_SALE,
            quantity_delta=-quantity,
            stock_after=stock_after,
            actor_user_id=actor_user_id,
            note=f"Bill {bill.bill_number}",
            occurred_at=utcnow(),
        )
        session.add(movement)
        movements.append(movement)

    session.flush()
    return movements
