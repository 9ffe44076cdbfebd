# Overview: Pytest coverage for bill creation, queries and lifecycle operations.

"""
Bill Service Tests

Covers:
- Totals and ledger identity at creation
- Stock decrements for billable bills only
- Item snapshots and validation
- Customer aggregates, approval flow, metadata edits
- Listing with explicit sort keys, overdue marking
"""

from datetime import datetime
from decimal import Decimal

import pytest

from billing.errors import BusinessRuleError, NotFoundError, ValidationError
from billing.models import AuditLog, Bill, BillItem, InventoryMovement, Product
from billing.services import billing_service, payment_service


def _bill_input(product, service_product, status="PENDING", **extra):
    data = {
        "bill_date": datetime(2025, 1, 10),
        "status": status,
        "shipping_cents": 100,
        "items": [
            {"product_id": product.id, "quantity": 3, "rate_cents": 1000, "discount_percent": 10, "tax_percent": 18},
            {"product_id": service_product.id, "quantity": 1, "rate_cents": 500},
        ],
    }
    data.update(extra)
    return data


class TestCreateBill:

    def test_totals_and_ledger_identity(self, db_session, business, product, service_product):
        bill = billing_service.create_bill(business.id, 7, _bill_input(product, service_product))

        assert bill.subtotal_cents == 3500
        assert bill.discount_cents == 300
        assert bill.tax_cents == 486
        assert bill.shipping_cents == 100
        assert bill.total_cents == 3500 - 300 + 486 + 100
        assert bill.paid_cents == 0
        assert bill.balance_cents == bill.total_cents
        assert bill.status == "PENDING"
        assert bill.payment_status == "PENDING"
        assert bill.approval_status == "NOT_REQUIRED"
        assert bill.bill_number.startswith("INV-")
        assert bill.bill_number.endswith("-00001")
        assert bill.created_by_user_id == 7

        data = bill.to_dict()
        assert data["total_amount"] == "37.86"
        assert data["balance_amount"] == "37.86"

    def test_items_snapshot_product_details(self, db_session, business, product, service_product):
        bill = billing_service.create_bill(business.id, 1, _bill_input(product, service_product))
        items = db_session.query(BillItem).filter_by(bill_id=bill.id).order_by(BillItem.sort_order).all()

        assert [i.product_name for i in items] == ["Basmati Rice 5kg", "Home Delivery"]
        assert items[0].unit == "BAG"
        assert items[0].product_code == "SKU-001"
        assert items[0].subtotal_cents == 2700
        assert items[0].total_cents == 3186

    def test_free_text_item_defaults(self, db_session, business):
        bill = billing_service.create_bill(business.id, 1, {"items": [{"quantity": 2, "rate_cents": 250}]})
        item = bill.items[0]

        assert item.product_name == "Unknown Item"
        assert item.unit == "PIECE"
        assert bill.status == "DRAFT"
        assert bill.total_cents == 500

    def test_sequential_bill_numbers(self, db_session, business, make_bill):
        first = make_bill(1000)
        second = make_bill(2000)

        assert int(first.bill_number.rsplit("-", 1)[1]) + 1 == int(second.bill_number.rsplit("-", 1)[1])

    def test_pending_bill_decrements_stock(self, db_session, business, product, service_product):
        bill = billing_service.create_bill(business.id, 1, _bill_input(product, service_product))

        refreshed = db_session.get(Product, product.id)
        assert refreshed.current_stock == Decimal("7")

        movements = db_session.query(InventoryMovement).filter_by(bill_id=bill.id).all()
        assert len(movements) == 1
        assert movements[0].product_id == product.id
        assert movements[0].quantity_delta == Decimal("-3")
        assert movements[0].stock_after == Decimal("7")

    def test_draft_bill_leaves_stock(self, db_session, business, product, service_product):
        billing_service.create_bill(business.id, 1, _bill_input(product, service_product, status="DRAFT"))

        assert db_session.get(Product, product.id).current_stock == Decimal("10")
        assert db_session.query(InventoryMovement).count() == 0

    def test_unknown_product_writes_nothing(self, db_session, business, product):
        bill_input = {
            "status": "PENDING",
            "items": [
                {"product_id": product.id, "quantity": 1, "rate_cents": 1000},
                {"product_id": 99999, "quantity": 1, "rate_cents": 1000},
            ],
        }
        with pytest.raises(NotFoundError):
            billing_service.create_bill(business.id, 1, bill_input)

        assert db_session.query(Bill).count() == 0
        assert db_session.get(Product, product.id).current_stock == Decimal("10")

    def test_product_of_other_business_not_found(self, db_session, business, other_business, product):
        with pytest.raises(NotFoundError):
            billing_service.create_bill(
                other_business.id, 1, {"items": [{"product_id": product.id, "quantity": 1, "rate_cents": 100}]}
            )

    def test_unknown_customer_not_found(self, db_session, business):
        with pytest.raises(NotFoundError):
            billing_service.create_bill(
                business.id, 1, {"customer_id": 424242, "items": [{"quantity": 1, "rate_cents": 100}]}
            )

    @pytest.mark.parametrize("bill_input", [
        {"items": []},
        {"items": [{"quantity": 0, "rate_cents": 100}]},
        {"items": [{"quantity": -1, "rate_cents": 100}]},
        {"items": [{"quantity": 1}]},
        {"items": [{"quantity": 1, "rate_cents": -5}]},
        {"items": [{"quantity": 1, "rate_cents": 100, "discount_percent": 150}]},
        {"items": [{"quantity": 1, "rate_cents": 100, "tax_percent": -1}]},
        {"items": [{"quantity": 1, "rate_cents": 100}], "status": "PAID"},
        {"items": [{"quantity": 1, "rate_cents": 100}], "recurring_frequency": "HOURLY"},
    ])
    def test_invalid_input_rejected(self, db_session, business, bill_input):
        with pytest.raises(ValidationError):
            billing_service.create_bill(business.id, 1, bill_input)
        assert db_session.query(Bill).count() == 0

    @pytest.mark.parametrize("field, value", [
        ("bill_date", "not-a-date"),
        ("bill_date", "2025-02-30"),
        ("due_date", "tomorrow"),
        ("due_date", 20250131),
    ])
    def test_bad_dates_rejected(self, db_session, business, field, value):
        bill_input = {"items": [{"quantity": 1, "rate_cents": 100}], field: value}

        with pytest.raises(ValidationError) as exc:
            billing_service.create_bill(business.id, 1, bill_input)

        assert exc.value.details["field"] == field
        assert db_session.query(Bill).count() == 0

    def test_customer_aggregates(self, db_session, business, customer, make_bill):
        bill = make_bill(5000, customer_id=customer.id)
        make_bill(700, customer_id=customer.id, status="DRAFT")

        db_session.refresh(customer)
        assert customer.total_billed_cents == bill.total_cents
        assert customer.outstanding_balance_cents == bill.total_cents

    def test_creation_is_audited(self, db_session, business, make_bill):
        bill = make_bill(1000)

        entries = db_session.query(AuditLog).filter_by(entity_type="bill", entity_id=bill.id).all()
        assert [e.action for e in entries] == ["BILL_CREATE"]
        assert entries[0].new_values["total_amount"] == "10.00"


class TestQueries:

    def test_get_bill_includes_items_and_payments(self, db_session, business, make_bill):
        bill = make_bill(3000)
        payment_service.record_payment(business.id, 1, bill.id, 1000, "CASH")

        data = billing_service.get_bill(business.id, bill.id)

        assert data["bill_number"] == bill.bill_number
        assert len(data["items"]) == 1
        assert len(data["payments"]) == 1
        assert data["payments"][0]["amount"] == "10.00"
        assert data["payments"][0]["allocation"]["bill_balance_after"] == "20.00"

    def test_get_bill_is_business_scoped(self, db_session, business, other_business, make_bill):
        bill = make_bill(3000)
        with pytest.raises(NotFoundError):
            billing_service.get_bill(other_business.id, bill.id)

    def test_list_sorted_by_explicit_key(self, db_session, business, make_bill):
        make_bill(3000)
        make_bill(1000)
        make_bill(2000)

        result = billing_service.list_bills(business.id, sort_by="total_amount", sort_order="asc")

        assert [b["total_amount"] for b in result["bills"]] == ["10.00", "20.00", "30.00"]
        assert result["pagination"]["total"] == 3

    def test_list_rejects_unknown_sort_key(self, db_session, business):
        with pytest.raises(ValidationError):
            billing_service.list_bills(business.id, sort_by="total_cents; DROP TABLE bills")

    def test_list_rejects_bad_date_filter(self, db_session, business):
        with pytest.raises(ValidationError) as exc:
            billing_service.list_bills(business.id, start_date="last week")
        assert exc.value.details["field"] == "start_date"

    def test_list_filters_and_pagination(self, db_session, business, customer, make_bill):
        make_bill(1000, customer_id=customer.id)
        make_bill(2000, customer_id=customer.id)
        make_bill(3000)
        draft = make_bill(4000, status="DRAFT")

        by_customer = billing_service.list_bills(business.id, customer_id=customer.id)
        assert by_customer["pagination"]["total"] == 2

        drafts = billing_service.list_bills(business.id, status="DRAFT")
        assert [b["id"] for b in drafts["bills"]] == [draft.id]

        page = billing_service.list_bills(business.id, limit=3, page=2)
        assert len(page["bills"]) == 1
        assert page["pagination"]["total_pages"] == 2

        in_range = billing_service.list_bills(business.id, min_amount_cents=1500, max_amount_cents=3500)
        assert in_range["pagination"]["total"] == 2


class TestLifecycle:

    def test_update_metadata(self, db_session, business, make_bill):
        bill = make_bill(1000)
        updated = billing_service.update_bill(business.id, 1, bill.id, {"notes": "Deliver after 5pm"})

        assert updated.notes == "Deliver after 5pm"
        assert updated.total_cents == 1000

    def test_update_rejects_amount_fields(self, db_session, business, make_bill):
        bill = make_bill(1000)
        with pytest.raises(ValidationError):
            billing_service.update_bill(business.id, 1, bill.id, {"total_cents": 1})

    def test_update_audit_covers_every_editable_field(self, db_session, business, make_bill):
        bill = make_bill(1000, billing_address={"line1": "12 Old Road"}, due_date=datetime(2025, 1, 31))

        billing_service.update_bill(business.id, 3, bill.id, {
            "due_date": "2025-02-28",
            "billing_address": {"line1": "7 New Street"},
            "shipping_address": {"line1": "Warehouse 4"},
        })

        entry = db_session.query(AuditLog).filter_by(action="BILL_UPDATE", entity_id=bill.id).one()
        assert set(billing_service.EDITABLE_FIELDS) <= set(entry.old_values)
        assert entry.old_values["due_date"] == "2025-01-31T00:00:00Z"
        assert entry.new_values["due_date"] == "2025-02-28T00:00:00Z"
        assert entry.old_values["billing_address"] == {"line1": "12 Old Road"}
        assert entry.new_values["billing_address"] == {"line1": "7 New Street"}
        assert entry.old_values["shipping_address"] is None
        assert entry.new_values["shipping_address"] == {"line1": "Warehouse 4"}

    def test_update_rejects_bad_due_date(self, db_session, business, make_bill):
        bill = make_bill(1000, due_date=datetime(2025, 1, 31))

        with pytest.raises(ValidationError) as exc:
            billing_service.update_bill(business.id, 1, bill.id, {"due_date": "end of month"})

        assert exc.value.details["field"] == "due_date"
        assert db_session.get(Bill, bill.id).due_date == datetime(2025, 1, 31)

    def test_publish_draft_updates_customer_but_not_stock(self, db_session, business, customer, product):
        bill = billing_service.create_bill(business.id, 1, {
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 2, "rate_cents": 1000}],
        })
        db_session.refresh(customer)
        assert customer.outstanding_balance_cents == 0

        billing_service.update_bill(business.id, 1, bill.id, {"status": "PENDING"})

        db_session.refresh(customer)
        assert customer.outstanding_balance_cents == 2000
        assert db_session.get(Product, product.id).current_stock == Decimal("10")

    def test_cancel_unpaid_bill(self, db_session, business, customer, make_bill):
        bill = make_bill(1000, customer_id=customer.id)
        billing_service.update_bill(business.id, 1, bill.id, {"status": "CANCELLED"})

        db_session.refresh(customer)
        assert db_session.get(Bill, bill.id).status == "CANCELLED"
        assert customer.outstanding_balance_cents == 0

    def test_cannot_cancel_partially_paid_bill(self, db_session, business, make_bill):
        bill = make_bill(1000)
        payment_service.record_payment(business.id, 1, bill.id, 400, "CASH")

        with pytest.raises(BusinessRuleError):
            billing_service.update_bill(business.id, 1, bill.id, {"status": "CANCELLED"})
        assert db_session.get(Bill, bill.id).status == "PARTIAL"

    def test_approval_flow(self, db_session, business, make_bill):
        bill = make_bill(1000, requires_approval=True)
        assert bill.approval_status == "PENDING"

        approved = billing_service.approve_bill(business.id, 42, bill.id)
        assert approved.approval_status == "APPROVED"
        assert approved.approved_by_user_id == 42
        assert approved.approved_at is not None

        with pytest.raises(BusinessRuleError):
            billing_service.reject_bill(business.id, 42, bill.id, "late")

    def test_reject_records_reason(self, db_session, business, make_bill):
        bill = make_bill(1000, requires_approval=True)
        rejected = billing_service.reject_bill(business.id, 9, bill.id, "Wrong customer")

        assert rejected.approval_status == "REJECTED"
        assert rejected.rejected_by_user_id == 9
        assert rejected.rejection_reason == "Wrong customer"

    def test_approval_not_required(self, db_session, business, make_bill):
        bill = make_bill(1000)
        with pytest.raises(BusinessRuleError):
            billing_service.approve_bill(business.id, 1, bill.id)

    def test_submit_draft_for_approval(self, db_session, business, customer, make_bill):
        bill = make_bill(1500, customer_id=customer.id, status="DRAFT")

        submitted = billing_service.submit_for_approval(business.id, 7, bill.id)

        assert submitted.status == "PENDING"
        assert submitted.requires_approval is True
        assert submitted.approval_status == "PENDING"
        db_session.refresh(customer)
        assert customer.total_billed_cents == 1500
        assert customer.outstanding_balance_cents == 1500

    def test_only_drafts_can_be_submitted(self, db_session, business, make_bill):
        bill = make_bill(1500)

        with pytest.raises(BusinessRuleError) as exc:
            billing_service.submit_for_approval(business.id, 7, bill.id)

        assert exc.value.code == "INVALID_TRANSITION"
        assert db_session.get(Bill, bill.id).approval_status == "NOT_REQUIRED"

    def test_pending_approval_queue(self, db_session, business, other_business, make_bill):
        first = make_bill(1000, requires_approval=True)
        make_bill(2000)
        draft = make_bill(3000, status="DRAFT")
        billing_service.submit_for_approval(business.id, 1, draft.id)
        decided = make_bill(4000, requires_approval=True)
        billing_service.approve_bill(business.id, 1, decided.id)

        result = billing_service.list_pending_approval(business.id)

        assert [b["id"] for b in result["bills"]] == [first.id, draft.id]
        assert result["pagination"]["total"] == 2
        assert billing_service.list_pending_approval(other_business.id)["bills"] == []

    def test_bulk_approve_reports_each_bill(self, db_session, business, make_bill):
        a = make_bill(1000, requires_approval=True)
        b = make_bill(2000, requires_approval=True)
        not_queued = make_bill(3000)

        result = billing_service.bulk_approve_bills(business.id, 42, [a.id, not_queued.id, b.id, 999999])

        assert result["approved"] == [a.id, b.id]
        assert [f["bill_id"] for f in result["failed"]] == [not_queued.id, 999999]
        assert result["failed"][0]["error"]["code"] == "INVALID_TRANSITION"
        assert result["failed"][1]["error"]["code"] == "NOT_FOUND"
        assert db_session.get(Bill, a.id).approval_status == "APPROVED"
        assert db_session.get(Bill, b.id).approved_by_user_id == 42

    def test_bulk_approve_requires_ids(self, db_session, business):
        with pytest.raises(ValidationError):
            billing_service.bulk_approve_bills(business.id, 1, [])

    def test_approval_history_from_audit_log(self, db_session, business, make_bill):
        bill = make_bill(1000, status="DRAFT")
        billing_service.submit_for_approval(business.id, 3, bill.id)
        billing_service.update_bill(business.id, 3, bill.id, {"notes": "Checked"})
        billing_service.reject_bill(business.id, 4, bill.id, "Wrong rate")

        history = billing_service.get_approval_history(business.id, bill.id)

        assert [h["action"] for h in history] == ["BILL_SUBMIT", "BILL_REJECT"]
        assert history[0]["new_values"] == {"status": "PENDING", "approval_status": "PENDING"}
        assert history[1]["new_values"]["reason"] == "Wrong rate"

    def test_approval_history_is_business_scoped(self, db_session, business, other_business, make_bill):
        bill = make_bill(1000, requires_approval=True)
        with pytest.raises(NotFoundError):
            billing_service.get_approval_history(other_business.id, bill.id)

    def test_mark_overdue(self, db_session, business, make_bill):
        late = make_bill(1000, due_date=datetime(2025, 1, 31))
        on_time = make_bill(1000, due_date=datetime(2025, 3, 1))
        draft = make_bill(1000, status="DRAFT", due_date=datetime(2025, 1, 31))

        marked = billing_service.mark_overdue_bills(business.id, as_of=datetime(2025, 2, 15))

        assert marked == 1
        assert db_session.get(Bill, late.id).status == "OVERDUE"
        assert db_session.get(Bill, on_time.id).status == "PENDING"
        assert db_session.get(Bill, draft.id).status == "DRAFT"

    def test_mark_overdue_rejects_bad_as_of(self, db_session, business):
        with pytest.raises(ValidationError) as exc:
            billing_service.mark_overdue_bills(business.id, as_of="yesterday")
        assert exc.value.details["field"] == "as_of"

    def test_payment_moves_overdue_bill_to_partial(self, db_session, business, make_bill):
        bill = make_bill(1000, due_date=datetime(2025, 1, 31))
        billing_service.mark_overdue_bills(business.id, as_of="2025-02-15")

        result = payment_service.record_payment(business.id, 1, bill.id, 300, "UPI")

        assert result["new_status"] == "PARTIAL"

    def test_invariant_sweep_clean(self, db_session, business, customer, make_bill):
        make_bill(1000, customer_id=customer.id)
        payment_service.record_bulk_payment(business.id, 1, customer.id, 1500, "CASH")

        assert billing_service.find_invariant_violations(business.id) == []

    def test_invariant_sweep_reports_tampering(self, db_session, business, make_bill):
        bill = make_bill(1000)
        db_session.query(Bill).filter_by(id=bill.id).update({"total_cents": 999}, synchronize_session=False)
        db_session.commit()

        violations = billing_service.find_invariant_violations(business.id)
        assert [(v["entity"], v["id"]) for v in violations] == [("bill", bill.id)]
