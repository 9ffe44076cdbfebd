# Overview: Pytest coverage for line-item and bill-total arithmetic.

from decimal import Decimal

import pytest

from billing.errors import ValidationError
from billing.services.calculator import aggregate_bill, calculate_line


class TestCalculateLine:

    def test_percent_discount_and_tax(self):
        """Tax percent applies to the post-discount amount."""
        line = calculate_line(rate_cents=1000, quantity=3, discount_percent=10, tax_percent=18)

        assert line.gross_cents == 3000
        assert line.discount_cents == 300
        assert line.subtotal_cents == 2700
        assert line.tax_cents == 486
        assert line.total_cents == 3186

    def test_fractional_quantity_rounds_half_up(self):
        line = calculate_line(
            rate_cents=333,
            quantity=Decimal("1.5"),
            discount_percent=Decimal("10"),
            tax_percent=Decimal("5"),
        )

        assert line.gross_cents == 500  # 499.5
        assert line.discount_cents == 50  # 49.95
        assert line.subtotal_cents == 450
        assert line.tax_cents == 22  # 22.4775
        assert line.total_cents == 472

    def test_percent_wins_over_flat_amount(self):
        line = calculate_line(rate_cents=1000, quantity=3, discount_percent=10, discount_cents=999)
        assert line.discount_cents == 300

    def test_zero_percent_falls_back_to_flat_amount(self):
        line = calculate_line(rate_cents=1000, quantity=1, discount_percent=0, discount_cents=100, tax_cents=45)

        assert line.discount_cents == 100
        assert line.tax_cents == 45
        assert line.total_cents == 945

    def test_discount_larger_than_line_rejected(self):
        with pytest.raises(ValidationError):
            calculate_line(rate_cents=1000, quantity=3, discount_cents=5000)

    def test_same_inputs_same_outputs(self):
        kwargs = dict(rate_cents=1999, quantity="2.25", discount_percent="7.5", tax_percent="12")
        assert calculate_line(**kwargs) == calculate_line(**kwargs)


class TestAggregateBill:

    def _lines(self):
        return [
            calculate_line(rate_cents=1000, quantity=3, discount_percent=10, tax_percent=18),
            calculate_line(rate_cents=500, quantity=2),
        ]

    def test_sums_lines_and_bill_level_charges(self):
        totals = aggregate_bill(
            self._lines(),
            shipping_cents=100,
            adjustment_cents=-50,
            round_off_cents=-36,
        )

        assert totals.subtotal_cents == 4000
        assert totals.discount_cents == 300
        assert totals.tax_cents == 486
        assert totals.total_cents == 4000 - 300 + 486 + 100 - 50 - 36
        assert totals.balance_cents == totals.total_cents
        assert totals.paid_cents == 0

    def test_override_replaces_line_sum(self):
        totals = aggregate_bill(self._lines(), discount_override=0, tax_override=1000)

        assert totals.discount_cents == 0
        assert totals.tax_cents == 1000
        assert totals.total_cents == 5000

    def test_subtotal_override(self):
        totals = aggregate_bill(self._lines(), subtotal_override=10000)
        assert totals.total_cents == 10000 - 300 + 486

    def test_negative_total_rejected(self):
        with pytest.raises(ValidationError):
            aggregate_bill(self._lines(), adjustment_cents=-100000)
