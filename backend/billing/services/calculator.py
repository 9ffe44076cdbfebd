# Overview: Pure line-item and bill-total arithmetic; no I/O, no session.

"""
Billing Calculator

WHY: Totals must be reproducible from the raw inputs alone. Everything in
this module is a pure function of its arguments.

ROUNDING:
- Intermediate arithmetic is exact Decimal over cents (no mid-way rounding)
- Gross, discount and tax are each rounded half-up to whole cents at output
- subtotal = gross - discount and total = subtotal + tax are then exact
  integer sums, so the bill-level identity holds to the cent
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..errors import ValidationError
from ..money import HUNDRED, round_cents, to_decimal


@dataclass(frozen=True)
class LineItemResult:
    gross_cents: int
    discount_cents: int
    subtotal_cents: int
    tax_cents: int
    total_cents: int


@dataclass(frozen=True)
class BillTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    shipping_cents: int
    adjustment_cents: int
    round_off_cents: int
    total_cents: int

    @property
    def balance_cents(self) -> int:
        return self.total_cents

    @property
    def paid_cents(self) -> int:
        return 0


def _has_percent(value) -> bool:
    return value is not None and to_decimal(value, "percent") > 0


def calculate_line(
    *,
    rate_cents: int,
    quantity,
    discount_percent=None,
    discount_cents: int | None = None,
    tax_percent=None,
    tax_cents: int | None = None,
) -> LineItemResult:
    """
    Compute one line's amounts.

    A positive discount_percent wins over discount_cents; a positive
    tax_percent wins over tax_cents. Tax percent applies to the
    post-discount amount.
    """
    gross = Decimal(rate_cents) * to_decimal(quantity, "quantity")

    if _has_percent(discount_percent):
        discount = gross * to_decimal(discount_percent, "discount_percent") / HUNDRED
    else:
        discount = Decimal(discount_cents or 0)

    if discount > gross:
        raise ValidationError(
            "Discount cannot exceed the line amount",
            details={"gross_cents": round_cents(gross), "discount_cents": round_cents(discount)},
        )

    taxable = gross - discount
    if _has_percent(tax_percent):
        tax = taxable * to_decimal(tax_percent, "tax_percent") / HUNDRED
    else:
        tax = Decimal(tax_cents or 0)

    gross_out = round_cents(gross)
    discount_out = round_cents(discount)
    tax_out = round_cents(tax)
    subtotal_out = gross_out - discount_out

    return LineItemResult(
        gross_cents=gross_out,
        discount_cents=discount_out,
        subtotal_cents=subtotal_out,
        tax_cents=tax_out,
        total_cents=subtotal_out + tax_out,
    )


def compute_total(
    *,
    subtotal_cents: int,
    discount_cents: int,
    tax_cents: int,
    shipping_cents: int = 0,
    adjustment_cents: int = 0,
    round_off_cents: int = 0,
) -> int:
    return subtotal_cents - discount_cents + tax_cents + shipping_cents + adjustment_cents + round_off_cents


def aggregate_bill(
    lines: list[LineItemResult],
    *,
    subtotal_override: int | None = None,
    discount_override: int | None = None,
    tax_override: int | None = None,
    shipping_cents: int = 0,
    adjustment_cents: int = 0,
    round_off_cents: int = 0,
) -> BillTotals:
    """
    Roll line results up to bill totals.

    An override, when given, replaces that field's line sum entirely.
    Bill subtotal is the pre-discount gross, so
    total = subtotal - discount + tax + shipping + adjustment + round_off.
    """
    subtotal = sum(line.gross_cents for line in lines) if subtotal_override is None else subtotal_override
    discount = sum(line.discount_cents for line in lines) if discount_override is None else discount_override
    tax = sum(line.tax_cents for line in lines) if tax_override is None else tax_override

    total = compute_total(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        shipping_cents=shipping_cents,
        adjustment_cents=adjustment_cents,
        round_off_cents=round_off_cents,
    )
    if total < 0:
        raise ValidationError("Bill total cannot be negative", details={"total_cents": total})

    return BillTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        shipping_cents=shipping_cents,
        adjustment_cents=adjustment_cents,
        round_off_cents=round_off_cents,
        total_cents=total,
    )
