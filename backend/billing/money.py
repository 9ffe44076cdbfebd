# Overview: Minor-unit money helpers; cents in storage, decimal strings at the boundary.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError, InvalidAmountError

CENT = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value, field: str = "value") -> Decimal:
    """Convert int/str/Decimal input to Decimal. Floats go through str()."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric", details={"field": field})
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise ValidationError(f"{field} must be numeric", details={"field": field})
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValidationError(f"{field} must be numeric", details={"field": field})

    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", details={"field": field})
    return result


def round_cents(value: Decimal) -> int:
    """Round a (possibly fractional) cent amount half-up to whole cents."""
    return int(value.quantize(CENT, rounding=ROUND_HALF_UP))


def require_cents(value, field: str, *, allow_negative: bool = False) -> int:
    """Validate an integer cent amount."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in cents", details={"field": field})
    if value < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    return value


def require_positive_cents(value, field: str = "amount_cents") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{field} must be an integer amount in cents", details={"field": field})
    if value <= 0:
        raise InvalidAmountError("Payment amount must be positive", details={"field": field})
    return value


def format_cents(cents: int | None) -> str | None:
    """Render cents as an exact two-decimal string: 12345 -> "123.45"."""
    if cents is None:
        return None
    return str((Decimal(cents) / HUNDRED).quantize(Decimal("0.01")))
