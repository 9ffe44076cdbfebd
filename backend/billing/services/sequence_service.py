# Overview: Service-layer operations for document numbering; atomic per-business, per-year counters.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..models import DocumentSequence
from ..time_utils import utcnow

SEQUENCE_BILL = "BILL"
SEQUENCE_PAYMENT = "PAYMENT"

_PREFIX_CONFIG_KEYS = {
    SEQUENCE_BILL: ("BILL_NUMBER_PREFIX", "INV"),
    SEQUENCE_PAYMENT: ("PAYMENT_NUMBER_PREFIX", "PAY"),
}


def prefix_for(kind: str) -> str:
    if kind not in _PREFIX_CONFIG_KEYS:
        raise ValidationError(f"Unknown document kind: {kind}")
    key, default = _PREFIX_CONFIG_KEYS[kind]
    return current_app.config.get(key, default)


def format_document_number(prefix: str, year: int, number: int, pad: int = 5) -> str:
    return f"{prefix}-{year}-{number:0{pad}d}"


def next_number(session, *, business_id: int, kind: str, year: int | None = None) -> str:
    """
    Allocate the next document number for (business, kind, year).

    Runs inside the caller's transaction: the counter increment commits or
    rolls back together with the document insert. The row is bumped with a
    single UPDATE, so concurrent writers serialize on the counter row.
    A missing row is inserted inside a SAVEPOINT; losing that insert race
    falls back to the UPDATE.
    """
    if not business_id:
        raise ValidationError("business_id is required")
    prefix = prefix_for(kind)
    if year is None:
        year = utcnow().year
    pad = current_app.config.get("SEQUENCE_PAD", 5)

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == kind,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = session.execute(stmt)
    if not result.rowcount:
        try:
            with session.begin_nested():
                session.add(DocumentSequence(
                    business_id=business_id,
                    document_type=kind,
                    year=year,
                    next_number=2,
                ))
            return format_document_number(prefix, year, 1, pad)
        except IntegrityError:
            result = session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        session.query(DocumentSequence.next_number)
        .filter_by(business_id=business_id, document_type=kind, year=year)
        .scalar()
    )
    return format_document_number(prefix, year, current - 1, pad)
