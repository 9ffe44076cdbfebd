from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_utc_z


class Business(db.Model):
    """
    Retail business (tenant root).

    MULTI-TENANT: Every bill, payment, customer, product and sequence is
    scoped to exactly one business via business_id.
    """
    __tablename__ = "businesses"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_businesses_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Business id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
