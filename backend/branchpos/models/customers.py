from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

MEMBERSHIP_TYPES = ("BASIC", "SILVER", "GOLD", "PLATINUM")


class Customer(db.Model):
    """
    Customer master data for loyalty and lifetime-value tracking.

    customer_code is generated at creation (prefix + epoch ms + random suffix)
    and is unique; concurrent creation retries on conflict.

    total_spent_cents only ever grows: it is bumped when a transaction for
    this customer is COMPLETED.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("customer_code", name="uq_customers_code"),
        db.Index("ix_customers_email", "email"),
        db.Index("ix_customers_phone", "phone"),
        db.CheckConstraint("loyalty_points >= 0", name="loyalty_points_non_negative"),
        db.CheckConstraint("total_spent_cents >= 0", name="total_spent_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_code = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.Text, nullable=True)

    membership_type = db.Column(db.String(16), nullable=False, default="BASIC")
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Customer id={self.id} code={self.customer_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_code": self.customer_code,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "membership_type": self.membership_type,
            "loyalty_points": self.loyalty_points,
            "total_spent_cents": self.total_spent_cents,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
