from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TRANSFER, MOVEMENT_ADJUSTMENT)


class Stock(db.Model):
    """
    On-hand and reserved quantity for one (product, branch) pair.

    Invariants (enforced by the ledger's conditional updates AND by the
    check constraints below):
    - exactly one row per (product_id, branch_id)
    - quantity >= 0
    - 0 <= reserved_quantity <= quantity
    available = quantity - reserved_quantity

    Only services.stock_ledger writes quantity / reserved_quantity.
    Rows are created lazily by IN / ADJUSTMENT movements, never by sales.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_stock_product_branch"),
        db.CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        db.CheckConstraint("reserved_quantity >= 0", name="reserved_non_negative"),
        db.CheckConstraint("reserved_quantity <= quantity", name="reserved_within_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")
    branch = db.relationship("Branch")

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    def __repr__(self) -> str:
        return (
            f"<Stock product_id={self.product_id} branch_id={self.branch_id} "
            f"quantity={self.quantity} reserved={self.reserved_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "last_updated": to_utc_z(self.last_updated),
        }


class StockMovement(db.Model):
    """
    Append-only audit record of one physical stock change.

    quantity is the signed delta applied to on-hand: OUT legs (including the
    source leg of a TRANSFER) are negative, ADJUSTMENT records new - old.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
