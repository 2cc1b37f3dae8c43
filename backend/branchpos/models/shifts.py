from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Shift(db.Model):
    """
    Cashier shift at a branch. Open while end_time is NULL; one open shift per user.

    total_sales_cents accumulates totals of transactions the cashier
    completes at the shift's branch while it is open.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index("ix_shifts_user_end", "user_id", "end_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_cash_cents = db.Column(db.Integer, nullable=False)
    closing_cash_cents = db.Column(db.Integer, nullable=True)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "opening_cash_cents": self.opening_cash_cents,
            "closing_cash_cents": self.closing_cash_cents,
            "total_sales_cents": self.total_sales_cents,
            "notes": self.notes,
            "is_open": self.is_open,
        }
