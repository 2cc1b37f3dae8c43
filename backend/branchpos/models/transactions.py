from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
STATUS_HOLD = "HOLD"
TRANSACTION_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_HOLD)

PAYMENT_METHODS = ("CASH", "CARD", "QRIS", "BANK_TRANSFER", "E_WALLET")


class Transaction(db.Model):
    """
    Sale document.

    Totals reconcile exactly (integer cents):
        subtotal_cents = sum(item.total_cents) + sum(addon.total_price_cents)
        total_cents    = subtotal_cents - discount_cents + tax_cents

    Lifecycle: PENDING -> {COMPLETED, CANCELLED, HOLD}; HOLD -> {PENDING, CANCELLED}.
    A PENDING/HOLD transaction holds stock as reservations; COMPLETED turns
    them into OUT movements, CANCELLED releases them.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_transactions_number"),
        db.Index("ix_transactions_branch_created", "branch_id", "created_at"),
        db.Index("ix_transactions_status", "status"),
        db.CheckConstraint("total_cents >= 0", name="total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(100), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )
    payments = db.relationship(
        "TransactionPayment",
        backref="transaction",
        lazy=True,
        order_by="TransactionPayment.id",
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} number={self.transaction_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }


class TransactionItem(db.Model):
    """Line item; total_cents = quantity * unit_price_cents - discount_cents. Never updated."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")
    addons = db.relationship(
        "TransactionItemAddon",
        backref="transaction_item",
        lazy=True,
        order_by="TransactionItemAddon.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
        }


class TransactionItemAddon(db.Model):
    """Addon on a line item; unit_price_cents is the addon price at sale time."""
    __tablename__ = "transaction_item_addons"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_item_id = db.Column(
        db.Integer, db.ForeignKey("transaction_items.id"), nullable=False, index=True
    )
    addon_id = db.Column(db.Integer, db.ForeignKey("addons.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_item_id": self.transaction_item_id,
            "addon_id": self.addon_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class TransactionPayment(db.Model):
    """
    Tender recorded against a transaction. Several rows per transaction
    means a split payment; the sum is not forced to equal total_cents.
    """
    __tablename__ = "transaction_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }
