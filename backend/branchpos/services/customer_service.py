# Overview: Service-layer operations for customers; codes, loyalty points and membership tiers.

"""
Customer invariants:
- customer_code is generated here, never client-supplied; a collision on
  the unique constraint reruns the insert with a fresh code (bounded)
- loyalty_points never goes below zero (redeeming more than the balance is
  rejected, not clamped)
- total_spent_cents only grows, and only when a sale completes
  (services.transaction_service)
- membership tiers only go up; they follow MEMBERSHIP_THRESHOLDS_CENTS
"""

from __future__ import annotations

from sqlalchemy import or_, select, update

from ..config import setting
from ..errors import CustomerNotFound, ValidationError
from ..extensions import db
from ..models import Customer, Transaction
from ..models.customers import MEMBERSHIP_TYPES
from ..models.transactions import STATUS_COMPLETED
from ..time_utils import utcnow
from ..validation import require_positive_int
from .concurrency import begin_write_unit, run_with_retry
from .identifier_service import generate_customer_code, retry_on_identifier_conflict

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "membership_type", "is_active"}


def membership_for_spend(total_spent_cents: int, current: str = "BASIC") -> str:
    """Highest tier whose threshold total_spent_cents meets, never below current."""
    thresholds = setting("MEMBERSHIP_THRESHOLDS_CENTS", {}) or {}
    best = current if current in MEMBERSHIP_TYPES else "BASIC"
    for tier in MEMBERSHIP_TYPES:
        threshold = thresholds.get(tier)
        if threshold is None or total_spent_cents < threshold:
            continue
        if MEMBERSHIP_TYPES.index(tier) > MEMBERSHIP_TYPES.index(best):
            best = tier
    return best


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def create_customer(*, patch: dict, code_factory=None) -> Customer:
    """Insert a customer with a generated customer_code."""
    name = patch.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", {"field": "name"})

    def unit(code: str) -> Customer:
        def _op():
            begin_write_unit(db.session)
            customer = Customer(customer_code=code, membership_type="BASIC", loyalty_points=0, total_spent_cents=0)
            apply_customer_patch(customer, patch)
            db.session.add(customer)
            db.session.commit()
            return customer
        return run_with_retry(_op, session=db.session)

    return retry_on_identifier_conflict(
        unit,
        session=db.session,
        make_identifier=code_factory or generate_customer_code,
        label="customer code",
        constraint="uq_customers_code",
        column="customers.customer_code",
    )


def apply_customer_patch(customer: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(customer, k, v)


def update_customer(customer_id: int, *, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    apply_customer_patch(customer, patch)
    db.session.commit()
    return customer


def list_customers(search: str | None = None, is_active: bool | None = None) -> list[Customer]:
    """Customers by name; search matches name, phone, email or code (case-insensitive substring)."""
    q = db.session.query(Customer)
    if is_active is not None:
        q = q.filter(Customer.is_active.is_(is_active))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Customer.name.ilike(term),
                Customer.phone.ilike(term),
                Customer.email.ilike(term),
                Customer.customer_code.ilike(term),
            )
        )
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()


def search_customer_by_phone(phone: str) -> Customer | None:
    """Exact phone lookup used at the till; None when no customer has that number."""
    phone = (phone or "").strip()
    if not phone:
        raise ValidationError("phone is required")
    return (
        db.session.query(Customer)
        .filter(Customer.phone == phone)
        .order_by(Customer.id.asc())
        .first()
    )


def add_loyalty_points(customer_id: int, points: int) -> Customer:
    require_positive_int(points, "points")
    get_customer(customer_id)
    db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(loyalty_points=Customer.loyalty_points + points)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return get_customer(customer_id)


def redeem_loyalty_points(customer_id: int, points: int) -> Customer:
    """Spend points; the balance check and the decrement are one conditional UPDATE."""
    require_positive_int(points, "points")
    customer = get_customer(customer_id)
    result = db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id, Customer.loyalty_points >= points)
        .values(loyalty_points=Customer.loyalty_points - points)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        balance = get_customer(customer_id).loyalty_points
        raise ValidationError(
            f"Insufficient loyalty points for customer {customer.id}: balance {balance}, requested {points}",
            {"customer_id": customer_id, "balance": balance, "requested": points},
        )
    db.session.commit()
    return get_customer(customer_id)


def upgrade_membership(customer_id: int) -> Customer:
    """Re-evaluate the tier from lifetime spend (upgrade only)."""
    customer = get_customer(customer_id)
    tier = membership_for_spend(customer.total_spent_cents, current=customer.membership_type)
    if tier != customer.membership_type:
        customer.membership_type = tier
        customer.updated_at = utcnow()
    db.session.commit()
    return customer


def get_top_customers(branch_id: int | None = None, limit: int = 10) -> list[Customer]:
    """
    Highest lifetime spend first. With branch_id, only customers who have a
    completed sale at that branch are considered.
    """
    limit = require_positive_int(limit, "limit")
    q = db.session.query(Customer).filter(Customer.is_active.is_(True))
    if branch_id is not None:
        buyers = (
            select(Transaction.customer_id)
            .where(
                Transaction.branch_id == branch_id,
                Transaction.status == STATUS_COMPLETED,
                Transaction.customer_id.isnot(None),
            )
        )
        q = q.filter(Customer.id.in_(buyers))
    return q.order_by(Customer.total_spent_cents.desc(), Customer.id.asc()).limit(limit).all()


def get_customer_transaction_history(customer_id: int, limit: int | None = None) -> list[Transaction]:
    get_customer(customer_id)
    q = (
        db.session.query(Transaction)
        .filter(Transaction.customer_id == customer_id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    if limit is not None:
        q = q.limit(require_positive_int(limit, "limit"))
    return q.all()
