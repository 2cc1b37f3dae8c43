# Overview: Transaction builder; turns a cart into a persisted PENDING sale holding reserved stock, and drives its lifecycle.

"""
Sale invariants (authoritative)

Creation (create_transaction) is one unit of work:
- referenced branch, user, customer, products, variants and addons are
  validated BEFORE anything is written (batch lookups, one query per table)
- amounts come from services.pricing (integer cents) and reconcile exactly:
    subtotal = sum(item totals) + sum(addon totals)
    total    = subtotal - discount + tax
- Transaction row (PENDING) -> items -> addons (price snapshot) ->
  stock reservations -> payments, then commit
- any failure rolls the whole unit back: no transaction, item, addon,
  payment or reservation survives a failed call

Transaction numbers are TXN-<epoch ms>-<random>; a unique-constraint
collision reruns the whole unit with a fresh number (bounded).

Lifecycle (compare-and-swap on status, so two clerks cannot both win):
    PENDING -> COMPLETED | CANCELLED | HOLD
    HOLD    -> PENDING   | CANCELLED
- COMPLETED consumes exactly the reserved quantities (OUT movements), then
  updates the customer's spend/points/tier and the cashier's open shift
- CANCELLED releases exactly the reserved quantities
Reservations are never re-derived from current stock.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from ..config import setting
from ..errors import (
    AddonNotFound,
    BranchNotFound,
    CustomerNotFound,
    InsufficientAvailableStockError,
    InsufficientStockError,
    InvalidStateTransition,
    NoStockRecord,
    ProductNotFound,
    StockRecordNotFound,
    TransactionNotFound,
    UserNotFound,
    ValidationError,
    VariantNotFound,
)
from ..models import (
    Addon,
    Branch,
    Customer,
    Product,
    ProductVariant,
    Shift,
    Transaction,
    TransactionItem,
    TransactionItemAddon,
    TransactionPayment,
    User,
)
from ..models.transactions import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_HOLD,
    STATUS_PENDING,
    TRANSACTION_STATUSES,
)
from ..schemas import CartIn, parse_model
from ..time_utils import normalize_datetime, utcnow
from ..validation import require_positive_int
from .concurrency import begin_write_unit, run_with_retry
from .customer_service import membership_for_spend
from .identifier_service import generate_transaction_number, retry_on_identifier_conflict
from .pricing import CartTotals, price_cart
from .stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class TransactionBuilder:
    def __init__(self, session, ledger: StockLedger | None = None, *, clock=utcnow, number_factory=None):
        self.session = session
        self.clock = clock
        self.ledger = ledger or StockLedger(session, clock=clock)
        self.number_factory = number_factory or (lambda: generate_transaction_number(self.clock()))

    # --------------------------------------------------------------- creation

    def create_transaction(self, cart, user_id: int, branch_id: int) -> Transaction:
        if not isinstance(cart, CartIn):
            cart = parse_model(CartIn, cart)
        require_positive_int(user_id, "user_id")
        require_positive_int(branch_id, "branch_id")

        item_count = len(cart.items)

        def unit(number: str) -> Transaction:
            def _op():
                begin_write_unit(self.session)
                try:
                    # References and addon prices are read inside the write unit
                    lines = self._resolve_cart(cart, user_id, branch_id)
                    totals = price_cart(lines, cart.discount_cents, cart.tax_cents)
                    txn = self._persist(number, cart, totals, user_id, branch_id)
                    self.session.commit()
                except Exception:
                    self.session.rollback()
                    raise
                return txn
            return run_with_retry(_op, session=self.session)

        txn = retry_on_identifier_conflict(
            unit,
            session=self.session,
            make_identifier=self.number_factory,
            label="transaction number",
            constraint="uq_transactions_number",
            column="transactions.transaction_number",
        )
        logger.info(
            "created transaction %s branch=%s items=%d total=%s",
            txn.transaction_number, branch_id, item_count, txn.total_cents,
        )
        return txn

    def _resolve_cart(self, cart: CartIn, user_id: int, branch_id: int) -> list[dict]:
        """Validate every reference and return pricing lines with unit and addon prices filled in."""
        if self.session.get(Branch, branch_id) is None:
            raise BranchNotFound(branch_id)
        if self.session.get(User, user_id) is None:
            raise UserNotFound(user_id)
        if cart.customer_id is not None and self.session.get(Customer, cart.customer_id) is None:
            raise CustomerNotFound(cart.customer_id)

        products = self._load_by_ids(Product, {i.product_id for i in cart.items})
        variants = self._load_by_ids(
            ProductVariant, {i.product_variant_id for i in cart.items if i.product_variant_id is not None}
        )
        addons = self._load_by_ids(Addon, {a.addon_id for i in cart.items for a in i.addons})

        lines = []
        for item in cart.items:
            product = products.get(item.product_id)
            if product is None:
                raise ProductNotFound(item.product_id)

            variant = None
            if item.product_variant_id is not None:
                variant = variants.get(item.product_variant_id)
                if variant is None or variant.product_id != product.id:
                    raise VariantNotFound(
                        item.product_variant_id,
                        details={"product_id": product.id},
                    )

            line_addons = []
            for ref in item.addons:
                addon = addons.get(ref.addon_id)
                if addon is None:
                    raise AddonNotFound(ref.addon_id)
                # Snapshot: the addon's price now, not whenever the row is read later
                line_addons.append(
                    {"addon_id": addon.id, "quantity": ref.quantity, "unit_price_cents": addon.price_cents}
                )

            unit_price = item.unit_price_cents
            if unit_price is None:
                unit_price = product.selling_price_cents + (variant.price_adjustment_cents if variant else 0)

            lines.append(
                {
                    "product_id": product.id,
                    "product_variant_id": variant.id if variant else None,
                    "quantity": item.quantity,
                    "unit_price_cents": unit_price,
                    "discount_cents": item.discount_cents,
                    "notes": item.notes,
                    "addons": line_addons,
                }
            )
        return lines

    def _load_by_ids(self, model, ids: set) -> dict:
        if not ids:
            return {}
        rows = self.session.query(model).filter(model.id.in_(ids)).populate_existing().all()
        return {row.id: row for row in rows}

    def _persist(self, number: str, cart: CartIn, totals: CartTotals, user_id: int, branch_id: int) -> Transaction:
        now = self.clock()
        txn = Transaction(
            transaction_number=number,
            branch_id=branch_id,
            customer_id=cart.customer_id,
            user_id=user_id,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            status=STATUS_PENDING,
            notes=cart.notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(txn)
        self.session.flush()

        for priced in totals.items:
            item = TransactionItem(
                transaction_id=txn.id,
                product_id=priced.product_id,
                product_variant_id=priced.product_variant_id,
                quantity=priced.quantity,
                unit_price_cents=priced.unit_price_cents,
                discount_cents=priced.discount_cents,
                total_cents=priced.total_cents,
                notes=priced.notes,
            )
            self.session.add(item)
            self.session.flush()
            for addon in priced.addons:
                self.session.add(
                    TransactionItemAddon(
                        transaction_item_id=item.id,
                        addon_id=addon.addon_id,
                        quantity=addon.quantity,
                        unit_price_cents=addon.unit_price_cents,
                        total_price_cents=addon.total_price_cents,
                    )
                )

        for priced in totals.items:
            self._reserve_for_sale(priced.product_id, branch_id, priced.quantity)

        for payment in cart.payments:
            self.session.add(
                TransactionPayment(
                    transaction_id=txn.id,
                    payment_method=payment.payment_method,
                    amount_cents=payment.amount_cents,
                    reference_number=payment.reference_number,
                    created_at=now,
                )
            )

        self.session.flush()
        return txn

    def _reserve_for_sale(self, product_id: int, branch_id: int, quantity: int) -> None:
        try:
            self.ledger.reserve(product_id, branch_id, quantity, commit=False)
        except StockRecordNotFound as e:
            raise NoStockRecord(product_id, branch_id) from e
        except InsufficientAvailableStockError as e:
            raise InsufficientStockError(product_id, branch_id, e.available, e.requested) from e

    # -------------------------------------------------------------- lifecycle

    def complete_transaction(self, transaction_id: int, user_id: int) -> Transaction:
        """PENDING -> COMPLETED: reservations become OUT movements; customer and shift totals grow."""
        require_positive_int(user_id, "user_id")

        def work():
            if self.session.get(User, user_id) is None:
                raise UserNotFound(user_id)
            now = self.clock()
            self._transition(transaction_id, (STATUS_PENDING,), STATUS_COMPLETED, completed_at=now)
            txn = self._load(transaction_id)

            for item in txn.items:
                self.ledger.consume_reserved(
                    item.product_id, txn.branch_id, item.quantity, user_id, txn.transaction_number, commit=False
                )
            if txn.customer_id is not None:
                self._credit_customer(txn.customer_id, txn.total_cents, now)
            self.session.execute(
                update(Shift)
                .where(Shift.user_id == user_id, Shift.branch_id == txn.branch_id, Shift.end_time.is_(None))
                .values(total_sales_cents=Shift.total_sales_cents + txn.total_cents)
                .execution_options(synchronize_session=False)
            )
            return txn

        txn = self._run(work)
        logger.info("completed transaction %s total=%s", txn.transaction_number, txn.total_cents)
        return txn

    def hold_transaction(self, transaction_id: int) -> Transaction:
        """PENDING -> HOLD. Reservations stay in place."""
        def work():
            self._transition(transaction_id, (STATUS_PENDING,), STATUS_HOLD)
            return self._load(transaction_id)

        return self._run(work)

    def resume_transaction(self, transaction_id: int) -> Transaction:
        """HOLD -> PENDING."""
        def work():
            self._transition(transaction_id, (STATUS_HOLD,), STATUS_PENDING)
            return self._load(transaction_id)

        return self._run(work)

    def cancel_transaction(self, transaction_id: int, reason: str | None = None) -> Transaction:
        """PENDING|HOLD -> CANCELLED: every reserved unit goes back to available."""
        def work():
            self._transition(transaction_id, (STATUS_PENDING, STATUS_HOLD), STATUS_CANCELLED)
            txn = self._load(transaction_id)
            for item in txn.items:
                self.ledger.release(item.product_id, txn.branch_id, item.quantity, commit=False)
            if reason:
                line = f"Cancelled: {reason}"
                txn.notes = f"{txn.notes}\n{line}" if txn.notes else line
            self.session.flush()
            return txn

        txn = self._run(work)
        logger.info("cancelled transaction %s", txn.transaction_number)
        return txn

    def _transition(self, transaction_id: int, from_statuses: tuple[str, ...], to_status: str, **values) -> None:
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.status.in_(from_statuses))
            .values(status=to_status, updated_at=self.clock(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFound(transaction_id)
        raise InvalidStateTransition(
            f"Cannot change transaction {transaction_id} from {txn.status} to {to_status}",
            {"transaction_id": transaction_id, "status": txn.status, "target_status": to_status},
        )

    def _credit_customer(self, customer_id: int, total_cents: int, now) -> None:
        points = total_cents // setting("LOYALTY_CENTS_PER_POINT", 1000)
        self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(
                total_spent_cents=Customer.total_spent_cents + total_cents,
                loyalty_points=Customer.loyalty_points + points,
                last_visit_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        customer = (
            self.session.query(Customer).filter_by(id=customer_id).populate_existing().one()
        )
        tier = membership_for_spend(customer.total_spent_cents, current=customer.membership_type)
        if tier != customer.membership_type:
            logger.info("customer %s upgraded %s -> %s", customer.id, customer.membership_type, tier)
            customer.membership_type = tier
            self.session.flush()

    def _load(self, transaction_id: int) -> Transaction:
        return self.session.query(Transaction).filter_by(id=transaction_id).populate_existing().one()

    def _run(self, work):
        def _op():
            begin_write_unit(self.session)
            try:
                result = work()
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
            return result

        return run_with_retry(_op, session=self.session)

    # ------------------------------------------------------------------ reads

    def get_transaction(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFound(transaction_id)
        return txn

    def list_transactions(
        self,
        branch_id: int,
        start=None,
        end=None,
        status: str | None = None,
        customer_id: int | None = None,
    ) -> list[Transaction]:
        """Newest first; start/end are inclusive bounds on created_at."""
        try:
            start_dt = normalize_datetime(start)
            end_dt = normalize_datetime(end)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if status is not None and status not in TRANSACTION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")

        q = self.session.query(Transaction).filter(Transaction.branch_id == branch_id)
        if start_dt is not None:
            q = q.filter(Transaction.created_at >= start_dt)
        if end_dt is not None:
            q = q.filter(Transaction.created_at <= end_dt)
        if status is not None:
            q = q.filter(Transaction.status == status)
        if customer_id is not None:
            q = q.filter(Transaction.customer_id == customer_id)
        return q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()


def transaction_detail(txn: Transaction) -> dict:
    """Transaction with items, addons and payments; payments are reported, not reconciled."""
    data = txn.to_dict()
    items = []
    for item in txn.items:
        item_data = item.to_dict()
        item_data["addons"] = [a.to_dict() for a in item.addons]
        items.append(item_data)
    paid = sum(p.amount_cents for p in txn.payments)
    data["items"] = items
    data["payments"] = [p.to_dict() for p in txn.payments]
    data["amount_paid_cents"] = paid
    data["balance_due_cents"] = txn.total_cents - paid
    return data
