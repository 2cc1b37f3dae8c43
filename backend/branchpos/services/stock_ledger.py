# Overview: Stock ledger; the only writer of stock.quantity / stock.reserved_quantity.

"""
Stock ledger invariants (authoritative)

Per (product_id, branch_id) there is at most one Stock row, and after every
operation:
- quantity >= 0
- 0 <= reserved_quantity <= quantity
- available = quantity - reserved_quantity >= 0

Every mutation is ONE conditional UPDATE whose WHERE clause carries the
check (e.g. "quantity - reserved_quantity >= :q" for a reservation). The
affected row count decides success; the row is re-read only to build the
error. There is no read-compute-write sequence, so two concurrent reservers
can never both pass the check against the same units. On PostgreSQL the
UPDATE takes the row lock; on SQLite the unit starts with BEGIN IMMEDIATE.

Movements:
- IN           quantity += q (row created if absent)
- OUT          quantity -= q, only from available stock (absent row = 0)
- ADJUSTMENT   quantity  = q (row created if absent); q may not drop below reserved
- TRANSFER     OUT leg at source + IN leg at destination in one unit

Every physical change appends a StockMovement with the signed delta (two for
a transfer). Reservations are not physical changes and write no movement;
consuming a reservation at sale completion writes an OUT movement.

Sessions are injected. Operations take commit=True to run as their own
unit of work, or commit=False to join the caller's unit (the caller then
owns commit/rollback).
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    BranchNotFound,
    InsufficientAvailableStockError,
    InsufficientStockError,
    OverReleaseError,
    ProductNotFound,
    StockRecordNotFound,
    UserNotFound,
    ValidationError,
)
from ..models import Branch, Product, Stock, StockMovement, User
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TRANSFER,
    MOVEMENT_TYPES,
)
from ..time_utils import normalize_datetime, utcnow
from ..validation import require_non_negative_int, require_positive_int
from .concurrency import begin_write_unit, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

BULK_UPDATE_NOTE = "Bulk stock update"


class StockLedger:
    def __init__(self, session, *, clock=utcnow):
        self.session = session
        self.clock = clock

    # ------------------------------------------------------------------ reads

    def get_stock(self, product_id: int, branch_id: int) -> Stock | None:
        """Current row, or None when the pair was never stocked (distinct from quantity 0)."""
        return (
            self.session.query(Stock)
            .filter_by(product_id=product_id, branch_id=branch_id)
            .populate_existing()
            .one_or_none()
        )

    def get_stock_by_branch(self, branch_id: int, product_id: int | None = None) -> list[Stock]:
        q = self.session.query(Stock).filter(Stock.branch_id == branch_id)
        if product_id is not None:
            q = q.filter(Stock.product_id == product_id)
        return q.order_by(Stock.product_id.asc()).populate_existing().all()

    def get_stock_movements(
        self,
        branch_id: int,
        start=None,
        end=None,
        product_id: int | None = None,
    ) -> list[StockMovement]:
        """Movement history for a branch, oldest first; start/end are inclusive."""
        try:
            start_dt = normalize_datetime(start)
            end_dt = normalize_datetime(end)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        q = self.session.query(StockMovement).filter(StockMovement.branch_id == branch_id)
        if product_id is not None:
            q = q.filter(StockMovement.product_id == product_id)
        if start_dt is not None:
            q = q.filter(StockMovement.created_at >= start_dt)
        if end_dt is not None:
            q = q.filter(StockMovement.created_at <= end_dt)
        return q.order_by(StockMovement.created_at.asc(), StockMovement.id.asc()).all()

    def get_stock_alerts(self, branch_id: int | None = None) -> list[dict]:
        """Active products whose on-hand quantity is below their min_stock."""
        q = (
            self.session.query(Stock, Product, Branch)
            .join(Product, Product.id == Stock.product_id)
            .join(Branch, Branch.id == Stock.branch_id)
            .filter(Product.is_active.is_(True), Stock.quantity < Product.min_stock)
        )
        if branch_id is not None:
            q = q.filter(Stock.branch_id == branch_id)

        rows = q.order_by(Branch.id.asc(), Product.name.asc()).all()
        return [
            {
                "product_id": product.id,
                "product_name": product.name,
                "current_stock": stock.quantity,
                "min_stock": product.min_stock,
                "branch_id": branch.id,
                "branch_name": branch.name,
            }
            for stock, product, branch in rows
        ]

    # -------------------------------------------------------------- movements

    def apply_movement(
        self,
        product_id: int,
        branch_id: int,
        movement_type: str,
        quantity: int,
        user_id: int,
        notes: str | None = None,
        reference_number: str | None = None,
        *,
        to_branch_id: int | None = None,
        commit: bool = True,
    ) -> Stock:
        """Apply one physical stock movement and return the affected row (source row for TRANSFER)."""
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(
                f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}",
                {"movement_type": movement_type},
            )
        if movement_type == MOVEMENT_TRANSFER:
            if to_branch_id is None:
                raise ValidationError("to_branch_id is required for TRANSFER movements")
            source, _ = self.transfer(
                product_id, branch_id, to_branch_id, quantity, user_id,
                notes=notes, reference_number=reference_number, commit=commit,
            )
            return source

        if movement_type == MOVEMENT_ADJUSTMENT:
            require_non_negative_int(quantity, "quantity")
        else:
            require_positive_int(quantity, "quantity")

        def work():
            self._require_user(user_id)
            if movement_type == MOVEMENT_IN:
                self._require_product_and_branch(product_id, branch_id)
                self._increase(product_id, branch_id, quantity)
                self._record(product_id, branch_id, MOVEMENT_IN, quantity, user_id, notes, reference_number)
            elif movement_type == MOVEMENT_OUT:
                self._decrease_available(product_id, branch_id, quantity)
                self._record(product_id, branch_id, MOVEMENT_OUT, -quantity, user_id, notes, reference_number)
            else:
                self._require_product_and_branch(product_id, branch_id)
                delta = self._set_quantity(product_id, branch_id, quantity)
                self._record(product_id, branch_id, MOVEMENT_ADJUSTMENT, delta, user_id, notes, reference_number)
            return self.get_stock(product_id, branch_id)

        stock = self._run(work, commit)
        logger.info(
            "stock %s product=%s branch=%s qty=%s -> on_hand=%s",
            movement_type, product_id, branch_id, quantity, stock.quantity,
        )
        return stock

    def adjust_stock(
        self,
        product_id: int,
        branch_id: int,
        new_quantity: int,
        user_id: int,
        reason: str | None = None,
        *,
        commit: bool = True,
    ) -> Stock:
        """Inventory correction: set on-hand to new_quantity, recording the reason."""
        return self.apply_movement(
            product_id, branch_id, MOVEMENT_ADJUSTMENT, new_quantity, user_id, notes=reason, commit=commit
        )

    def transfer(
        self,
        product_id: int,
        from_branch_id: int,
        to_branch_id: int,
        quantity: int,
        user_id: int,
        notes: str | None = None,
        reference_number: str | None = None,
        *,
        commit: bool = True,
    ) -> tuple[Stock, Stock]:
        """
        Move units between branches as one unit of work.

        Writes two TRANSFER movements: -quantity at the source and +quantity
        at the destination. If either leg fails, neither is applied.
        """
        require_positive_int(quantity, "quantity")
        if from_branch_id == to_branch_id:
            raise ValidationError(
                "Source and destination branch must differ",
                {"from_branch_id": from_branch_id, "to_branch_id": to_branch_id},
            )

        def work():
            self._require_user(user_id)
            self._require_product_and_branch(product_id, to_branch_id)
            if self.session.get(Branch, from_branch_id) is None:
                raise BranchNotFound(from_branch_id)

            self._decrease_available(product_id, from_branch_id, quantity)
            self._increase(product_id, to_branch_id, quantity)
            reference = reference_number or f"TRANSFER-{from_branch_id}-{to_branch_id}"
            self._record(
                product_id, from_branch_id, MOVEMENT_TRANSFER, -quantity, user_id,
                notes or f"Transfer to branch {to_branch_id}", reference,
            )
            self._record(
                product_id, to_branch_id, MOVEMENT_TRANSFER, quantity, user_id,
                notes or f"Transfer from branch {from_branch_id}", reference,
            )
            return self.get_stock(product_id, from_branch_id), self.get_stock(product_id, to_branch_id)

        result = self._run(work, commit)
        logger.info(
            "stock TRANSFER product=%s %s -> %s qty=%s", product_id, from_branch_id, to_branch_id, quantity
        )
        return result

    def bulk_stock_update(self, updates, user_id: int, *, commit: bool = True) -> list[Stock]:
        """
        Set on-hand for many (product, branch) pairs, e.g. after a physical count.

        One ADJUSTMENT movement per row; all rows apply or none do.
        """
        rows = list(updates)
        if not rows:
            raise ValidationError("updates must not be empty")
        for row in rows:
            require_positive_int(row.get("product_id"), "product_id")
            require_positive_int(row.get("branch_id"), "branch_id")
            require_non_negative_int(row.get("quantity"), "quantity")

        def work():
            self._require_user(user_id)
            touched = []
            for row in rows:
                product_id, branch_id = row["product_id"], row["branch_id"]
                self._require_product_and_branch(product_id, branch_id)
                delta = self._set_quantity(product_id, branch_id, row["quantity"])
                self._record(
                    product_id, branch_id, MOVEMENT_ADJUSTMENT, delta, user_id, BULK_UPDATE_NOTE, None
                )
                touched.append((product_id, branch_id))
            return [self.get_stock(p, b) for p, b in touched]

        result = self._run(work, commit)
        logger.info("bulk stock update applied %d rows", len(rows))
        return result

    # ----------------------------------------------------------- reservations

    def reserve(self, product_id: int, branch_id: int, quantity: int, *, commit: bool = True) -> Stock:
        """Hold quantity of available stock. StockRecordNotFound / InsufficientAvailableStockError."""
        require_positive_int(quantity, "quantity")

        def work():
            rows = self._conditional_update(
                product_id,
                branch_id,
                (Stock.quantity - Stock.reserved_quantity >= quantity,),
                reserved_quantity=Stock.reserved_quantity + quantity,
            )
            if rows == 0:
                stock = self.get_stock(product_id, branch_id)
                if stock is None:
                    raise StockRecordNotFound(product_id, branch_id)
                raise InsufficientAvailableStockError(
                    product_id, branch_id, stock.available_quantity, quantity
                )
            return self.get_stock(product_id, branch_id)

        return self._run(work, commit)

    def release(self, product_id: int, branch_id: int, quantity: int, *, commit: bool = True) -> Stock:
        """Return reserved units to available. StockRecordNotFound / OverReleaseError."""
        require_positive_int(quantity, "quantity")

        def work():
            rows = self._conditional_update(
                product_id,
                branch_id,
                (Stock.reserved_quantity >= quantity,),
                reserved_quantity=Stock.reserved_quantity - quantity,
            )
            if rows == 0:
                stock = self.get_stock(product_id, branch_id)
                if stock is None:
                    raise StockRecordNotFound(product_id, branch_id)
                raise OverReleaseError(product_id, branch_id, stock.reserved_quantity, quantity)
            return self.get_stock(product_id, branch_id)

        return self._run(work, commit)

    def consume_reserved(
        self,
        product_id: int,
        branch_id: int,
        quantity: int,
        user_id: int,
        reference_number: str | None = None,
        *,
        commit: bool = False,
    ) -> Stock:
        """
        Turn a reservation into a committed OUT: on-hand and reserved both drop
        by quantity, and an OUT movement referencing the sale is appended.
        """
        require_positive_int(quantity, "quantity")

        def work():
            rows = self._conditional_update(
                product_id,
                branch_id,
                (Stock.reserved_quantity >= quantity, Stock.quantity >= quantity),
                quantity=Stock.quantity - quantity,
                reserved_quantity=Stock.reserved_quantity - quantity,
            )
            if rows == 0:
                stock = self.get_stock(product_id, branch_id)
                if stock is None:
                    raise StockRecordNotFound(product_id, branch_id)
                raise OverReleaseError(product_id, branch_id, stock.reserved_quantity, quantity)
            self._record(product_id, branch_id, MOVEMENT_OUT, -quantity, user_id, "Sale", reference_number)
            return self.get_stock(product_id, branch_id)

        return self._run(work, commit)

    # ---------------------------------------------------------------- helpers

    def _run(self, work, commit: bool):
        if not commit:
            begin_write_unit(self.session)
            return work()

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

    def _conditional_update(self, product_id: int, branch_id: int, conditions, **values) -> int:
        stmt = (
            update(Stock)
            .where(Stock.product_id == product_id, Stock.branch_id == branch_id, *conditions)
            .values(last_updated=self.clock(), **values)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def _increase(self, product_id: int, branch_id: int, quantity: int) -> None:
        rows = self._conditional_update(
            product_id, branch_id, (), quantity=Stock.quantity + quantity
        )
        if rows:
            return
        if self._insert_row(product_id, branch_id, quantity):
            return
        # Row was created concurrently between our UPDATE and INSERT
        rows = self._conditional_update(
            product_id, branch_id, (), quantity=Stock.quantity + quantity
        )
        if rows == 0:
            raise StaleDataError(f"stock row for product {product_id} at branch {branch_id} vanished")

    def _decrease_available(self, product_id: int, branch_id: int, quantity: int) -> None:
        rows = self._conditional_update(
            product_id,
            branch_id,
            (Stock.quantity - Stock.reserved_quantity >= quantity,),
            quantity=Stock.quantity - quantity,
        )
        if rows:
            return
        stock = self.get_stock(product_id, branch_id)
        available = stock.available_quantity if stock is not None else 0
        raise InsufficientStockError(
            product_id,
            branch_id,
            available,
            quantity,
            message=(
                f"Insufficient stock for product {product_id} at branch {branch_id}: "
                f"available {available}, requested {quantity}"
            ),
        )

    def _set_quantity(self, product_id: int, branch_id: int, new_quantity: int) -> int:
        """Absolute set; returns the signed delta (new - old)."""
        stock = (
            lock_for_update(self.session.query(Stock))
            .filter_by(product_id=product_id, branch_id=branch_id)
            .populate_existing()
            .one_or_none()
        )
        if stock is None:
            if self._insert_row(product_id, branch_id, new_quantity):
                return new_quantity
            stock = self.get_stock(product_id, branch_id)

        old_quantity = stock.quantity
        rows = self._conditional_update(
            product_id,
            branch_id,
            (Stock.quantity == old_quantity, Stock.reserved_quantity <= new_quantity),
            quantity=new_quantity,
        )
        if rows == 0:
            current = self.get_stock(product_id, branch_id)
            if current.reserved_quantity > new_quantity:
                raise InsufficientStockError(
                    product_id,
                    branch_id,
                    current.available_quantity,
                    new_quantity,
                    message=(
                        f"Cannot set stock for product {product_id} at branch {branch_id} to "
                        f"{new_quantity}: {current.reserved_quantity} units are reserved"
                    ),
                )
            raise StaleDataError(f"stock row for product {product_id} at branch {branch_id} changed")
        return new_quantity - old_quantity

    def _insert_row(self, product_id: int, branch_id: int, quantity: int) -> bool:
        """Create the row inside a savepoint; False if another writer created it first."""
        try:
            with self.session.begin_nested():
                self.session.add(
                    Stock(
                        product_id=product_id,
                        branch_id=branch_id,
                        quantity=quantity,
                        reserved_quantity=0,
                        last_updated=self.clock(),
                    )
                )
        except IntegrityError:
            return False
        return True

    def _record(
        self,
        product_id: int,
        branch_id: int,
        movement_type: str,
        signed_quantity: int,
        user_id: int,
        notes: str | None,
        reference_number: str | None,
    ) -> StockMovement:
        movement = StockMovement(
            product_id=product_id,
            branch_id=branch_id,
            movement_type=movement_type,
            quantity=signed_quantity,
            reference_number=reference_number,
            notes=notes,
            user_id=user_id,
            created_at=self.clock(),
        )
        self.session.add(movement)
        self.session.flush()
        return movement

    def _require_product_and_branch(self, product_id: int, branch_id: int) -> None:
        if self.session.get(Product, product_id) is None:
            raise ProductNotFound(product_id)
        if self.session.get(Branch, branch_id) is None:
            raise BranchNotFound(branch_id)

    def _require_user(self, user_id: int) -> None:
        if self.session.get(User, user_id) is None:
            raise UserNotFound(user_id)
