"""
Stock ledger tests.

Every case checks both the returned/raised value and what is actually
left in the stock and stock_movements tables afterwards.
"""

from datetime import datetime, timedelta

import pytest

from branchpos.errors import (
    BranchNotFound,
    InsufficientAvailableStockError,
    InsufficientStockError,
    OverReleaseError,
    ProductNotFound,
    StockRecordNotFound,
    UserNotFound,
    ValidationError,
)
from branchpos.models import StockMovement
from branchpos.services.stock_ledger import BULK_UPDATE_NOTE, StockLedger


def _movements(session, **filters):
    return session.query(StockMovement).filter_by(**filters).order_by(StockMovement.id.asc()).all()


class TestMovements:
    def test_in_creates_row_and_movement(self, db_session, ledger, product, branch, user):
        stock = ledger.apply_movement(product.id, branch.id, "IN", 25, user.id, reference_number="PO-1")

        assert stock.quantity == 25
        assert stock.reserved_quantity == 0
        rows = _movements(db_session, product_id=product.id)
        assert [(m.movement_type, m.quantity, m.reference_number) for m in rows] == [("IN", 25, "PO-1")]

    def test_in_accumulates_on_existing_row(self, ledger, stocked, product, branch, user):
        stock = ledger.apply_movement(product.id, branch.id, "IN", 5, user.id)
        assert stock.quantity == 105
        assert stock.id == stocked.id

    def test_out_beyond_on_hand_fails_and_leaves_stock(self, db_session, ledger, product, branch, user):
        ledger.apply_movement(product.id, branch.id, "IN", 5, user.id)

        with pytest.raises(InsufficientStockError) as exc:
            ledger.apply_movement(product.id, branch.id, "OUT", 10, user.id)

        assert exc.value.available == 5
        assert exc.value.requested == 10
        assert "available 5, requested 10" in exc.value.message
        assert ledger.get_stock(product.id, branch.id).quantity == 5
        assert len(_movements(db_session, product_id=product.id)) == 1

    def test_out_only_draws_on_available(self, ledger, product, branch, user):
        ledger.apply_movement(product.id, branch.id, "IN", 10, user.id)
        ledger.reserve(product.id, branch.id, 8)

        with pytest.raises(InsufficientStockError) as exc:
            ledger.apply_movement(product.id, branch.id, "OUT", 5, user.id)
        assert exc.value.available == 2

        stock = ledger.apply_movement(product.id, branch.id, "OUT", 2, user.id)
        assert stock.quantity == 8
        assert stock.reserved_quantity == 8
        assert stock.available_quantity == 0

    def test_out_without_stock_row(self, ledger, product, branch, user):
        with pytest.raises(InsufficientStockError) as exc:
            ledger.apply_movement(product.id, branch.id, "OUT", 1, user.id)
        assert exc.value.available == 0
        assert ledger.get_stock(product.id, branch.id) is None

    def test_out_records_negative_delta(self, db_session, ledger, stocked, product, branch, user):
        ledger.apply_movement(product.id, branch.id, "OUT", 30, user.id, notes="Damaged")
        out = _movements(db_session, movement_type="OUT")
        assert [(m.quantity, m.notes) for m in out] == [(-30, "Damaged")]
        assert ledger.get_stock(product.id, branch.id).quantity == 70

    def test_adjustment_sets_absolute_quantity(self, db_session, ledger, stocked, product, branch, user):
        stock = ledger.adjust_stock(product.id, branch.id, 30, user.id, reason="Cycle count")

        assert stock.quantity == 30
        adj = _movements(db_session, movement_type="ADJUSTMENT")
        assert [(m.quantity, m.notes) for m in adj] == [(-70, "Cycle count")]

    def test_adjustment_creates_missing_row(self, ledger, product, branch, user):
        stock = ledger.apply_movement(product.id, branch.id, "ADJUSTMENT", 12, user.id)
        assert stock.quantity == 12

    def test_adjustment_cannot_drop_below_reserved(self, ledger, stocked, product, branch, user):
        ledger.reserve(product.id, branch.id, 40)

        with pytest.raises(InsufficientStockError, match="40 units are reserved"):
            ledger.adjust_stock(product.id, branch.id, 39, user.id)

        stock = ledger.get_stock(product.id, branch.id)
        assert stock.quantity == 100
        assert stock.reserved_quantity == 40

    def test_zero_quantity_is_rejected_for_in(self, ledger, product, branch, user):
        with pytest.raises(ValidationError):
            ledger.apply_movement(product.id, branch.id, "IN", 0, user.id)

    def test_unknown_movement_type(self, ledger, product, branch, user):
        with pytest.raises(ValidationError, match="movement_type"):
            ledger.apply_movement(product.id, branch.id, "LOST", 1, user.id)

    def test_unknown_references(self, ledger, product, branch, user):
        with pytest.raises(ProductNotFound):
            ledger.apply_movement(99999, branch.id, "IN", 1, user.id)
        with pytest.raises(BranchNotFound):
            ledger.apply_movement(product.id, 99999, "IN", 1, user.id)
        with pytest.raises(UserNotFound):
            ledger.apply_movement(product.id, branch.id, "IN", 1, 99999)


class TestTransfer:
    def test_transfer_moves_units_and_writes_two_movements(
        self, db_session, ledger, product, branch, other_branch, user
    ):
        ledger.apply_movement(product.id, branch.id, "IN", 50, user.id)

        source, destination = ledger.transfer(product.id, branch.id, other_branch.id, 20, user.id)

        assert source.quantity == 30
        assert destination.quantity == 20
        legs = _movements(db_session, movement_type="TRANSFER")
        assert [(m.branch_id, m.quantity) for m in legs] == [(branch.id, -20), (other_branch.id, 20)]
        assert {m.reference_number for m in legs} == {f"TRANSFER-{branch.id}-{other_branch.id}"}
        assert legs[0].notes == f"Transfer to branch {other_branch.id}"
        assert legs[1].notes == f"Transfer from branch {branch.id}"

    def test_transfer_via_apply_movement_returns_source(self, ledger, stocked, product, branch, other_branch, user):
        source = ledger.apply_movement(
            product.id, branch.id, "TRANSFER", 10, user.id, to_branch_id=other_branch.id
        )
        assert source.branch_id == branch.id
        assert source.quantity == 90
        assert ledger.get_stock(product.id, other_branch.id).quantity == 10

    def test_transfer_keeps_caller_reference(self, db_session, ledger, stocked, product, branch, other_branch, user):
        ledger.apply_movement(
            product.id, branch.id, "TRANSFER", 4, user.id,
            reference_number="TRF-0042", to_branch_id=other_branch.id,
        )
        ledger.transfer(product.id, branch.id, other_branch.id, 1, user.id, reference_number="TRF-0043")

        legs = _movements(db_session, movement_type="TRANSFER")
        assert [m.reference_number for m in legs] == ["TRF-0042", "TRF-0042", "TRF-0043", "TRF-0043"]

    def test_failed_transfer_changes_neither_branch(self, db_session, ledger, product, branch, other_branch, user):
        ledger.apply_movement(product.id, branch.id, "IN", 5, user.id)

        with pytest.raises(InsufficientStockError):
            ledger.transfer(product.id, branch.id, other_branch.id, 6, user.id)

        assert ledger.get_stock(product.id, branch.id).quantity == 5
        assert ledger.get_stock(product.id, other_branch.id) is None
        assert _movements(db_session, movement_type="TRANSFER") == []

    def test_transfer_to_same_branch_is_rejected(self, ledger, stocked, product, branch, user):
        with pytest.raises(ValidationError, match="must differ"):
            ledger.transfer(product.id, branch.id, branch.id, 1, user.id)

    def test_transfer_requires_destination_for_movement(self, ledger, stocked, product, branch, user):
        with pytest.raises(ValidationError, match="to_branch_id"):
            ledger.apply_movement(product.id, branch.id, "TRANSFER", 1, user.id)


class TestReservations:
    def test_reserve_and_release(self, ledger, stocked, product, branch):
        stock = ledger.reserve(product.id, branch.id, 30)
        assert (stock.quantity, stock.reserved_quantity, stock.available_quantity) == (100, 30, 70)

        stock = ledger.release(product.id, branch.id, 10)
        assert stock.reserved_quantity == 20

    def test_reserve_beyond_available_fails(self, ledger, product, branch, user):
        ledger.apply_movement(product.id, branch.id, "IN", 50, user.id)
        ledger.reserve(product.id, branch.id, 40)

        with pytest.raises(InsufficientAvailableStockError) as exc:
            ledger.reserve(product.id, branch.id, 20)

        assert exc.value.available == 10
        assert ledger.get_stock(product.id, branch.id).reserved_quantity == 40

    def test_reserve_without_stock_row(self, ledger, product, branch):
        with pytest.raises(StockRecordNotFound):
            ledger.reserve(product.id, branch.id, 1)

    def test_release_more_than_reserved(self, ledger, stocked, product, branch):
        ledger.reserve(product.id, branch.id, 3)
        with pytest.raises(OverReleaseError, match="reserved 3, requested 4"):
            ledger.release(product.id, branch.id, 4)
        assert ledger.get_stock(product.id, branch.id).reserved_quantity == 3

    def test_reservations_write_no_movements(self, db_session, ledger, stocked, product, branch):
        ledger.reserve(product.id, branch.id, 5)
        ledger.release(product.id, branch.id, 5)
        assert [m.movement_type for m in _movements(db_session)] == ["IN"]

    def test_consume_reserved_writes_sale_out(self, db_session, ledger, stocked, product, branch, user):
        ledger.reserve(product.id, branch.id, 4)

        stock = ledger.consume_reserved(product.id, branch.id, 4, user.id, "TXN-1-ABCDEF", commit=True)

        assert (stock.quantity, stock.reserved_quantity) == (96, 0)
        out = _movements(db_session, movement_type="OUT")
        assert [(m.quantity, m.reference_number, m.notes) for m in out] == [(-4, "TXN-1-ABCDEF", "Sale")]


class TestBulkAndReads:
    def test_bulk_update_is_all_or_nothing(self, db_session, ledger, stocked, product, unstocked_product, branch, user):
        with pytest.raises(ProductNotFound):
            ledger.bulk_stock_update(
                [
                    {"product_id": product.id, "branch_id": branch.id, "quantity": 60},
                    {"product_id": 99999, "branch_id": branch.id, "quantity": 5},
                ],
                user.id,
            )
        assert ledger.get_stock(product.id, branch.id).quantity == 100

        rows = ledger.bulk_stock_update(
            [
                {"product_id": product.id, "branch_id": branch.id, "quantity": 60},
                {"product_id": unstocked_product.id, "branch_id": branch.id, "quantity": 5},
            ],
            user.id,
        )
        assert [(r.product_id, r.quantity) for r in rows] == [(product.id, 60), (unstocked_product.id, 5)]
        adjustments = _movements(db_session, movement_type="ADJUSTMENT")
        assert [m.quantity for m in adjustments] == [-40, 5]
        assert {m.notes for m in adjustments} == {BULK_UPDATE_NOTE}

    def test_bulk_update_requires_rows(self, ledger, user):
        with pytest.raises(ValidationError):
            ledger.bulk_stock_update([], user.id)

    def test_stock_alerts_list_products_below_minimum(self, ledger, product, branch, user):
        ledger.apply_movement(product.id, branch.id, "IN", 5, user.id)

        alerts = ledger.get_stock_alerts()

        assert alerts == [
            {
                "product_id": product.id,
                "product_name": "Test Product",
                "current_stock": 5,
                "min_stock": 10,
                "branch_id": branch.id,
                "branch_name": "Main Branch",
            }
        ]

    def test_stock_alerts_skip_inactive_and_healthy(self, db_session, ledger, stocked, product, branch, user):
        assert ledger.get_stock_alerts(branch_id=branch.id) == []

        ledger.adjust_stock(product.id, branch.id, 2, user.id)
        product.is_active = False
        db_session.commit()
        assert ledger.get_stock_alerts(branch_id=branch.id) == []

    def test_stock_by_branch(self, ledger, stocked, unstocked_product, product, branch, other_branch, user):
        ledger.apply_movement(unstocked_product.id, branch.id, "IN", 3, user.id)
        rows = ledger.get_stock_by_branch(branch.id)
        assert [r.product_id for r in rows] == sorted([product.id, unstocked_product.id])
        assert ledger.get_stock_by_branch(other_branch.id) == []

    def test_movement_history_is_ordered_and_bounded(self, db_session, product, branch, user):
        base = datetime(2026, 3, 1, 9, 0, 0)
        ticks = iter(base + timedelta(minutes=i) for i in range(100))
        ledger = StockLedger(db_session, clock=lambda: next(ticks))

        ledger.apply_movement(product.id, branch.id, "IN", 10, user.id)
        ledger.apply_movement(product.id, branch.id, "OUT", 1, user.id)
        ledger.apply_movement(product.id, branch.id, "OUT", 2, user.id)

        history = ledger.get_stock_movements(branch.id)
        assert [m.quantity for m in history] == [10, -1, -2]

        start = history[1].created_at.isoformat() + "Z"
        bounded = ledger.get_stock_movements(branch.id, start=start, end=history[2].created_at)
        assert [m.quantity for m in bounded] == [-1, -2]

    def test_movement_history_rejects_bad_dates(self, ledger, branch):
        with pytest.raises(ValidationError):
            ledger.get_stock_movements(branch.id, start="yesterday")
