"""
Transaction creation tests.

A cart either becomes one PENDING transaction with items, addons,
payments and stock reservations, or nothing at all.
"""

import random
import re

import pytest
from sqlalchemy import update

from branchpos.errors import (
    AddonNotFound,
    BranchNotFound,
    ConflictError,
    CustomerNotFound,
    InsufficientStockError,
    NoStockRecord,
    ProductNotFound,
    UserNotFound,
    ValidationError,
    VariantNotFound,
)
from branchpos.models import (
    Addon,
    ProductVariant,
    StockMovement,
    Transaction,
    TransactionItem,
    TransactionItemAddon,
    TransactionPayment,
)
from branchpos.services.transaction_service import TransactionBuilder, transaction_detail

from conftest import cart_item


def _cart(items, **overrides):
    cart = {
        "customer_id": None,
        "items": items,
        "discount_cents": 0,
        "tax_cents": 150,
        "payments": [{"payment_method": "CASH", "amount_cents": 3150}],
        "notes": "Test transaction",
    }
    cart.update(overrides)
    return cart


def _row_counts(session):
    return {
        model.__tablename__: session.query(model).count()
        for model in (Transaction, TransactionItem, TransactionItemAddon, TransactionPayment, StockMovement)
    }


@pytest.fixture
def builder(db_session):
    return TransactionBuilder(db_session)


class TestCreateTransaction:
    def test_creates_pending_transaction(self, db_session, builder, stocked, product, branch, user, customer):
        txn = builder.create_transaction(
            _cart([cart_item(product.id, 2, 1500)], customer_id=customer.id), user.id, branch.id
        )

        assert re.match(r"^TXN-\d+-[A-Z0-9]+$", txn.transaction_number)
        assert txn.status == "PENDING"
        assert txn.branch_id == branch.id
        assert txn.customer_id == customer.id
        assert txn.user_id == user.id
        assert txn.subtotal_cents == 3000
        assert txn.discount_cents == 0
        assert txn.tax_cents == 150
        assert txn.total_cents == 3150
        assert txn.notes == "Test transaction"
        assert txn.created_at is not None

    def test_persists_items_and_payments(self, db_session, builder, stocked, product, branch, user):
        txn = builder.create_transaction(
            _cart(
                [cart_item(product.id, 2, 1500)],
                payments=[
                    {"payment_method": "CASH", "amount_cents": 2000},
                    {"payment_method": "CARD", "amount_cents": 1150, "reference_number": "CARD123"},
                ],
            ),
            user.id,
            branch.id,
        )

        items = db_session.query(TransactionItem).filter_by(transaction_id=txn.id).all()
        assert [(i.product_id, i.quantity, i.unit_price_cents, i.total_cents) for i in items] == [
            (product.id, 2, 1500, 3000)
        ]
        payments = {p.payment_method: p for p in txn.payments}
        assert payments["CASH"].amount_cents == 2000
        assert payments["CARD"].amount_cents == 1150
        assert payments["CARD"].reference_number == "CARD123"

    def test_reserves_stock_without_touching_on_hand(self, builder, ledger, stocked, product, branch, user):
        builder.create_transaction(_cart([cart_item(product.id, 2, 1500)]), user.id, branch.id)

        stock = ledger.get_stock(product.id, branch.id)
        assert stock.quantity == 100
        assert stock.reserved_quantity == 2

    def test_addons_are_priced_and_snapshotted(self, db_session, builder, stocked, product, addon, branch, user):
        txn = builder.create_transaction(
            _cart([cart_item(product.id, 1, 1500, addons=[{"addon_id": addon.id, "quantity": 2}])]),
            user.id,
            branch.id,
        )
        assert txn.subtotal_cents == 2000

        addon.price_cents = 900
        db_session.commit()

        item_addons = db_session.query(TransactionItemAddon).all()
        assert [(a.addon_id, a.quantity, a.unit_price_cents, a.total_price_cents) for a in item_addons] == [
            (addon.id, 2, 250, 500)
        ]

    def test_addon_price_is_read_at_write_time(self, db_session, builder, stocked, product, addon, branch, user):
        assert addon.price_cents == 250
        db_session.execute(
            update(Addon)
            .where(Addon.id == addon.id)
            .values(price_cents=400)
            .execution_options(synchronize_session=False)
        )

        txn = builder.create_transaction(
            _cart([cart_item(product.id, 1, 1500, addons=[{"addon_id": addon.id, "quantity": 1}])]),
            user.id,
            branch.id,
        )

        assert txn.subtotal_cents == 1900
        assert db_session.query(TransactionItemAddon).one().unit_price_cents == 400

    def test_random_carts_reconcile_with_persisted_rows(self, db_session, builder, stocked, product, branch, user):
        addons = [Addon(name=f"Topping {n}", price_cents=price) for n, price in enumerate((0, 125, 340))]
        db_session.add_all(addons)
        db_session.commit()
        prices = {a.id: a.price_cents for a in addons}

        rng = random.Random(4242)
        for _ in range(20):
            items = []
            expected_subtotal = 0
            for _ in range(rng.randint(1, 2)):
                quantity = rng.randint(1, 2)
                unit_price = rng.randint(0, 3000)
                discount = rng.randint(0, quantity * unit_price)
                picked = [
                    {"addon_id": addon_id, "quantity": rng.randint(1, 3)}
                    for addon_id in rng.sample(sorted(prices), rng.randint(0, 2))
                ]
                items.append(cart_item(product.id, quantity, unit_price, discount_cents=discount, addons=picked))
                expected_subtotal += (
                    quantity * unit_price - discount + sum(a["quantity"] * prices[a["addon_id"]] for a in picked)
                )
            cart_discount = rng.randint(0, expected_subtotal)
            tax = rng.randint(0, 1000)

            txn = builder.create_transaction(
                _cart(items, discount_cents=cart_discount, tax_cents=tax), user.id, branch.id
            )

            item_rows = db_session.query(TransactionItem).filter_by(transaction_id=txn.id).all()
            addon_rows = (
                db_session.query(TransactionItemAddon)
                .filter(TransactionItemAddon.transaction_item_id.in_([i.id for i in item_rows]))
                .all()
            )
            assert txn.subtotal_cents == expected_subtotal
            assert txn.subtotal_cents == sum(i.total_cents for i in item_rows) + sum(
                a.total_price_cents for a in addon_rows
            )
            assert (txn.discount_cents, txn.tax_cents) == (cart_discount, tax)
            assert txn.total_cents == txn.subtotal_cents - txn.discount_cents + txn.tax_cents

    def test_single_item_addon_and_tax_scenario(self, builder, stocked, product, addon, branch, user):
        txn = builder.create_transaction(
            _cart([cart_item(product.id, 2, 1500, addons=[{"addon_id": addon.id, "quantity": 1}])]),
            user.id,
            branch.id,
        )
        assert txn.subtotal_cents == 3250
        assert txn.total_cents == 3400

    def test_cart_discount(self, builder, stocked, product, branch, user):
        txn = builder.create_transaction(
            _cart([cart_item(product.id, 2, 1500)], discount_cents=500), user.id, branch.id
        )
        assert txn.subtotal_cents == 3000
        assert txn.discount_cents == 500
        assert txn.total_cents == 2650

    def test_complex_cart(self, builder, ledger, stocked, product, addon, branch, user, customer):
        txn = builder.create_transaction(
            {
                "customer_id": customer.id,
                "items": [
                    cart_item(
                        product.id, 3, 1500, discount_cents=500, notes="First item",
                        addons=[{"addon_id": addon.id, "quantity": 1}],
                    ),
                    cart_item(product.id, 1, 1200, notes="Second item"),
                ],
                "discount_cents": 1000,
                "tax_cents": 320,
                "payments": [{"payment_method": "CASH", "amount_cents": 4570}],
                "notes": "Complex transaction",
            },
            user.id,
            branch.id,
        )

        assert txn.subtotal_cents == 5450
        assert txn.discount_cents == 1000
        assert txn.tax_cents == 320
        assert txn.total_cents == 4770
        assert ledger.get_stock(product.id, branch.id).reserved_quantity == 4

        detail = transaction_detail(txn)
        assert detail["amount_paid_cents"] == 4570
        assert detail["balance_due_cents"] == 200
        assert [i["notes"] for i in detail["items"]] == ["First item", "Second item"]
        assert len(detail["items"][0]["addons"]) == 1

    def test_unit_price_defaults_to_selling_price_plus_variant(
        self, db_session, builder, stocked, product, branch, user
    ):
        variant = ProductVariant(
            product_id=product.id, variant_name="Large", sku="TEST001-L", price_adjustment_cents=300
        )
        db_session.add(variant)
        db_session.commit()

        item = cart_item(product.id, 1)
        item["product_variant_id"] = variant.id
        txn = builder.create_transaction(_cart([item], tax_cents=0), user.id, branch.id)

        assert txn.items[0].unit_price_cents == 1800
        assert txn.items[0].product_variant_id == variant.id
        assert txn.total_cents == 1800

    def test_transaction_numbers_are_unique(self, builder, stocked, product, branch, user):
        numbers = {
            builder.create_transaction(_cart([cart_item(product.id, 1, 1500)]), user.id, branch.id).transaction_number
            for _ in range(5)
        }
        assert len(numbers) == 5


class TestCreateTransactionFailures:
    """Every failure leaves no transaction, item, addon, payment, movement or reservation behind."""

    def _assert_nothing_written(self, session, ledger, product, branch, reserved=0):
        assert _row_counts(session) == {
            "transactions": 0,
            "transaction_items": 0,
            "transaction_item_addons": 0,
            "transaction_payments": 0,
            "stock_movements": 1,
        }
        assert ledger.get_stock(product.id, branch.id).reserved_quantity == reserved

    def test_insufficient_stock(self, db_session, builder, ledger, stocked, product, branch, user):
        with pytest.raises(InsufficientStockError, match="(?i)insufficient stock") as exc:
            builder.create_transaction(_cart([cart_item(product.id, 150, 1500)]), user.id, branch.id)

        assert exc.value.available == 100
        assert exc.value.requested == 150
        assert exc.value.message == f"Insufficient stock for product {product.id}: available 100, required 150"
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_late_item_failure_rolls_back_earlier_reservations(
        self, db_session, builder, ledger, stocked, product, unstocked_product, addon, branch, user
    ):
        with pytest.raises(NoStockRecord, match="No stock record found"):
            builder.create_transaction(
                _cart([
                    cart_item(product.id, 5, 1500, addons=[{"addon_id": addon.id, "quantity": 1}]),
                    cart_item(unstocked_product.id, 1, 1000),
                ]),
                user.id,
                branch.id,
            )
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_second_line_of_same_product_exceeding_stock(self, db_session, builder, ledger, stocked, product, branch, user):
        with pytest.raises(InsufficientStockError) as exc:
            builder.create_transaction(
                _cart([cart_item(product.id, 60, 1500), cart_item(product.id, 50, 1500)]),
                user.id,
                branch.id,
            )
        assert exc.value.available == 40
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_missing_references(self, db_session, builder, ledger, stocked, product, branch, user):
        with pytest.raises(CustomerNotFound, match="Customer not found"):
            builder.create_transaction(_cart([cart_item(product.id, 1, 1500)], customer_id=99999), user.id, branch.id)
        with pytest.raises(ProductNotFound, match="Product with id 99999 not found"):
            builder.create_transaction(_cart([cart_item(99999, 1, 1500)]), user.id, branch.id)
        with pytest.raises(AddonNotFound, match="Addon with id 99999 not found"):
            builder.create_transaction(
                _cart([cart_item(product.id, 1, 1500, addons=[{"addon_id": 99999, "quantity": 1}])]),
                user.id,
                branch.id,
            )
        with pytest.raises(BranchNotFound):
            builder.create_transaction(_cart([cart_item(product.id, 1, 1500)]), user.id, 99999)
        with pytest.raises(UserNotFound):
            builder.create_transaction(_cart([cart_item(product.id, 1, 1500)]), 99999, branch.id)
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_variant_of_another_product(self, db_session, builder, ledger, stocked, product, unstocked_product, branch, user):
        variant = ProductVariant(product_id=unstocked_product.id, variant_name="Small", sku="TEST002-S")
        db_session.add(variant)
        db_session.commit()

        item = cart_item(product.id, 1, 1500)
        item["product_variant_id"] = variant.id
        with pytest.raises(VariantNotFound):
            builder.create_transaction(_cart([item]), user.id, branch.id)
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_discount_larger_than_cart(self, db_session, builder, ledger, stocked, product, branch, user):
        with pytest.raises(ValidationError, match="Grand total would be negative"):
            builder.create_transaction(
                _cart([cart_item(product.id, 1, 1500)], discount_cents=2000, tax_cents=0), user.id, branch.id
            )
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_empty_cart_rejected(self, db_session, builder, ledger, stocked, product, branch, user):
        with pytest.raises(ValidationError, match="items"):
            builder.create_transaction(_cart([]), user.id, branch.id)
        self._assert_nothing_written(db_session, ledger, product, branch)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"discount_cents": -1},
            {"tax_cents": 1.5},
            {"payments": [{"payment_method": "CHEQUE", "amount_cents": 100}]},
            {"payments": [{"payment_method": "CASH", "amount_cents": 0}]},
            {"surprise": True},
        ],
    )
    def test_malformed_cart(self, db_session, builder, ledger, stocked, product, branch, user, overrides):
        with pytest.raises(ValidationError):
            builder.create_transaction(_cart([cart_item(product.id, 1, 1500)], **overrides), user.id, branch.id)
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_item_quantity_must_be_positive(self, db_session, builder, ledger, stocked, product, branch, user):
        with pytest.raises(ValidationError, match="quantity"):
            builder.create_transaction(_cart([cart_item(product.id, 0, 1500)]), user.id, branch.id)
        self._assert_nothing_written(db_session, ledger, product, branch)

    def test_identifier_collisions_exhaust_into_conflict(self, db_session, ledger, stocked, product, branch, user):
        builder = TransactionBuilder(db_session, number_factory=lambda: "TXN-1-FIXED0")
        first = builder.create_transaction(_cart([cart_item(product.id, 1, 1500)]), user.id, branch.id)
        assert first.transaction_number == "TXN-1-FIXED0"

        with pytest.raises(ConflictError, match="unique transaction number"):
            builder.create_transaction(_cart([cart_item(product.id, 1, 1500)]), user.id, branch.id)

        assert db_session.query(Transaction).count() == 1
        assert ledger.get_stock(product.id, branch.id).reserved_quantity == 1

    def test_identifier_collision_retries_with_fresh_number(self, db_session, ledger, stocked, product, branch, user):
        numbers = iter(["TXN-1-AAAAAA", "TXN-1-AAAAAA", "TXN-1-BBBBBB"])
        builder = TransactionBuilder(db_session, number_factory=lambda: next(numbers))

        builder.create_transaction(_cart([cart_item(product.id, 1, 1500)]), user.id, branch.id)
        second = builder.create_transaction(_cart([cart_item(product.id, 2, 1500)]), user.id, branch.id)

        assert second.transaction_number == "TXN-1-BBBBBB"
        assert db_session.query(Transaction).count() == 2
        assert ledger.get_stock(product.id, branch.id).reserved_quantity == 3
