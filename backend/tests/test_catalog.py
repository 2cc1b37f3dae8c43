"""Catalog services: products, variants, categories, addons."""

import pytest

from branchpos.errors import AddonNotFound, CategoryNotFound, ConflictError, ProductNotFound, ValidationError
from branchpos.services import addon_service, product_service


def _product_patch(**overrides):
    patch = {
        "sku": "LATTE-01",
        "name": "Latte",
        "base_price_cents": 1200,
        "selling_price_cents": 2800,
        "unit": "cup",
    }
    patch.update(overrides)
    return patch


class TestProducts:
    def test_create_and_get(self, db_session):
        product = product_service.create_product(patch=_product_patch(barcode="899100"))

        fetched = product_service.get_product(product.id)
        assert fetched.sku == "LATTE-01"
        assert fetched.selling_price_cents == 2800
        assert fetched.is_active is True
        assert fetched.has_variants is False

    def test_duplicate_sku_conflicts(self, db_session):
        product_service.create_product(patch=_product_patch())
        with pytest.raises(ConflictError, match="SKU LATTE-01 already exists"):
            product_service.create_product(patch=_product_patch(name="Other"))

    def test_sku_is_immutable(self, db_session):
        product = product_service.create_product(patch=_product_patch())
        with pytest.raises(ValidationError, match="immutable"):
            product_service.update_product(product.id, patch={"sku": "NEW"})

    def test_update_product(self, db_session):
        product = product_service.create_product(patch=_product_patch())
        updated = product_service.update_product(product.id, patch={"selling_price_cents": 3000, "is_active": False})
        assert updated.selling_price_cents == 3000
        assert updated.is_active is False

    def test_unknown_category(self, db_session):
        with pytest.raises(CategoryNotFound):
            product_service.create_product(patch=_product_patch(category_id=999))

    def test_list_and_search(self, db_session):
        drinks = product_service.create_category(name="Drinks")
        product_service.create_product(patch=_product_patch(category_id=drinks.id))
        product_service.create_product(
            patch=_product_patch(sku="MUFFIN-01", name="Blueberry Muffin", unit="pcs", barcode="899200")
        )
        product_service.create_product(patch=_product_patch(sku="OLD-01", name="Old Latte", is_active=False))

        assert [p.sku for p in product_service.list_products(category_id=drinks.id)] == ["LATTE-01"]
        assert {p.sku for p in product_service.list_products(is_active=False)} == {"OLD-01"}
        assert [p.sku for p in product_service.search_products("latte")] == ["LATTE-01"]
        assert [p.sku for p in product_service.search_products("899200")] == ["MUFFIN-01"]
        with pytest.raises(ValidationError):
            product_service.search_products(" ")

    def test_get_missing_product(self, db_session):
        with pytest.raises(ProductNotFound):
            product_service.get_product(31337)


class TestVariants:
    def test_create_variant_marks_product(self, db_session):
        product = product_service.create_product(patch=_product_patch())

        variant = product_service.create_variant(
            product.id, patch={"variant_name": "Large", "sku": "LATTE-01-L", "price_adjustment_cents": 500}
        )

        assert variant.product_id == product.id
        assert product_service.get_product(product.id).has_variants is True
        detail = product_service.product_detail(product_service.get_product(product.id))
        assert [v["sku"] for v in detail["variants"]] == ["LATTE-01-L"]
        assert [v.id for v in product_service.list_variants(product.id)] == [variant.id]

    def test_duplicate_variant_sku(self, db_session):
        product = product_service.create_product(patch=_product_patch())
        product_service.create_variant(product.id, patch={"variant_name": "Large", "sku": "LATTE-01-L"})
        with pytest.raises(ConflictError):
            product_service.create_variant(product.id, patch={"variant_name": "Larger", "sku": "LATTE-01-L"})

    def test_variant_for_missing_product(self, db_session):
        with pytest.raises(ProductNotFound):
            product_service.create_variant(999, patch={"variant_name": "Large", "sku": "X-L"})


class TestAddons:
    def test_create_update_list(self, db_session):
        addon = addon_service.create_addon("Oat Milk", 700)
        addon_service.create_addon("Extra Shot", 500)

        updated = addon_service.update_addon(addon.id, price_cents=800)
        assert updated.price_cents == 800
        assert [a.name for a in addon_service.list_addons()] == ["Extra Shot", "Oat Milk"]

    def test_negative_price_rejected(self, db_session):
        with pytest.raises(ValidationError):
            addon_service.create_addon("Broken", -1)

    def test_deactivate_addon(self, db_session):
        addon = addon_service.create_addon("Oat Milk", 700)

        assert addon_service.deactivate_addon(addon.id) is True
        assert addon_service.deactivate_addon(addon.id) is False
        assert addon_service.list_addons(is_active=True) == []
        with pytest.raises(AddonNotFound):
            addon_service.deactivate_addon(999)
