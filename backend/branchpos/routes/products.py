# Overview: Flask API routes for the catalog (products, variants, categories, addons).

# backend/branchpos/routes/products.py
from flask import Blueprint, request

from ..models import Addon, Product, ProductCategory, ProductVariant
from ..services import addon_service, product_service
from ..validation import (
    ModelValidationPolicy,
    enforce_money_rules,
    enforce_non_negative,
    parse_bool_arg,
    validate_payload,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
addons_bp = Blueprint("addons", __name__, url_prefix="/api/addons")

PRODUCT_FIELDS = {
    "barcode",
    "name",
    "description",
    "category_id",
    "base_price_cents",
    "selling_price_cents",
    "unit",
    "min_stock",
    "is_active",
    "has_variants",
    "is_raw_material",
    "image_url",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"sku"},
    required_on_create={"sku", "name", "base_price_cents", "selling_price_cents", "unit"},
)

# sku is immutable once created
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_FIELDS)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={"variant_name", "sku", "barcode", "price_adjustment_cents"},
    required_on_create={"variant_name", "sku"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "parent_id"},
    required_on_create={"name"},
)

ADDON_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents"},
    required_on_create={"name", "price_cents"},
)


def enforce_rules_product(patch: dict) -> None:
    enforce_money_rules(patch)
    enforce_non_negative(patch, "base_price_cents", "selling_price_cents", "min_stock")


@products_bp.get("")
def list_products_route():
    """
    List products.

    Query params:
    - q: search name / sku / barcode (active products only)
    - category_id: int
    - is_active: true|false
    """
    query = request.args.get("q")
    if query:
        products = product_service.search_products(query)
    else:
        products = product_service.list_products(
            category_id=request.args.get("category_id", type=int),
            is_active=parse_bool_arg(request.args.get("is_active"), "is_active"),
        )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    product = product_service.create_product(patch=patch)
    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    return product_service.product_detail(product_service.get_product(product_id))


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)
    return product_service.update_product(product_id, patch=patch).to_dict()


@products_bp.get("/<int:product_id>/variants")
def list_variants_route(product_id: int):
    variants = product_service.list_variants(product_id)
    return {"items": [v.to_dict() for v in variants], "count": len(variants)}


@products_bp.post("/<int:product_id>/variants")
def create_variant_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=False)
    enforce_money_rules(patch)
    variant = product_service.create_variant(product_id, patch=patch)
    return variant.to_dict(), 201


@categories_bp.get("")
def list_categories_route():
    categories = product_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@categories_bp.post("")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=ProductCategory, payload=payload, policy=CATEGORY_POLICY, partial=False)
    category = product_service.create_category(
        name=patch["name"],
        description=patch.get("description"),
        parent_id=patch.get("parent_id"),
    )
    return category.to_dict(), 201


@addons_bp.get("")
def list_addons_route():
    addons = addon_service.list_addons(is_active=parse_bool_arg(request.args.get("is_active"), "is_active"))
    return {"items": [a.to_dict() for a in addons], "count": len(addons)}


@addons_bp.post("")
def create_addon_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Addon, payload=payload, policy=ADDON_POLICY, partial=False)
    enforce_money_rules(patch)
    addon = addon_service.create_addon(patch["name"], patch["price_cents"])
    return addon.to_dict(), 201


@addons_bp.patch("/<int:addon_id>")
def update_addon_route(addon_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Addon, payload=payload, policy=ADDON_POLICY, partial=True)
    enforce_money_rules(patch)
    addon = addon_service.update_addon(addon_id, name=patch.get("name"), price_cents=patch.get("price_cents"))
    return addon.to_dict()


@addons_bp.post("/<int:addon_id>/deactivate")
def deactivate_addon_route(addon_id: int):
    changed = addon_service.deactivate_addon(addon_id)
    return {"addon_id": addon_id, "deactivated": changed}
