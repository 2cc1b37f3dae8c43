# backend/branchpos/services/product_service.py
"""
Catalog service: products, categories and variants.

- sku is the product's immutable identity: unique across all products,
  set at creation, rejected in updates
- variant skus are unique across variants
- products are never deleted; is_active=False hides them from the till
"""
from __future__ import annotations

from sqlalchemy import or_

from ..errors import CategoryNotFound, ConflictError, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Product, ProductCategory, ProductVariant
from .concurrency import lock_for_update, run_with_retry

PRODUCT_MUTABLE_FIELDS = {
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


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(ProductCategory, category_id) is None:
        raise CategoryNotFound(category_id)


def create_product(*, patch: dict) -> Product:
    """Create a product from a validated patch. ConflictError on duplicate sku."""
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")

    def _op():
        _require_category(patch.get("category_id"))
        existing = db.session.query(Product.id).filter(Product.sku == sku).first()
        if existing:
            raise ConflictError(f"SKU {sku} already exists", {"sku": sku})

        p = Product(sku=sku)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.commit()
        return p

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise ProductNotFound(product_id)
    return p


def list_products(category_id: int | None = None, is_active: bool | None = None) -> list[Product]:
    q = db.session.query(Product)
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if is_active is not None:
        q = q.filter(Product.is_active.is_(is_active))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def search_products(query: str, *, active_only: bool = True) -> list[Product]:
    """Case-insensitive substring match on name, sku or barcode."""
    query = (query or "").strip()
    if not query:
        raise ValidationError("search query is required")
    term = f"%{query}%"
    q = db.session.query(Product).filter(
        or_(Product.name.ilike(term), Product.sku.ilike(term), Product.barcode.ilike(term))
    )
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def update_product(product_id: int, *, patch: dict) -> Product:
    if "sku" in patch:
        raise ValidationError("sku is immutable once created", {"product_id": product_id})

    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not p:
            raise ProductNotFound(product_id)
        if "category_id" in patch:
            _require_category(patch["category_id"])
        apply_product_patch(p, patch)
        db.session.commit()
        return p

    return run_with_retry(_op)


# --- Categories -------------------------------------------------------------

def create_category(*, name: str, description: str | None = None, parent_id: int | None = None) -> ProductCategory:
    if not name or not name.strip():
        raise ValidationError("name is required")

    def _op():
        _require_category(parent_id)
        category = ProductCategory(name=name.strip(), description=description, parent_id=parent_id)
        db.session.add(category)
        db.session.commit()
        return category

    return run_with_retry(_op)


def list_categories(include_inactive: bool = False) -> list[ProductCategory]:
    q = db.session.query(ProductCategory)
    if not include_inactive:
        q = q.filter(ProductCategory.is_active.is_(True))
    return q.order_by(ProductCategory.name.asc(), ProductCategory.id.asc()).all()


# --- Variants ---------------------------------------------------------------

def create_variant(product_id: int, *, patch: dict) -> ProductVariant:
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductNotFound(product_id)
        if db.session.query(ProductVariant.id).filter(ProductVariant.sku == sku).first():
            raise ConflictError(f"Variant SKU {sku} already exists", {"sku": sku})

        variant = ProductVariant(
            product_id=product.id,
            variant_name=patch["variant_name"],
            sku=sku,
            barcode=patch.get("barcode"),
            price_adjustment_cents=patch.get("price_adjustment_cents") or 0,
            is_active=True,
        )
        db.session.add(variant)
        if not product.has_variants:
            product.has_variants = True
        db.session.commit()
        return variant

    return run_with_retry(_op)


def list_variants(product_id: int, include_inactive: bool = False) -> list[ProductVariant]:
    get_product(product_id)
    q = db.session.query(ProductVariant).filter(ProductVariant.product_id == product_id)
    if not include_inactive:
        q = q.filter(ProductVariant.is_active.is_(True))
    return q.order_by(ProductVariant.id.asc()).all()


def product_detail(p: Product) -> dict:
    data = p.to_dict()
    data["variants"] = [v.to_dict() for v in sorted(p.variants, key=lambda v: v.id)]
    return data
