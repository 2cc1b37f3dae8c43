from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductCategory(db.Model):
    """Product grouping; parent_id allows one level or more of nesting."""
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("ProductCategory", remote_side=[id], backref="children")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data.

    SKU is the immutable identity (globally unique). Prices are authoritative
    in cents; selling_price_cents is what the till proposes, base_price_cents
    is the cost-side reference price.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_barcode", "barcode"),
        db.Index("ix_products_active_name", "is_active", "name"),
        db.CheckConstraint("min_stock >= 0", name="min_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(100), nullable=False)
    barcode = db.Column(db.String(100), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    base_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(50), nullable=False)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    has_variants = db.Column(db.Boolean, nullable=False, default=False)
    is_raw_material = db.Column(db.Boolean, nullable=False, default=False)
    image_url = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "base_price_cents": self.base_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "unit": self.unit,
            "min_stock": self.min_stock,
            "is_active": self.is_active,
            "has_variants": self.has_variants,
            "is_raw_material": self.is_raw_material,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """Size/flavour variant of a product; price_adjustment_cents is added to the base price."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_product_variants_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(100), nullable=False)
    barcode = db.Column(db.String(100), nullable=True)
    price_adjustment_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_name": self.variant_name,
            "sku": self.sku,
            "barcode": self.barcode,
            "price_adjustment_cents": self.price_adjustment_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Addon(db.Model):
    """
    Priced extra (topping, extra shot) that can be attached to any line item.

    Soft-deactivated only: historical TransactionItemAddon rows keep pointing
    at it, with the price snapshotted at sale time.
    """
    __tablename__ = "addons"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
