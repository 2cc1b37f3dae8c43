# Overview: Pure pricing calculator over integer cents; no I/O, no session.

"""
All amounts are integer cents. Integer arithmetic is exact, so repeated
additions never drift and every stored total can be recomputed from its
constituent rows:

    item total   = quantity * unit_price - item discount
    addon total  = quantity * addon unit price
    subtotal     = sum(item totals) + sum(addon totals)
    grand total  = subtotal - cart discount + tax

Every failure is ValidationError (kind InvalidInput). A grand total below
zero is rejected rather than treated as a refund.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..errors import ValidationError


def _int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents", {"field": field})
    return value


def compute_item_total(quantity: int, unit_price_cents: int, discount_cents: int = 0) -> int:
    quantity = _int(quantity, "quantity")
    unit_price_cents = _int(unit_price_cents, "unit_price_cents")
    discount_cents = _int(discount_cents, "discount_cents")

    if quantity <= 0:
        raise ValidationError("quantity must be > 0", {"quantity": quantity})
    if unit_price_cents < 0:
        raise ValidationError("unit_price_cents must be >= 0", {"unit_price_cents": unit_price_cents})
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0", {"discount_cents": discount_cents})

    gross = quantity * unit_price_cents
    if discount_cents > gross:
        raise ValidationError(
            f"Item discount {discount_cents} exceeds item amount {gross}",
            {"discount_cents": discount_cents, "gross_cents": gross},
        )
    return gross - discount_cents


def compute_addon_total(quantity: int, unit_price_cents: int) -> int:
    quantity = _int(quantity, "quantity")
    unit_price_cents = _int(unit_price_cents, "unit_price_cents")

    if quantity <= 0:
        raise ValidationError("addon quantity must be > 0", {"quantity": quantity})
    if unit_price_cents < 0:
        raise ValidationError("addon unit_price_cents must be >= 0", {"unit_price_cents": unit_price_cents})
    return quantity * unit_price_cents


def compute_cart_subtotal(items: Iterable["PricedItem"]) -> int:
    """Sum of item totals plus the totals of every addon on every item."""
    return sum(item.total_cents + item.addons_total_cents for item in items)


def compute_grand_total(subtotal_cents: int, discount_cents: int = 0, tax_cents: int = 0) -> int:
    subtotal_cents = _int(subtotal_cents, "subtotal_cents")
    discount_cents = _int(discount_cents, "discount_cents")
    tax_cents = _int(tax_cents, "tax_cents")

    if subtotal_cents < 0:
        raise ValidationError("subtotal_cents must be >= 0", {"subtotal_cents": subtotal_cents})
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0", {"discount_cents": discount_cents})
    if tax_cents < 0:
        raise ValidationError("tax_cents must be >= 0", {"tax_cents": tax_cents})

    total = subtotal_cents - discount_cents + tax_cents
    if total < 0:
        raise ValidationError(
            f"Grand total would be negative ({total}): discount {discount_cents} "
            f"exceeds subtotal {subtotal_cents} plus tax {tax_cents}",
            {
                "subtotal_cents": subtotal_cents,
                "discount_cents": discount_cents,
                "tax_cents": tax_cents,
            },
        )
    return total


@dataclass(frozen=True)
class PricedAddon:
    addon_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int


@dataclass(frozen=True)
class PricedItem:
    product_id: int
    product_variant_id: int | None
    quantity: int
    unit_price_cents: int
    discount_cents: int
    total_cents: int
    notes: str | None = None
    addons: tuple[PricedAddon, ...] = ()

    @property
    def addons_total_cents(self) -> int:
        return sum(a.total_price_cents for a in self.addons)


@dataclass(frozen=True)
class CartTotals:
    items: tuple[PricedItem, ...]
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int


def price_item(line: dict) -> PricedItem:
    """
    Price one resolved cart line.

    line: product_id, product_variant_id (optional), quantity,
    unit_price_cents, discount_cents (optional), notes (optional) and
    addons: [{addon_id, quantity, unit_price_cents}].
    """
    addons = tuple(
        PricedAddon(
            addon_id=a["addon_id"],
            quantity=a["quantity"],
            unit_price_cents=a["unit_price_cents"],
            total_price_cents=compute_addon_total(a["quantity"], a["unit_price_cents"]),
        )
        for a in line.get("addons") or ()
    )
    discount = line.get("discount_cents") or 0
    return PricedItem(
        product_id=line["product_id"],
        product_variant_id=line.get("product_variant_id"),
        quantity=line["quantity"],
        unit_price_cents=line["unit_price_cents"],
        discount_cents=discount,
        total_cents=compute_item_total(line["quantity"], line["unit_price_cents"], discount),
        notes=line.get("notes"),
        addons=addons,
    )


def price_cart(lines: Sequence[dict], discount_cents: int = 0, tax_cents: int = 0) -> CartTotals:
    items = tuple(price_item(line) for line in lines)
    subtotal = compute_cart_subtotal(items)
    total = compute_grand_total(subtotal, discount_cents, tax_cents)
    return CartTotals(
        items=items,
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        total_cents=total,
    )
