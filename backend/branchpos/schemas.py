# Overview: Request schemas for nested JSON inputs (carts, stock movements); flat CRUD payloads go through validation.py.

from __future__ import annotations

from typing import Annotated, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

PositiveInt = Annotated[StrictInt, Field(gt=0)]
NonNegativeInt = Annotated[StrictInt, Field(ge=0)]
Notes = Annotated[StrictStr, Field(max_length=2000)]

PaymentMethod = Literal["CASH", "CARD", "QRIS", "BANK_TRANSFER", "E_WALLET"]
MovementType = Literal["IN", "OUT", "TRANSFER", "ADJUSTMENT"]


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class CartAddonIn(_Schema):
    addon_id: PositiveInt
    quantity: PositiveInt


class CartItemIn(_Schema):
    product_id: PositiveInt
    product_variant_id: Optional[PositiveInt] = None
    quantity: PositiveInt
    # Omitted: product selling price plus the variant's adjustment
    unit_price_cents: Optional[NonNegativeInt] = None
    discount_cents: NonNegativeInt = 0
    notes: Optional[Notes] = None
    addons: list[CartAddonIn] = Field(default_factory=list)


class PaymentIn(_Schema):
    payment_method: PaymentMethod
    amount_cents: PositiveInt
    reference_number: Optional[Annotated[StrictStr, Field(max_length=100)]] = None


class CartIn(_Schema):
    customer_id: Optional[PositiveInt] = None
    items: list[CartItemIn] = Field(min_length=1)
    discount_cents: NonNegativeInt = 0
    tax_cents: NonNegativeInt = 0
    payments: list[PaymentIn] = Field(default_factory=list)
    notes: Optional[Notes] = None


class CreateTransactionIn(CartIn):
    """RPC body: the cart plus the acting cashier and branch."""
    user_id: PositiveInt
    branch_id: PositiveInt


class StockMovementIn(_Schema):
    product_id: PositiveInt
    branch_id: PositiveInt
    movement_type: MovementType
    # ADJUSTMENT may set on-hand to zero; the ledger requires > 0 for the others
    quantity: NonNegativeInt
    user_id: PositiveInt
    to_branch_id: Optional[PositiveInt] = None
    notes: Optional[Notes] = None
    reference_number: Optional[Annotated[StrictStr, Field(max_length=100)]] = None


class TransferIn(_Schema):
    product_id: PositiveInt
    from_branch_id: PositiveInt
    to_branch_id: PositiveInt
    quantity: PositiveInt
    user_id: PositiveInt
    notes: Optional[Notes] = None
    reference_number: Optional[Annotated[StrictStr, Field(max_length=100)]] = None


class AdjustIn(_Schema):
    product_id: PositiveInt
    branch_id: PositiveInt
    new_quantity: NonNegativeInt
    user_id: PositiveInt
    notes: Optional[Notes] = None


class ReservationIn(_Schema):
    product_id: PositiveInt
    branch_id: PositiveInt
    quantity: PositiveInt


class BulkStockRowIn(_Schema):
    product_id: PositiveInt
    branch_id: PositiveInt
    quantity: NonNegativeInt


class BulkStockUpdateIn(_Schema):
    updates: list[BulkStockRowIn] = Field(min_length=1)
    user_id: PositiveInt


class CancelIn(_Schema):
    reason: Optional[Notes] = None


class CompleteIn(_Schema):
    user_id: PositiveInt


S = TypeVar("S", bound=BaseModel)


def parse_model(schema: type[S], payload) -> S:
    """Validate payload against a schema, reporting failures as ValidationError (kind InvalidInput)."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        loc = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{loc}: {first.get('msg', 'invalid value')}" if loc else first.get("msg", "invalid input")
        raise ValidationError(message, {"errors": errors}) from e
