# backend/branchpos/routes/inventory.py
"""
Inventory routes: stock levels, movements, transfers and reservations.

All writes go through services.stock_ledger.StockLedger; no route touches
stock.quantity or stock.reserved_quantity directly.

Time semantics:
- start/end accept ISO-8601 with Z/offsets; both bounds are inclusive.
"""
from flask import Blueprint, request

from ..errors import ValidationError
from ..extensions import db
from ..schemas import (
    AdjustIn,
    BulkStockUpdateIn,
    ReservationIn,
    StockMovementIn,
    TransferIn,
    parse_model,
)
from ..services.stock_ledger import StockLedger

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _ledger() -> StockLedger:
    return StockLedger(db.session)


def _required_int_arg(name: str) -> int:
    value = request.args.get(name, type=int)
    if value is None:
        raise ValidationError(f"{name} is required (integer)")
    return value


@inventory_bp.get("/stock")
def stock_route():
    """Stock rows for a branch. Query: branch_id (required), product_id."""
    rows = _ledger().get_stock_by_branch(
        _required_int_arg("branch_id"),
        product_id=request.args.get("product_id", type=int),
    )
    return {"items": [s.to_dict() for s in rows], "count": len(rows)}


@inventory_bp.post("/movements")
def apply_movement_route():
    body = parse_model(StockMovementIn, request.get_json(silent=True))
    stock = _ledger().apply_movement(
        body.product_id,
        body.branch_id,
        body.movement_type,
        body.quantity,
        body.user_id,
        notes=body.notes,
        reference_number=body.reference_number,
        to_branch_id=body.to_branch_id,
    )
    return stock.to_dict(), 201


@inventory_bp.get("/movements")
def list_movements_route():
    """Movement history, oldest first. Query: branch_id (required), product_id, start, end."""
    movements = _ledger().get_stock_movements(
        _required_int_arg("branch_id"),
        start=request.args.get("start"),
        end=request.args.get("end"),
        product_id=request.args.get("product_id", type=int),
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.post("/transfer")
def transfer_route():
    body = parse_model(TransferIn, request.get_json(silent=True))
    source, destination = _ledger().transfer(
        body.product_id,
        body.from_branch_id,
        body.to_branch_id,
        body.quantity,
        body.user_id,
        notes=body.notes,
        reference_number=body.reference_number,
    )
    return {"source": source.to_dict(), "destination": destination.to_dict()}, 201


@inventory_bp.post("/adjust")
def adjust_route():
    body = parse_model(AdjustIn, request.get_json(silent=True))
    stock = _ledger().adjust_stock(
        body.product_id, body.branch_id, body.new_quantity, body.user_id, reason=body.notes
    )
    return stock.to_dict(), 201


@inventory_bp.post("/reserve")
def reserve_route():
    body = parse_model(ReservationIn, request.get_json(silent=True))
    return _ledger().reserve(body.product_id, body.branch_id, body.quantity).to_dict()


@inventory_bp.post("/release")
def release_route():
    body = parse_model(ReservationIn, request.get_json(silent=True))
    return _ledger().release(body.product_id, body.branch_id, body.quantity).to_dict()


@inventory_bp.get("/alerts")
def alerts_route():
    alerts = _ledger().get_stock_alerts(branch_id=request.args.get("branch_id", type=int))
    return {"items": alerts, "count": len(alerts)}


@inventory_bp.post("/bulk")
def bulk_update_route():
    body = parse_model(BulkStockUpdateIn, request.get_json(silent=True))
    rows = _ledger().bulk_stock_update([u.model_dump() for u in body.updates], body.user_id)
    return {"items": [s.to_dict() for s in rows], "count": len(rows)}
