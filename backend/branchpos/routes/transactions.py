# Overview: Flask API routes for sales transactions; cart creation and lifecycle transitions.

# backend/branchpos/routes/transactions.py
"""
Transaction routes.

POST /api/transactions takes the cart plus user_id and branch_id:

    {
      "user_id": 1, "branch_id": 1, "customer_id": null,
      "items": [
        {"product_id": 3, "quantity": 2, "unit_price_cents": 1500,
         "discount_cents": 0, "addons": [{"addon_id": 1, "quantity": 1}]}
      ],
      "discount_cents": 0, "tax_cents": 150,
      "payments": [{"payment_method": "CASH", "amount_cents": 3400}]
    }

and returns the PENDING transaction with its items, addons and payments.
Errors use the shared {"error": {"kind", "message", "details"}} shape.
"""
from flask import Blueprint, current_app, request

from ..errors import ValidationError
from ..extensions import db
from ..schemas import CancelIn, CompleteIn, CreateTransactionIn, parse_model
from ..services.transaction_service import TransactionBuilder, transaction_detail

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _builder() -> TransactionBuilder:
    return TransactionBuilder(db.session)


@transactions_bp.post("")
def create_transaction_route():
    body = parse_model(CreateTransactionIn, request.get_json(silent=True))
    cart = body.model_dump(exclude={"user_id", "branch_id"})
    txn = _builder().create_transaction(cart, user_id=body.user_id, branch_id=body.branch_id)
    return transaction_detail(txn), 201


@transactions_bp.get("")
def list_transactions_route():
    """Query: branch_id (required), start, end, status, customer_id. Newest first."""
    branch_id = request.args.get("branch_id", type=int)
    if branch_id is None:
        raise ValidationError("branch_id is required (integer)")
    transactions = _builder().list_transactions(
        branch_id,
        start=request.args.get("start"),
        end=request.args.get("end"),
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
    )
    return {"items": [t.to_dict() for t in transactions], "count": len(transactions)}


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    return transaction_detail(_builder().get_transaction(transaction_id))


@transactions_bp.post("/<int:transaction_id>/complete")
def complete_transaction_route(transaction_id: int):
    body = parse_model(CompleteIn, request.get_json(silent=True))
    txn = _builder().complete_transaction(transaction_id, body.user_id)
    current_app.logger.info("transaction %s completed by user %s", transaction_id, body.user_id)
    return transaction_detail(txn)


@transactions_bp.post("/<int:transaction_id>/hold")
def hold_transaction_route(transaction_id: int):
    return transaction_detail(_builder().hold_transaction(transaction_id))


@transactions_bp.post("/<int:transaction_id>/resume")
def resume_transaction_route(transaction_id: int):
    return transaction_detail(_builder().resume_transaction(transaction_id))


@transactions_bp.post("/<int:transaction_id>/cancel")
def cancel_transaction_route(transaction_id: int):
    body = parse_model(CancelIn, request.get_json(silent=True))
    return transaction_detail(_builder().cancel_transaction(transaction_id, body.reason))
