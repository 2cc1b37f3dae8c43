# Overview: Flask API routes for customers and loyalty; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Customer
from ..models.customers import MEMBERSHIP_TYPES
from ..services import customer_service
from ..validation import ModelValidationPolicy, parse_bool_arg, require_positive_int, validate_payload

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

# customer_code, loyalty_points and total_spent_cents are system-maintained
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "membership_type", "is_active"},
    required_on_create={"name"},
    choices={"membership_type": MEMBERSHIP_TYPES},
)


@customers_bp.get("")
def list_customers_route():
    customers = customer_service.list_customers(
        search=request.args.get("q"),
        is_active=parse_bool_arg(request.args.get("is_active"), "is_active"),
    )
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    customer = customer_service.create_customer(patch=patch)
    return customer.to_dict(), 201


@customers_bp.get("/by-phone")
def customer_by_phone_route():
    customer = customer_service.search_customer_by_phone(request.args.get("phone", ""))
    return {"customer": customer.to_dict() if customer else None}


@customers_bp.get("/top")
def top_customers_route():
    customers = customer_service.get_top_customers(
        branch_id=request.args.get("branch_id", type=int),
        limit=request.args.get("limit", default=10, type=int),
    )
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    return customer_service.get_customer(customer_id).to_dict()


@customers_bp.patch("/<int:customer_id>")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    return customer_service.update_customer(customer_id, patch=patch).to_dict()


@customers_bp.post("/<int:customer_id>/loyalty/add")
def add_points_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    points = require_positive_int(payload.get("points"), "points")
    return customer_service.add_loyalty_points(customer_id, points).to_dict()


@customers_bp.post("/<int:customer_id>/loyalty/redeem")
def redeem_points_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    points = require_positive_int(payload.get("points"), "points")
    return customer_service.redeem_loyalty_points(customer_id, points).to_dict()


@customers_bp.post("/<int:customer_id>/upgrade")
def upgrade_membership_route(customer_id: int):
    return customer_service.upgrade_membership(customer_id).to_dict()


@customers_bp.get("/<int:customer_id>/transactions")
def customer_history_route(customer_id: int):
    transactions = customer_service.get_customer_transaction_history(
        customer_id, limit=request.args.get("limit", type=int)
    )
    return {"items": [t.to_dict() for t in transactions], "count": len(transactions)}
