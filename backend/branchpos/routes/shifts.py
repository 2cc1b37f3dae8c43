# Overview: Flask API routes for cashier shifts.

from flask import Blueprint, request

from ..models import Shift
from ..services import shift_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")

START_POLICY = ModelValidationPolicy(
    writable_fields={"user_id", "branch_id", "opening_cash_cents"},
    required_on_create={"user_id", "branch_id", "opening_cash_cents"},
)

END_POLICY = ModelValidationPolicy(
    writable_fields={"closing_cash_cents", "notes"},
    required_on_create={"closing_cash_cents"},
)

NOTES_POLICY = ModelValidationPolicy(writable_fields={"notes"}, required_on_create={"notes"})


@shifts_bp.post("/start")
def start_shift_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Shift, payload=payload, policy=START_POLICY, partial=False)
    shift = shift_service.start_shift(patch["user_id"], patch["branch_id"], patch["opening_cash_cents"])
    return shift.to_dict(), 201


@shifts_bp.post("/<int:shift_id>/end")
def end_shift_route(shift_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Shift, payload=payload, policy=END_POLICY, partial=False)
    shift = shift_service.end_shift(shift_id, patch["closing_cash_cents"], notes=patch.get("notes"))
    return shift.to_dict()


@shifts_bp.get("/current")
def current_shift_route():
    user_id = request.args.get("user_id", type=int)
    if user_id is None:
        raise ValidationError("user_id is required")
    shift = shift_service.get_current_shift(user_id)
    return {"shift": shift.to_dict() if shift else None}


@shifts_bp.get("")
def shift_history_route():
    shifts = shift_service.get_shift_history(
        user_id=request.args.get("user_id", type=int),
        branch_id=request.args.get("branch_id", type=int),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return {"items": [s.to_dict() for s in shifts], "count": len(shifts)}


@shifts_bp.get("/<int:shift_id>")
def get_shift_route(shift_id: int):
    return shift_service.get_shift(shift_id).to_dict()


@shifts_bp.patch("/<int:shift_id>/notes")
def update_notes_route(shift_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Shift, payload=payload, policy=NOTES_POLICY, partial=False)
    return shift_service.update_shift_notes(shift_id, patch["notes"]).to_dict()
