# Overview: Flask API routes for branches and staff users; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Branch, User
from ..models.branches import USER_ROLES
from ..services import branch_service, user_service
from ..validation import ModelValidationPolicy, ValidationError, parse_bool_arg, validate_payload

branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone", "email", "is_active"},
    required_on_create={"name"},
)

USER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"email", "full_name", "role", "branch_id"},
    required_on_create={"email", "full_name", "role"},
    choices={"role": USER_ROLES},
)

USER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"full_name", "role", "branch_id"},
    choices={"role": USER_ROLES},
)


@branches_bp.get("")
def list_branches_route():
    include_inactive = parse_bool_arg(request.args.get("include_inactive"), "include_inactive")
    branches = branch_service.list_branches(include_inactive=bool(include_inactive))
    return {"items": [b.to_dict() for b in branches], "count": len(branches)}


@branches_bp.post("")
def create_branch_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=False)
    branch = branch_service.create_branch(patch=patch)
    return branch.to_dict(), 201


@branches_bp.get("/<int:branch_id>")
def get_branch_route(branch_id: int):
    return branch_service.get_branch(branch_id).to_dict()


@branches_bp.patch("/<int:branch_id>")
def update_branch_route(branch_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=True)
    return branch_service.update_branch(branch_id, patch=patch).to_dict()


@branches_bp.post("/<int:branch_id>/deactivate")
def deactivate_branch_route(branch_id: int):
    return branch_service.deactivate_branch(branch_id).to_dict()


@users_bp.get("")
def list_users_route():
    branch_id = request.args.get("branch_id", type=int)
    role = request.args.get("role")
    if role is not None and role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    include_inactive = parse_bool_arg(request.args.get("include_inactive"), "include_inactive")
    users = user_service.list_users(branch_id=branch_id, role=role, include_inactive=bool(include_inactive))
    return {"items": [u.to_dict() for u in users], "count": len(users)}


@users_bp.post("")
def create_user_route():
    """Create a staff user. The plaintext password is hashed and never echoed back."""
    payload = dict(request.get_json(silent=True) or {})
    password = payload.pop("password", None)
    if not isinstance(password, str):
        raise ValidationError("password is required")
    patch = validate_payload(model=User, payload=payload, policy=USER_CREATE_POLICY, partial=False)
    user = user_service.create_user(
        email=patch["email"],
        password=password,
        full_name=patch["full_name"],
        role=patch["role"],
        branch_id=patch.get("branch_id"),
    )
    return user.to_dict(), 201


@users_bp.get("/<int:user_id>")
def get_user_route(user_id: int):
    return user_service.get_user(user_id).to_dict()


@users_bp.patch("/<int:user_id>")
def update_user_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=User, payload=payload, policy=USER_UPDATE_POLICY, partial=True)
    user = user_service.update_user(
        user_id,
        full_name=patch.get("full_name"),
        role=patch.get("role"),
        branch_id=patch.get("branch_id"),
    )
    return user.to_dict()


@users_bp.post("/<int:user_id>/deactivate")
def deactivate_user_route(user_id: int):
    return user_service.deactivate_user(user_id).to_dict()
