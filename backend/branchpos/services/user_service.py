# Overview: Service-layer operations for staff users; stores bcrypt hashes only, no login/session handling.

"""
Users are the actors stamped on transactions, stock movements and shifts.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12); plaintext is never stored
- Minimum 8 characters
- Email is globally unique (case-insensitive: stored lowercased)
- Authentication and sessions are handled outside this service
"""

from __future__ import annotations

import bcrypt

from ..errors import BranchNotFound, ConflictError, UserNotFound, ValidationError
from ..extensions import db
from ..models import Branch, User
from ..models.branches import USER_ROLES
from .concurrency import lock_for_update, run_with_retry

MIN_PASSWORD_LENGTH = 8
BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe comparison via bcrypt.checkpw."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


def _require_branch(branch_id: int | None) -> None:
    if branch_id is not None and db.session.get(Branch, branch_id) is None:
        raise BranchNotFound(branch_id)


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def create_user(
    *,
    email: str,
    password: str,
    full_name: str,
    role: str,
    branch_id: int | None = None,
    bcrypt_rounds: int = BCRYPT_ROUNDS,
) -> User:
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")
    password_hash = hash_password(password, rounds=bcrypt_rounds)

    def _op():
        _require_branch(branch_id)
        if db.session.query(User.id).filter(User.email == email).first():
            raise ConflictError(f"User with email {email} already exists", {"email": email})

        user = User(
            email=email,
            password_hash=password_hash,
            full_name=full_name,
            role=role,
            branch_id=branch_id,
            is_active=True,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return run_with_retry(_op)


def list_users(branch_id: int | None = None, role: str | None = None, include_inactive: bool = False) -> list[User]:
    q = db.session.query(User)
    if branch_id is not None:
        q = q.filter(User.branch_id == branch_id)
    if role is not None:
        q = q.filter(User.role == role)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.full_name.asc(), User.id.asc()).all()


def update_user(user_id: int, *, full_name: str | None = None, role: str | None = None,
                branch_id: int | None = None) -> User:
    if role is not None and role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if not user:
            raise UserNotFound(user_id)
        _require_branch(branch_id)
        if full_name is not None:
            user.full_name = full_name
        if role is not None:
            user.role = role
        if branch_id is not None:
            user.branch_id = branch_id
        db.session.commit()
        return user

    return run_with_retry(_op)


def deactivate_user(user_id: int) -> User:
    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if not user:
            raise UserNotFound(user_id)
        user.is_active = False
        db.session.commit()
        return user

    return run_with_retry(_op)
