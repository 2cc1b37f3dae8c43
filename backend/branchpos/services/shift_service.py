# Overview: Service-layer operations for cashier shifts; open/close and history.

"""
Shift rules:
- a user has at most one open shift (end_time IS NULL) at a time
- an ended shift cannot be ended again
- total_sales_cents is credited by transaction completion, not here

Cash reconciliation (expected vs counted cash) is not computed here; the
closing count is recorded as entered.
"""

from __future__ import annotations

from ..errors import (
    BranchNotFound,
    ConflictError,
    InvalidStateTransition,
    ShiftNotFound,
    UserNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Branch, Shift, User
from ..time_utils import normalize_datetime, utcnow
from ..validation import require_non_negative_int
from .concurrency import begin_write_unit, lock_for_update, run_with_retry


def start_shift(user_id: int, branch_id: int, opening_cash_cents: int) -> Shift:
    require_non_negative_int(opening_cash_cents, "opening_cash_cents")

    def _op():
        begin_write_unit(db.session)
        if db.session.get(User, user_id) is None:
            raise UserNotFound(user_id)
        if db.session.get(Branch, branch_id) is None:
            raise BranchNotFound(branch_id)

        open_shift = get_current_shift(user_id)
        if open_shift is not None:
            raise ConflictError(
                f"User {user_id} already has an open shift {open_shift.id}",
                {"user_id": user_id, "shift_id": open_shift.id},
            )

        shift = Shift(
            user_id=user_id,
            branch_id=branch_id,
            start_time=utcnow(),
            opening_cash_cents=opening_cash_cents,
            total_sales_cents=0,
        )
        db.session.add(shift)
        db.session.commit()
        return shift

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def end_shift(shift_id: int, closing_cash_cents: int, notes: str | None = None) -> Shift:
    require_non_negative_int(closing_cash_cents, "closing_cash_cents")

    def _op():
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if not shift:
            raise ShiftNotFound(shift_id)
        if shift.end_time is not None:
            raise InvalidStateTransition(f"Shift {shift_id} has already ended", {"shift_id": shift_id})

        shift.end_time = utcnow()
        shift.closing_cash_cents = closing_cash_cents
        if notes is not None:
            shift.notes = notes
        db.session.commit()
        return shift

    return run_with_retry(_op)


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise ShiftNotFound(shift_id)
    return shift


def get_current_shift(user_id: int) -> Shift | None:
    return (
        db.session.query(Shift)
        .filter(Shift.user_id == user_id, Shift.end_time.is_(None))
        .order_by(Shift.start_time.desc(), Shift.id.desc())
        .first()
    )


def get_shift_history(user_id: int | None = None, branch_id: int | None = None, start=None, end=None) -> list[Shift]:
    """Newest first; start/end are inclusive bounds on start_time."""
    try:
        start_dt = normalize_datetime(start)
        end_dt = normalize_datetime(end)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    q = db.session.query(Shift)
    if user_id is not None:
        q = q.filter(Shift.user_id == user_id)
    if branch_id is not None:
        q = q.filter(Shift.branch_id == branch_id)
    if start_dt is not None:
        q = q.filter(Shift.start_time >= start_dt)
    if end_dt is not None:
        q = q.filter(Shift.start_time <= end_dt)
    return q.order_by(Shift.start_time.desc(), Shift.id.desc()).all()


def update_shift_notes(shift_id: int, notes: str) -> Shift:
    def _op():
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if not shift:
            raise ShiftNotFound(shift_id)
        shift.notes = notes
        db.session.commit()
        return shift

    return run_with_retry(_op)
