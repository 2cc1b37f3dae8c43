import pytest

from branchpos.errors import BranchNotFound, ConflictError, InvalidStateTransition, ShiftNotFound, ValidationError
from branchpos.services import shift_service


def test_start_and_end_shift(db_session, branch, user):
    shift = shift_service.start_shift(user.id, branch.id, 50_000)
    assert shift.is_open
    assert shift.total_sales_cents == 0
    assert shift_service.get_current_shift(user.id).id == shift.id

    ended = shift_service.end_shift(shift.id, 61_500, notes="Till balanced")
    assert not ended.is_open
    assert ended.closing_cash_cents == 61_500
    assert ended.notes == "Till balanced"
    assert shift_service.get_current_shift(user.id) is None


def test_one_open_shift_per_user(db_session, branch, other_branch, user):
    shift_service.start_shift(user.id, branch.id, 0)
    with pytest.raises(ConflictError, match="already has an open shift"):
        shift_service.start_shift(user.id, other_branch.id, 0)


def test_shift_cannot_end_twice(db_session, branch, user):
    shift = shift_service.start_shift(user.id, branch.id, 0)
    shift_service.end_shift(shift.id, 0)
    with pytest.raises(InvalidStateTransition):
        shift_service.end_shift(shift.id, 0)


def test_start_shift_validation(db_session, branch, user):
    with pytest.raises(ValidationError):
        shift_service.start_shift(user.id, branch.id, -1)
    with pytest.raises(BranchNotFound):
        shift_service.start_shift(user.id, 999, 0)
    with pytest.raises(ShiftNotFound):
        shift_service.end_shift(999, 0)


def test_history_and_notes(db_session, branch, other_branch, user):
    first = shift_service.start_shift(user.id, branch.id, 0)
    shift_service.end_shift(first.id, 0)
    second = shift_service.start_shift(user.id, other_branch.id, 0)

    assert [s.id for s in shift_service.get_shift_history(user_id=user.id)] == [second.id, first.id]
    assert [s.id for s in shift_service.get_shift_history(branch_id=branch.id)] == [first.id]
    assert shift_service.get_shift_history(user_id=user.id, start="2999-01-01") == []

    assert shift_service.update_shift_notes(second.id, "Busy lunch").notes == "Busy lunch"
    assert shift_service.get_shift(second.id).notes == "Busy lunch"
