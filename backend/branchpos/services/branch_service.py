from __future__ import annotations

from ..errors import BranchNotFound
from ..extensions import db
from ..models import Branch
from .concurrency import lock_for_update, run_with_retry

BRANCH_MUTABLE_FIELDS = {"name", "address", "phone", "email", "is_active"}


def create_branch(*, patch: dict) -> Branch:
    def _op():
        branch = Branch(is_active=True)
        for k, v in patch.items():
            if k in BRANCH_MUTABLE_FIELDS:
                setattr(branch, k, v)
        db.session.add(branch)
        db.session.commit()
        return branch

    return run_with_retry(_op)


def update_branch(branch_id: int, *, patch: dict) -> Branch:
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise BranchNotFound(branch_id)
        for k, v in patch.items():
            if k in BRANCH_MUTABLE_FIELDS:
                setattr(branch, k, v)
        db.session.commit()
        return branch

    return run_with_retry(_op)


def deactivate_branch(branch_id: int) -> Branch:
    """Soft delete: stock, sales and shifts keep pointing at the branch."""
    return update_branch(branch_id, patch={"is_active": False})


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise BranchNotFound(branch_id)
    return branch


def list_branches(include_inactive: bool = False) -> list[Branch]:
    q = db.session.query(Branch)
    if not include_inactive:
        q = q.filter(Branch.is_active.is_(True))
    return q.order_by(Branch.name.asc(), Branch.id.asc()).all()
