from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

USER_ROLES = ("OWNER", "MANAGER", "CASHIER", "WAREHOUSE_STAFF")


class Branch(db.Model):
    """
    Physical outlet. Stock, transactions and shifts are all branch-scoped.

    Branches are never deleted; deactivation hides them from listings.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """
    Staff member. Referenced by transactions, stock movements and shifts.

    Only the password hash is stored; login/session handling lives outside
    this service.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        # password_hash never leaves the service
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "branch_id": self.branch_id,
            "is_active": self.is_active,
            "last_login": to_utc_z(self.last_login) if self.last_login else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
