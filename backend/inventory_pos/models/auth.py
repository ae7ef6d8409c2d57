from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ROLE_OWNER = "OWNER"
ROLE_CASHIER = "CASHIER"

VALID_ROLES = [ROLE_OWNER, ROLE_CASHIER]


class User(db.Model):
    """
    User accounts used for audit attribution.

    WHY: Every receipt and stock adjustment names the user who made it.
    Authentication itself happens in front of this service; the core only
    resolves an actor username to a row.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

    def to_ref(self) -> dict:
        return {"id": self.id, "username": self.username}
