# Overview: Service-layer operations for users; resolves actors for audit attribution.

"""
User accounts as seen by the stock engine.

WHY: Every receipt and stock adjustment is attributed to a user. The caller
(the authentication layer in front of this service) passes the actor's
username explicitly; this module turns it into a row or raises ActorNotFound.

Passwords are stored bcrypt-hashed so accounts created here can be used by
the login layer. Password policy itself belongs to that layer.
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import VALID_ROLES, ROLE_CASHIER
from .errors import ActorNotFound


def hash_password(password: str) -> str:
    """Hash password using bcrypt (cost factor from BCRYPT_ROUNDS, default 12)."""
    if not password:
        raise ValueError("password required")
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def resolve_actor(username: str | None) -> User:
    """Return the active user named username, or raise ActorNotFound."""
    if not username or not str(username).strip():
        raise ActorNotFound(username)
    user = db.session.query(User).filter_by(username=str(username).strip()).first()
    if user is None or not user.is_active:
        raise ActorNotFound(username)
    return user


def create_user(username: str, password: str, role: str = ROLE_CASHIER) -> User:
    """
    Create a user account.

    Raises:
        ValueError: blank username, unknown role, or username already taken
    """
    username = (username or "").strip()
    if not username:
        raise ValueError("username required")
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of: {', '.join(VALID_ROLES)}")
    if db.session.query(User).filter_by(username=username).first():
        raise ValueError(f"User {username} already exists")

    user = User(username=username, password_hash=hash_password(password), role=role)
    db.session.add(user)
    db.session.commit()
    return user


def list_users():
    return db.session.query(User).order_by(User.username).all()
