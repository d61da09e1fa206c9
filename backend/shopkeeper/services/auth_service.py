# Overview: Service-layer operations for auth; staff accounts and password checks.

"""
Authentication Service

Staff accounts log in with email + password. Every write endpoint is tied
to an authenticated user.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 6 characters
- Emails compared trimmed and lowercased
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import ROLES
from ..validation import ConflictError, ValidationError, normalize_string
from shopkeeper.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet the length requirement."""


def normalize_email(email) -> str:
    return normalize_string(email).lower()


def validate_password_strength(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """Validate, then hash with bcrypt. Stored as a str."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_user(name: str, email: str, password: str, role: str = "admin") -> User:
    """
    Create a staff account.

    Raises:
        ValidationError: missing name/email, bad role
        PasswordValidationError: password too short
        ConflictError: email already registered
    """
    name = normalize_string(name)
    email = normalize_email(email)
    if not name:
        raise ValidationError("name required")
    if not email:
        raise ValidationError("email required")
    if not password:
        raise ValidationError("password required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter_by(email=email).first() is not None:
        raise ConflictError("User already exists")

    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("User already exists") from exc
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the active user whose password matches, None otherwise.

    Updates last_login_at on success.
    """
    user = (
        db.session.query(User)
        .filter(User.email == normalize_email(email), User.is_active.is_(True))
        .first()
    )
    if user is None:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def ensure_default_admin() -> tuple[User, bool]:
    """
    Make sure the configured default admin exists.

    Returns (user, created). An existing account is left untouched.
    """
    email = normalize_email(current_app.config.get("DEFAULT_ADMIN_EMAIL"))
    existing = db.session.query(User).filter_by(email=email).first()
    if existing is not None:
        return existing, False

    user = create_user(
        current_app.config.get("DEFAULT_ADMIN_NAME") or "Admin User",
        email,
        current_app.config.get("DEFAULT_ADMIN_PASSWORD") or "",
        role="admin",
    )
    current_app.logger.info("Created default admin account %s", email)
    return user, True
