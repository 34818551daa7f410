# Overview: Service-layer operations for auth and users; encapsulates business logic and database work.

"""
Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, ROLES, DEFAULT_ROLE
from ..errors import InvalidInputError, ServiceError, UserNotFoundError
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(InvalidInputError):
    """Raised when password doesn't meet strength requirements."""


class DuplicateUserError(ServiceError):
    code = "DUPLICATE_USER"
    status_code = 409


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    if not isinstance(password, str) or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise InvalidInputError("A valid email is required")
    return email.strip().lower()


def _validate_role(role) -> str:
    if not isinstance(role, str) or role.strip().lower() not in ROLES:
        raise InvalidInputError(f"role must be one of: {', '.join(ROLES)}")
    return role.strip().lower()


def create_user(email: str, password: str, name: str | None = None, role: str = DEFAULT_ROLE) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises InvalidInputError (bad email/role/weak password) or
    DuplicateUserError when the email is taken.
    """
    email = normalize_email(email)
    role = _validate_role(role)
    name = name.strip() if isinstance(name, str) and name.strip() else email.split("@")[0]

    if db.session.query(User.id).filter_by(email=email).first():
        raise DuplicateUserError("Email already exists")

    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()

    logger.info("User created user_id=%s role=%s", user.id, user.role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials are valid and the account is active.
    Updates last_login_at on success.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        return None

    user = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(details={"user_id": user_id})
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def update_user_role(user_id: int, role) -> User:
    """Change a user's role. Existing sessions stay valid and pick up the new role."""
    role = _validate_role(role)
    user = get_user(user_id)
    if user.role != role:
        logger.info("User role changed user_id=%s %s -> %s", user.id, user.role, role)
        user.role = role
    db.session.commit()
    return user

