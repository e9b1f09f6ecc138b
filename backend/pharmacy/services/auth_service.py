# Overview: Staff accounts; bcrypt password hashing and credential checks.

"""
Every sale, void and loyalty entry is attributed to a User, so the engine
always has a principal to hand to the access policy.

- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import ROLES, User
from pharmacy.time_utils import utcnow


class PasswordValidationError(ValidationError):
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = "cashier",
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create a staff account. Commits.

    Raises ValidationError for a bad role or weak password and
    ConflictError if the username or email is taken.
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if not username or not email:
        raise ValidationError("username and email are required")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name=first_name,
        last_name=last_name,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Check credentials by username or email.

    Returns the active User on success (and stamps last_login_at),
    None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
