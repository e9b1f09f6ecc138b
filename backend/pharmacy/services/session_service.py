# Overview: Bearer session tokens; issue, validate and revoke.

"""
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout of SESSION_TTL_HOURS, no idle timeout
- Revocable on logout
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from pharmacy.time_utils import utcnow


def generate_token() -> str:
    """64-character hex string; only ever sent to the client."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user: User) -> tuple[SessionToken, str]:
    """
    Issue a new session for an authenticated user. Commits.

    Returns (session_record, plaintext_token).
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24)),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its user.

    Returns None if the token is unknown, expired or revoked, or if the
    user has been deactivated. Read-only.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session or session.expires_at < utcnow():
        return None

    user = session.user
    if not user or not user.is_active:
        return None
    return user


def revoke_session(token: str) -> bool:
    """Returns True if a live session was revoked. Commits."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
