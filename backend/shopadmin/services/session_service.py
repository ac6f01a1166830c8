# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: The admin API is reachable only with a bearer session token. Issuing
tokens (login, SSO, ...) happens outside this service; here we only mint
tokens for the CLI/tests and validate the ones presented on requests.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (Config.SESSION_TTL_HOURS, default 24h)
- Revocable
- Deactivated admins are locked out immediately
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import AdminUser, SessionToken
from ..validation import NotFoundError, ValidationError
from shopadmin.time_utils import utcnow


DEFAULT_SESSION_TTL_HOURS = 24


@dataclass
class SessionContext:
    """Authenticated request context returned by validate_session."""
    admin: AdminUser
    session: SessionToken


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so a fast hash is
    sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _session_ttl() -> timedelta:
    hours = current_app.config.get("SESSION_TTL_HOURS", DEFAULT_SESSION_TTL_HOURS)
    return timedelta(hours=hours)


def create_session(admin_id: int) -> tuple[SessionToken, str]:
    """
    Create new session token for an admin.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    admin = db.session.query(AdminUser).filter_by(id=admin_id).first()
    if not admin:
        raise NotFoundError("Admin user not found")
    if not admin.is_active:
        raise ValidationError("Admin user is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        admin_user_id=admin_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _session_ttl(),
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired or revoked, or if the
    admin account is deactivated. Updates last_used_at on success.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    admin = session.admin_user
    if not admin or not admin.is_active:
        session.is_revoked = True
        session.revoked_at = now
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(admin=admin, session=session)


def revoke_session(token: str) -> bool:
    """Revoke a session. Returns False if the token was not found."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session:
        return False

    if not session.is_revoked:
        session.is_revoked = True
        session.revoked_at = utcnow()
        db.session.commit()
    return True
