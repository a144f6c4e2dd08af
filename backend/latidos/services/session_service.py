# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service with Multi-Tenant Support

WHY: The finance core never resolves the tenant on its own. The session
captures org_id at login and every authenticated request hands that
org_id to the services explicitly.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout, 2-hour idle timeout
- Revocable on logout
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User, Organization
from latidos.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """Identity plus tenant context for one authenticated request."""
    user: User
    session: SessionToken
    org_id: int


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 of the token for database storage.

    WHY SHA-256 not bcrypt: tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Create new session token for user with tenant context.

    Returns (session_record, plaintext_token).

    Raises ValueError if the user or its organization is missing/inactive.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValueError("User not found")

    org = db.session.get(Organization, user.org_id)
    if not org or not org.is_active:
        raise ValueError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a bearer token and return its context, or None.

    Expired, idle, revoked or orphaned sessions are rejected.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    now = utcnow()
    if session.expires_at <= now:
        return None
    if session.last_used_at + SESSION_IDLE_TIMEOUT <= now:
        return None

    user = db.session.get(User, session.user_id)
    if not user or not user.is_active:
        return None

    org = db.session.get(Organization, session.org_id)
    if not org or not org.is_active:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, org_id=session.org_id)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
