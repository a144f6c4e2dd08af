# Overview: Service-layer operations for auth; password and PIN hashing plus user creation.

"""
Authentication Service

WHY: Every financial write must be attributable. Uses bcrypt for both
passwords and security PINs.

MULTI-TENANT: Users belong to exactly one organization (org_id).
Username uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords and PINs hashed with bcrypt (cost factor 12)
- Minimum 8 characters for passwords, 4-8 digits for PINs
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, Organization
from ..models.auth import USER_ROLE_ADMIN, USER_ROLE_OPERATOR
from latidos.time_utils import utcnow

VALID_ROLES = [USER_ROLE_ADMIN, USER_ROLE_OPERATOR]


class PasswordValidationError(Exception):
    """Raised when a password or PIN doesn't meet requirements."""
    pass


class AuthenticationError(Exception):
    """Raised when credentials are rejected."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter and one digit

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def _bcrypt_hash(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(secret.encode('utf-8'), salt).decode('utf-8')  # Store as string in database


def _bcrypt_check(secret: str, hashed: str | None) -> bool:
    if not secret or not hashed:
        return False
    try:
        return bcrypt.checkpw(secret.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def hash_password(password: str) -> str:
    """Hash password using bcrypt after validating strength."""
    validate_password_strength(password)
    return _bcrypt_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    return _bcrypt_check(password, password_hash)


def hash_pin(pin: str) -> str:
    """Hash a security PIN (4-8 digits) with bcrypt."""
    if not re.fullmatch(r'\d{4,8}', pin or ""):
        raise PasswordValidationError("PIN must be 4 to 8 digits")
    return _bcrypt_hash(pin)


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    return _bcrypt_check(pin, pin_hash)


def create_user(
    username: str,
    email: str,
    password: str,
    org_id: int,
    role: str = USER_ROLE_OPERATOR,
    name: str | None = None,
    pin: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    MULTI-TENANT: Users must belong to an organization (org_id required).

    Raises:
        PasswordValidationError: weak password or malformed PIN
        ValueError: unknown role, missing organization or duplicate username
    """
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of {VALID_ROLES}")

    org = db.session.get(Organization, org_id)
    if not org:
        raise ValueError(f"Organization {org_id} not found")

    existing = db.session.query(User).filter_by(org_id=org_id, username=username).first()
    if existing:
        raise ValueError(f"Username '{username}' already exists in this organization")

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        name=name,
        password_hash=hash_password(password),
        pin_hash=hash_pin(pin) if pin else None,
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(org_code: str, username: str, password: str) -> User:
    """
    Authenticate a user within an organization.

    Raises AuthenticationError on any mismatch (same message for all
    failures so usernames cannot be probed).
    """
    org = db.session.query(Organization).filter_by(code=org_code).first()
    user = None
    if org and org.is_active:
        user = db.session.query(User).filter_by(org_id=org.id, username=username).first()

    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")

    user.last_login_at = utcnow()
    db.session.commit()
    return user
