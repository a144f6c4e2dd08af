from __future__ import annotations

from ..extensions import db
from latidos.time_utils import to_utc_z

USER_ROLE_ADMIN = "ADMIN"
USER_ROLE_OPERATOR = "OPERATOR"


class User(db.Model):
    """
    User accounts for authentication and attribution.

    MULTI-TENANT: Users belong to exactly one organization (org_id).
    Username and email are unique within an organization, not globally.

    WHY: Every financial write must be attributable. The optional PIN is
    the signature used to authorize collections, edits and transfers.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("org_id", "username", name="uq_users_org_username"),
        db.UniqueConstraint("org_id", "email", name="uq_users_org_email"),
        db.Index("ix_users_org_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)

    username = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # Optional security PIN (bcrypt hashed), used as an operation signature
    pin_hash = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(16), nullable=False, default=USER_ROLE_OPERATOR)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_action_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", backref=db.backref("users", lazy=True))

    @property
    def display_name(self) -> str:
        return self.name or self.username

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "has_pin": self.pin_hash is not None,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class Operator(db.Model):
    """
    Staff member who signs operations with a PIN but has no login.

    WHY: Dual identity. Several people share one logged-in terminal and
    each financial write records who actually performed it.
    """
    __tablename__ = "operators"
    __table_args__ = (
        db.Index("ix_operators_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    pin_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("operators", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer session token with tenant context.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Tenant context (org_id) is immutable for the session lifetime
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
