# Overview: PIN signature verification for financial operations (users first, then operators).

"""
PIN Signer

WHY: Several staff members share one logged-in terminal. Collections,
payment edits and transfers are signed with a personal PIN so the ledger
records who actually performed them.

CONTRACT:
- verify(org_id, pin) -> SignerIdentity, or raises SignatureError
- Verification happens BEFORE the financial unit of work begins; services
  only receive the resulting snapshot and copy it onto every row they write
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..extensions import db
from ..models import Operator, User
from ..models.auth import USER_ROLE_ADMIN, USER_ROLE_OPERATOR
from latidos.time_utils import utcnow
from .auth_service import verify_pin
from .errors import SignatureError


@dataclass(frozen=True)
class SignerIdentity:
    """Snapshot of the person who signed an operation."""
    name: str
    role: str
    user_id: int | None = None
    operator_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "role": self.role,
            "user_id": self.user_id,
            "operator_id": self.operator_id,
        }


class Signer(Protocol):
    def verify(self, org_id: int, pin: str) -> SignerIdentity:
        ...


class PinSigner:
    """
    Default signer backed by bcrypt PIN hashes.

    Users' PINs are checked first (admins usually), then active operators.
    An operator linked to an ADMIN user signs with ADMIN role.
    """

    def verify(self, org_id: int, pin: str) -> SignerIdentity:
        if not pin:
            raise SignatureError("PIN required")

        users = db.session.query(User).filter(
            User.org_id == org_id,
            User.is_active.is_(True),
            User.pin_hash.isnot(None),
        ).order_by(User.id).all()

        for user in users:
            if verify_pin(pin, user.pin_hash):
                user.last_action_at = utcnow()
                return SignerIdentity(name=user.display_name, role=user.role, user_id=user.id)

        operators = db.session.query(Operator).filter_by(
            org_id=org_id, is_active=True
        ).order_by(Operator.id).all()

        for operator in operators:
            if verify_pin(pin, operator.pin_hash):
                linked_role = operator.user.role if operator.user else None
                role = USER_ROLE_ADMIN if linked_role == USER_ROLE_ADMIN else USER_ROLE_OPERATOR
                return SignerIdentity(
                    name=operator.name,
                    role=role,
                    user_id=operator.user_id,
                    operator_id=operator.id,
                )

        raise SignatureError("Invalid PIN or operator not found")


_default_signer = PinSigner()


def sign(org_id: int, pin: str | None, *, signer: Signer | None = None, required: bool = False) -> SignerIdentity | None:
    """
    Resolve an optional PIN into a signature snapshot.

    No PIN means no signature, unless required is set.
    """
    if not pin:
        if required:
            raise SignatureError("PIN required")
        return None
    return (signer or _default_signer).verify(org_id, str(pin))
