"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation for every finance operation. Callers
pass an already-resolved org_id; ids coming from client input are checked
against it here and nowhere else.

SECURITY INVARIANTS:
1. Every service call receives an explicit org_id (no ambient lookup)
2. Ids from client input are validated against that org_id
3. Cross-tenant references fail closed and are logged
4. Errors never reveal that a row exists in another organization

USAGE:
    from latidos.services.tenant_service import require_customer, require_account

    customer = require_customer(org_id, customer_id, lock=True)
    account = require_account(org_id, account_id, lock=True)
"""

import logging

from ..extensions import db
from ..models import Customer, PaymentAccount, Sale, Payment, Organization
from .concurrency import lock_for_update
from .errors import (
    AccountNotFoundError,
    CrossTenantError,
    CustomerNotFoundError,
    InvoiceNotFoundError,
    NotFoundError,
    PaymentNotFoundError,
)

logger = logging.getLogger(__name__)


def _load(model, row_id: int, *, lock: bool):
    query = db.session.query(model).filter_by(id=row_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _require_in_org(model, row_id, org_id: int, not_found, label: str, *, lock: bool = False):
    if row_id is None:
        raise not_found(f"{label} is required")

    row = _load(model, row_id, lock=lock)

    if row is None:
        raise not_found(f"{label} {row_id} not found")

    if row.org_id != org_id:
        # CRITICAL: Cross-tenant access attempt
        _log_cross_tenant_attempt(
            f"{label} {row_id} belongs to org {row.org_id}, not {org_id}",
            org_id=org_id,
        )
        raise CrossTenantError(f"{label} {row_id} not found")  # Don't reveal it exists in another org

    return row


def require_org(org_id: int) -> Organization:
    """Validate that an organization exists and is active."""
    org = db.session.get(Organization, org_id) if org_id is not None else None
    if not org or not org.is_active:
        raise NotFoundError("Organization not found")
    return org


def require_customer(org_id: int, customer_id: int, *, lock: bool = False) -> Customer:
    return _require_in_org(Customer, customer_id, org_id, CustomerNotFoundError, "Customer", lock=lock)


def require_account(org_id: int, account_id: int, *, lock: bool = False) -> PaymentAccount:
    return _require_in_org(PaymentAccount, account_id, org_id, AccountNotFoundError, "Account", lock=lock)


def require_sale(org_id: int, sale_id: int, *, lock: bool = False) -> Sale:
    return _require_in_org(Sale, sale_id, org_id, InvoiceNotFoundError, "Invoice", lock=lock)


def require_payment(org_id: int, payment_id: int, *, lock: bool = False) -> Payment:
    return _require_in_org(Payment, payment_id, org_id, PaymentNotFoundError, "Payment", lock=lock)


def require_accounts(org_id: int, account_ids, *, lock: bool = False) -> dict[int, PaymentAccount]:
    """
    Validate and load several accounts at once.

    Rows are locked in ascending id order so two concurrent transfers over
    the same accounts cannot deadlock each other.
    """
    accounts = {}
    for account_id in sorted(set(account_ids)):
        accounts[account_id] = require_account(org_id, account_id, lock=lock)
    return accounts


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    """
    Log a cross-tenant access attempt.

    SECURITY: Critical audit trail for detecting unauthorized access attempts.
    """
    logger.warning("CROSS_TENANT_ACCESS_DENIED org_id=%s reason=%s", org_id, reason)
