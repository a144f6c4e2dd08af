# Overview: Integrity audit; recomputes cached balances from their journals and reports mismatches.

"""
Integrity Audit

Checks the three cached money fields against their sources:
- PaymentAccount.balance_cents vs signed sum of its ledger transactions
- Sale.amount_paid_cents vs sum of its payments (credit redemptions included)
- Customer.credit_balance_cents vs IN minus OUT credit history

Read-only. An empty issue list means the books balance.
"""

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import (
    Customer,
    CustomerCreditTransaction,
    LedgerTransaction,
    Payment,
    PaymentAccount,
    Sale,
)
from ..models.customers import CREDIT_IN
from .tenant_service import require_org


def _account_issues(org_id: int) -> list[dict]:
    signed = case(
        (LedgerTransaction.type == "INCOME", LedgerTransaction.amount_cents),
        else_=-LedgerTransaction.amount_cents,
    )
    sums = dict(
        db.session.query(LedgerTransaction.account_id, func.coalesce(func.sum(signed), 0))
        .filter(LedgerTransaction.org_id == org_id)
        .group_by(LedgerTransaction.account_id)
        .all()
    )

    issues = []
    for account in db.session.query(PaymentAccount).filter_by(org_id=org_id).order_by(PaymentAccount.id):
        expected = int(sums.get(account.id, 0))
        if account.balance_cents != expected:
            issues.append({
                "kind": "ACCOUNT_BALANCE",
                "id": account.id,
                "name": account.name,
                "cached_cents": account.balance_cents,
                "computed_cents": expected,
            })
        if account.balance_cents < 0:
            issues.append({
                "kind": "ACCOUNT_NEGATIVE",
                "id": account.id,
                "name": account.name,
                "cached_cents": account.balance_cents,
                "computed_cents": expected,
            })
    return issues


def _sale_issues(org_id: int) -> list[dict]:
    sums = dict(
        db.session.query(Payment.sale_id, func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.org_id == org_id)
        .group_by(Payment.sale_id)
        .all()
    )

    issues = []
    for sale in db.session.query(Sale).filter_by(org_id=org_id).order_by(Sale.id):
        expected = int(sums.get(sale.id, 0))
        if sale.amount_paid_cents != expected or not (0 <= sale.amount_paid_cents <= sale.total_cents):
            issues.append({
                "kind": "SALE_AMOUNT_PAID",
                "id": sale.id,
                "invoice_number": sale.invoice_number,
                "cached_cents": sale.amount_paid_cents,
                "computed_cents": expected,
                "total_cents": sale.total_cents,
            })
    return issues


def _credit_issues(org_id: int) -> list[dict]:
    signed = case(
        (CustomerCreditTransaction.direction == CREDIT_IN, CustomerCreditTransaction.amount_cents),
        else_=-CustomerCreditTransaction.amount_cents,
    )
    sums = dict(
        db.session.query(CustomerCreditTransaction.customer_id, func.coalesce(func.sum(signed), 0))
        .filter(CustomerCreditTransaction.org_id == org_id)
        .group_by(CustomerCreditTransaction.customer_id)
        .all()
    )

    issues = []
    for customer in db.session.query(Customer).filter_by(org_id=org_id).order_by(Customer.id):
        expected = int(sums.get(customer.id, 0))
        if customer.credit_balance_cents != expected or customer.credit_balance_cents < 0:
            issues.append({
                "kind": "CUSTOMER_CREDIT",
                "id": customer.id,
                "name": customer.name,
                "cached_cents": customer.credit_balance_cents,
                "computed_cents": expected,
            })
    return issues


def audit_integrity(org_id: int) -> dict:
    require_org(org_id)
    issues = _account_issues(org_id) + _sale_issues(org_id) + _credit_issues(org_id)
    return {
        "org_id": org_id,
        "ok": not issues,
        "issues": issues,
    }
