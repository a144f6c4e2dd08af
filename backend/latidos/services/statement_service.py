# Overview: Customer statement projection; merges invoices and payments into a running-balance ledger.

"""
Statement / Reconciliation Projector

Read-only. Invoices are DEBIT movements (amount = invoice total),
payments on those invoices are CREDIT movements. The running balance is
seeded at 0 for the requested range; it is not carried over from earlier
periods.

Same-instant ordering: debits before credits, then by row id, so an
invoice paid at the moment it was issued never shows a negative balance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..models import Payment, Sale
from latidos.time_utils import to_utc_z
from latidos.validation import parse_str
from .concurrency import run_with_retry
from .errors import ValidationError
from .event_service import append_event, latest_event_id
from .tenant_service import require_customer, require_payment, require_sale

logger = logging.getLogger(__name__)

MOVEMENT_DEBIT = "DEBIT"
MOVEMENT_CREDIT = "CREDIT"


@dataclass
class Movement:
    kind: str
    source_id: int
    date: datetime
    concept: str
    method: str | None
    debit_cents: int
    credit_cents: int
    ref_id: str | None
    is_verified: bool
    balance_cents: int = 0

    def sort_key(self):
        return (self.date, 0 if self.kind == MOVEMENT_DEBIT else 1, self.source_id)

    def to_dict(self) -> dict:
        return {
            "id": f"{self.kind.lower()}-{self.source_id}",
            "kind": self.kind,
            "source_id": self.source_id,
            "date": to_utc_z(self.date),
            "concept": self.concept,
            "method": self.method,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "balance_cents": self.balance_cents,
            "ref_id": self.ref_id,
            "is_verified": self.is_verified,
        }


def build_movements(sales: list[Sale], payments: list[Payment]) -> list[Movement]:
    """Merge, sort and accumulate. No database access."""
    movements = [
        Movement(
            kind=MOVEMENT_DEBIT,
            source_id=sale.id,
            date=sale.date,
            concept=f"Invoice {sale.invoice_number}",
            method=None,
            debit_cents=sale.total_cents,
            credit_cents=0,
            ref_id=sale.invoice_number,
            is_verified=sale.is_verified,
        )
        for sale in sales
    ]
    movements.extend(
        Movement(
            kind=MOVEMENT_CREDIT,
            source_id=payment.id,
            date=payment.date,
            concept=f"Payment on invoice {payment.sale.invoice_number}",
            method=payment.method,
            debit_cents=0,
            credit_cents=payment.amount_cents,
            ref_id=payment.reference or payment.sale.invoice_number,
            is_verified=payment.is_verified,
        )
        for payment in payments
    )

    movements.sort(key=Movement.sort_key)

    balance = 0
    for movement in movements:
        balance += movement.debit_cents - movement.credit_cents
        movement.balance_cents = balance

    return movements


def get_customer_statement(
    org_id: int,
    customer_id: int,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """
    Build a customer's statement for a date range (both ends inclusive).

    Returns:
        {customer, movements, summary: {total_debit_cents,
         total_credit_cents, final_balance_cents, movement_count},
         as_of_event_id}
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")

    customer = require_customer(org_id, customer_id)

    sales_query = db.session.query(Sale).filter(
        Sale.org_id == org_id,
        Sale.customer_id == customer.id,
    )
    payments_query = db.session.query(Payment).join(Sale, Payment.sale_id == Sale.id).filter(
        Payment.org_id == org_id,
        Sale.customer_id == customer.id,
    )
    if start_date:
        sales_query = sales_query.filter(Sale.date >= start_date)
        payments_query = payments_query.filter(Payment.date >= start_date)
    if end_date:
        sales_query = sales_query.filter(Sale.date <= end_date)
        payments_query = payments_query.filter(Payment.date <= end_date)

    movements = build_movements(sales_query.all(), payments_query.all())

    total_debit = sum(m.debit_cents for m in movements)
    total_credit = sum(m.credit_cents for m in movements)

    return {
        "customer": customer.to_dict(),
        "movements": [m.to_dict() for m in movements],
        "summary": {
            "total_debit_cents": total_debit,
            "total_credit_cents": total_credit,
            "final_balance_cents": total_debit - total_credit,
            "movement_count": len(movements),
        },
        "as_of_event_id": latest_event_id(org_id, customer_id=customer.id),
    }


build_statement = get_customer_statement


def toggle_verification(org_id: int, kind: str, row_id: int, is_verified: bool, *, user_id: int | None = None) -> dict:
    """
    Set the reconciliation flag on the invoice (DEBIT) or payment (CREDIT)
    behind a statement movement. Balances are untouched.
    """
    kind = (parse_str(kind, "kind") or "").upper()
    if kind not in (MOVEMENT_DEBIT, MOVEMENT_CREDIT):
        raise ValidationError("kind must be DEBIT or CREDIT")
    if not isinstance(is_verified, bool):
        raise ValidationError("is_verified must be true or false")

    def _op():
        if kind == MOVEMENT_DEBIT:
            row = require_sale(org_id, row_id, lock=True)
            customer_id = row.customer_id
        else:
            row = require_payment(org_id, row_id, lock=True)
            customer_id = row.sale.customer_id

        row.is_verified = is_verified
        append_event(
            org_id=org_id,
            event_type="statement.verified" if is_verified else "statement.unverified",
            entity_type="sale" if kind == MOVEMENT_DEBIT else "payment",
            entity_id=row.id,
            customer_id=customer_id,
            actor_user_id=user_id,
        )
        db.session.commit()
        return {"success": True, "kind": kind, "id": row.id, "is_verified": row.is_verified}

    return run_with_retry(_op)
