# Overview: Service-layer operations for open invoices; resolves pending balances oldest-first.

"""
Invoice Balance Resolver

WHY: Every collection flow starts from the same question: which invoices
does this customer still owe, and in what order do we pay them?

RULES:
- An invoice is open iff amount_paid_cents < total_cents (exact integer
  comparison, no tolerance)
- Order: invoice date ascending, ties broken by invoice id
- Explicit invoice ids must exist in the caller's organization and belong
  to the asserted customer
- A customer with nothing open resolves to an empty list, never an error
"""

from __future__ import annotations

from ..extensions import db
from ..models import Sale
from latidos.time_utils import to_utc_z
from .allocation import InvoiceBalance
from .concurrency import lock_for_update
from .errors import InvoiceNotFoundError, ValidationError
from .tenant_service import require_customer, require_sale


def to_invoice_balance(sale: Sale) -> InvoiceBalance:
    return InvoiceBalance(
        invoice_id=sale.id,
        pending_cents=sale.pending_balance_cents,
        date=sale.date,
        display_ref=sale.invoice_number,
    )


def load_open_sales(
    org_id: int,
    customer_id: int | None = None,
    invoice_ids: list[int] | None = None,
    *,
    lock: bool = False,
) -> list[Sale]:
    """
    Load open invoices as ORM rows, oldest first.

    Args:
        org_id: Tenant context (already resolved by the caller)
        customer_id: Customer whose invoices are wanted; when invoice_ids is
            also given, every explicit invoice must belong to this customer
        invoice_ids: Explicit invoice set; None or empty means "all open
            invoices of the customer"
        lock: Lock the rows FOR UPDATE (use inside a unit of work)

    Raises:
        InvoiceNotFoundError: explicit id missing or owned by another customer
        CrossTenantError: explicit id owned by another organization
        ValidationError: neither a customer nor invoice ids were given, or
            explicit invoices span several customers
    """
    if invoice_ids:
        sales = []
        for sale_id in sorted(set(invoice_ids)):
            sale = require_sale(org_id, sale_id, lock=lock)
            if customer_id is not None and sale.customer_id != customer_id:
                raise InvoiceNotFoundError(f"Invoice {sale_id} not found for customer {customer_id}")
            sales.append(sale)

        if len({s.customer_id for s in sales}) > 1:
            raise ValidationError("Invoices must belong to a single customer")

        open_sales = [s for s in sales if s.amount_paid_cents < s.total_cents]
        return sorted(open_sales, key=lambda s: (s.date, s.id))

    if customer_id is None:
        raise ValidationError("customer_id or invoice_ids required")

    query = db.session.query(Sale).filter(
        Sale.org_id == org_id,
        Sale.customer_id == customer_id,
        Sale.amount_paid_cents < Sale.total_cents,
    ).order_by(Sale.date.asc(), Sale.id.asc())

    if lock:
        query = lock_for_update(query)

    return query.all()


def resolve_pending(
    org_id: int,
    customer_id: int | None = None,
    invoice_ids: list[int] | None = None,
) -> list[InvoiceBalance]:
    """
    Resolve open invoices into allocator input, oldest first.

    Returns:
        List of InvoiceBalance (empty when nothing is owed)
    """
    if customer_id is not None:
        require_customer(org_id, customer_id)
    sales = load_open_sales(org_id, customer_id=customer_id, invoice_ids=invoice_ids)
    return [to_invoice_balance(s) for s in sales]


def get_pending_invoices(org_id: int, customer_id: int) -> list[dict]:
    """Open invoices of a customer with their pending balance, oldest first."""
    require_customer(org_id, customer_id)
    sales = load_open_sales(org_id, customer_id=customer_id)
    result = []
    for sale in sales:
        data = sale.to_dict()
        last_payment = sale.payments[-1] if sale.payments else None
        data["last_payment"] = last_payment.to_dict() if last_payment else None
        result.append(data)
    return result


def get_customer_debt_summary(org_id: int, customer_id: int) -> dict:
    """
    Collections header for one customer.

    Returns:
        - total_pending_cents: Sum of open invoice balances
        - open_invoice_count: Number of open invoices
        - oldest_invoice_date: Aging anchor of the oldest open invoice
        - credit_balance_cents: Store credit owed to the customer
    """
    customer = require_customer(org_id, customer_id)
    balances = resolve_pending(org_id, customer_id=customer_id)

    return {
        "customer": customer.to_dict(),
        "total_pending_cents": sum(b.pending_cents for b in balances),
        "open_invoice_count": len(balances),
        "oldest_invoice_date": to_utc_z(balances[0].date) if balances else None,
        "credit_balance_cents": customer.credit_balance_cents,
    }
