# Overview: Service-layer operations for customer credit; banking surplus and redeeming it against invoices.

"""
Customer Credit Balance Manager

WHY: When a customer pays more than they owe, the surplus is store
credit ("saldo a favor"). Later it can settle invoices like any other
payment method, except no cash moves: redemptions never touch a ledger
account.

INVARIANTS:
- credit_balance_cents >= 0 at all times
- credit_balance_cents == sum(IN) - sum(OUT) of the customer's credit history
- Every movement happens in the same unit of work as the allocation that
  produced or consumed it
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Customer, CustomerCreditTransaction, PaymentAccount
from ..models.customers import CREDIT_IN, CREDIT_OUT
from latidos.time_utils import utcnow
from .account_service import TXN_INCOME, post_entry
from .allocation import allocate, require_positive_cents
from .concurrency import run_with_retry
from .errors import InsufficientCreditError, ValidationError
from .event_service import append_event
from .invoice_service import load_open_sales, to_invoice_balance
from .tenant_service import require_customer

logger = logging.getLogger(__name__)

CATEGORY_CUSTOMER_CREDIT = "Customer Credit"


def record_credit_movement(
    customer: Customer,
    direction: str,
    amount_cents: int,
    description: str | None = None,
    *,
    sale_id: int | None = None,
    payment_id: int | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> CustomerCreditTransaction:
    """
    Move a customer's credit balance and write the history line.

    The customer row must already be locked. Does not commit.

    Raises:
        InsufficientCreditError: an OUT movement exceeds the balance
    """
    require_positive_cents(amount_cents)

    if direction == CREDIT_OUT:
        if customer.credit_balance_cents < amount_cents:
            raise InsufficientCreditError(
                f"Credit balance {customer.credit_balance_cents} is less than {amount_cents}"
            )
        customer.credit_balance_cents -= amount_cents
    elif direction == CREDIT_IN:
        customer.credit_balance_cents += amount_cents
    else:
        raise ValidationError(f"Invalid credit direction: {direction}")

    entry = CustomerCreditTransaction(
        org_id=customer.org_id,
        customer_id=customer.id,
        direction=direction,
        amount_cents=amount_cents,
        description=description[:255] if description else None,
        sale_id=sale_id,
        payment_id=payment_id,
        user_id=signature.user_id if signature and signature.user_id else user_id,
        operator_id=signature.operator_id if signature else None,
        operator_name=signature.name if signature else None,
        occurred_at=date or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def bank_surplus(
    customer: Customer,
    leftover_cents: int,
    *,
    account: PaymentAccount | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> CustomerCreditTransaction:
    """
    Bank an overpayment as customer credit inside the caller's unit of work.

    The cash that produced the surplus did arrive, so it is posted to the
    receiving account as INCOME (category "Customer Credit"). Redeeming it
    later moves no cash.
    """
    entry = record_credit_movement(
        customer,
        CREDIT_IN,
        leftover_cents,
        "Overpayment banked as credit",
        user_id=user_id,
        signature=signature,
        date=date,
    )

    if account is not None:
        post_entry(
            account,
            TXN_INCOME,
            leftover_cents,
            CATEGORY_CUSTOMER_CREDIT,
            f"Credit balance for {customer.name}",
            user_id=user_id,
            signature=signature,
            date=date,
        )

    append_event(
        org_id=customer.org_id,
        event_type="credit.banked",
        entity_type="customer",
        entity_id=customer.id,
        customer_id=customer.id,
        account_id=account.id if account else None,
        actor_user_id=user_id,
        signature=signature,
        amount_cents=leftover_cents,
    )
    logger.info("Banked %s cents of credit for customer %s", leftover_cents, customer.id)
    return entry


def redeem_credit_balance(
    org_id: int,
    customer_id: int,
    invoice_ids: list[int] | None = None,
    amount_cents: int | None = None,
    *,
    reference: str | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> dict:
    """
    Spend a customer's credit balance on open invoices, oldest first.

    Args:
        invoice_ids: Restrict to these invoices; None/empty means all open
            invoices of the customer
        amount_cents: Credit to spend; None means the whole balance

    Only the amount actually allocated leaves the credit balance; credit
    beyond the total owed stays banked.

    Returns:
        {success, applied_payments, total_redeemed_cents, credit_balance_cents}

    Raises:
        InsufficientCreditError: no credit, or amount_cents exceeds it
        ValidationError: nothing is owed on the selected invoices
    """
    from .payment_service import METHOD_CREDIT_BALANCE, _record_allocations

    if amount_cents is not None:
        require_positive_cents(amount_cents)

    def _op():
        customer = require_customer(org_id, customer_id, lock=True)
        available = customer.credit_balance_cents

        if available <= 0:
            raise InsufficientCreditError("Customer has no credit balance")
        if amount_cents is not None and amount_cents > available:
            raise InsufficientCreditError(
                f"Requested {amount_cents} exceeds credit balance {available}"
            )

        sales = load_open_sales(org_id, customer_id=customer.id, invoice_ids=invoice_ids, lock=True)
        if not sales:
            raise ValidationError("Customer has no pending invoices to apply credit to")

        budget = amount_cents if amount_cents is not None else available
        plan = allocate([to_invoice_balance(s) for s in sales], budget)

        applied = _record_allocations(
            org_id,
            customer,
            {s.id: s for s in sales},
            plan,
            METHOD_CREDIT_BALANCE,
            None,
            reference=reference,
            user_id=user_id,
            signature=signature,
            date=date,
        )

        append_event(
            org_id=org_id,
            event_type="credit.redeemed",
            entity_type="customer",
            entity_id=customer.id,
            customer_id=customer.id,
            actor_user_id=user_id,
            signature=signature,
            amount_cents=plan.applied_cents,
        )
        db.session.commit()
        logger.info("Redeemed %s cents of credit for customer %s", plan.applied_cents, customer.id)

        return {
            "success": True,
            "customer_id": customer.id,
            "method": METHOD_CREDIT_BALANCE,
            "applied_payments": applied,
            "total_redeemed_cents": plan.applied_cents,
            "credit_balance_cents": customer.credit_balance_cents,
        }

    return run_with_retry(_op)


def get_credit_history(org_id: int, customer_id: int) -> dict:
    """Credit balance plus its movements, newest first."""
    customer = require_customer(org_id, customer_id)
    entries = db.session.query(CustomerCreditTransaction).filter_by(
        org_id=org_id, customer_id=customer.id
    ).order_by(
        CustomerCreditTransaction.occurred_at.desc(),
        CustomerCreditTransaction.id.desc(),
    ).all()

    return {
        "customer": customer.to_dict(),
        "credit_balance_cents": customer.credit_balance_cents,
        "history": [e.to_dict() for e in entries],
    }
