# Overview: Service-layer operations for payments; cascading collections, single payments, edits and deletes.

"""
Payment Recorder

WHY: One lump sum from a customer becomes several Payment rows, several
invoice balance updates and several ledger lines. All of it commits
together or not at all.

FOR EACH ALLOCATED AMOUNT (one unit of work per call):
1. Payment row (amount, method, account, signer snapshot)
2. Sale.amount_paid_cents += amount (re-checked against total)
3. LedgerTransaction INCOME, category "Collection"
4. PaymentAccount.balance_cents += amount

CREDIT_BALANCE payments skip steps 3 and 4: no real cash moved.

LOCK ORDER: customer, then sales (ascending id), then accounts
(ascending id). Every unit of work in this package follows it.

SURPLUS POLICY: leftover money is rejected with OverpaymentNotAllowedError
unless the caller passes allow_surplus_banking=True, in which case it is
banked as customer credit in the same unit of work.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Customer, Payment, PaymentAccount, PaymentAudit, Sale
from ..models.customers import CREDIT_IN, CREDIT_OUT
from latidos.time_utils import utcnow
from latidos.validation import parse_str
from .account_service import (
    CLASS_BANK_LIKE,
    CLASS_CASH_LIKE,
    CLASS_CREDIT_NOTE_LIKE,
    CLASS_TRADE_IN_LIKE,
    TXN_EXPENSE,
    TXN_INCOME,
    classify_account,
    get_default_account,
    post_entry,
)
from .allocation import AllocationPlan, allocate, require_positive_cents
from .concurrency import run_with_retry
from .credit_service import bank_surplus, record_credit_movement, redeem_credit_balance
from .errors import (
    InsufficientCreditError,
    InvariantViolationError,
    OverpaymentNotAllowedError,
    ValidationError,
)
from .event_service import append_event
from .invoice_service import load_open_sales, to_invoice_balance
from .tenant_service import (
    require_account,
    require_accounts,
    require_customer,
    require_payment,
    require_sale,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_TRANSFER = "TRANSFER"
METHOD_CREDIT_NOTE = "CREDIT_NOTE"
METHOD_TRADE_IN = "TRADE_IN"
METHOD_CREDIT_BALANCE = "CREDIT_BALANCE"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_TRANSFER,
    METHOD_CREDIT_NOTE,
    METHOD_TRADE_IN,
    METHOD_CREDIT_BALANCE,
]

# Labels used by the point-of-sale screens
METHOD_ALIASES = {
    "EFECTIVO": METHOD_CASH,
    "TRANSFERENCIA": METHOD_TRANSFER,
    "NOTA CRÉDITO": METHOD_CREDIT_NOTE,
    "NOTA CREDITO": METHOD_CREDIT_NOTE,
    "RETOMA": METHOD_TRADE_IN,
    "SALDO A FAVOR": METHOD_CREDIT_BALANCE,
}

METHOD_ACCOUNT_CLASS = {
    METHOD_CASH: CLASS_CASH_LIKE,
    METHOD_TRANSFER: CLASS_BANK_LIKE,
    METHOD_CREDIT_NOTE: CLASS_CREDIT_NOTE_LIKE,
    METHOD_TRADE_IN: CLASS_TRADE_IN_LIKE,
    METHOD_CREDIT_BALANCE: None,
}

CATEGORY_COLLECTION = "Collection"
CATEGORY_ADJUSTMENT = "Payment Adjustment"

MIN_REASON_LENGTH = 5


def normalize_method(method: str | None) -> str:
    """Canonical method code; accepts the Spanish screen labels too."""
    value = (parse_str(method, "method") or "").upper()
    value = METHOD_ALIASES.get(value, value)
    if value not in VALID_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_METHODS}")
    return value


def _require_reason(reason: str | None) -> str:
    reason = parse_str(reason, "reason") or ""
    if len(reason) < MIN_REASON_LENGTH:
        raise ValidationError(f"A reason of at least {MIN_REASON_LENGTH} characters is required")
    return reason


def resolve_account_for_method(org_id: int, method: str, account_id: int | None) -> PaymentAccount | None:
    """
    Pick and lock the destination account for a payment method.

    - CREDIT_BALANCE takes no account
    - An explicit account must be of the method's class
    - No account falls back to the org default when its class matches
    """
    expected_class = METHOD_ACCOUNT_CLASS[method]

    if expected_class is None:
        if account_id is not None:
            raise ValidationError("CREDIT_BALANCE payments do not take an account")
        return None

    if account_id is None:
        default = get_default_account(org_id)
        if default is None or classify_account(default) != expected_class:
            raise ValidationError(f"account_id is required for {method} payments")
        account_id = default.id

    account = require_account(org_id, account_id, lock=True)
    if classify_account(account) != expected_class:
        raise ValidationError(
            f"Account '{account.name}' ({account.type}) cannot receive {method} payments"
        )
    return account


def _signer_fields(user_id: int | None, signature) -> dict:
    return {
        "user_id": signature.user_id if signature and signature.user_id else user_id,
        "operator_id": signature.operator_id if signature else None,
        "operator_name": signature.name if signature else None,
    }


def _collection_description(sale: Sale, customer: Customer) -> str:
    return f"Payment for invoice {sale.invoice_number} - {customer.name}"


# =============================================================================
# RECORDER
# =============================================================================

def _record_allocations(
    org_id: int,
    customer: Customer,
    sales_by_id: dict[int, Sale],
    plan: AllocationPlan,
    method: str,
    account: PaymentAccount | None,
    *,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> list[dict]:
    """
    Persist an allocation plan inside the caller's unit of work.

    Rows must already be locked. Does not commit.

    CREDIT_BALANCE rows are drawn from the customer credit balance, one
    OUT movement per payment; the whole plan must be covered up front.
    """
    if method == METHOD_CREDIT_BALANCE:
        if customer.credit_balance_cents < plan.applied_cents:
            raise InsufficientCreditError(
                f"Credit balance {customer.credit_balance_cents} is less than {plan.applied_cents}"
            )
    elif account is None:
        raise ValidationError(f"account_id is required for {method} payments")

    applied = []
    for allocation in plan.allocations:
        sale = sales_by_id[allocation.invoice_id]

        new_paid = sale.amount_paid_cents + allocation.applied_cents
        if new_paid > sale.total_cents:
            raise InvariantViolationError(
                f"Invoice {sale.invoice_number} would be overpaid "
                f"({new_paid} > {sale.total_cents})"
            )

        payment = Payment(
            org_id=org_id,
            sale_id=sale.id,
            amount_cents=allocation.applied_cents,
            method=method,
            account_id=account.id if account else None,
            reference=reference,
            notes=notes,
            date=date or utcnow(),
            **_signer_fields(user_id, signature),
        )
        db.session.add(payment)
        db.session.flush()

        sale.amount_paid_cents = new_paid

        if method == METHOD_CREDIT_BALANCE:
            record_credit_movement(
                customer,
                CREDIT_OUT,
                allocation.applied_cents,
                f"Credit applied to invoice {sale.invoice_number}",
                sale_id=sale.id,
                payment_id=payment.id,
                user_id=user_id,
                signature=signature,
                date=payment.date,
            )

        if account is not None:
            post_entry(
                account,
                TXN_INCOME,
                allocation.applied_cents,
                CATEGORY_COLLECTION,
                _collection_description(sale, customer),
                payment_id=payment.id,
                user_id=user_id,
                signature=signature,
                date=payment.date,
            )

        append_event(
            org_id=org_id,
            event_type="payment.created",
            entity_type="payment",
            entity_id=payment.id,
            customer_id=customer.id,
            account_id=account.id if account else None,
            sale_id=sale.id,
            payment_id=payment.id,
            actor_user_id=user_id,
            signature=signature,
            amount_cents=allocation.applied_cents,
        )

        applied.append({
            "invoice_id": sale.id,
            "invoice_number": sale.invoice_number,
            "payment_id": payment.id,
            "amount_cents": allocation.applied_cents,
            "new_balance_cents": sale.pending_balance_cents,
        })

    return applied


def apply_allocation(
    org_id: int,
    plan: AllocationPlan,
    method: str,
    account_id: int | None,
    *,
    reference: str | None = None,
    user_id: int | None = None,
    signature=None,
) -> list[dict]:
    """
    Persist an externally computed allocation plan as one unit of work.

    Every invoice in the plan must belong to the same customer in the
    caller's organization. Any failure rolls back every write.

    Returns:
        One entry per Payment created
    """
    method = normalize_method(method)
    if not plan.allocations:
        return []

    def _op():
        invoice_ids = sorted({a.invoice_id for a in plan.allocations})
        first = require_sale(org_id, invoice_ids[0])
        customer = require_customer(org_id, first.customer_id, lock=True)

        sales_by_id = {}
        for sale_id in invoice_ids:
            sale = require_sale(org_id, sale_id, lock=True)
            if sale.customer_id != customer.id:
                raise ValidationError("Invoices must belong to a single customer")
            sales_by_id[sale_id] = sale

        account = resolve_account_for_method(org_id, method, account_id)
        applied = _record_allocations(
            org_id, customer, sales_by_id, plan, method, account,
            reference=reference, user_id=user_id, signature=signature,
        )
        db.session.commit()
        return applied

    return run_with_retry(_op)


def _collect(
    org_id: int,
    customer: Customer,
    sales: list[Sale],
    amount_cents: int,
    method: str,
    account: PaymentAccount | None,
    allow_surplus_banking: bool,
    **recorder_kwargs,
) -> dict:
    plan = allocate([to_invoice_balance(s) for s in sales], amount_cents)

    if plan.leftover_cents > 0 and not allow_surplus_banking:
        raise OverpaymentNotAllowedError(plan.leftover_cents)

    applied = _record_allocations(
        org_id, customer, {s.id: s for s in sales}, plan, method, account, **recorder_kwargs
    )

    if plan.leftover_cents > 0:
        bank_surplus(
            customer,
            plan.leftover_cents,
            account=account,
            user_id=recorder_kwargs.get("user_id"),
            signature=recorder_kwargs.get("signature"),
            date=recorder_kwargs.get("date"),
        )

    return {
        "success": True,
        "customer_id": customer.id,
        "amount_cents": amount_cents,
        "method": method,
        "account_id": account.id if account else None,
        "applied_payments": applied,
        "applied_cents": plan.applied_cents,
        "remaining_credit_cents": plan.leftover_cents,
        "credit_balance_cents": customer.credit_balance_cents,
    }


# =============================================================================
# COLLECTIONS
# =============================================================================

def process_cascade_payment(
    org_id: int,
    customer_id: int,
    amount_cents: int,
    invoice_ids: list[int] | None = None,
    method: str = METHOD_CASH,
    account_id: int | None = None,
    allow_surplus_banking: bool = False,
    *,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> dict:
    """
    Apply one payment across a customer's open invoices, oldest first.

    Args:
        org_id: Tenant context (resolved by the caller)
        customer_id: Paying customer
        amount_cents: Money received (positive integer cents)
        invoice_ids: Restrict to these invoices; None/empty means all
            open invoices of the customer. Always applied oldest first.
        method: CASH, TRANSFER, CREDIT_NOTE, TRADE_IN or CREDIT_BALANCE
        account_id: Destination account; default account when omitted
        allow_surplus_banking: Bank any leftover as customer credit
        signature: SignerIdentity verified before this call

    Returns:
        {success, applied_payments, applied_cents, remaining_credit_cents,
         credit_balance_cents, ...}

    Raises:
        InvalidAmountError, ValidationError, OverpaymentNotAllowedError,
        CustomerNotFoundError, InvoiceNotFoundError, AccountNotFoundError,
        CrossTenantError, AccountArchivedError
    """
    require_positive_cents(amount_cents)
    method = normalize_method(method)

    if method == METHOD_CREDIT_BALANCE:
        if account_id is not None:
            raise ValidationError("CREDIT_BALANCE payments do not take an account")
        return redeem_credit_balance(
            org_id, customer_id, invoice_ids, amount_cents,
            reference=reference, user_id=user_id, signature=signature, date=date,
        )

    def _op():
        customer = require_customer(org_id, customer_id, lock=True)
        sales = load_open_sales(org_id, customer_id=customer.id, invoice_ids=invoice_ids, lock=True)
        account = resolve_account_for_method(org_id, method, account_id)

        result = _collect(
            org_id, customer, sales, amount_cents, method, account, allow_surplus_banking,
            reference=reference, notes=notes, user_id=user_id, signature=signature, date=date,
        )
        db.session.commit()
        logger.info(
            "Cascade payment org=%s customer=%s amount=%s applied=%s banked=%s",
            org_id, customer.id, amount_cents, result["applied_cents"], result["remaining_credit_cents"],
        )
        return result

    return run_with_retry(_op)


def register_payment(
    org_id: int,
    sale_id: int,
    amount_cents: int,
    method: str = METHOD_CASH,
    account_id: int | None = None,
    allow_surplus_banking: bool = False,
    *,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> dict:
    """
    Pay a single invoice.

    Same recorder and surplus policy as process_cascade_payment; a
    settled invoice treats the whole amount as surplus.
    """
    require_positive_cents(amount_cents)
    method = normalize_method(method)

    # Owner lookup only; the rows are locked inside the unit of work
    owner_id = require_sale(org_id, sale_id).customer_id

    if method == METHOD_CREDIT_BALANCE:
        if account_id is not None:
            raise ValidationError("CREDIT_BALANCE payments do not take an account")
        return redeem_credit_balance(
            org_id, owner_id, [sale_id], amount_cents,
            reference=reference, user_id=user_id, signature=signature, date=date,
        )

    def _op():
        customer = require_customer(org_id, owner_id, lock=True)
        sale = require_sale(org_id, sale_id, lock=True)
        account = resolve_account_for_method(org_id, method, account_id)

        sales = [sale] if not sale.is_settled else []
        result = _collect(
            org_id, customer, sales, amount_cents, method, account, allow_surplus_banking,
            reference=reference, notes=notes, user_id=user_id, signature=signature, date=date,
        )
        result["sale"] = sale.to_dict()
        db.session.commit()
        return result

    return run_with_retry(_op)


# =============================================================================
# PAYMENT MAINTENANCE
# =============================================================================

def _lock_payment_context(org_id: int, payment_id: int):
    """Lock customer, sale and payment in the package-wide lock order."""
    payment = require_payment(org_id, payment_id)
    sale = require_sale(org_id, payment.sale_id)
    customer = require_customer(org_id, sale.customer_id, lock=True)
    sale = require_sale(org_id, sale.id, lock=True)
    payment = require_payment(org_id, payment_id, lock=True)
    return customer, sale, payment


def _reverse_effect(customer, sale, payment, amount_cents, account, *, reason, user_id, signature):
    """Undo amount_cents of a payment's money movement."""
    if payment.method == METHOD_CREDIT_BALANCE:
        record_credit_movement(
            customer, CREDIT_IN, amount_cents,
            f"Credit returned from payment #{payment.id} ({reason})",
            sale_id=sale.id, payment_id=payment.id, user_id=user_id, signature=signature,
        )
    elif account is not None:
        post_entry(
            account, TXN_EXPENSE, amount_cents, CATEGORY_ADJUSTMENT,
            f"Reversal of payment #{payment.id} on invoice {sale.invoice_number}: {reason}",
            user_id=user_id, signature=signature,
        )


def _apply_effect(customer, sale, payment, method, amount_cents, account, *, reason, user_id, signature):
    """Apply amount_cents of money movement for a payment's new terms."""
    if method == METHOD_CREDIT_BALANCE:
        record_credit_movement(
            customer, CREDIT_OUT, amount_cents,
            f"Credit applied to invoice {sale.invoice_number} ({reason})",
            sale_id=sale.id, payment_id=payment.id, user_id=user_id, signature=signature,
        )
    else:
        post_entry(
            account, TXN_INCOME, amount_cents, CATEGORY_COLLECTION,
            f"{_collection_description(sale, customer)} (adjusted: {reason})",
            payment_id=payment.id, user_id=user_id, signature=signature,
        )


def update_payment(
    org_id: int,
    payment_id: int,
    reason: str,
    amount_cents: int | None = None,
    method: str | None = None,
    account_id: int | None = None,
    *,
    user_id: int | None = None,
    signature=None,
) -> dict:
    """
    Change a payment's amount, method or account.

    WHY: Mistyped amounts and wrong drawers happen. The old money movement
    is compensated (never erased) and the new one applied, so ledger
    balances stay equal to their journal.

    When the money source is unchanged only the difference is posted.

    Raises:
        ValidationError: reason too short, nothing to change, wrong account
            class, or the invoice would be overpaid
        InsufficientFundsError: the old account cannot cover the reversal
        InsufficientCreditError: not enough credit for a CREDIT_BALANCE edit
    """
    reason = _require_reason(reason)
    if amount_cents is not None:
        require_positive_cents(amount_cents)
    new_method = normalize_method(method) if method is not None else None

    def _op():
        customer, sale, payment = _lock_payment_context(org_id, payment_id)

        old_amount = payment.amount_cents
        old_method = payment.method
        old_account_id = payment.account_id

        target_method = new_method or old_method
        target_amount = amount_cents if amount_cents is not None else old_amount

        if account_id is not None:
            target_account_id = account_id
        elif target_method == old_method:
            target_account_id = old_account_id
        else:
            target_account_id = None

        if (target_method, target_amount, target_account_id) == (old_method, old_amount, old_account_id):
            raise ValidationError("No changes to apply")

        new_paid = sale.amount_paid_cents - old_amount + target_amount
        if new_paid > sale.total_cents:
            raise ValidationError(
                f"Invoice {sale.invoice_number} would be overpaid by {new_paid - sale.total_cents} cents"
            )

        if target_method == METHOD_CREDIT_BALANCE:
            if account_id is not None:
                raise ValidationError("CREDIT_BALANCE payments do not take an account")
            target_account = None
            involved = [old_account_id]
        else:
            involved = [old_account_id, target_account_id]

        locked = require_accounts(org_id, [a for a in involved if a is not None], lock=True)
        old_account = locked.get(old_account_id)
        if target_method != METHOD_CREDIT_BALANCE:
            target_account = resolve_account_for_method(org_id, target_method, target_account_id)

        same_source = (
            old_method == METHOD_CREDIT_BALANCE and target_method == METHOD_CREDIT_BALANCE
        ) or (
            old_method != METHOD_CREDIT_BALANCE
            and target_method != METHOD_CREDIT_BALANCE
            and old_account_id == (target_account.id if target_account else None)
        )

        effect_kwargs = {"reason": reason, "user_id": user_id, "signature": signature}
        if same_source:
            delta = target_amount - old_amount
            if delta < 0:
                _reverse_effect(customer, sale, payment, -delta, old_account, **effect_kwargs)
            elif delta > 0:
                _apply_effect(customer, sale, payment, target_method, delta, target_account, **effect_kwargs)
        else:
            _reverse_effect(customer, sale, payment, old_amount, old_account, **effect_kwargs)
            _apply_effect(customer, sale, payment, target_method, target_amount, target_account, **effect_kwargs)

        payment.amount_cents = target_amount
        payment.method = target_method
        payment.account_id = target_account.id if target_account else None
        db.session.flush()

        sale.amount_paid_cents = sum(p.amount_cents for p in sale.payments)
        if sale.amount_paid_cents != new_paid:
            raise InvariantViolationError(
                f"Invoice {sale.invoice_number} paid amount out of sync after edit"
            )

        db.session.add(PaymentAudit(
            org_id=org_id,
            payment_id=payment.id,
            sale_id=sale.id,
            action="UPDATE",
            old_amount_cents=old_amount,
            new_amount_cents=target_amount,
            old_method=old_method,
            new_method=target_method,
            old_account_id=old_account_id,
            new_account_id=payment.account_id,
            reason=reason[:255],
            **_signer_fields(user_id, signature),
        ))

        append_event(
            org_id=org_id,
            event_type="payment.updated",
            entity_type="payment",
            entity_id=payment.id,
            customer_id=customer.id,
            account_id=payment.account_id or old_account_id,
            sale_id=sale.id,
            payment_id=payment.id,
            actor_user_id=user_id,
            signature=signature,
            amount_cents=target_amount - old_amount,
            note=reason,
        )
        db.session.commit()
        logger.info("Payment %s updated by %s: %s", payment.id, user_id, reason)

        return {
            "success": True,
            "payment": payment.to_dict(),
            "sale": sale.to_dict(),
            "credit_balance_cents": customer.credit_balance_cents,
        }

    return run_with_retry(_op)


def delete_payment(
    org_id: int,
    payment_id: int,
    reason: str,
    *,
    user_id: int | None = None,
    signature=None,
) -> dict:
    """
    Delete a payment and compensate its money movement.

    - Account payments: compensating EXPENSE on the original account
    - CREDIT_BALANCE payments: the amount returns to the customer's credit
    - The invoice's paid amount is recomputed from the remaining payments
    """
    reason = _require_reason(reason)

    def _op():
        customer, sale, payment = _lock_payment_context(org_id, payment_id)

        old_account = None
        if payment.account_id is not None:
            old_account = require_account(org_id, payment.account_id, lock=True)

        _reverse_effect(
            customer, sale, payment, payment.amount_cents, old_account,
            reason=reason, user_id=user_id, signature=signature,
        )

        # Journal lines stay; only the link to the vanished payment goes
        for txn in list(payment.ledger_transactions):
            txn.payment_id = None

        db.session.add(PaymentAudit(
            org_id=org_id,
            payment_id=payment.id,
            sale_id=sale.id,
            action="DELETE",
            old_amount_cents=payment.amount_cents,
            old_method=payment.method,
            old_account_id=payment.account_id,
            reason=reason[:255],
            **_signer_fields(user_id, signature),
        ))

        append_event(
            org_id=org_id,
            event_type="payment.deleted",
            entity_type="payment",
            entity_id=payment.id,
            customer_id=customer.id,
            account_id=payment.account_id,
            sale_id=sale.id,
            payment_id=payment.id,
            actor_user_id=user_id,
            signature=signature,
            amount_cents=-payment.amount_cents,
            note=reason,
        )

        deleted_id = payment.id
        db.session.delete(payment)
        db.session.flush()

        remaining = db.session.query(db.func.coalesce(db.func.sum(Payment.amount_cents), 0)).filter(
            Payment.sale_id == sale.id
        ).scalar()
        sale.amount_paid_cents = int(remaining)

        db.session.commit()
        logger.info("Payment %s deleted by %s: %s", deleted_id, user_id, reason)

        return {
            "success": True,
            "deleted_payment_id": deleted_id,
            "sale": sale.to_dict(),
            "credit_balance_cents": customer.credit_balance_cents,
        }

    return run_with_retry(_op)
