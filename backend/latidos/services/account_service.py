# Overview: Service-layer operations for ledger accounts; posting, administration and liquidity views.

"""
Ledger Account Store

WHY: Accounts are the pools real money sits in (cash drawer, bank, credit
note pool, trade-in pool). Their balance is cached on the row, so every
posting must write the journal line and move the balance together.

INVARIANTS:
- balance_cents == sum(INCOME) - sum(EXPENSE) over the account's lines
- Postings never drive a balance negative (InsufficientFundsError)
- Archived accounts accept no new postings
- At most one default account per organization

CLASSIFICATION:
The declared account type is authoritative. Name heuristics exist only
as suggest_account_type() for imports and display.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from sqlalchemy import case, func

from ..extensions import db
from ..models import PaymentAccount, LedgerTransaction
from latidos.time_utils import utcnow
from latidos.validation import parse_str
from .allocation import require_positive_cents
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    AccountArchivedError,
    AccountInUseError,
    InsufficientFundsError,
    ValidationError,
)
from .event_service import append_event
from .tenant_service import require_account, require_org

logger = logging.getLogger(__name__)


# =============================================================================
# ACCOUNT TYPES AND CLASSES (CONSTANTS)
# =============================================================================

ACCOUNT_TYPE_CASH = "CASH"
ACCOUNT_TYPE_BANK = "BANK"
ACCOUNT_TYPE_WALLET = "WALLET"
ACCOUNT_TYPE_TRADE_IN = "TRADE_IN"
ACCOUNT_TYPE_CREDIT_NOTE = "CREDIT_NOTE"

VALID_ACCOUNT_TYPES = [
    ACCOUNT_TYPE_CASH,
    ACCOUNT_TYPE_BANK,
    ACCOUNT_TYPE_WALLET,
    ACCOUNT_TYPE_TRADE_IN,
    ACCOUNT_TYPE_CREDIT_NOTE,
]

CLASS_CASH_LIKE = "CASH_LIKE"
CLASS_BANK_LIKE = "BANK_LIKE"
CLASS_CREDIT_NOTE_LIKE = "CREDIT_NOTE_LIKE"
CLASS_TRADE_IN_LIKE = "TRADE_IN_LIKE"

_TYPE_CLASS = {
    ACCOUNT_TYPE_CASH: CLASS_CASH_LIKE,
    ACCOUNT_TYPE_BANK: CLASS_BANK_LIKE,
    ACCOUNT_TYPE_WALLET: CLASS_BANK_LIKE,
    ACCOUNT_TYPE_TRADE_IN: CLASS_TRADE_IN_LIKE,
    ACCOUNT_TYPE_CREDIT_NOTE: CLASS_CREDIT_NOTE_LIKE,
}

TXN_INCOME = "INCOME"
TXN_EXPENSE = "EXPENSE"
VALID_TXN_TYPES = [TXN_INCOME, TXN_EXPENSE]

# Legacy name heuristics (imports and display only)
_RE_TRADE_IN = re.compile(r"retoma", re.IGNORECASE)
_RE_CREDIT_NOTE = re.compile(r"garant[íi]a|nota\s*cr[ée]dito|\bnc\b", re.IGNORECASE)
_RE_CASH = re.compile(r"efectivo|caja|oficina", re.IGNORECASE)
_RE_WALLET = re.compile(r"nequi|daviplata|billetera|wallet", re.IGNORECASE)


def classify_account(account_or_type) -> str:
    """
    Map an account (or a bare type string) onto its account class.

    Only the declared type is considered; the account name never is.
    """
    account_type = account_or_type if isinstance(account_or_type, str) else account_or_type.type
    try:
        return _TYPE_CLASS[account_type]
    except KeyError:
        raise ValidationError(f"Unknown account type: {account_type}")


def suggest_account_type(name: str) -> str | None:
    """Best-effort account type from a legacy account name, or None."""
    if not name:
        return None
    if _RE_TRADE_IN.search(name):
        return ACCOUNT_TYPE_TRADE_IN
    if _RE_CREDIT_NOTE.search(name):
        return ACCOUNT_TYPE_CREDIT_NOTE
    if _RE_CASH.search(name):
        return ACCOUNT_TYPE_CASH
    if _RE_WALLET.search(name):
        return ACCOUNT_TYPE_WALLET
    return None


def _validate_type(account_type: str) -> str:
    if account_type not in VALID_ACCOUNT_TYPES:
        raise ValidationError(f"Invalid account type: {account_type}. Must be one of {VALID_ACCOUNT_TYPES}")
    return account_type


def _validate_name(name: str | None) -> str:
    name = parse_str(name, "name") or ""
    if not name:
        raise ValidationError("Account name is required")
    if len(name) > 120:
        raise ValidationError("Account name must be at most 120 characters")
    return name


# =============================================================================
# POSTING PRIMITIVE
# =============================================================================

def post_entry(
    account: PaymentAccount,
    txn_type: str,
    amount_cents: int,
    category: str,
    description: str | None = None,
    *,
    payment_id: int | None = None,
    to_account_id: int | None = None,
    transfer_group: str | None = None,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> LedgerTransaction:
    """
    Write one journal line and move the cached balance with it.

    Caller owns the unit of work: the account must already be validated
    for the tenant and locked, and the caller commits.

    Raises:
        AccountArchivedError: account is archived
        InsufficientFundsError: an EXPENSE would drive the balance negative
    """
    require_positive_cents(amount_cents)
    if txn_type not in VALID_TXN_TYPES:
        raise ValidationError(f"Invalid transaction type: {txn_type}")

    if account.is_archived:
        raise AccountArchivedError(f"Account '{account.name}' is archived")

    if txn_type == TXN_EXPENSE:
        if account.balance_cents < amount_cents:
            raise InsufficientFundsError(
                f"Insufficient funds in '{account.name}': "
                f"balance {account.balance_cents}, required {amount_cents}"
            )
        account.balance_cents -= amount_cents
    else:
        account.balance_cents += amount_cents

    txn = LedgerTransaction(
        org_id=account.org_id,
        account_id=account.id,
        amount_cents=amount_cents,
        type=txn_type,
        category=category,
        description=description[:255] if description else None,
        date=date or utcnow(),
        payment_id=payment_id,
        to_account_id=to_account_id,
        transfer_group=transfer_group,
        user_id=signature.user_id if signature and signature.user_id else user_id,
        operator_id=signature.operator_id if signature else None,
        operator_name=signature.name if signature else None,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


# =============================================================================
# ACCOUNT ADMINISTRATION
# =============================================================================

def _has_history(account: PaymentAccount) -> bool:
    posted = db.session.query(LedgerTransaction.id).filter(
        (LedgerTransaction.account_id == account.id) | (LedgerTransaction.to_account_id == account.id)
    ).first()
    return posted is not None or bool(account.payments)


def _clear_default(org_id: int, keep_id: int | None = None) -> None:
    query = db.session.query(PaymentAccount).filter(
        PaymentAccount.org_id == org_id,
        PaymentAccount.is_default.is_(True),
    )
    if keep_id is not None:
        query = query.filter(PaymentAccount.id != keep_id)
    for other in lock_for_update(query).all():
        other.is_default = False


def list_accounts(org_id: int, include_archived: bool = False) -> list[PaymentAccount]:
    query = db.session.query(PaymentAccount).filter_by(org_id=org_id)
    if not include_archived:
        query = query.filter(PaymentAccount.is_archived.is_(False))
    return query.order_by(PaymentAccount.name.asc(), PaymentAccount.id.asc()).all()


def get_default_account(org_id: int) -> PaymentAccount | None:
    return db.session.query(PaymentAccount).filter_by(
        org_id=org_id, is_default=True, is_archived=False
    ).first()


def create_account(
    org_id: int,
    name: str,
    account_type: str,
    is_default: bool = False,
    actor_user_id: int | None = None,
) -> PaymentAccount:
    """
    Create a ledger account with zero balance.

    Opening balances are posted afterwards as INCOME so the journal
    explains every cent on the account.
    """
    def _op():
        require_org(org_id)
        clean_name = _validate_name(name)
        _validate_type(account_type)

        existing = db.session.query(PaymentAccount).filter_by(org_id=org_id, name=clean_name).first()
        if existing:
            raise ValidationError(f"Account '{clean_name}' already exists")

        if is_default:
            _clear_default(org_id)

        account = PaymentAccount(
            org_id=org_id,
            name=clean_name,
            type=account_type,
            balance_cents=0,
            is_default=bool(is_default),
        )
        db.session.add(account)
        db.session.flush()

        append_event(
            org_id=org_id,
            event_type="account.created",
            entity_type="payment_account",
            entity_id=account.id,
            account_id=account.id,
            actor_user_id=actor_user_id,
        )
        db.session.commit()
        return account

    return run_with_retry(_op)


def update_account(
    org_id: int,
    account_id: int,
    name: str | None = None,
    account_type: str | None = None,
    is_default: bool | None = None,
    actor_user_id: int | None = None,
) -> PaymentAccount:
    """
    Rename, retype or (un)set default. Balance is never edited here.

    Retyping into another account class is refused once the account has
    postings or payments.
    """
    def _op():
        account = require_account(org_id, account_id, lock=True)

        if name is not None:
            clean_name = _validate_name(name)
            clash = db.session.query(PaymentAccount).filter(
                PaymentAccount.org_id == org_id,
                PaymentAccount.name == clean_name,
                PaymentAccount.id != account.id,
            ).first()
            if clash:
                raise ValidationError(f"Account '{clean_name}' already exists")
            account.name = clean_name

        if account_type is not None:
            new_type = _validate_type(account_type)
            # Posted history stays under the class it was booked in
            if classify_account(new_type) != classify_account(account) and _has_history(account):
                raise AccountInUseError(
                    f"Account '{account.name}' has postings; its class cannot change from {account.type} to {new_type}"
                )
            account.type = new_type

        if is_default is not None:
            if is_default:
                if account.is_archived:
                    raise AccountArchivedError("An archived account cannot be the default")
                _clear_default(org_id, keep_id=account.id)
            account.is_default = bool(is_default)

        append_event(
            org_id=org_id,
            event_type="account.updated",
            entity_type="payment_account",
            entity_id=account.id,
            account_id=account.id,
            actor_user_id=actor_user_id,
        )
        db.session.commit()
        return account

    return run_with_retry(_op)


def archive_account(org_id: int, account_id: int, actor_user_id: int | None = None) -> PaymentAccount:
    """
    Hide an account and freeze its balance.

    WHY: Accounts with history are archived, not deleted, so past
    statements still resolve. An archived account loses default status.
    """
    def _op():
        account = require_account(org_id, account_id, lock=True)
        account.is_archived = True
        account.is_default = False
        append_event(
            org_id=org_id,
            event_type="account.archived",
            entity_type="payment_account",
            entity_id=account.id,
            account_id=account.id,
            actor_user_id=actor_user_id,
        )
        db.session.commit()
        return account

    return run_with_retry(_op)


def unarchive_account(org_id: int, account_id: int, actor_user_id: int | None = None) -> PaymentAccount:
    def _op():
        account = require_account(org_id, account_id, lock=True)
        account.is_archived = False
        append_event(
            org_id=org_id,
            event_type="account.unarchived",
            entity_type="payment_account",
            entity_id=account.id,
            account_id=account.id,
            actor_user_id=actor_user_id,
        )
        db.session.commit()
        return account

    return run_with_retry(_op)


def delete_account(org_id: int, account_id: int, actor_user_id: int | None = None) -> None:
    """
    Hard-delete an account.

    Raises:
        AccountInUseError: balance is non-zero, or any transaction or
            payment references the account (archive it instead)
    """
    def _op():
        account = require_account(org_id, account_id, lock=True)

        if account.balance_cents != 0:
            raise AccountInUseError("Account has a non-zero balance; archive it instead")

        if _has_history(account):
            raise AccountInUseError("Account has transaction history; archive it instead")

        append_event(
            org_id=org_id,
            event_type="account.deleted",
            entity_type="payment_account",
            entity_id=account.id,
            account_id=account.id,
            actor_user_id=actor_user_id,
            note=account.name,
        )
        db.session.delete(account)
        db.session.commit()

    return run_with_retry(_op)


# =============================================================================
# MANUAL LEDGER ENTRIES
# =============================================================================

def create_transaction(
    org_id: int,
    account_id: int,
    amount_cents: int,
    txn_type: str,
    category: str,
    description: str | None = None,
    date: datetime | None = None,
    *,
    user_id: int | None = None,
    signature=None,
) -> LedgerTransaction:
    """
    Record a manual INCOME (cash-in) or EXPENSE against one account.

    Same balance discipline as collections: an EXPENSE larger than the
    balance fails with InsufficientFundsError and nothing is written.
    """
    require_positive_cents(amount_cents)
    if txn_type not in VALID_TXN_TYPES:
        raise ValidationError(f"Invalid transaction type: {txn_type}. Must be one of {VALID_TXN_TYPES}")
    category = parse_str(category, "category") or ""
    description = parse_str(description, "description")
    if not category:
        raise ValidationError("category is required")

    def _op():
        account = require_account(org_id, account_id, lock=True)
        txn = post_entry(
            account,
            txn_type,
            amount_cents,
            category,
            description,
            user_id=user_id,
            signature=signature,
            date=date,
        )
        append_event(
            org_id=org_id,
            event_type="transaction.created",
            entity_type="ledger_transaction",
            entity_id=txn.id,
            account_id=account.id,
            actor_user_id=user_id,
            signature=signature,
            amount_cents=amount_cents if txn_type == TXN_INCOME else -amount_cents,
        )
        db.session.commit()
        logger.info("Manual %s of %s cents on account %s", txn_type, amount_cents, account.id)
        return txn

    return run_with_retry(_op)


# =============================================================================
# READ PROJECTIONS
# =============================================================================

def get_account_details(
    org_id: int,
    account_id: int,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """
    Account header, its journal lines in range (newest first) and the
    period summary.

    The period summary covers only the lines in range, opening with the
    signed sum of everything before start_date. The account balance is
    always the all-time cached value.
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")

    account = require_account(org_id, account_id)

    query = db.session.query(LedgerTransaction).filter(
        LedgerTransaction.org_id == org_id,
        LedgerTransaction.account_id == account.id,
    )
    if start_date:
        query = query.filter(LedgerTransaction.date >= start_date)
    if end_date:
        query = query.filter(LedgerTransaction.date <= end_date)

    transactions = query.order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc()).all()

    opening = 0
    if start_date:
        signed = case(
            (LedgerTransaction.type == TXN_INCOME, LedgerTransaction.amount_cents),
            else_=-LedgerTransaction.amount_cents,
        )
        opening = int(db.session.query(func.coalesce(func.sum(signed), 0)).filter(
            LedgerTransaction.org_id == org_id,
            LedgerTransaction.account_id == account.id,
            LedgerTransaction.date < start_date,
        ).scalar())

    income = sum(t.amount_cents for t in transactions if t.type == TXN_INCOME)
    expense = sum(t.amount_cents for t in transactions if t.type == TXN_EXPENSE)

    data = account.to_dict()
    data["account_class"] = classify_account(account)

    return {
        "account": data,
        "transactions": [t.to_dict() for t in transactions],
        "period_summary": {
            "opening_balance_cents": opening,
            "income_cents": income,
            "expense_cents": expense,
            "net_cents": income - expense,
            "closing_balance_cents": opening + income - expense,
        },
    }


def get_liquidity_summary(org_id: int) -> dict:
    """
    Group non-archived balances into liquidity tiers.

    - operative: cash + bank (money the business can spend today)
    - system: trade-in stock value less outstanding credit notes
    """
    accounts = list_accounts(org_id)

    totals = {
        CLASS_CASH_LIKE: 0,
        CLASS_BANK_LIKE: 0,
        CLASS_TRADE_IN_LIKE: 0,
        CLASS_CREDIT_NOTE_LIKE: 0,
    }
    rows = []
    for account in accounts:
        account_class = classify_account(account)
        totals[account_class] += account.balance_cents
        rows.append({
            "id": account.id,
            "name": account.name,
            "type": account.type,
            "account_class": account_class,
            "balance_cents": account.balance_cents,
            "is_default": account.is_default,
        })

    return {
        "cash_cents": totals[CLASS_CASH_LIKE],
        "bank_cents": totals[CLASS_BANK_LIKE],
        "trade_in_cents": totals[CLASS_TRADE_IN_LIKE],
        "credit_note_cents": totals[CLASS_CREDIT_NOTE_LIKE],
        "operative_total_cents": totals[CLASS_CASH_LIKE] + totals[CLASS_BANK_LIKE],
        "system_net_cents": totals[CLASS_TRADE_IN_LIKE] - totals[CLASS_CREDIT_NOTE_LIKE],
        "accounts": rows,
    }
