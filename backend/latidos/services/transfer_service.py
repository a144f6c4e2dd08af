# backend/latidos/services/transfer_service.py
"""
Fund transfer service.

WHY: Move money between ledger accounts (drawer to bank, bank to several
drawers) with the same all-or-nothing discipline as collections.

SHAPE:
- Simple transfer: one EXPENSE on the source, one INCOME on the destination
- Split transfer: one EXPENSE per source leg, one INCOME per destination leg
- Every line of one transfer shares a transfer_group token
- The outgoing line carries to_account_id when there is a single destination

VALIDATION (all before any write):
1. At least one leg on each side, each with an account and positive amount
2. sum(sources) == sum(destinations) == declared total
3. No account twice on the same side, no account on both sides
4. Every source balance covers its leg (no negative balances)
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from latidos.extensions import db
from latidos.services.account_service import TXN_EXPENSE, TXN_INCOME, post_entry
from latidos.services.allocation import require_positive_cents
from latidos.services.concurrency import run_with_retry
from latidos.services.errors import (
    AccountArchivedError,
    InsufficientFundsError,
    SplitMismatchError,
    ValidationError,
)
from latidos.services.event_service import append_event
from latidos.services.tenant_service import require_accounts
from latidos.validation import parse_str

logger = logging.getLogger(__name__)

CATEGORY_TRANSFER = "Transfer"


@dataclass(frozen=True)
class TransferLeg:
    account_id: int
    amount_cents: int

    @classmethod
    def from_dict(cls, data: dict) -> "TransferLeg":
        if not isinstance(data, dict):
            raise ValidationError("Each transfer leg must be an object")
        return cls(account_id=data.get("account_id"), amount_cents=data.get("amount_cents"))


def validate_split(sources: list[TransferLeg], destinations: list[TransferLeg], total_cents: int) -> None:
    """
    Reject a malformed split before anything is read or written.

    Raises:
        ValidationError: missing legs/accounts, duplicated or overlapping accounts
        InvalidAmountError: non-positive leg or total
        SplitMismatchError: legs do not add up to the total
    """
    require_positive_cents(total_cents, "total_cents")

    if not sources:
        raise ValidationError("At least one source account is required")
    if not destinations:
        raise ValidationError("At least one destination account is required")

    for side, legs in (("source", sources), ("destination", destinations)):
        seen = set()
        for leg in legs:
            if leg.account_id is None:
                raise ValidationError(f"Every {side} leg needs an account")
            require_positive_cents(leg.amount_cents, f"{side} amount_cents")
            if leg.account_id in seen:
                raise ValidationError(f"Account {leg.account_id} appears twice as a {side}")
            seen.add(leg.account_id)

    source_total = sum(leg.amount_cents for leg in sources)
    dest_total = sum(leg.amount_cents for leg in destinations)
    if source_total != total_cents or dest_total != total_cents:
        raise SplitMismatchError(
            f"Sources ({source_total}) and destinations ({dest_total}) must both equal {total_cents}"
        )

    overlap = {leg.account_id for leg in sources} & {leg.account_id for leg in destinations}
    if overlap:
        raise ValidationError("Cannot transfer an account to itself")


def split_transfer_funds(
    org_id: int,
    sources: list[TransferLeg],
    destinations: list[TransferLeg],
    total_cents: int,
    description: str | None = None,
    *,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> dict:
    """
    Move money from N source accounts to M destination accounts atomically.

    Args:
        org_id: Tenant context; every account must belong to it
        sources: Legs to debit
        destinations: Legs to credit
        total_cents: Declared total, checked against both sides

    Returns:
        {success, transfer_group, transactions, accounts}

    Raises:
        ValidationError, InvalidAmountError, SplitMismatchError,
        AccountNotFoundError, CrossTenantError, AccountArchivedError,
        InsufficientFundsError
    """
    sources = [leg if isinstance(leg, TransferLeg) else TransferLeg.from_dict(leg) for leg in sources or []]
    destinations = [leg if isinstance(leg, TransferLeg) else TransferLeg.from_dict(leg) for leg in destinations or []]
    validate_split(sources, destinations, total_cents)

    description = parse_str(description, "description") or "Transfer between accounts"

    def _op():
        account_ids = [leg.account_id for leg in sources + destinations]
        accounts = require_accounts(org_id, account_ids, lock=True)

        # Check everything first so a later leg cannot fail after writes
        for account in accounts.values():
            if account.is_archived:
                raise AccountArchivedError(f"Account '{account.name}' is archived")
        for leg in sources:
            account = accounts[leg.account_id]
            if account.balance_cents < leg.amount_cents:
                raise InsufficientFundsError(
                    f"Insufficient funds in '{account.name}': "
                    f"balance {account.balance_cents}, required {leg.amount_cents}"
                )

        group = uuid.uuid4().hex
        single_dest = destinations[0].account_id if len(destinations) == 1 else None

        transactions = []
        for leg in sources:
            txn = post_entry(
                accounts[leg.account_id],
                TXN_EXPENSE,
                leg.amount_cents,
                CATEGORY_TRANSFER,
                description,
                to_account_id=single_dest,
                transfer_group=group,
                user_id=user_id,
                signature=signature,
                date=date,
            )
            transactions.append(txn)

        for leg in destinations:
            txn = post_entry(
                accounts[leg.account_id],
                TXN_INCOME,
                leg.amount_cents,
                CATEGORY_TRANSFER,
                description,
                transfer_group=group,
                user_id=user_id,
                signature=signature,
                date=date,
            )
            transactions.append(txn)

        for account_id in accounts:
            append_event(
                org_id=org_id,
                event_type="transfer.created",
                entity_type="transfer",
                entity_id=transactions[0].id,
                account_id=account_id,
                actor_user_id=user_id,
                signature=signature,
                amount_cents=total_cents,
                note=group,
            )

        db.session.commit()
        logger.info(
            "Transfer %s org=%s total=%s sources=%s destinations=%s",
            group, org_id, total_cents, len(sources), len(destinations),
        )

        return {
            "success": True,
            "transfer_group": group,
            "total_cents": total_cents,
            "transactions": [t.to_dict() for t in transactions],
            "accounts": [accounts[a].to_dict() for a in sorted(accounts)],
        }

    return run_with_retry(_op)


def transfer_funds(
    org_id: int,
    from_account_id: int,
    to_account_id: int,
    amount_cents: int,
    description: str | None = None,
    *,
    user_id: int | None = None,
    signature=None,
    date: datetime | None = None,
) -> dict:
    """Classic two-leg transfer; a split with one leg on each side."""
    if from_account_id is None or to_account_id is None:
        raise ValidationError("Both source and destination accounts are required")
    if from_account_id == to_account_id:
        raise ValidationError("Cannot transfer an account to itself")

    return split_transfer_funds(
        org_id,
        [TransferLeg(from_account_id, amount_cents)],
        [TransferLeg(to_account_id, amount_cents)],
        amount_cents,
        description,
        user_id=user_id,
        signature=signature,
        date=date,
    )
