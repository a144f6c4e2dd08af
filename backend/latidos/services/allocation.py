# Overview: Pure cascading allocator; distributes one payment across invoices oldest-first.

"""
Cascading Allocation Kernel

WHY: A customer often pays one lump sum against several open invoices.
The money is applied invoice by invoice, oldest first, each invoice taking
at most its pending balance, until the money runs out or every invoice is
settled. Whatever is left is returned as leftover for the caller to bank
as customer credit (or reject).

DESIGN PRINCIPLES:
- Pure function: no I/O, no accounts, no tenants, no persistence
- Integer cents only (no floats anywhere in the arithmetic)
- Deterministic: same ordered input and amount, same plan
- Conservation: sum(applied) + leftover == amount
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .errors import InvalidAmountError, InvariantViolationError


@dataclass(frozen=True)
class InvoiceBalance:
    """Open invoice as seen by the allocator."""
    invoice_id: int
    pending_cents: int
    date: datetime | None = None
    display_ref: str | None = None

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "pending_cents": self.pending_cents,
            "date": self.date.isoformat() if self.date else None,
            "display_ref": self.display_ref,
        }


@dataclass(frozen=True)
class Allocation:
    invoice_id: int
    applied_cents: int
    remaining_cents: int  # Invoice pending balance after this allocation

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "applied_cents": self.applied_cents,
            "remaining_cents": self.remaining_cents,
        }


@dataclass(frozen=True)
class AllocationPlan:
    allocations: tuple[Allocation, ...]
    leftover_cents: int

    @property
    def applied_cents(self) -> int:
        return sum(a.applied_cents for a in self.allocations)

    def to_dict(self) -> dict:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "applied_cents": self.applied_cents,
            "leftover_cents": self.leftover_cents,
        }


def require_positive_cents(value, field: str = "amount_cents") -> int:
    """
    Validate an amount in minor units.

    Rejects bools, floats, strings and non-positive integers: fractional
    cents do not exist and binary floating point never touches money.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{field} must be an integer number of cents")
    if value <= 0:
        raise InvalidAmountError(f"{field} must be positive")
    return value


def fifo_order(invoices: Iterable[InvoiceBalance]) -> list[InvoiceBalance]:
    """Oldest first; ties broken by invoice id so the order is total."""
    return sorted(
        invoices,
        key=lambda inv: (inv.date is None, inv.date or datetime.min, inv.invoice_id),
    )


def allocate(invoices: Iterable[InvoiceBalance], amount_cents: int) -> AllocationPlan:
    """
    Distribute amount_cents across invoices in the order given.

    Args:
        invoices: Invoice balances, already in priority order (see fifo_order)
        amount_cents: Money to distribute (positive integer cents)

    Returns:
        AllocationPlan with one entry per invoice that received money and
        the unallocated leftover

    Raises:
        InvalidAmountError: amount is not a positive integer (checked first)
        InvariantViolationError: an invoice reports a negative pending balance
    """
    remaining = require_positive_cents(amount_cents)

    allocations = []
    for invoice in invoices:
        if remaining == 0:
            break

        if invoice.pending_cents < 0:
            raise InvariantViolationError(
                f"Invoice {invoice.invoice_id} has negative pending balance {invoice.pending_cents}"
            )

        if invoice.pending_cents == 0:
            continue

        applied = min(remaining, invoice.pending_cents)
        remaining -= applied
        allocations.append(Allocation(
            invoice_id=invoice.invoice_id,
            applied_cents=applied,
            remaining_cents=invoice.pending_cents - applied,
        ))

    return AllocationPlan(allocations=tuple(allocations), leftover_cents=remaining)
