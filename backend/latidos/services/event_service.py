# Overview: Append-only finance event log written inside each financial unit of work.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import FinanceEvent
"""
Finance Event Invariants (authoritative)

- Append-only audit log of committed financial mutations.
- No domain/business logic in the event log itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back operation leaves no event behind.
- Each event names the customer and/or account whose projections it invalidates.
"""


def append_event(
    *,
    org_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    customer_id: int | None = None,
    account_id: int | None = None,
    sale_id: int | None = None,
    payment_id: int | None = None,
    actor_user_id: int | None = None,
    signature=None,
    amount_cents: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> FinanceEvent:
    """
    Append-only finance event.

    - No deletes/updates of existing events.
    - occurred_at defaults to the database clock.
    """
    ev = FinanceEvent(
        org_id=org_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        customer_id=customer_id,
        account_id=account_id,
        sale_id=sale_id,
        payment_id=payment_id,
        actor_user_id=actor_user_id,
        operator_name=signature.name if signature else None,
        amount_cents=amount_cents,
        note=note[:255] if note else None,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at  # otherwise the db default applies
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def latest_event_id(org_id: int, *, customer_id: int | None = None, account_id: int | None = None) -> int | None:
    """
    Freshness marker for cached projections.

    A statement or account view built when this value was N is stale as
    soon as the value moves past N.
    """
    query = db.session.query(db.func.max(FinanceEvent.id)).filter(FinanceEvent.org_id == org_id)
    if customer_id is not None:
        query = query.filter(FinanceEvent.customer_id == customer_id)
    if account_id is not None:
        query = query.filter(FinanceEvent.account_id == account_id)
    return query.scalar()
