from __future__ import annotations

from ..extensions import db
from latidos.time_utils import to_utc_z

class FinanceEvent(db.Model):
    """
    Append-only log of committed financial mutations.

    WHY: Written inside the same DB transaction as the change it records.
    Dependent projections (customer statements, account views) key their
    freshness on the latest event id for their customer/account.
    """
    __tablename__ = "finance_events"
    __table_args__ = (
        db.Index("ix_finance_events_org_occurred", "org_id", "occurred_at"),
        db.Index("ix_finance_events_customer", "customer_id"),
        db.Index("ix_finance_events_account", "account_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    customer_id = db.Column(db.Integer, nullable=True)
    account_id = db.Column(db.Integer, nullable=True)
    sale_id = db.Column(db.Integer, nullable=True)
    payment_id = db.Column(db.Integer, nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True)
    operator_name = db.Column(db.String(255), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "customer_id": self.customer_id,
            "account_id": self.account_id,
            "sale_id": self.sale_id,
            "payment_id": self.payment_id,
            "actor_user_id": self.actor_user_id,
            "operator_name": self.operator_name,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
