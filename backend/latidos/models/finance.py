from __future__ import annotations

from ..extensions import db
from latidos.time_utils import to_utc_z, utcnow


class PaymentAccount(db.Model):
    """
    Named pool of funds (cash drawer, bank, credit-note pool, trade-in pool).

    WHY: balance_cents is a cached running balance. It must always equal
    the signed sum of the account's ledger transactions (INCOME adds,
    EXPENSE subtracts); every posting updates both in the same unit of work.

    Accounts with history are archived rather than deleted.
    """
    __tablename__ = "payment_accounts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_payment_accounts_org_name"),
        db.Index("ix_payment_accounts_org_archived", "org_id", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # CASH, BANK, WALLET, TRADE_IN, CREDIT_NOTE

    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "type": self.type,
            "balance_cents": self.balance_cents,
            "is_archived": self.is_archived,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LedgerTransaction(db.Model):
    """
    Journal line against exactly one PaymentAccount.

    TYPES:
    - INCOME: Adds to the account balance
    - EXPENSE: Subtracts from the account balance

    An internal transfer produces one EXPENSE per source leg and one INCOME
    per destination leg, sharing transfer_group. The outgoing leg carries
    to_account_id when there is a single destination.

    IMMUTABLE: Corrections are written as compensating entries.
    """
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_ledger_txns_amount_positive"),
        db.Index("ix_ledger_txns_account_date", "account_id", "date"),
        db.Index("ix_ledger_txns_org_date", "org_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("payment_accounts.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)  # INCOME, EXPENSE
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)
    to_account_id = db.Column(db.Integer, db.ForeignKey("payment_accounts.id"), nullable=True)
    transfer_group = db.Column(db.String(32), nullable=True, index=True)

    # Attribution
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    operator_id = db.Column(db.Integer, nullable=True)
    operator_name = db.Column(db.String(255), nullable=True)

    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship(
        "PaymentAccount",
        foreign_keys=[account_id],
        backref=db.backref("transactions", lazy=True),
    )
    to_account = db.relationship("PaymentAccount", foreign_keys=[to_account_id])
    payment = db.relationship("Payment", backref=db.backref("ledger_transactions", lazy=True))

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == "INCOME" else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "date": to_utc_z(self.date),
            "payment_id": self.payment_id,
            "to_account_id": self.to_account_id,
            "transfer_group": self.transfer_group,
            "user_id": self.user_id,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "is_verified": self.is_verified,
        }
