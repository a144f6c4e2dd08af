from __future__ import annotations

from ..extensions import db
from latidos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Invoice owed by a customer.

    WHY: amount_paid_cents is a cached sum of the sale's payments. It is
    only mutated by the payment recorder, which keeps it equal to the
    payment sum and within [0, total_cents].

    The sale date is the aging anchor: collections are applied oldest
    invoice first.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_sales_org_invoice_number"),
        db.CheckConstraint(
            "amount_paid_cents >= 0 AND amount_paid_cents <= total_cents",
            name="ck_sales_amount_paid_range",
        ),
        # Composite index for the pending-invoice resolver
        db.Index("ix_sales_org_customer_date", "org_id", "customer_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Human-readable invoice number (e.g., "F-001234")
    invoice_number = db.Column(db.String(64), nullable=False)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # Amounts in minor units (cents)
    total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def pending_balance_cents(self) -> int:
        return self.total_cents - self.amount_paid_cents

    @property
    def is_settled(self) -> bool:
        return self.pending_balance_cents == 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "date": to_utc_z(self.date),
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "pending_balance_cents": self.pending_balance_cents,
            "is_verified": self.is_verified,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Payment(db.Model):
    """
    Money applied toward one invoice.

    METHODS:
    - CASH: Physical currency (cash-like account)
    - TRANSFER: Bank transfer / wallet (bank-like account)
    - CREDIT_NOTE: Store credit note (credit-note pool)
    - TRADE_IN: Device received as part of payment (trade-in pool)
    - CREDIT_BALANCE: Customer's own credit balance; no account, no
      ledger transaction

    The operator snapshot (operator_id/operator_name) records who signed
    the payment at the time it was taken.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_sale_date", "sale_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, index=True)

    # Null for CREDIT_BALANCE payments
    account_id = db.Column(db.Integer, db.ForeignKey("payment_accounts.id"), nullable=True, index=True)

    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    # Attribution
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    operator_id = db.Column(db.Integer, nullable=True)
    operator_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="Payment.date"))
    account = db.relationship("PaymentAccount", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "account_id": self.account_id,
            "reference": self.reference,
            "notes": self.notes,
            "date": to_utc_z(self.date),
            "is_verified": self.is_verified,
            "user_id": self.user_id,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "version_id": self.version_id,
        }


class PaymentAudit(db.Model):
    """
    Append-only record of payment edits and deletions.

    WHY: Payments are money. Changing one after the fact requires a
    reason and leaves the before/after values behind.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "payment_audits"
    __table_args__ = (
        db.Index("ix_payment_audits_sale_occurred", "sale_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Plain references: the payment row is gone after a DELETE
    payment_id = db.Column(db.Integer, nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)

    action = db.Column(db.String(16), nullable=False)  # UPDATE, DELETE

    old_amount_cents = db.Column(db.Integer, nullable=False)
    new_amount_cents = db.Column(db.Integer, nullable=True)
    old_method = db.Column(db.String(32), nullable=False)
    new_method = db.Column(db.String(32), nullable=True)
    old_account_id = db.Column(db.Integer, nullable=True)
    new_account_id = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(255), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    operator_id = db.Column(db.Integer, nullable=True)
    operator_name = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "sale_id": self.sale_id,
            "action": self.action,
            "old_amount_cents": self.old_amount_cents,
            "new_amount_cents": self.new_amount_cents,
            "old_method": self.old_method,
            "new_method": self.new_method,
            "old_account_id": self.old_account_id,
            "new_account_id": self.new_account_id,
            "reason": self.reason,
            "operator_name": self.operator_name,
            "occurred_at": to_utc_z(self.occurred_at),
        }
