from __future__ import annotations

from ..extensions import db
from latidos.time_utils import to_utc_z

CREDIT_IN = "IN"
CREDIT_OUT = "OUT"


class Customer(db.Model):
    """
    Customer master data.

    MULTI-TENANT: Customers are scoped to organizations via org_id.

    credit_balance_cents is store credit owed TO the customer (overpayment
    surplus). It is never negative; it only moves inside the same unit of
    work as the allocation that produced or consumed it.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "tax_id", name="uq_customers_org_tax_id"),
        db.CheckConstraint("credit_balance_cents >= 0", name="ck_customers_credit_non_negative"),
        db.Index("ix_customers_org_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(64), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "email": self.email,
            "credit_balance_cents": self.credit_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerCreditTransaction(db.Model):
    """
    Append-only history of a customer's credit balance.

    DIRECTIONS:
    - IN: Surplus banked from an overpayment, or a CREDIT_BALANCE payment
      returned by an edit/delete
    - OUT: Credit redeemed against an invoice

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_credit_transactions"
    __table_args__ = (
        db.Index("ix_credit_txns_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    direction = db.Column(db.String(8), nullable=False)  # IN, OUT
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    # Plain references (payments may later be deleted)
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    payment_id = db.Column(db.Integer, nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    operator_id = db.Column(db.Integer, nullable=True)
    operator_name = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("credit_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "sale_id": self.sale_id,
            "payment_id": self.payment_id,
            "operator_name": self.operator_name,
            "occurred_at": to_utc_z(self.occurred_at),
        }
