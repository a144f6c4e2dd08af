# Overview: Pytest coverage for customer credit banking and redemption.

"""
Customer Credit Tests

Credit ("saldo a favor") is banked from overpayments and redeemed
against open invoices. Redemptions create CREDIT_BALANCE payments and
never touch a ledger account.
"""

from datetime import datetime

import pytest

from latidos.models import CustomerCreditTransaction, LedgerTransaction, Payment, Sale
from latidos.models.customers import CREDIT_IN
from latidos.services.audit_service import audit_integrity
from latidos.services.credit_service import (
    get_credit_history,
    record_credit_movement,
    redeem_credit_balance,
)
from latidos.services.errors import (
    CrossTenantError,
    InsufficientCreditError,
    InvalidAmountError,
    ValidationError,
)
from latidos.services.payment_service import process_cascade_payment


@pytest.fixture
def seed_credit(db_session):
    def _seed(customer, amount_cents):
        record_credit_movement(customer, CREDIT_IN, amount_cents, "Opening credit")
        db_session.commit()
        return customer
    return _seed


class TestRedemption:

    def test_credit_spread_oldest_first(self, db_session, org_a, make_customer, make_sale, seed_credit):
        """30000 of credit against 10000 and 25000: 10000 + 20000 applied, 5000 left owed."""
        customer = seed_credit(make_customer(org_a), 30000)
        first = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        second = make_sale(org_a, customer, "F-002", 25000, date=datetime(2026, 2, 1))

        result = redeem_credit_balance(org_a.id, customer.id)

        assert [(p["invoice_id"], p["amount_cents"]) for p in result["applied_payments"]] == [
            (first.id, 10000),
            (second.id, 20000),
        ]
        assert result["total_redeemed_cents"] == 30000
        assert result["credit_balance_cents"] == 0
        assert db_session.get(Sale, second.id).pending_balance_cents == 5000

        payments = db_session.query(Payment).all()
        assert {p.method for p in payments} == {"CREDIT_BALANCE"}
        assert all(p.account_id is None for p in payments)
        assert db_session.query(LedgerTransaction).count() == 0

        outs = db_session.query(CustomerCreditTransaction).filter_by(direction="OUT").all()
        assert sorted(o.amount_cents for o in outs) == [10000, 20000]

    def test_partial_amount(self, db_session, org_a, make_customer, make_sale, seed_credit):
        customer = seed_credit(make_customer(org_a), 30000)
        make_sale(org_a, customer, "F-001", 10000)

        result = redeem_credit_balance(org_a.id, customer.id, amount_cents=4000)

        assert result["total_redeemed_cents"] == 4000
        assert result["credit_balance_cents"] == 26000

    def test_credit_beyond_debt_stays_banked(self, db_session, org_a, make_customer, make_sale, seed_credit):
        customer = seed_credit(make_customer(org_a), 30000)
        sale = make_sale(org_a, customer, "F-001", 12000)

        result = redeem_credit_balance(org_a.id, customer.id)

        assert result["total_redeemed_cents"] == 12000
        assert result["credit_balance_cents"] == 18000
        assert db_session.get(Sale, sale.id).is_settled

    def test_explicit_invoice_filter(self, db_session, org_a, make_customer, make_sale, seed_credit):
        customer = seed_credit(make_customer(org_a), 5000)
        older = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        newer = make_sale(org_a, customer, "F-002", 10000, date=datetime(2026, 2, 1))

        result = redeem_credit_balance(org_a.id, customer.id, invoice_ids=[newer.id])

        assert [p["invoice_id"] for p in result["applied_payments"]] == [newer.id]
        assert db_session.get(Sale, older.id).amount_paid_cents == 0


class TestRedemptionFailures:

    def test_amount_above_balance(self, db_session, org_a, make_customer, make_sale, seed_credit):
        customer = seed_credit(make_customer(org_a), 1000)
        make_sale(org_a, customer, "F-001", 10000)

        with pytest.raises(InsufficientCreditError):
            redeem_credit_balance(org_a.id, customer.id, amount_cents=1500)

        assert db_session.query(Payment).count() == 0
        db_session.refresh(customer)
        assert customer.credit_balance_cents == 1000

    def test_zero_balance(self, db_session, org_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)

        with pytest.raises(InsufficientCreditError):
            redeem_credit_balance(org_a.id, customer.id)

    def test_nothing_owed(self, db_session, org_a, make_customer, seed_credit):
        customer = seed_credit(make_customer(org_a), 1000)

        with pytest.raises(ValidationError):
            redeem_credit_balance(org_a.id, customer.id)

    def test_non_positive_amount(self, db_session, org_a, make_customer, seed_credit):
        customer = seed_credit(make_customer(org_a), 1000)

        with pytest.raises(InvalidAmountError):
            redeem_credit_balance(org_a.id, customer.id, amount_cents=0)

    def test_customer_of_other_org(self, db_session, org_a, org_b, make_customer, seed_credit):
        foreign = seed_credit(make_customer(org_b, "Cliente Beta"), 1000)

        with pytest.raises(CrossTenantError):
            redeem_credit_balance(org_a.id, foreign.id)


class TestCreditBalanceMethod:

    def test_cascade_with_credit_balance_delegates(self, db_session, org_a, make_customer, make_sale, seed_credit):
        customer = seed_credit(make_customer(org_a), 8000)
        make_sale(org_a, customer, "F-001", 10000)

        result = process_cascade_payment(org_a.id, customer.id, 8000, method="CREDIT_BALANCE")

        assert result["method"] == "CREDIT_BALANCE"
        assert result["total_redeemed_cents"] == 8000
        assert result["credit_balance_cents"] == 0

    def test_credit_balance_with_account_rejected(self, db_session, org_a, cash_a, make_customer, seed_credit):
        customer = seed_credit(make_customer(org_a), 8000)

        with pytest.raises(ValidationError):
            process_cascade_payment(org_a.id, customer.id, 1000, method="CREDIT_BALANCE", account_id=cash_a.id)


class TestCreditHistory:

    def test_history_newest_first(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        first = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        make_sale(org_a, customer, "F-002", 10000, date=datetime(2026, 2, 1))

        process_cascade_payment(
            org_a.id, customer.id, 13000, invoice_ids=[first.id],
            account_id=cash_a.id, allow_surplus_banking=True, date=datetime(2026, 3, 1),
        )
        redeem_credit_balance(org_a.id, customer.id, date=datetime(2026, 3, 2))

        history = get_credit_history(org_a.id, customer.id)

        assert history["credit_balance_cents"] == 0
        assert [(h["direction"], h["amount_cents"]) for h in history["history"]] == [
            ("OUT", 3000),
            ("IN", 3000),
        ]

    def test_books_balance_after_banking_and_redeeming(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)
        process_cascade_payment(org_a.id, customer.id, 25000, account_id=cash_a.id, allow_surplus_banking=True)
        make_sale(org_a, customer, "F-002", 9000, date=datetime(2026, 2, 1))
        redeem_credit_balance(org_a.id, customer.id)

        report = audit_integrity(org_a.id)

        assert report["ok"] is True, report["issues"]
        db_session.refresh(customer)
        assert customer.credit_balance_cents == 6000
