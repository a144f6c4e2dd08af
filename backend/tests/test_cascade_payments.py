# Overview: Pytest coverage for cascading collections and single-invoice payments.

"""
Cascade Payment Tests

One amount in, several Payment rows out: oldest invoice first, each
payment mirrored by an INCOME line on the receiving account, surplus
either rejected or banked as customer credit, and nothing written at all
when any step fails.
"""

from datetime import datetime

import pytest

from latidos.models import (
    CustomerCreditTransaction,
    FinanceEvent,
    LedgerTransaction,
    Payment,
    Sale,
)
from latidos.services.allocation import Allocation, AllocationPlan, InvoiceBalance, allocate
from latidos.services.account_service import archive_account
from latidos.services.errors import (
    AccountArchivedError,
    CrossTenantError,
    InsufficientCreditError,
    InvalidAmountError,
    OverpaymentNotAllowedError,
    ValidationError,
)
from latidos.services.payment_service import (
    apply_allocation,
    normalize_method,
    process_cascade_payment,
    register_payment,
)
from latidos.services.audit_service import audit_integrity
from latidos.services.signer_service import sign


def _counts(db_session):
    return (
        db_session.query(Payment).count(),
        db_session.query(LedgerTransaction).filter_by(category="Collection").count(),
        db_session.query(CustomerCreditTransaction).count(),
    )


class TestOverpayment:

    def test_surplus_banked_as_credit(self, db_session, org_a, cash_a, make_customer, make_sale):
        """One invoice of 50000, 70000 received: 50000 applied, 20000 banked."""
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 50000)

        result = process_cascade_payment(
            org_a.id, customer.id, 70000, account_id=cash_a.id, allow_surplus_banking=True,
        )

        assert result["success"] is True
        assert len(result["applied_payments"]) == 1
        applied = result["applied_payments"][0]
        assert applied["invoice_id"] == sale.id
        assert applied["amount_cents"] == 50000
        assert applied["new_balance_cents"] == 0
        assert result["remaining_credit_cents"] == 20000
        assert result["credit_balance_cents"] == 20000

        db_session.refresh(customer)
        db_session.refresh(cash_a)
        db_session.refresh(sale)
        assert customer.credit_balance_cents == 20000
        assert sale.amount_paid_cents == 50000
        # The whole 70000 physically arrived in the drawer
        assert cash_a.balance_cents == 70000

        credit = db_session.query(CustomerCreditTransaction).one()
        assert credit.direction == "IN"
        assert credit.amount_cents == 20000

    def test_surplus_rejected_writes_nothing(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 50000)

        with pytest.raises(OverpaymentNotAllowedError) as exc_info:
            process_cascade_payment(org_a.id, customer.id, 70000, account_id=cash_a.id)

        assert exc_info.value.leftover_cents == 20000
        assert exc_info.value.to_dict()["requires_confirmation"] is True
        assert _counts(db_session) == (0, 0, 0)
        assert db_session.get(Sale, sale.id).amount_paid_cents == 0
        db_session.refresh(cash_a)
        assert cash_a.balance_cents == 0

    def test_no_open_invoices_banks_everything(self, db_session, org_a, cash_a, make_customer):
        customer = make_customer(org_a)

        result = process_cascade_payment(
            org_a.id, customer.id, 15000, account_id=cash_a.id, allow_surplus_banking=True,
        )

        assert result["applied_payments"] == []
        assert result["remaining_credit_cents"] == 15000
        assert result["credit_balance_cents"] == 15000


class TestCascadeOrder:

    def test_fifo_across_three_invoices(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        s3 = make_sale(org_a, customer, "F-003", 30000, date=datetime(2026, 3, 1))
        s1 = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        s2 = make_sale(org_a, customer, "F-002", 20000, date=datetime(2026, 2, 1))

        result = process_cascade_payment(org_a.id, customer.id, 20000, account_id=cash_a.id)

        assert [(p["invoice_id"], p["amount_cents"], p["new_balance_cents"]) for p in result["applied_payments"]] == [
            (s1.id, 10000, 0),
            (s2.id, 10000, 10000),
        ]
        assert result["remaining_credit_cents"] == 0
        assert db_session.get(Sale, s3.id).amount_paid_cents == 0

    def test_explicit_subset_skips_other_invoices(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        oldest = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        middle = make_sale(org_a, customer, "F-002", 10000, date=datetime(2026, 2, 1))
        newest = make_sale(org_a, customer, "F-003", 10000, date=datetime(2026, 3, 1))

        result = process_cascade_payment(
            org_a.id, customer.id, 15000, invoice_ids=[newest.id, middle.id], account_id=cash_a.id,
        )

        assert [p["invoice_id"] for p in result["applied_payments"]] == [middle.id, newest.id]
        assert db_session.get(Sale, oldest.id).amount_paid_cents == 0

    def test_each_payment_has_matching_ledger_line(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a, "Marta Ruiz")
        make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        make_sale(org_a, customer, "F-002", 10000, date=datetime(2026, 2, 1))

        result = process_cascade_payment(org_a.id, customer.id, 20000, account_id=cash_a.id)

        for applied in result["applied_payments"]:
            txn = db_session.query(LedgerTransaction).filter_by(payment_id=applied["payment_id"]).one()
            assert txn.type == "INCOME"
            assert txn.category == "Collection"
            assert txn.amount_cents == applied["amount_cents"]
            assert txn.account_id == cash_a.id
            assert "Marta Ruiz" in txn.description
        db_session.refresh(cash_a)
        assert cash_a.balance_cents == 20000


class TestAccountResolution:

    def test_default_account_used_when_omitted(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)

        result = process_cascade_payment(org_a.id, customer.id, 10000)

        assert result["account_id"] == cash_a.id

    def test_transfer_without_account_and_cash_default_fails(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)

        with pytest.raises(ValidationError):
            process_cascade_payment(org_a.id, customer.id, 10000, method="TRANSFER")

    def test_method_and_account_class_must_match(self, db_session, org_a, cash_a, bank_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)

        with pytest.raises(ValidationError):
            process_cascade_payment(org_a.id, customer.id, 10000, method="CASH", account_id=bank_a.id)

        result = process_cascade_payment(org_a.id, customer.id, 10000, method="TRANSFER", account_id=bank_a.id)
        assert result["account_id"] == bank_a.id

    def test_account_from_other_org(self, db_session, org_a, org_b, make_account, make_customer, make_sale):
        foreign = make_account(org_b, "Caja Beta", "CASH")
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)

        with pytest.raises(CrossTenantError):
            process_cascade_payment(org_a.id, customer.id, 10000, account_id=foreign.id)
        assert _counts(db_session) == (0, 0, 0)

    def test_archived_account_rolls_back_everything(self, db_session, org_a, make_account, make_customer, make_sale):
        drawer = make_account(org_a, "Caja Vieja", "CASH")
        archive_account(org_a.id, drawer.id)
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 10000)

        with pytest.raises(AccountArchivedError):
            process_cascade_payment(org_a.id, customer.id, 10000, account_id=drawer.id)

        assert _counts(db_session) == (0, 0, 0)
        assert db_session.get(Sale, sale.id).amount_paid_cents == 0


class TestInputValidation:

    @pytest.mark.parametrize("amount", [0, -100, 99.5])
    def test_bad_amount(self, db_session, org_a, cash_a, make_customer, amount):
        customer = make_customer(org_a)
        with pytest.raises(InvalidAmountError):
            process_cascade_payment(org_a.id, customer.id, amount, account_id=cash_a.id)

    def test_unknown_method(self, db_session, org_a, make_customer):
        customer = make_customer(org_a)
        with pytest.raises(ValidationError):
            process_cascade_payment(org_a.id, customer.id, 1000, method="BITCOIN")

    def test_screen_labels_accepted(self):
        assert normalize_method("efectivo") == "CASH"
        assert normalize_method("Transferencia") == "TRANSFER"
        assert normalize_method("SALDO A FAVOR") == "CREDIT_BALANCE"


class TestAttribution:

    def test_operator_signature_is_snapshotted(
        self, db_session, org_a, admin_a, operator_a, cash_a, make_customer, make_sale
    ):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)
        signature = sign(org_a.id, "5678")

        result = process_cascade_payment(
            org_a.id, customer.id, 10000, account_id=cash_a.id,
            user_id=admin_a.id, signature=signature,
        )

        payment = db_session.get(Payment, result["applied_payments"][0]["payment_id"])
        assert payment.operator_name == "Laura Caja"
        assert payment.operator_id == operator_a.id
        assert payment.user_id == admin_a.id

        txn = db_session.query(LedgerTransaction).filter_by(payment_id=payment.id).one()
        assert txn.operator_name == "Laura Caja"

    def test_events_written_per_payment(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        make_sale(org_a, customer, "F-002", 10000, date=datetime(2026, 2, 1))

        process_cascade_payment(org_a.id, customer.id, 25000, account_id=cash_a.id, allow_surplus_banking=True)

        events = db_session.query(FinanceEvent).filter_by(customer_id=customer.id).all()
        types = sorted(e.event_type for e in events)
        assert types == ["credit.banked", "payment.created", "payment.created"]


class TestRegisterPayment:

    def test_partial_payment_on_one_invoice(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        older = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1))
        target = make_sale(org_a, customer, "F-002", 20000, date=datetime(2026, 2, 1))

        result = register_payment(org_a.id, target.id, 5000, account_id=cash_a.id)

        assert result["sale"]["pending_balance_cents"] == 15000
        assert db_session.get(Sale, older.id).amount_paid_cents == 0

    def test_settled_invoice_needs_surplus_banking(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 10000)
        register_payment(org_a.id, sale.id, 10000, account_id=cash_a.id)

        with pytest.raises(OverpaymentNotAllowedError):
            register_payment(org_a.id, sale.id, 500, account_id=cash_a.id)

        result = register_payment(org_a.id, sale.id, 500, account_id=cash_a.id, allow_surplus_banking=True)
        assert result["applied_payments"] == []
        assert result["credit_balance_cents"] == 500


class TestApplyAllocation:

    def test_external_plan_is_persisted(self, db_session, org_a, bank_a, make_customer, make_sale):
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 10000)
        plan = AllocationPlan(allocations=(Allocation(sale.id, 4000, 6000),), leftover_cents=0)

        applied = apply_allocation(org_a.id, plan, "TRANSFER", bank_a.id)

        assert applied[0]["amount_cents"] == 4000
        assert db_session.get(Sale, sale.id).amount_paid_cents == 4000

    def test_plan_spanning_customers_rejected(self, db_session, org_a, cash_a, make_customer, make_sale):
        one = make_sale(org_a, make_customer(org_a, "Cliente Uno"), "F-001", 10000)
        two = make_sale(org_a, make_customer(org_a, "Cliente Dos"), "F-002", 10000)
        plan = AllocationPlan(
            allocations=(Allocation(one.id, 1000, 9000), Allocation(two.id, 1000, 9000)),
            leftover_cents=0,
        )

        with pytest.raises(ValidationError):
            apply_allocation(org_a.id, plan, "CASH", cash_a.id)
        assert db_session.query(Payment).count() == 0

    def test_credit_balance_plan_without_credit_rejected(self, db_session, org_a, make_customer, make_sale):
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 10000)
        plan = allocate([InvoiceBalance(sale.id, 10000)], 10000)

        with pytest.raises(InsufficientCreditError):
            apply_allocation(org_a.id, plan, "CREDIT_BALANCE", None)

        db_session.expire_all()
        assert db_session.get(Sale, sale.id).amount_paid_cents == 0
        assert db_session.query(Payment).count() == 0
        assert audit_integrity(org_a.id)["ok"] is True

    def test_credit_balance_plan_draws_down_credit(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        process_cascade_payment(
            org_a.id, customer.id, 5000, account_id=cash_a.id, allow_surplus_banking=True,
        )
        sale = make_sale(org_a, customer, "F-001", 4000)
        plan = allocate([InvoiceBalance(sale.id, 4000)], 4000)

        applied = apply_allocation(org_a.id, plan, "CREDIT_BALANCE", None)

        db_session.expire_all()
        assert applied[0]["amount_cents"] == 4000
        assert db_session.get(Sale, sale.id).amount_paid_cents == 4000
        assert customer.credit_balance_cents == 1000
        out = db_session.query(CustomerCreditTransaction).filter_by(direction="OUT").one()
        assert out.amount_cents == 4000
        assert out.payment_id == applied[0]["payment_id"]
        assert audit_integrity(org_a.id)["ok"] is True
