# Overview: Pytest coverage for the integrity audit and the CLI commands.

"""
Integrity Audit Tests

After any sequence of finance operations, cached balances must equal
what their journals say. Tampering with a cached value is reported.
"""

from datetime import datetime

from sqlalchemy import text

from latidos.models import Organization, PaymentAccount, User
from latidos.services.audit_service import audit_integrity
from latidos.services.credit_service import redeem_credit_balance
from latidos.services.payment_service import delete_payment, process_cascade_payment, update_payment
from latidos.services.transfer_service import transfer_funds


def _busy_day(org, cash, bank, customer, make_sale):
    make_sale(org, customer, "F-001", 30000, date=datetime(2026, 1, 1))
    make_sale(org, customer, "F-002", 20000, date=datetime(2026, 1, 2))
    first = process_cascade_payment(org.id, customer.id, 35000, account_id=cash.id)
    process_cascade_payment(
        org.id, customer.id, 25000, method="TRANSFER", account_id=bank.id, allow_surplus_banking=True,
    )
    make_sale(org, customer, "F-003", 4000, date=datetime(2026, 1, 3))
    redeem_credit_balance(org.id, customer.id)
    update_payment(org.id, first["applied_payments"][1]["payment_id"], "Amount mistyped", amount_cents=4000)
    delete_payment(org.id, first["applied_payments"][0]["payment_id"], "Duplicate entry")
    transfer_funds(org.id, cash.id, bank.id, 3000)


class TestAudit:

    def test_clean_after_mixed_operations(self, db_session, org_a, cash_a, bank_a, make_customer, make_sale):
        _busy_day(org_a, cash_a, bank_a, make_customer(org_a), make_sale)

        report = audit_integrity(org_a.id)

        assert report["ok"] is True, report["issues"]
        assert report["issues"] == []

    def test_tampered_account_balance(self, db_session, org_a, cash_a, make_customer, make_sale):
        customer = make_customer(org_a)
        make_sale(org_a, customer, "F-001", 10000)
        process_cascade_payment(org_a.id, customer.id, 10000, account_id=cash_a.id)

        db_session.execute(
            text("UPDATE payment_accounts SET balance_cents = balance_cents + 1 WHERE id = :id"),
            {"id": cash_a.id},
        )
        db_session.commit()

        report = audit_integrity(org_a.id)

        assert report["ok"] is False
        assert [(i["kind"], i["id"], i["cached_cents"], i["computed_cents"]) for i in report["issues"]] == [
            ("ACCOUNT_BALANCE", cash_a.id, 10001, 10000),
        ]

    def test_tampered_invoice_and_credit(self, db_session, org_a, make_customer, make_sale):
        customer = make_customer(org_a)
        sale = make_sale(org_a, customer, "F-001", 10000)
        db_session.execute(text("UPDATE sales SET amount_paid_cents = 500 WHERE id = :id"), {"id": sale.id})
        db_session.execute(text("UPDATE customers SET credit_balance_cents = 700 WHERE id = :id"), {"id": customer.id})
        db_session.commit()

        kinds = sorted(i["kind"] for i in audit_integrity(org_a.id)["issues"])

        assert kinds == ["CUSTOMER_CREDIT", "SALE_AMOUNT_PAID"]


class TestCli:

    def test_system_init_bootstraps_tenant(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--org", "Latidos Centro", "--org-code", "CENTRO"])

        assert result.exit_code == 0, result.output
        org = db_session.query(Organization).filter_by(code="CENTRO").one()
        admin = db_session.query(User).filter_by(org_id=org.id, username="admin").one()
        assert admin.pin_hash is not None
        accounts = {a.name: a for a in db_session.query(PaymentAccount).filter_by(org_id=org.id)}
        assert set(accounts) == {"Caja General", "Banco", "Notas Crédito", "Retomas"}
        assert accounts["Caja General"].is_default is True

        again = runner.invoke(args=["system", "init", "--org-code", "CENTRO"])
        assert again.exit_code == 0
        assert db_session.query(PaymentAccount).filter_by(org_id=org.id).count() == 4

    def test_finance_audit_exit_codes(self, app, db_session, org_a, cash_a):
        runner = app.test_cli_runner()

        clean = runner.invoke(args=["finance", "audit", "--org-id", str(org_a.id)])
        assert clean.exit_code == 0
        assert "PASS" in clean.output

        db_session.execute(
            text("UPDATE payment_accounts SET balance_cents = 5 WHERE id = :id"), {"id": cash_a.id},
        )
        db_session.commit()

        dirty = runner.invoke(args=["finance", "audit", "--org-id", str(org_a.id)])
        assert dirty.exit_code == 1
        assert "ACCOUNT_BALANCE" in dirty.output

    def test_accounts_list(self, app, db_session, org_a, cash_a, bank_a):
        result = app.test_cli_runner().invoke(args=["accounts", "list", "--org-id", str(org_a.id)])

        assert result.exit_code == 0
        assert "Caja General" in result.output
        assert "default" in result.output
