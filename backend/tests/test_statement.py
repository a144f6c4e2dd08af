# Overview: Pytest coverage for customer statements and reconciliation flags.

"""
Statement Projector Tests

Invoices are debits, payments are credits, merged chronologically with a
running balance that starts at zero for the requested range.
"""

from datetime import datetime
from types import SimpleNamespace

import pytest

from latidos.services.errors import CrossTenantError, ValidationError
from latidos.services.payment_service import process_cascade_payment
from latidos.services.statement_service import (
    build_movements,
    get_customer_statement,
    toggle_verification,
)
from latidos.time_utils import parse_range_end, parse_range_start


@pytest.fixture
def history(db_session, org_a, cash_a, make_customer, make_sale):
    """
    F-001 10000 on Jan 1 paid 4000 at the same instant, F-002 5000 on
    Feb 1, then 3000 more on Mar 1 (lands on F-001, the oldest).
    """
    customer = make_customer(org_a)
    f1 = make_sale(org_a, customer, "F-001", 10000, date=datetime(2026, 1, 1, 12, 0))
    f2 = make_sale(org_a, customer, "F-002", 5000, date=datetime(2026, 2, 1))
    first = process_cascade_payment(
        org_a.id, customer.id, 4000, account_id=cash_a.id, date=datetime(2026, 1, 1, 12, 0),
    )
    second = process_cascade_payment(
        org_a.id, customer.id, 3000, account_id=cash_a.id, date=datetime(2026, 3, 1),
    )
    return SimpleNamespace(
        customer=customer,
        f1=f1,
        f2=f2,
        p1=first["applied_payments"][0]["payment_id"],
        p2=second["applied_payments"][0]["payment_id"],
    )


class TestStatement:

    def test_movements_and_running_balance(self, db_session, org_a, history):
        statement = get_customer_statement(org_a.id, history.customer.id)

        rows = [(m["kind"], m["debit_cents"], m["credit_cents"], m["balance_cents"]) for m in statement["movements"]]
        assert rows == [
            ("DEBIT", 10000, 0, 10000),
            ("CREDIT", 0, 4000, 6000),
            ("DEBIT", 5000, 0, 11000),
            ("CREDIT", 0, 3000, 8000),
        ]
        assert statement["summary"] == {
            "total_debit_cents": 15000,
            "total_credit_cents": 7000,
            "final_balance_cents": 8000,
            "movement_count": 4,
        }
        assert statement["movements"][0]["id"] == f"debit-{history.f1.id}"
        assert statement["movements"][1]["id"] == f"credit-{history.p1}"
        assert statement["as_of_event_id"] is not None

    def test_final_balance_matches_open_debt(self, db_session, org_a, history):
        statement = get_customer_statement(org_a.id, history.customer.id)

        db_session.refresh(history.f1)
        db_session.refresh(history.f2)
        pending = history.f1.pending_balance_cents + history.f2.pending_balance_cents
        assert statement["summary"]["final_balance_cents"] == pending

    def test_range_restarts_balance_at_zero(self, db_session, org_a, history):
        statement = get_customer_statement(
            org_a.id, history.customer.id,
            parse_range_start("2026-02-01"), parse_range_end("2026-02-01"),
        )

        assert [(m["kind"], m["balance_cents"]) for m in statement["movements"]] == [("DEBIT", 5000)]

    def test_bare_end_date_includes_whole_day(self, db_session, org_a, history):
        statement = get_customer_statement(org_a.id, history.customer.id, end_date=parse_range_end("2026-01-01"))
        assert statement["summary"]["movement_count"] == 2

    def test_inverted_range(self, db_session, org_a, history):
        with pytest.raises(ValidationError):
            get_customer_statement(
                org_a.id, history.customer.id, datetime(2026, 3, 1), datetime(2026, 1, 1),
            )

    def test_customer_without_history(self, db_session, org_a, make_customer):
        customer = make_customer(org_a, "Cliente Nuevo")
        statement = get_customer_statement(org_a.id, customer.id)

        assert statement["movements"] == []
        assert statement["summary"]["final_balance_cents"] == 0

    def test_other_org(self, db_session, org_b, history):
        with pytest.raises(CrossTenantError):
            get_customer_statement(org_b.id, history.customer.id)


class TestBuildMovements:

    def test_same_instant_debit_before_credit(self):
        when = datetime(2026, 5, 5, 9, 30)
        sale = SimpleNamespace(id=7, date=when, invoice_number="F-007", total_cents=1000, is_verified=False)
        payment = SimpleNamespace(
            id=3, date=when, sale=sale, method="CASH", amount_cents=1000,
            reference=None, is_verified=False,
        )

        movements = build_movements([sale], [payment])

        assert [m.kind for m in movements] == ["DEBIT", "CREDIT"]
        assert [m.balance_cents for m in movements] == [1000, 0]
        assert movements[1].ref_id == "F-007"


class TestVerification:

    def test_toggle_invoice_and_payment(self, db_session, org_a, admin_a, history):
        before = get_customer_statement(org_a.id, history.customer.id)["as_of_event_id"]

        toggle_verification(org_a.id, "debit", history.f1.id, True, user_id=admin_a.id)
        result = toggle_verification(org_a.id, "CREDIT", history.p1, True, user_id=admin_a.id)

        assert result == {"success": True, "kind": "CREDIT", "id": history.p1, "is_verified": True}
        statement = get_customer_statement(org_a.id, history.customer.id)
        flags = {m["id"]: m["is_verified"] for m in statement["movements"]}
        assert flags[f"debit-{history.f1.id}"] is True
        assert flags[f"credit-{history.p1}"] is True
        assert flags[f"credit-{history.p2}"] is False
        assert statement["as_of_event_id"] > before
        assert statement["summary"]["final_balance_cents"] == 8000

    def test_unverify(self, db_session, org_a, history):
        toggle_verification(org_a.id, "DEBIT", history.f2.id, True)
        result = toggle_verification(org_a.id, "DEBIT", history.f2.id, False)
        assert result["is_verified"] is False

    def test_invalid_kind(self, db_session, org_a, history):
        with pytest.raises(ValidationError):
            toggle_verification(org_a.id, "BOTH", history.f1.id, True)

    def test_flag_must_be_boolean(self, db_session, org_a, history):
        with pytest.raises(ValidationError):
            toggle_verification(org_a.id, "DEBIT", history.f1.id, "yes")
