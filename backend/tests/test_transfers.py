# Overview: Pytest coverage for simple and split fund transfers.

"""
Transfer Engine Tests

Every transfer conserves money: total out of the sources equals total
into the destinations, and a rejected transfer leaves every balance and
every journal untouched.
"""

import pytest

from latidos.models import FinanceEvent, LedgerTransaction
from latidos.services.account_service import archive_account
from latidos.services.errors import (
    AccountArchivedError,
    CrossTenantError,
    InsufficientFundsError,
    InvalidAmountError,
    SplitMismatchError,
    ValidationError,
)
from latidos.services.transfer_service import (
    TransferLeg,
    split_transfer_funds,
    transfer_funds,
    validate_split,
)


def _transfer_lines(db_session):
    return db_session.query(LedgerTransaction).filter_by(category="Transfer").count()


class TestSimpleTransfer:

    def test_moves_money_between_two_accounts(self, db_session, org_a, make_account):
        drawer = make_account(org_a, "Caja General", "CASH", opening_cents=100000)
        bank = make_account(org_a, "Banco", "BANK")

        result = transfer_funds(org_a.id, drawer.id, bank.id, 40000, "Cash deposit")

        db_session.refresh(drawer)
        db_session.refresh(bank)
        assert drawer.balance_cents == 60000
        assert bank.balance_cents == 40000

        out_line, in_line = result["transactions"]
        assert out_line["type"] == "EXPENSE"
        assert out_line["to_account_id"] == bank.id
        assert in_line["type"] == "INCOME"
        assert out_line["transfer_group"] == in_line["transfer_group"] == result["transfer_group"]

    def test_same_account_rejected(self, db_session, org_a, make_account):
        drawer = make_account(org_a, "Caja General", "CASH", opening_cents=1000)
        with pytest.raises(ValidationError):
            transfer_funds(org_a.id, drawer.id, drawer.id, 500)

    def test_insufficient_funds_writes_nothing(self, db_session, org_a, make_account):
        drawer = make_account(org_a, "Caja General", "CASH", opening_cents=1000)
        bank = make_account(org_a, "Banco", "BANK")

        with pytest.raises(InsufficientFundsError):
            transfer_funds(org_a.id, drawer.id, bank.id, 1001)

        assert _transfer_lines(db_session) == 0
        db_session.refresh(drawer)
        assert drawer.balance_cents == 1000

    def test_destination_in_other_org(self, db_session, org_a, org_b, make_account):
        drawer = make_account(org_a, "Caja General", "CASH", opening_cents=1000)
        foreign = make_account(org_b, "Banco Beta", "BANK")

        with pytest.raises(CrossTenantError):
            transfer_funds(org_a.id, drawer.id, foreign.id, 500)
        assert _transfer_lines(db_session) == 0

    def test_archived_destination(self, db_session, org_a, make_account):
        drawer = make_account(org_a, "Caja General", "CASH", opening_cents=1000)
        old_bank = make_account(org_a, "Banco Viejo", "BANK")
        archive_account(org_a.id, old_bank.id)

        with pytest.raises(AccountArchivedError):
            transfer_funds(org_a.id, drawer.id, old_bank.id, 500)
        assert _transfer_lines(db_session) == 0


class TestSplitTransfer:

    def test_two_sources_two_destinations(self, db_session, org_a, make_account):
        """60000 + 40000 out, 70000 + 30000 in."""
        caja = make_account(org_a, "Caja General", "CASH", opening_cents=60000)
        oficina = make_account(org_a, "Caja Oficina", "CASH", opening_cents=50000)
        banco = make_account(org_a, "Banco", "BANK")
        nequi = make_account(org_a, "Nequi", "WALLET")

        result = split_transfer_funds(
            org_a.id,
            [TransferLeg(caja.id, 60000), TransferLeg(oficina.id, 40000)],
            [{"account_id": banco.id, "amount_cents": 70000}, {"account_id": nequi.id, "amount_cents": 30000}],
            100000,
        )

        balances = {a["id"]: a["balance_cents"] for a in result["accounts"]}
        assert balances == {caja.id: 0, oficina.id: 10000, banco.id: 70000, nequi.id: 30000}

        lines = db_session.query(LedgerTransaction).filter_by(transfer_group=result["transfer_group"]).all()
        assert len(lines) == 4
        out_total = sum(t.amount_cents for t in lines if t.type == "EXPENSE")
        in_total = sum(t.amount_cents for t in lines if t.type == "INCOME")
        assert out_total == in_total == 100000
        # Several destinations: outgoing lines name no single counterpart
        assert all(t.to_account_id is None for t in lines if t.type == "EXPENSE")

    def test_mismatch_writes_nothing(self, db_session, org_a, make_account):
        caja = make_account(org_a, "Caja General", "CASH", opening_cents=100000)
        banco = make_account(org_a, "Banco", "BANK")

        with pytest.raises(SplitMismatchError):
            split_transfer_funds(
                org_a.id,
                [TransferLeg(caja.id, 90000)],
                [TransferLeg(banco.id, 100000)],
                100000,
            )

        assert _transfer_lines(db_session) == 0
        db_session.refresh(caja)
        assert caja.balance_cents == 100000

    def test_one_short_source_fails_whole_split(self, db_session, org_a, make_account):
        rich = make_account(org_a, "Caja General", "CASH", opening_cents=100000)
        poor = make_account(org_a, "Caja Oficina", "CASH", opening_cents=100)
        banco = make_account(org_a, "Banco", "BANK")

        with pytest.raises(InsufficientFundsError):
            split_transfer_funds(
                org_a.id,
                [TransferLeg(rich.id, 5000), TransferLeg(poor.id, 5000)],
                [TransferLeg(banco.id, 10000)],
                10000,
            )

        assert _transfer_lines(db_session) == 0
        db_session.refresh(rich)
        assert rich.balance_cents == 100000

    def test_one_event_per_account(self, db_session, org_a, make_account):
        caja = make_account(org_a, "Caja General", "CASH", opening_cents=5000)
        banco = make_account(org_a, "Banco", "BANK")
        nequi = make_account(org_a, "Nequi", "WALLET")

        result = split_transfer_funds(
            org_a.id, [TransferLeg(caja.id, 5000)],
            [TransferLeg(banco.id, 2000), TransferLeg(nequi.id, 3000)], 5000,
        )

        events = db_session.query(FinanceEvent).filter_by(event_type="transfer.created").all()
        assert sorted(e.account_id for e in events) == sorted([caja.id, banco.id, nequi.id])
        assert {e.note for e in events} == {result["transfer_group"]}


class TestValidateSplit:

    def test_duplicate_source(self):
        with pytest.raises(ValidationError):
            validate_split([TransferLeg(1, 50), TransferLeg(1, 50)], [TransferLeg(2, 100)], 100)

    def test_account_on_both_sides(self):
        with pytest.raises(ValidationError):
            validate_split([TransferLeg(1, 100)], [TransferLeg(1, 100)], 100)

    def test_empty_side(self):
        with pytest.raises(ValidationError):
            validate_split([], [TransferLeg(2, 100)], 100)

    @pytest.mark.parametrize("amount", [0, -10, 10.0])
    def test_non_positive_leg(self, amount):
        with pytest.raises(InvalidAmountError):
            validate_split([TransferLeg(1, amount)], [TransferLeg(2, 100)], 100)

    def test_missing_account(self):
        with pytest.raises(ValidationError):
            validate_split([TransferLeg(None, 100)], [TransferLeg(2, 100)], 100)

    def test_balanced_split_passes(self):
        validate_split(
            [TransferLeg(1, 60), TransferLeg(2, 40)],
            [TransferLeg(3, 70), TransferLeg(4, 30)],
            100,
        )
