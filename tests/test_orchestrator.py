"""Tests for multi-step ledger operations and their rollback."""

import pytest

from owo.errors import InsufficientFunds, InvalidAmount, InvalidRange, NotFound, StorageError
from owo.ledger.unit_of_work import UnitOfWork


def fail(*args, **kwargs):
    raise RuntimeError("disk full")


class TestUnitOfWork:
    def test_runs_undos_newest_first(self):
        calls = []
        with pytest.raises(StorageError):
            with UnitOfWork("test") as uow:
                uow.on_rollback("first", lambda: calls.append("first"))
                uow.on_rollback("second", lambda: calls.append("second"))
                raise RuntimeError("boom")
        assert calls == ["second", "first"]

    def test_ledger_errors_pass_through(self):
        calls = []
        with pytest.raises(InsufficientFunds):
            with UnitOfWork("test") as uow:
                uow.on_rollback("undo", lambda: calls.append("undo"))
                raise InsufficientFunds("no money")
        assert calls == ["undo"]

    def test_success_skips_undos(self):
        calls = []
        with UnitOfWork("test") as uow:
            uow.on_rollback("undo", lambda: calls.append("undo"))
        assert calls == []

    def test_failed_undo_does_not_stop_the_rest(self):
        calls = []
        with pytest.raises(StorageError):
            with UnitOfWork("test") as uow:
                uow.on_rollback("first", lambda: calls.append("first"))
                uow.on_rollback("broken", fail)
                raise RuntimeError("boom")
        assert calls == ["first"]


class TestContributeAtomicity:
    def test_log_failure_refunds_and_discards(self, ledger, full_trio, monkeypatch):
        """Should leave no debit and no contribution when the log write fails."""
        monkeypatch.setattr(ledger.log, "append", fail)
        with pytest.raises(StorageError):
            ledger.contribute(full_trio.id, "bob", 1)
        monkeypatch.undo()

        assert ledger.get_balance("bob") == 10000
        assert ledger.cycle_status(full_trio.id, 1).contributed == []
        assert ledger.history("bob") == []
        # The member can still pay once storage recovers
        assert ledger.contribute(full_trio.id, "bob", 1) == 9000

    def test_contribution_write_failure_refunds(self, ledger, full_trio, monkeypatch):
        monkeypatch.setattr(ledger.contributions, "add", fail)
        with pytest.raises(StorageError):
            ledger.contribute(full_trio.id, "bob", 1)
        assert ledger.get_balance("bob") == 10000
        assert ledger.history("bob") == []


class TestCollectAtomicity:
    def test_log_failure_reverses_payout(self, ledger, full_trio, monkeypatch):
        for name in ("alice", "bob", "carol"):
            ledger.contribute(full_trio.id, name, 1)

        monkeypatch.setattr(ledger.log, "append", fail)
        with pytest.raises(StorageError):
            ledger.mark_collected(full_trio.id, "alice", 1)
        monkeypatch.undo()

        assert ledger.get_balance("alice") == 9000
        assert ledger.list_members(full_trio.id)[0].has_collected is False
        assert ledger.mark_collected(full_trio.id, "alice", 1).balance == 12000


class TestTransfer:
    def test_moves_money_and_logs_both_sides(self, ledger):
        ledger.open_account("ada")
        ledger.open_account("tunde", 0)
        assert ledger.transfer("ada", "tunde", 2500) == 7500
        assert ledger.get_balance("tunde") == 2500

        sent = ledger.history("ada")[0]
        received = ledger.history("tunde")[0]
        assert (sent.kind, sent.amount, sent.counterparty) == ("Transfer", 2500, "tunde")
        assert (received.kind, received.amount, received.counterparty) == ("Received", 2500, "ada")

    def test_insufficient_funds(self, ledger):
        ledger.open_account("ada", 100)
        ledger.open_account("tunde", 0)
        with pytest.raises(InsufficientFunds):
            ledger.transfer("ada", "tunde", 101)
        assert ledger.get_balance("ada") == 100
        assert ledger.get_balance("tunde") == 0

    def test_unknown_recipient(self, ledger):
        ledger.open_account("ada")
        with pytest.raises(NotFound):
            ledger.transfer("ada", "ghost", 100)
        assert ledger.get_balance("ada") == 10000

    def test_self_transfer(self, ledger):
        ledger.open_account("ada")
        with pytest.raises(InvalidRange):
            ledger.transfer("ada", "ada", 100)

    def test_log_failure_restores_both_balances(self, ledger, monkeypatch):
        ledger.open_account("ada")
        ledger.open_account("tunde", 0)
        monkeypatch.setattr(ledger.log, "append_many", fail)
        with pytest.raises(StorageError):
            ledger.transfer("ada", "tunde", 500)
        assert ledger.get_balance("ada") == 10000
        assert ledger.get_balance("tunde") == 0


class TestSpending:
    def test_airtime(self, ledger):
        ledger.open_account("ada")
        assert ledger.buy_airtime("ada", 500, "08031234567") == 9500
        record = ledger.history("ada")[0]
        assert (record.kind, record.counterparty) == ("Airtime", "08031234567")

    def test_airtime_defaults_to_self(self, ledger):
        ledger.open_account("ada")
        ledger.buy_airtime("ada", 200)
        assert ledger.history("ada")[0].counterparty == "self"

    def test_bill_payment(self, ledger):
        ledger.open_account("ada")
        assert ledger.pay_bill("ada", 4500, "ikeja-electric") == 5500
        assert ledger.history("ada")[0].kind == "BillPayment"

    def test_bill_needs_biller(self, ledger):
        ledger.open_account("ada")
        with pytest.raises(InvalidRange):
            ledger.pay_bill("ada", 100, " ")

    def test_invalid_amount(self, ledger):
        ledger.open_account("ada")
        with pytest.raises(InvalidAmount):
            ledger.buy_airtime("ada", 0)
        assert ledger.history("ada") == []

    def test_airtime_log_failure_refunds(self, ledger, monkeypatch):
        ledger.open_account("ada")
        monkeypatch.setattr(ledger.log, "append", fail)
        with pytest.raises(StorageError):
            ledger.buy_airtime("ada", 500)
        assert ledger.get_balance("ada") == 10000

    def test_withdrawal_and_deposit(self, ledger):
        ledger.open_account("ada")
        assert ledger.debit("ada", 400) == 9600
        assert ledger.credit("ada", 100) == 9700
        assert [(r.kind, r.counterparty) for r in ledger.history("ada")] == [
            ("Received", "external"),
            ("Transfer", "external"),
        ]

    def test_deposit_log_failure_reverses(self, ledger, monkeypatch):
        ledger.open_account("ada")
        monkeypatch.setattr(ledger.log, "append", fail)
        with pytest.raises(StorageError):
            ledger.credit("ada", 500)
        assert ledger.get_balance("ada") == 10000


class TestReconciliation:
    def test_debit_records_match_money_removed(self, ledger, full_trio):
        """Should account for every naira that left or entered an account."""
        ledger.transfer("alice", "dave", 700)
        ledger.buy_airtime("alice", 300)
        ledger.pay_bill("alice", 150, "dstv")
        ledger.debit("alice", 50)
        ledger.credit("bob", 25)
        for name in ("alice", "bob", "carol"):
            ledger.contribute(full_trio.id, name, 1)
        ledger.mark_collected(full_trio.id, "alice", 1)
        ledger.transfer("dave", "alice", 200)
        with pytest.raises(InsufficientFunds):
            ledger.buy_airtime("bob", 1_000_000)

        for name in ("alice", "bob", "dave"):
            statement = ledger.statement(name)
            assert statement.balance == 10000 - statement.debited + statement.credited

        alice = ledger.statement("alice")
        assert alice.debited == 700 + 300 + 150 + 50 + 1000
        assert alice.credited == 3000 + 200
