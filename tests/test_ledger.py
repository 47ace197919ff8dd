"""Tests for transfers, balances and transaction protection in LedgerService."""
from __future__ import annotations

from datetime import date, time
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import (AccountNotFound, CategoryNotFound, InsufficientFunds,
                        InvalidAmount, InvalidPayload, PersistenceFailure,
                        ProtectedTransaction, SameAccount, TransferNotFound,
                        Unauthenticated)
from app.extensions import db
from app.ledger import LedgerService
from app.models import Appointment, FinancialTransaction, FinancialTransfer
from app.repository import SqlAlchemyRepository

TODAY = date(2030, 1, 7)


def _balances(ledger: LedgerService, shop) -> tuple[int, int]:
    return (
        ledger.account_balance(shop["company_id"], shop["checking_id"]),
        ledger.account_balance(shop["company_id"], shop["cash_id"]),
    )


def _counts() -> tuple[int, int]:
    return FinancialTransfer.query.count(), FinancialTransaction.query.count()


# --- create ---


def test_transfer_moves_exact_amount_with_two_linked_rows(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()

        result = ledger.create_transfer(
            shop["company_id"], shop["checking_id"], shop["cash_id"], 4000, TODAY
        )

        assert _balances(ledger, shop) == (6000, 4000)
        linked = FinancialTransaction.query.filter_by(transfer_id=result.transfer.transfer_id).all()
        assert len(linked) == 2
        assert {(t.account_id, t.type, t.amount_cents) for t in linked} == {
            (shop["checking_id"], "expense", 4000),
            (shop["cash_id"], "income", 4000),
        }
        assert all(t.category_id is None for t in linked)
        assert result.outgoing.description == "Transfer to Cash"
        assert result.incoming.description == "Transfer from Checking"


def test_transfer_description_is_appended_to_both_legs(app, shop) -> None:
    with app.app_context():
        result = LedgerService().create_transfer(
            shop["company_id"], shop["checking_id"], shop["cash_id"], 500, TODAY, "till float"
        )

        assert result.transfer.description == "till float"
        assert result.outgoing.description == "Transfer to Cash - till float"
        assert result.incoming.description == "Transfer from Checking - till float"


def test_transfer_of_whole_balance_is_allowed(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        ledger.create_transfer(shop["company_id"], shop["checking_id"], shop["cash_id"], 10000, TODAY)

        assert _balances(ledger, shop) == (0, 10000)


def test_transfer_above_balance_is_rejected_and_writes_nothing(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        ledger.record_transaction(shop["company_id"], shop["cash_id"], "income", 100, TODAY)

        with pytest.raises(InsufficientFunds):
            ledger.create_transfer(shop["company_id"], shop["cash_id"], shop["checking_id"], 150, TODAY)

        assert _counts() == (0, 1)
        assert _balances(ledger, shop) == (10000, 100)


def test_transfer_to_same_account_is_rejected(app, shop) -> None:
    with app.app_context():
        with pytest.raises(SameAccount):
            LedgerService().create_transfer(
                shop["company_id"], shop["checking_id"], shop["checking_id"], 100, TODAY
            )
        assert _counts() == (0, 0)


@pytest.mark.parametrize("amount", [0, -500, 12.5, "abc", True, None])
def test_transfer_amount_must_be_positive_cents(app, shop, amount) -> None:
    with app.app_context():
        with pytest.raises(InvalidAmount):
            LedgerService().create_transfer(
                shop["company_id"], shop["checking_id"], shop["cash_id"], amount, TODAY
            )


def test_transfer_with_foreign_or_unknown_account_is_not_found(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        with pytest.raises(AccountNotFound):
            ledger.create_transfer(shop["company_id"], shop["foreign_id"], shop["cash_id"], 100, TODAY)
        with pytest.raises(AccountNotFound):
            ledger.create_transfer(shop["company_id"], shop["checking_id"], 9999, 100, TODAY)
        assert _counts() == (0, 0)


def test_transfer_without_tenant_is_rejected(app, shop) -> None:
    with app.app_context():
        with pytest.raises(Unauthenticated):
            LedgerService().create_transfer(None, shop["checking_id"], shop["cash_id"], 100, TODAY)


def test_storage_failure_on_second_leg_rolls_back_everything(app, shop) -> None:
    original = SqlAlchemyRepository.insert_transaction
    calls = []

    def failing_second_insert(self, transaction):
        calls.append(transaction)
        if len(calls) == 2:
            raise OperationalError("INSERT INTO financial_transactions", {}, Exception("disk I/O error"))
        return original(self, transaction)

    with app.app_context():
        ledger = LedgerService()
        with patch.object(SqlAlchemyRepository, "insert_transaction", failing_second_insert):
            with pytest.raises(PersistenceFailure):
                ledger.create_transfer(
                    shop["company_id"], shop["checking_id"], shop["cash_id"], 2500, TODAY
                )

        assert len(calls) == 2
        assert _counts() == (0, 0)
        assert _balances(ledger, shop) == (10000, 0)


# --- update ---


def test_update_amount_credits_back_the_old_amount(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        created = ledger.create_transfer(
            shop["company_id"], shop["checking_id"], shop["cash_id"], 8000, TODAY
        )
        transfer_id = created.transfer.transfer_id

        # 2000 left plus the 8000 already moved covers exactly 10000.
        result = ledger.update_transfer(shop["company_id"], transfer_id, amount_cents=10000)

        assert result.transfer.amount_cents == 10000
        assert result.outgoing.amount_cents == 10000
        assert result.incoming.amount_cents == 10000
        assert _balances(ledger, shop) == (0, 10000)

        with pytest.raises(InsufficientFunds):
            ledger.update_transfer(shop["company_id"], transfer_id, amount_cents=10001)

        db.session.expire_all()
        assert db.session.get(FinancialTransfer, transfer_id).amount_cents == 10000
        assert _balances(ledger, shop) == (0, 10000)


def test_update_date_and_description_reach_both_legs(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        created = ledger.create_transfer(shop["company_id"], shop["checking_id"], shop["cash_id"], 300, TODAY)

        result = ledger.update_transfer(
            shop["company_id"],
            created.transfer.transfer_id,
            transfer_date=date(2030, 2, 1),
            description="weekly float",
        )

        for leg in (result.outgoing, result.incoming):
            assert leg.transaction_date == date(2030, 2, 1)
        assert result.outgoing.description == "Transfer to Cash - weekly float"
        assert result.incoming.description == "Transfer from Checking - weekly float"


def test_update_can_reverse_direction(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        ledger.record_transaction(shop["company_id"], shop["cash_id"], "income", 5000, TODAY)
        created = ledger.create_transfer(
            shop["company_id"], shop["checking_id"], shop["cash_id"], 3000, TODAY
        )

        result = ledger.update_transfer(
            shop["company_id"],
            created.transfer.transfer_id,
            from_account_id=shop["cash_id"],
            to_account_id=shop["checking_id"],
        )

        assert result.outgoing.account_id == shop["cash_id"]
        assert result.outgoing.type == "expense"
        assert result.incoming.account_id == shop["checking_id"]
        assert result.incoming.type == "income"
        assert _balances(ledger, shop) == (13000, 2000)
        assert FinancialTransaction.query.filter_by(transfer_id=created.transfer.transfer_id).count() == 2


def test_reversal_ignores_the_income_it_replaces(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        created = ledger.create_transfer(
            shop["company_id"], shop["checking_id"], shop["cash_id"], 3000, TODAY
        )

        # Cash only holds the money this transfer brought in.
        with pytest.raises(InsufficientFunds):
            ledger.update_transfer(
                shop["company_id"],
                created.transfer.transfer_id,
                from_account_id=shop["cash_id"],
                to_account_id=shop["checking_id"],
            )
        assert _balances(ledger, shop) == (7000, 3000)


def test_update_rejects_same_account_unknown_fields_and_missing_transfer(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        created = ledger.create_transfer(shop["company_id"], shop["checking_id"], shop["cash_id"], 100, TODAY)
        transfer_id = created.transfer.transfer_id

        with pytest.raises(SameAccount):
            ledger.update_transfer(shop["company_id"], transfer_id, to_account_id=shop["checking_id"])
        with pytest.raises(InvalidPayload):
            ledger.update_transfer(shop["company_id"], transfer_id, company_id=shop["other_company_id"])
        with pytest.raises(TransferNotFound):
            ledger.update_transfer(shop["other_company_id"], transfer_id, amount_cents=50)
        with pytest.raises(TransferNotFound):
            ledger.update_transfer(shop["company_id"], 9999, amount_cents=50)


# --- delete ---


def test_delete_transfer_removes_both_legs_and_restores_balances(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        created = ledger.create_transfer(shop["company_id"], shop["checking_id"], shop["cash_id"], 2500, TODAY)

        ledger.delete_transfer(shop["company_id"], created.transfer.transfer_id)

        assert _counts() == (0, 0)
        assert _balances(ledger, shop) == (10000, 0)
        with pytest.raises(TransferNotFound):
            ledger.delete_transfer(shop["company_id"], created.transfer.transfer_id)


def test_transfer_legs_cannot_be_deleted_or_re_amounted(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        created = ledger.create_transfer(shop["company_id"], shop["checking_id"], shop["cash_id"], 700, TODAY)
        leg_id = created.outgoing.transaction_id

        with pytest.raises(ProtectedTransaction):
            ledger.delete_transaction(shop["company_id"], leg_id)
        with pytest.raises(ProtectedTransaction):
            ledger.update_transaction(shop["company_id"], leg_id, amount_cents=1)

        renamed = ledger.update_transaction(shop["company_id"], leg_id, description="moved to till")
        assert renamed.description == "moved to till"
        assert renamed.amount_cents == 700
        assert _counts() == (1, 2)


def test_appointment_income_cannot_be_deleted(app, shop) -> None:
    with app.app_context():
        appointment = Appointment(
            company_id=shop["company_id"],
            service_id=shop["service_id"],
            appointment_date=TODAY,
            start_time=time(9, 0),
            duration_minutes=60,
            status="completed",
        )
        db.session.add(appointment)
        db.session.commit()

        ledger = LedgerService()
        income = ledger.record_transaction(
            shop["company_id"],
            shop["cash_id"],
            "income",
            4000,
            TODAY,
            appointment_id=appointment.appointment_id,
        )

        with pytest.raises(ProtectedTransaction) as excinfo:
            ledger.delete_transaction(shop["company_id"], income.transaction_id)
        assert "appointment" in excinfo.value.message
        assert FinancialTransaction.query.count() == 1


def test_plain_transaction_can_be_deleted(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        expense = ledger.record_transaction(
            shop["company_id"],
            shop["checking_id"],
            "expense",
            1200,
            TODAY,
            category_id=shop["expense_category_id"],
            description="Shampoo",
        )
        assert ledger.account_balance(shop["company_id"], shop["checking_id"]) == 8800

        ledger.delete_transaction(shop["company_id"], expense.transaction_id)

        assert FinancialTransaction.query.count() == 0
        assert ledger.account_balance(shop["company_id"], shop["checking_id"]) == 10000


# --- single transactions ---


def test_expense_cannot_overdraw(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        with pytest.raises(InsufficientFunds):
            ledger.record_transaction(shop["company_id"], shop["cash_id"], "expense", 1, TODAY)
        assert FinancialTransaction.query.count() == 0


def test_category_must_exist_and_match_type(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        with pytest.raises(InvalidPayload):
            ledger.record_transaction(
                shop["company_id"],
                shop["checking_id"],
                "income",
                100,
                TODAY,
                category_id=shop["expense_category_id"],
            )
        with pytest.raises(CategoryNotFound):
            ledger.record_transaction(
                shop["company_id"], shop["checking_id"], "income", 100, TODAY, category_id=9999
            )
        with pytest.raises(InvalidPayload):
            ledger.record_transaction(shop["company_id"], shop["checking_id"], "refund", 100, TODAY)


def test_editing_an_expense_checks_funds_without_its_old_amount(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        expense = ledger.record_transaction(
            shop["company_id"], shop["checking_id"], "expense", 6000, TODAY
        )

        raised = ledger.update_transaction(shop["company_id"], expense.transaction_id, amount_cents=10000)
        assert raised.amount_cents == 10000
        assert ledger.account_balance(shop["company_id"], shop["checking_id"]) == 0

        with pytest.raises(InsufficientFunds):
            ledger.update_transaction(shop["company_id"], expense.transaction_id, amount_cents=10001)


def test_unknown_account_balance_is_not_found(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        with pytest.raises(AccountNotFound):
            ledger.account_balance(shop["company_id"], shop["foreign_id"])
        with pytest.raises(AccountNotFound):
            ledger.account_balance(shop["company_id"], 9999)


def test_transaction_update_rejects_tenant_as_a_field(app, shop) -> None:
    with app.app_context():
        ledger = LedgerService()
        income = ledger.record_transaction(shop["company_id"], shop["cash_id"], "income", 100, TODAY)

        with pytest.raises(InvalidPayload):
            ledger.update_transaction(
                shop["company_id"], income.transaction_id, company_id=shop["other_company_id"]
            )
        assert income.company_id == shop["company_id"]
