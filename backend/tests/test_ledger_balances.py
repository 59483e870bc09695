from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from backend.finledger.models import Account, Transaction
from backend.finledger.services import ledger_service
from backend.finledger.services.account_service import create_account
from backend.finledger.services.transaction_service import (
    create_transaction,
    delete_transaction,
    update_transaction,
)


def _balance(db_session, account_id: str) -> float:
    db_session.expire_all()
    return db_session.get(Account, account_id).balance


def _txn_count(db_session) -> int:
    return db_session.execute(select(func.count(Transaction.id))).scalar_one()


def test_paid_expense_create_update_delete_keeps_balance_in_sync(db_session, user):
    account = create_account(db_session, user.id, name="Checking", initial_balance=1000)

    txn = create_transaction(
        db_session,
        user.id,
        amount=50,
        type="expense",
        date=date(2024, 3, 1),
        account_id=account.id,
        description="Groceries",
        is_paid=True,
    )
    assert txn.amount == -50
    assert _balance(db_session, account.id) == 950

    update_transaction(db_session, txn.id, user.id, {"amount": 80})
    assert _balance(db_session, account.id) == 920

    delete_transaction(db_session, txn.id, user.id)
    assert _balance(db_session, account.id) == 1000


def test_paid_transfer_moves_money_and_delete_restores(db_session, user):
    source = create_account(db_session, user.id, name="A", initial_balance=1000)
    destination = create_account(db_session, user.id, name="B", initial_balance=500)

    txn = create_transaction(
        db_session,
        user.id,
        amount=200,
        type="transfer",
        date=date(2024, 3, 2),
        account_id=source.id,
        destination_account_id=destination.id,
        is_paid=True,
    )
    assert _balance(db_session, source.id) == 800
    assert _balance(db_session, destination.id) == 700

    delete_transaction(db_session, txn.id, user.id)
    assert _balance(db_session, source.id) == 1000
    assert _balance(db_session, destination.id) == 500


def test_unpaid_transaction_does_not_touch_balance_until_paid(db_session, user):
    account = create_account(db_session, user.id, name="Checking", initial_balance=100)

    txn = create_transaction(
        db_session,
        user.id,
        amount=40,
        type="income",
        date=date(2024, 3, 3),
        account_id=account.id,
    )
    assert _balance(db_session, account.id) == 100

    update_transaction(db_session, txn.id, user.id, {"is_paid": True})
    assert _balance(db_session, account.id) == 140

    update_transaction(db_session, txn.id, user.id, {"is_paid": False})
    assert _balance(db_session, account.id) == 100

    # deleting an unpaid transaction has no balance effect
    delete_transaction(db_session, txn.id, user.id)
    assert _balance(db_session, account.id) == 100


def test_moving_paid_expense_between_accounts(db_session, user):
    first = create_account(db_session, user.id, name="First", initial_balance=300)
    second = create_account(db_session, user.id, name="Second", initial_balance=300)

    txn = create_transaction(
        db_session,
        user.id,
        amount=25,
        type="expense",
        date=date(2024, 3, 4),
        account_id=first.id,
        is_paid=True,
    )
    update_transaction(db_session, txn.id, user.id, {"account_id": second.id})

    assert _balance(db_session, first.id) == 300
    assert _balance(db_session, second.id) == 275


def test_type_change_resigns_amount(db_session, user):
    account = create_account(db_session, user.id, name="Checking", initial_balance=0)
    txn = create_transaction(
        db_session,
        user.id,
        amount=-30,
        type="expense",
        date=date(2024, 3, 5),
        account_id=account.id,
        is_paid=True,
    )
    assert _balance(db_session, account.id) == -30

    updated = update_transaction(db_session, txn.id, user.id, {"type": "income"})
    assert updated.amount == 30
    assert _balance(db_session, account.id) == 30


def test_income_amount_is_stored_non_negative(db_session, user):
    account = create_account(db_session, user.id, name="Checking")
    txn = create_transaction(
        db_session,
        user.id,
        amount=-120,
        type="income",
        date=date(2024, 3, 6),
        account_id=account.id,
    )
    assert txn.amount == 120


def test_converting_transfer_to_expense_clears_destination(db_session, user):
    source = create_account(db_session, user.id, name="A", initial_balance=1000)
    destination = create_account(db_session, user.id, name="B", initial_balance=0)
    txn = create_transaction(
        db_session,
        user.id,
        amount=100,
        type="transfer",
        date=date(2024, 3, 7),
        account_id=source.id,
        destination_account_id=destination.id,
        is_paid=True,
    )

    updated = update_transaction(db_session, txn.id, user.id, {"type": "expense"})

    assert updated.destination_account_id is None
    assert updated.amount == -100
    assert _balance(db_session, source.id) == 900
    assert _balance(db_session, destination.id) == 0


def test_transfer_to_same_account_is_rejected_on_create(db_session, user):
    account = create_account(db_session, user.id, name="A", initial_balance=1000)

    with pytest.raises(HTTPException) as exc:
        create_transaction(
            db_session,
            user.id,
            amount=10,
            type="transfer",
            date=date(2024, 3, 8),
            account_id=account.id,
            destination_account_id=account.id,
            is_paid=True,
        )

    assert exc.value.status_code == 400
    assert _balance(db_session, account.id) == 1000
    assert _txn_count(db_session) == 0


def test_transfer_to_same_account_is_rejected_on_update(db_session, user):
    source = create_account(db_session, user.id, name="A", initial_balance=1000)
    destination = create_account(db_session, user.id, name="B", initial_balance=0)
    txn = create_transaction(
        db_session,
        user.id,
        amount=10,
        type="transfer",
        date=date(2024, 3, 9),
        account_id=source.id,
        destination_account_id=destination.id,
        is_paid=True,
    )

    with pytest.raises(HTTPException) as exc:
        update_transaction(db_session, txn.id, user.id, {"destination_account_id": source.id})

    assert exc.value.status_code == 400
    assert _balance(db_session, source.id) == 990
    assert _balance(db_session, destination.id) == 10


def test_unknown_account_is_404(db_session, user):
    with pytest.raises(HTTPException) as exc:
        create_transaction(
            db_session,
            user.id,
            amount=10,
            type="expense",
            date=date(2024, 3, 10),
            account_id="missing",
        )
    assert exc.value.status_code == 404
    assert exc.value.detail == "account not found"


def test_failed_destination_leg_rolls_back_whole_transfer(db_session, user, monkeypatch):
    source = create_account(db_session, user.id, name="A", initial_balance=1000)
    destination = create_account(db_session, user.id, name="B", initial_balance=500)

    real_update_balance = ledger_service.update_balance

    def flaky_update_balance(db, account_id, delta):
        if account_id == destination.id:
            raise SQLAlchemyError("connection dropped")
        return real_update_balance(db, account_id, delta)

    monkeypatch.setattr(ledger_service, "update_balance", flaky_update_balance)

    with pytest.raises(HTTPException) as exc:
        create_transaction(
            db_session,
            user.id,
            amount=200,
            type="transfer",
            date=date(2024, 3, 11),
            account_id=source.id,
            destination_account_id=destination.id,
            is_paid=True,
        )

    assert exc.value.status_code == 500
    assert exc.value.detail == "balance update failed"
    assert _balance(db_session, source.id) == 1000
    assert _balance(db_session, destination.id) == 500
    assert _txn_count(db_session) == 0


def test_balance_equals_sum_of_paid_effects_after_mixed_operations(db_session, user):
    main = create_account(db_session, user.id, name="Main", initial_balance=0)
    savings = create_account(db_session, user.id, name="Savings", initial_balance=0)

    salary = create_transaction(
        db_session, user.id, amount=3000, type="income", date=date(2024, 4, 1),
        account_id=main.id, is_paid=True,
    )
    rent = create_transaction(
        db_session, user.id, amount=1200, type="expense", date=date(2024, 4, 2),
        account_id=main.id, is_paid=True,
    )
    create_transaction(
        db_session, user.id, amount=500, type="transfer", date=date(2024, 4, 3),
        account_id=main.id, destination_account_id=savings.id, is_paid=True,
    )
    create_transaction(
        db_session, user.id, amount=99, type="expense", date=date(2024, 4, 4),
        account_id=main.id,
    )

    update_transaction(db_session, rent.id, user.id, {"amount": 1250})
    update_transaction(db_session, salary.id, user.id, {"is_paid": False})
    update_transaction(db_session, salary.id, user.id, {"is_paid": True, "amount": 3100})

    expected = {main.id: 0.0, savings.id: 0.0}
    db_session.expire_all()
    paid = db_session.execute(select(Transaction).where(Transaction.is_paid.is_(True))).scalars().all()
    for txn in paid:
        for account_id, delta in ledger_service.balance_effects(ledger_service.LedgerEntry.from_transaction(txn)):
            expected[account_id] += delta

    assert _balance(db_session, main.id) == pytest.approx(expected[main.id])
    assert _balance(db_session, savings.id) == pytest.approx(expected[savings.id])
    assert _balance(db_session, main.id) == pytest.approx(3100 - 1250 - 500)
    assert _balance(db_session, savings.id) == pytest.approx(500)


def test_sub_cent_amounts_keep_balance_equal_to_stored_amounts(db_session, user):
    account = create_account(db_session, user.id, name="Checking", initial_balance=0)

    for day in (1, 2, 3):
        create_transaction(
            db_session, user.id, amount=0.333, type="expense", date=date(2024, 5, day),
            account_id=account.id, is_paid=True,
        )
    tiny = create_transaction(
        db_session, user.id, amount=0.004, type="expense", date=date(2024, 5, 4),
        account_id=account.id, is_paid=True,
    )

    assert tiny.amount == 0
    stored_total = db_session.execute(select(func.sum(Transaction.amount))).scalar_one()
    assert stored_total == pytest.approx(-0.99)
    assert _balance(db_session, account.id) == pytest.approx(stored_total)


def _fail_on_call(monkeypatch, failing_call: int):
    real_update_balance = ledger_service.update_balance
    calls = {"n": 0}

    def flaky_update_balance(db, account_id, delta):
        calls["n"] += 1
        if calls["n"] == failing_call:
            raise SQLAlchemyError("connection dropped")
        return real_update_balance(db, account_id, delta)

    monkeypatch.setattr(ledger_service, "update_balance", flaky_update_balance)


def test_failed_apply_during_update_keeps_old_amount_and_balance(db_session, user, monkeypatch):
    account = create_account(db_session, user.id, name="Checking", initial_balance=1000)
    txn = create_transaction(
        db_session, user.id, amount=50, type="expense", date=date(2024, 5, 5),
        account_id=account.id, is_paid=True,
    )

    # first call reverses the old amount, second applies the new one
    _fail_on_call(monkeypatch, failing_call=2)

    with pytest.raises(HTTPException) as exc:
        update_transaction(db_session, txn.id, user.id, {"amount": 80})

    assert exc.value.status_code == 500
    assert _balance(db_session, account.id) == 950
    assert db_session.get(Transaction, txn.id).amount == -50


def test_failed_reversal_during_delete_keeps_transfer(db_session, user, monkeypatch):
    source = create_account(db_session, user.id, name="A", initial_balance=1000)
    destination = create_account(db_session, user.id, name="B", initial_balance=500)
    txn = create_transaction(
        db_session, user.id, amount=200, type="transfer", date=date(2024, 5, 6),
        account_id=source.id, destination_account_id=destination.id, is_paid=True,
    )

    # source leg is reversed first, the destination leg fails
    _fail_on_call(monkeypatch, failing_call=2)

    with pytest.raises(HTTPException) as exc:
        delete_transaction(db_session, txn.id, user.id)

    assert exc.value.status_code == 500
    assert _balance(db_session, source.id) == 800
    assert _balance(db_session, destination.id) == 700
    assert _txn_count(db_session) == 1
