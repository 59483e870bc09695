from datetime import date, timedelta

import pytest

from backend.finledger.analytics.outliers import category_stats, is_outlier, z_score
from backend.finledger.services.account_service import create_account
from backend.finledger.services.anomaly_detection_service import (
    detect_anomalies,
    detect_unusual_frequency,
)
from backend.finledger.services.category_service import create_category
from backend.finledger.services.transaction_service import create_transaction

TODAY = date(2024, 6, 30)


@pytest.fixture()
def account(db_session, user):
    return create_account(db_session, user.id, name="Checking", initial_balance=10000)


def _paid(db_session, user, account, amount, when, *, category=None, description="Purchase", type="expense"):
    return create_transaction(
        db_session,
        user.id,
        amount=amount,
        type=type,
        date=when,
        account_id=account.id,
        category_id=category.id if category else None,
        description=description,
        is_paid=True,
    )


def test_z_score_of_exactly_two_is_not_an_outlier():
    stats = category_stats([-10, -10, -10, -10, -60])
    assert z_score(-60, stats) == 2.0
    assert not is_outlier(z_score(-60, stats))


def test_identical_amounts_have_no_z_score():
    stats = category_stats([25, 25, 25])
    assert stats.std_dev == 0
    assert z_score(25, stats) is None
    assert not is_outlier(None)


def test_exceptionally_high_amount_is_flagged(db_session, user, account):
    freelance = create_category(db_session, user.id, name="Freelance", type="income")
    amounts = [100, 102, 98, 101, 99, 100, 500]
    for i, amount in enumerate(amounts):
        _paid(db_session, user, account, amount, TODAY - timedelta(days=10 + i), category=freelance, type="income")

    anomalies = detect_anomalies(db_session, user.id, today=TODAY)

    assert len(anomalies) == 1
    anomaly = anomalies[0]
    assert anomaly.amount == 500
    assert anomaly.category_name == "Freelance"
    assert anomaly.reason.startswith("Exceptionally high amount - 218% above")
    assert anomaly.anomaly_score == pytest.approx(6 ** 0.5 / 4, rel=1e-3)


def test_five_value_group_cannot_exceed_the_threshold(db_session, user, account):
    freelance = create_category(db_session, user.id, name="Freelance", type="income")
    for i, amount in enumerate([100, 102, 98, 101, 500]):
        _paid(db_session, user, account, amount, TODAY - timedelta(days=5 + i), category=freelance, type="income")

    assert detect_anomalies(db_session, user.id, today=TODAY) == []


def test_larger_expense_than_usual_is_flagged_below_mean(db_session, user, account):
    food = create_category(db_session, user.id, name="Food")
    for i, amount in enumerate([10, 10, 10, 10, 10, 60]):
        _paid(db_session, user, account, amount, TODAY - timedelta(days=i + 1), category=food)

    anomalies = detect_anomalies(db_session, user.id, today=TODAY)

    assert [a.amount for a in anomalies] == [-60]
    assert anomalies[0].reason.startswith("Below normal amount")


def test_boundary_group_is_not_flagged(db_session, user, account):
    food = create_category(db_session, user.id, name="Food")
    for i, amount in enumerate([10, 10, 10, 10, 60]):
        _paid(db_session, user, account, amount, TODAY - timedelta(days=i + 1), category=food)

    assert detect_anomalies(db_session, user.id, today=TODAY) == []


def test_uncategorized_transactions_are_reported_first(db_session, user, account):
    freelance = create_category(db_session, user.id, name="Freelance", type="income")
    for i, amount in enumerate([100, 102, 98, 101, 99, 100, 500]):
        _paid(db_session, user, account, amount, TODAY - timedelta(days=10 + i), category=freelance, type="income")
    stray = _paid(db_session, user, account, 42, TODAY - timedelta(days=3), description="Unknown charge")

    anomalies = detect_anomalies(db_session, user.id, today=TODAY)

    assert [a.transaction_id for a in anomalies][0] == stray.id
    assert anomalies[0].anomaly_score == 0.7
    assert anomalies[0].category_name == "Uncategorized"
    assert anomalies[0].reason == "Uncategorized transaction"
    assert len(anomalies) == 2


def test_max_results_caps_output(db_session, user, account):
    for i in range(6):
        _paid(db_session, user, account, 5 + i, TODAY - timedelta(days=i + 1))

    assert len(detect_anomalies(db_session, user.id, max_results=3, today=TODAY)) == 3


def test_identical_group_is_skipped(db_session, user, account):
    food = create_category(db_session, user.id, name="Food")
    for i in range(6):
        _paid(db_session, user, account, 25, TODAY - timedelta(days=i + 1), category=food)

    assert detect_anomalies(db_session, user.id, today=TODAY) == []


def test_too_few_transactions_returns_nothing(db_session, user, account):
    for i in range(4):
        _paid(db_session, user, account, 10, TODAY - timedelta(days=i + 1))

    assert detect_anomalies(db_session, user.id, today=TODAY) == []


def test_old_and_unpaid_transactions_are_ignored(db_session, user, account):
    for i in range(5):
        _paid(db_session, user, account, 10, TODAY - timedelta(days=120 + i))
    create_transaction(
        db_session, user.id, amount=10, type="expense", date=TODAY,
        account_id=account.id, description="Pending",
    )

    assert detect_anomalies(db_session, user.id, today=TODAY) == []


def _monthly_bill(db_session, user, account, housing):
    for month in (1, 2, 3, 4):
        _paid(db_session, user, account, 150, date(2024, month, 5), category=housing, description="Electricity Bill")


def test_recurring_bill_not_yet_overdue(db_session, user, account):
    housing = create_category(db_session, user.id, name="Housing")
    _monthly_bill(db_session, user, account, housing)

    assert detect_unusual_frequency(db_session, user.id, today=date(2024, 4, 25)) == []


def test_recurring_bill_overdue_is_reported(db_session, user, account):
    housing = create_category(db_session, user.id, name="Housing")
    _monthly_bill(db_session, user, account, housing)
    _paid(db_session, user, account, 4, date(2024, 4, 20), description="Coffee")

    missing = detect_unusual_frequency(db_session, user.id, today=date(2024, 5, 25))

    assert len(missing) == 1
    bill = missing[0]
    assert bill.description == "Electricity Bill"
    assert bill.category == "Housing"
    assert bill.last_date == date(2024, 4, 5)
    assert bill.expected_date == date(2024, 5, 5)
    assert bill.days_past_due == pytest.approx(20, abs=0.5)
    assert bill.average_amount == pytest.approx(150)


def test_irregular_group_is_not_recurring(db_session, user, account):
    for when in (date(2024, 1, 1), date(2024, 1, 3), date(2024, 3, 30)):
        _paid(db_session, user, account, 30, when, description="Hardware store")

    assert detect_unusual_frequency(db_session, user.id, today=date(2024, 6, 30)) == []


def test_recurring_group_without_category_reports_unknown(db_session, user, account):
    for month in (1, 2, 3, 4):
        _paid(db_session, user, account, 20, date(2024, month, 10), description="Gym")

    missing = detect_unusual_frequency(db_session, user.id, today=date(2024, 6, 1))

    assert [m.category for m in missing] == ["Unknown"]
