from datetime import date
import warnings

import pytest

from BudgetApp.app.errors import InsufficientFundsError, NotFoundError, ReconciliationWarning, ValidationError
from BudgetApp.app.models.allocation import Allocation
from BudgetApp.app.models.allocation_delta import AllocationDelta
from conftest import expense


def _envelope(envelopes, category, available, spent=0.0):
    allocation = envelopes.get_or_create(category.id, "2024-05")
    envelopes.fund(allocation.id, available)
    if spent:
        envelopes.apply_spent_delta(category.id, "2024-05-20", spent)
    return allocation


def test_get_or_create_normalizes_month(envelopes, groceries):
    first = envelopes.get_or_create(groceries.id, "2024-05-17")
    again = envelopes.get_or_create(groceries.id, date(2024, 5, 2))
    assert first.id == again.id
    assert first.month == date(2024, 5, 1)
    assert (first.allocated_amount, first.available_amount, first.spent_amount) == (0, 0, 0)


def test_get_or_create_unknown_category(envelopes, session):
    with pytest.raises(ValidationError):
        envelopes.get_or_create(42, "2024-05")


def test_move_between_envelopes(envelopes, groceries, dining):
    source = _envelope(envelopes, groceries, 300, spent=100)
    target = _envelope(envelopes, dining, 100, spent=50)

    envelopes.move(source.id, target.id, 50)
    assert (source.available_amount, source.balance) == (250, 150)
    assert (target.available_amount, target.balance) == (150, 100)

    with pytest.raises(InsufficientFundsError) as excinfo:
        envelopes.move(source.id, target.id, 999)
    assert excinfo.value.available == 150
    assert "Available: $150.00" in str(excinfo.value)
    assert (source.available_amount, target.available_amount) == (250, 150)


def test_move_conserves_total(envelopes, groceries, dining):
    source = _envelope(envelopes, groceries, 80)
    target = _envelope(envelopes, dining, 20)

    envelopes.move(source.id, target.id, 80)
    assert source.available_amount + target.available_amount == 100


@pytest.mark.parametrize("amount", [0, -5])
def test_move_requires_positive_amount(envelopes, groceries, dining, amount):
    source = _envelope(envelopes, groceries, 10)
    target = _envelope(envelopes, dining, 10)
    with pytest.raises(ValidationError):
        envelopes.move(source.id, target.id, amount)


def test_move_to_itself_or_unknown(envelopes, groceries):
    source = _envelope(envelopes, groceries, 10)
    with pytest.raises(ValidationError):
        envelopes.move(source.id, source.id, 5)
    with pytest.raises(NotFoundError):
        envelopes.move(source.id, 999, 5)
    assert source.available_amount == 10


def test_underflow_is_clamped_and_reported(envelopes, groceries):
    allocation = _envelope(envelopes, groceries, 50, spent=20)

    with pytest.warns(ReconciliationWarning):
        envelopes.apply_spent_delta(groceries.id, "2024-05", -35)
    assert allocation.spent_amount == 0

    delta = envelopes.session.query(AllocationDelta).filter(AllocationDelta.kind == "spent").order_by(AllocationDelta.id.desc()).first()
    assert delta.amount == -35
    assert delta.applied == -20


def test_rounding_underflow_is_zeroed_quietly(envelopes, groceries):
    allocation = _envelope(envelopes, groceries, 50, spent=20)

    with warnings.catch_warnings():
        warnings.simplefilter("error", ReconciliationWarning)
        envelopes.apply_spent_delta(groceries.id, "2024-05", -20.000000000001)
    assert allocation.spent_amount == 0

    delta = envelopes.session.query(AllocationDelta).filter(AllocationDelta.kind == "spent").order_by(AllocationDelta.id.desc()).first()
    assert delta.applied == -20
    assert envelopes.rebuild_spent(allocation.id) == 0


def test_rebuild_spent_replays_the_log(envelopes, groceries):
    allocation = _envelope(envelopes, groceries, 50, spent=20)
    envelopes.apply_spent_delta(groceries.id, "2024-05", 5)

    allocation.spent_amount = 999.0
    envelopes.session.commit()

    assert envelopes.rebuild_spent(allocation.id) == 25
    assert allocation.spent_amount == 25


def test_fund_many_is_all_or_nothing(envelopes, groceries, dining):
    first = _envelope(envelopes, groceries, 10)
    second = _envelope(envelopes, dining, 10)

    funded = envelopes.fund_many([
        {"allocation_id": first.id, "amount": 5},
        {"allocation_id": second.id, "amount": 7},
    ])
    assert [a.available_amount for a in funded] == [15, 17]

    with pytest.raises(NotFoundError):
        envelopes.fund_many([
            {"allocation_id": first.id, "amount": 100},
            {"allocation_id": 999, "amount": 1},
        ])
    assert first.available_amount == 15

    with pytest.raises(ValidationError):
        envelopes.fund_many([])


def test_set_budget_books_fund_difference(envelopes, session, groceries):
    allocation = _envelope(envelopes, groceries, 40)
    envelopes.set_budget(allocation.id, allocated_amount=120, available_amount=100, notes="school term")

    assert allocation.allocated_amount == 120
    assert allocation.available_amount == 100
    assert allocation.to_fund == 20
    funds = [d.amount for d in session.query(AllocationDelta).filter(AllocationDelta.kind == "fund").order_by(AllocationDelta.id)]
    assert funds == [40, 60]


def test_plan_leaves_funding_alone(envelopes, groceries):
    allocation = _envelope(envelopes, groceries, 40)
    envelopes.plan(groceries.id, "2024-05", 75, notes="planned")
    assert allocation.allocated_amount == 75
    assert allocation.available_amount == 40
    assert allocation.notes == "planned"


def test_delete_refused_while_linked(session, envelopes, ledger, checking, groceries):
    txn = ledger.create_transaction("2024-05-03", "Shop", [expense(checking, groceries, 12)])
    allocation = session.query(Allocation).one()

    with pytest.raises(ValidationError, match="referenced"):
        envelopes.delete(allocation.id)

    ledger.delete_transaction(txn.id)
    # the revert link is gone once the transaction is deleted
    envelopes.delete(allocation.id)
    assert session.query(Allocation).count() == 0


def test_summary_and_listing(envelopes, ledger, checking, groceries, dining, salary):
    ledger.create_transaction("2024-05-01", "Pay", [
        {"account_id": checking.id, "amount": 1000, "currency": "USD", "direction": "income",
         "category_id": salary.id},
    ])
    envelopes.plan(groceries.id, "2024-05", 300)
    grocery = envelopes.get_or_create(groceries.id, "2024-05")
    envelopes.fund(grocery.id, 250)
    ledger.create_transaction("2024-05-09", "Shop", [expense(checking, groceries, 80.25)])

    summary = envelopes.summary("2024-05")
    assert summary == {
        "month": "2024-05-01",
        "total_allocated": 300.0,
        "total_available": 250.0,
        "total_spent": 80.25,
        "total_balance": 169.75,
        "total_income": 1000.0,
        "unallocated_funds": 750.0,
        "to_fund": 50.0,
    }

    rows = envelopes.allocations_for_month("2024-05")
    assert [row["category_name"] for row in rows] == ["Groceries"]
    assert rows[0]["sync_status"] == "synced"
    assert rows[0]["to_fund"] == 50

    assert [c.name for c in envelopes.unallocated_categories("2024-05")] == ["Dining"]

    linked = envelopes.allocation_transactions(grocery.id)
    assert [row["title"] for row in linked] == ["Shop"]
