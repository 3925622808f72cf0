from datetime import date

import pytest

from BudgetApp.app.errors import NotFoundError, ValidationError
from BudgetApp.app.models.allocation import Allocation
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.models.transaction_allocation import TransactionAllocation
from BudgetApp.app.models.transaction_line import TransactionLine
from BudgetApp.app.services import transaction_list
from conftest import expense


def _allocation(session, category, month):
    return (
        session.query(Allocation)
        .filter(Allocation.category_id == category.id, Allocation.month == month)
        .one()
    )


def test_create_expense_books_spent(session, ledger, checking, groceries):
    txn = ledger.create_transaction("2024-03-14", "Market", [expense(checking, groceries, 45.5)])

    assert txn.type == "standard"
    assert txn.version == 1
    allocation = _allocation(session, groceries, date(2024, 3, 1))
    assert allocation.spent_amount == 45.5

    link = session.query(TransactionAllocation).one()
    assert link.allocation_id == allocation.id
    assert link.amount == 45.5


def test_negative_expense_amount_counts_as_spending(session, ledger, checking, groceries):
    ledger.create_transaction("2024-03-14", "Market", [expense(checking, groceries, -30)])
    assert _allocation(session, groceries, date(2024, 3, 1)).spent_amount == 30


def test_base_amount_frozen_at_entry_rate(session, ledger, checking, groceries):
    txn = ledger.create_transaction(
        "2024-03-14", "Trip", [expense(checking, groceries, 100, currency="eur", exchange_rate=1.1)]
    )
    line = txn.live_lines[0]
    assert line.currency == "EUR"
    assert line.base_amount == pytest.approx(110.0)


@pytest.mark.parametrize(
    "line, message",
    [
        ({"amount": 10, "currency": "USD", "direction": "expense"}, "Each line must have"),
        ({"amount": 10, "currency": "USD", "direction": "gift", "account_id": 1}, "Direction must be one of"),
        ({"amount": 10, "currency": "USD", "direction": "expense", "account_id": 1}, "Category is required"),
        ({"amount": 0, "currency": "USD", "direction": "transfer", "account_id": 1}, "cannot be zero"),
    ],
)
def test_line_validation(session, ledger, checking, line, message):
    with pytest.raises(ValidationError, match=message):
        ledger.create_transaction("2024-03-14", "Bad", [line])
    assert session.query(Transaction).count() == 0


def test_transfer_lines_must_not_carry_category(ledger, checking, savings, groceries):
    lines = [
        {"account_id": checking.id, "amount": -50, "currency": "USD", "direction": "transfer",
         "category_id": groceries.id},
        {"account_id": savings.id, "amount": 50, "currency": "USD", "direction": "transfer"},
    ]
    with pytest.raises(ValidationError, match="Category not allowed"):
        ledger.create_transaction("2024-03-14", "Move", lines)


def test_transfer_needs_two_lines(ledger, checking):
    lines = [{"account_id": checking.id, "amount": -50, "currency": "USD", "direction": "transfer"}]
    with pytest.raises(ValidationError, match="exactly 2 lines"):
        ledger.create_transaction("2024-03-14", "Move", lines)


def test_transfer_has_no_envelope_effect(session, ledger, checking, savings):
    lines = [
        {"account_id": checking.id, "amount": -50, "currency": "USD", "direction": "transfer"},
        {"account_id": savings.id, "amount": 50, "currency": "USD", "direction": "transfer"},
    ]
    txn = ledger.create_transaction("2024-03-14", "Move", lines)
    assert txn.type == "transfer"
    assert session.query(Allocation).count() == 0


def test_unknown_account_is_rejected(ledger, groceries):
    line = {"account_id": 999, "amount": 5, "currency": "USD", "direction": "expense",
            "category_id": groceries.id}
    with pytest.raises(ValidationError, match="Unknown account"):
        ledger.create_transaction("2024-03-14", "Ghost", [line])


def test_scenario_fund_spend_edit_delete(session, ledger, envelopes, checking, groceries):
    allocation = envelopes.get_or_create(groceries.id, "2024-03")
    envelopes.fund(allocation.id, 500)

    txn = ledger.create_transaction("2024-03-10", "Weekly shop", [expense(checking, groceries, 120)])
    assert allocation.spent_amount == 120
    assert allocation.balance == 380

    ledger.update_transaction(txn.id, {"lines": [expense(checking, groceries, 200)]})
    assert allocation.spent_amount == 200
    assert allocation.balance == 300

    ledger.delete_transaction(txn.id)
    assert allocation.spent_amount == 0
    assert allocation.balance == 500
    assert session.query(TransactionAllocation).count() == 0


def test_repeated_edits_converge_to_final_state(session, ledger, checking, groceries, dining):
    txn = ledger.create_transaction("2024-03-10", "Night out", [expense(checking, dining, 80)])
    ledger.update_transaction(txn.id, {"lines": [expense(checking, dining, 60), expense(checking, groceries, 15)]})
    ledger.update_transaction(txn.id, {"lines": [expense(checking, groceries, 25)]})
    ledger.update_transaction(txn.id, {"title": "Groceries after all"})

    march = date(2024, 3, 1)
    assert _allocation(session, dining, march).spent_amount == 0
    assert _allocation(session, groceries, march).spent_amount == 25
    assert txn.version == 4

    ledger.delete_transaction(txn.id)
    assert _allocation(session, dining, march).spent_amount == 0
    assert _allocation(session, groceries, march).spent_amount == 0


def test_edit_keeps_old_lines_as_tombstones(session, ledger, checking, groceries):
    txn = ledger.create_transaction("2024-03-10", "Shop", [expense(checking, groceries, 10)])
    ledger.update_transaction(txn.id, {"lines": [expense(checking, groceries, 12)]})

    lines = session.query(TransactionLine).order_by(TransactionLine.id).all()
    assert [line.is_deleted for line in lines] == [True, False]
    assert [line.amount for line in txn.live_lines] == [12]


def test_date_change_moves_spending_between_months(session, ledger, checking, groceries):
    txn = ledger.create_transaction("2024-03-31", "Shop", [expense(checking, groceries, 40)])
    ledger.update_transaction(txn.id, {"date": "2024-04-01"})

    assert _allocation(session, groceries, date(2024, 3, 1)).spent_amount == 0
    assert _allocation(session, groceries, date(2024, 4, 1)).spent_amount == 40


def test_failed_update_leaves_state_untouched(session, ledger, checking, groceries, monkeypatch):
    txn = ledger.create_transaction("2024-03-10", "Shop", [expense(checking, groceries, 70)])

    def boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(ledger, "_link_expenses", boom)
    with pytest.raises(RuntimeError):
        ledger.update_transaction(txn.id, {"lines": [expense(checking, groceries, 90)]})

    txn = session.get(Transaction, txn.id)
    assert txn.version == 1
    assert [line.amount for line in txn.live_lines] == [70]
    assert _allocation(session, groceries, date(2024, 3, 1)).spent_amount == 70
    assert session.query(TransactionAllocation).count() == 1


def test_unknown_patch_field_rejected(ledger, checking, groceries):
    txn = ledger.create_transaction("2024-03-10", "Shop", [expense(checking, groceries, 5)])
    with pytest.raises(ValidationError, match="Unknown field"):
        ledger.update_transaction(txn.id, {"amount": 3})


def test_deleted_transaction_is_gone(ledger, checking, groceries):
    txn = ledger.create_transaction("2024-03-10", "Shop", [expense(checking, groceries, 5)])
    ledger.delete_transaction(txn.id)
    assert txn.is_deleted
    assert txn.deleted_at is not None
    with pytest.raises(NotFoundError):
        ledger.get_transaction(txn.id)
    with pytest.raises(NotFoundError):
        ledger.delete_transaction(txn.id)


def test_transaction_list_and_lines(session, ledger, checking, groceries, salary):
    ledger.create_transaction("2024-03-01", "Pay", [
        {"account_id": checking.id, "amount": 2000, "currency": "USD", "direction": "income",
         "category_id": salary.id},
    ])
    shop = ledger.create_transaction("2024-03-05", "Shop", [expense(checking, groceries, 60)])
    gone = ledger.create_transaction("2024-03-06", "Oops", [expense(checking, groceries, 1)])
    ledger.delete_transaction(gone.id)

    listing = transaction_list.get_transaction_list(session, start_date="2024-03-01", limit=1)
    assert listing["total"] == 2
    assert listing["has_more"] is True
    assert listing["transactions"][0]["title"] == "Shop"
    assert listing["transactions"][0]["type"] == "expense"

    lines = transaction_list.get_transaction_lines(session, shop.id)
    assert len(lines) == 1
    assert lines[0]["account_name"] == "Checking"
    assert lines[0]["category_name"] == "Groceries"
    assert lines[0]["allocation_amount"] == 60

    assert transaction_list.get_monthly_totals(session, "2024-03") == {"income": 2000.0, "expense": 60.0}
