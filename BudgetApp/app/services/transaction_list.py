from sqlalchemy import func, case
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.models.transaction_line import TransactionLine
from BudgetApp.app.models.transaction_allocation import TransactionAllocation
from BudgetApp.app.models.account import Account
from BudgetApp.app.models.category import Category
import BudgetApp.app.common as common


def line_to_dict(line):
    return {
        "id": line.id,
        "transaction_id": line.transaction_id,
        "account_id": line.account_id,
        "amount": line.amount,
        "currency": line.currency,
        "exchange_rate": line.exchange_rate,
        "base_amount": line.base_amount,
        "direction": line.direction,
        "category_id": line.category_id,
        "notes": line.notes,
        "is_deleted": bool(line.is_deleted),
    }


def transaction_to_dict(txn, include_deleted_lines=False):
    lines = txn.lines if include_deleted_lines else txn.live_lines
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "title": txn.title,
        "description": txn.description,
        "type": txn.type,
        "is_deleted": bool(txn.is_deleted),
        "version": txn.version,
        "created_at": common.isoformat(txn.created_at),
        "updated_at": common.isoformat(txn.updated_at),
        "lines": [line_to_dict(line) for line in lines],
    }


def display_type(txn_type, directions):
    """
    Standard transactions whose lines all share one direction are shown as
    plain 'income' or 'expense'.
    """
    if txn_type == "standard" and directions:
        if all(d == "income" for d in directions):
            return "income"
        if all(d == "expense" for d in directions):
            return "expense"
    return txn_type


def get_transaction_list(
    session,
    start_date=None,
    end_date=None,
    account_id=None,
    category_id=None,
    type=None,            # "standard", "transfer", "mixed" or None
    limit=50,
    offset=0,
):
    """
    Returns live transactions, newest first, each with its live lines.
    """

    query = (
        session.query(Transaction)
        .filter(Transaction.is_deleted.is_(False))
        .order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
    )

    if start_date:
        query = query.filter(Transaction.date >= common.parse_iso_date(start_date))

    if end_date:
        query = query.filter(Transaction.date <= common.parse_iso_date(end_date))

    if account_id:
        query = query.filter(
            Transaction.lines.any(
                (TransactionLine.account_id == account_id) & TransactionLine.is_deleted.is_(False)
            )
        )

    if category_id:
        query = query.filter(
            Transaction.lines.any(
                (TransactionLine.category_id == category_id) & TransactionLine.is_deleted.is_(False)
            )
        )

    if type:
        query = query.filter(Transaction.type == type)

    total = query.count()
    rows = query.limit(limit).offset(offset).all()

    result = []
    for txn in rows:
        data = transaction_to_dict(txn)
        data["type"] = display_type(txn.type, [line["direction"] for line in data["lines"]])
        result.append(data)

    return {
        "transactions": result,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(result) < total,
    }


def get_transaction_lines(session, transaction_id):
    """
    Returns the live lines of a single transaction with the allocation
    each expense line was booked against.
    """

    rows = (
        session.query(
            TransactionLine,
            Account.name.label("account_name"),
            Category.name.label("category_name"),
            TransactionAllocation.allocation_id,
            TransactionAllocation.amount.label("allocation_amount"),
        )
        .join(Account, TransactionLine.account_id == Account.id)
        .outerjoin(Category, TransactionLine.category_id == Category.id)
        .outerjoin(TransactionAllocation, TransactionAllocation.transaction_line_id == TransactionLine.id)
        .filter(
            TransactionLine.transaction_id == transaction_id,
            TransactionLine.is_deleted.is_(False),
        )
        .order_by(TransactionLine.id)
        .all()
    )

    result = []
    for r in rows:
        data = line_to_dict(r.TransactionLine)
        data["account_name"] = r.account_name
        data["category_name"] = r.category_name
        data["allocation_id"] = r.allocation_id
        data["allocation_amount"] = float(r.allocation_amount) if r.allocation_amount is not None else None
        result.append(data)
    return result


def get_monthly_totals(session, month):
    """Income and expense totals for a month, in base currency."""
    month = common.month_start(month)

    income_sum = func.sum(
        case(
            (TransactionLine.direction == "income", func.abs(TransactionLine.base_amount)),
            else_=0,
        )
    ).label("income")

    expense_sum = func.sum(
        case(
            (TransactionLine.direction == "expense", func.abs(TransactionLine.base_amount)),
            else_=0,
        )
    ).label("expense")

    row = (
        session.query(income_sum, expense_sum)
        .select_from(TransactionLine)
        .join(Transaction, TransactionLine.transaction_id == Transaction.id)
        .filter(
            Transaction.is_deleted.is_(False),
            TransactionLine.is_deleted.is_(False),
            Transaction.date >= month,
            Transaction.date < common.next_month(month),
        )
        .one()
    )

    return {
        "income": float(row.income or 0),
        "expense": float(row.expense or 0),
    }
