import os

# both stores in memory; must be set before the app module is imported
os.environ.setdefault("FLASK_SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("FLASK_DEVICE_DATABASE_URI", "sqlite://")
os.environ.setdefault("FLASK_LOG_LEVEL", "WARNING")

import pytest

from BudgetApp.app import app, db
from BudgetApp.app.models.account import Account
from BudgetApp.app.models.category import Category
from BudgetApp.app.device.store import DeviceStore
from BudgetApp.app.services.envelopes import EnvelopeAggregator
from BudgetApp.app.services.ledger import LedgerStore


@pytest.fixture
def session():
    """Server session on a fresh in-memory database."""
    with app.app_context():
        db.create_all()
        yield db.session
        db.session.remove()
        db.drop_all()


@pytest.fixture
def checking(session):
    account = Account(name="Checking", type="bank", currency="USD")
    session.add(account)
    session.commit()
    return account


@pytest.fixture
def savings(session):
    account = Account(name="Savings", type="bank", currency="USD")
    session.add(account)
    session.commit()
    return account


@pytest.fixture
def groceries(session):
    category = Category(name="Groceries", type="expense")
    session.add(category)
    session.commit()
    return category


@pytest.fixture
def dining(session):
    category = Category(name="Dining", type="expense")
    session.add(category)
    session.commit()
    return category


@pytest.fixture
def salary(session):
    category = Category(name="Salary", type="income")
    session.add(category)
    session.commit()
    return category


@pytest.fixture
def ledger(session):
    return LedgerStore(session)


@pytest.fixture
def envelopes(session):
    return EnvelopeAggregator(session)


@pytest.fixture
def device():
    store = DeviceStore("sqlite://")
    yield store
    store.close()


def expense(account, category, amount, **extra):
    line = {
        "account_id": account.id,
        "amount": amount,
        "currency": "USD",
        "direction": "expense",
        "category_id": category.id,
    }
    line.update(extra)
    return line
