from BudgetApp.app import db  # import the db object from __init__.py

# Import models so Alembic and db.create_all() see every table
from BudgetApp.app.models.account import Account
from BudgetApp.app.models.category import Category
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.models.transaction_line import TransactionLine
from BudgetApp.app.models.allocation import Allocation
from BudgetApp.app.models.transaction_allocation import TransactionAllocation
from BudgetApp.app.models.allocation_delta import AllocationDelta
