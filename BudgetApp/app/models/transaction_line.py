from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow

DIRECTIONS = ('income', 'expense', 'transfer')


class TransactionLine(db.Model):
    __tablename__ = 'transaction_lines'

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey('transactions.id'), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id'), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    # Frozen at entry time, never recomputed from a later rate
    exchange_rate = db.Column(db.Float, nullable=False, default=1.0)
    base_amount = db.Column(db.Float, nullable=False)

    direction = db.Column(db.String(20), nullable=False)  # income, expense, transfer
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), index=True)
    notes = db.Column(db.Text)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    category = db.relationship('Category')
    allocation_links = db.relationship('TransactionAllocation', back_populates='line', lazy=True)
