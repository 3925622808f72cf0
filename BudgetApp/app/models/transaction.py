# BudgetApp/app/models/transaction.py

from datetime import date
from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow

TRANSACTION_TYPES = ('standard', 'transfer', 'mixed')


class Transaction(db.Model):
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)

    date = db.Column(db.Date, default=date.today, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(20), nullable=False, default="standard")  # derived from the lines

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    # Bumped on every update; nothing compares it yet (optimistic locking is not enforced)
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)
    deleted_at = db.Column(db.DateTime)

    lines = db.relationship(
        "TransactionLine",
        backref="transaction",
        order_by="TransactionLine.id",
        lazy=True,
    )

    @property
    def live_lines(self):
        return [line for line in self.lines if not line.is_deleted]

    @property
    def month(self):
        return self.date.replace(day=1)
