from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow


class TransactionAllocation(db.Model):
    """Which allocation absorbed an expense line, and how much of it."""

    __tablename__ = 'transaction_allocations'
    __table_args__ = (
        db.UniqueConstraint('transaction_line_id', 'allocation_id', name='uq_line_allocation'),
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_line_id = db.Column(db.Integer, db.ForeignKey('transaction_lines.id'), nullable=False, index=True)
    allocation_id = db.Column(db.Integer, db.ForeignKey('allocations.id'), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    line = db.relationship('TransactionLine', back_populates='allocation_links')
    allocation = db.relationship('Allocation', back_populates='links')
