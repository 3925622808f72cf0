# BudgetApp/app/models/allocation.py

from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow


class Allocation(db.Model):
    """One envelope: the budget of a category for a single month.

    balance (available - spent) and to_fund (allocated - available) are derived
    and never stored.
    """

    __tablename__ = "allocations"
    __table_args__ = (
        db.UniqueConstraint("category_id", "month", name="uq_allocation_category_month"),
    )

    id = db.Column(db.Integer, primary_key=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    # Always the first day of the month
    month = db.Column(db.Date, nullable=False, index=True)

    allocated_amount = db.Column(db.Float, nullable=False, default=0.0)
    available_amount = db.Column(db.Float, nullable=False, default=0.0)
    spent_amount = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)
    # Last change to allocated/available/notes; spent changes leave it alone. Sync compares this one.
    budget_updated_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    category = db.relationship("Category", back_populates="allocations")
    links = db.relationship("TransactionAllocation", back_populates="allocation", lazy=True)

    @property
    def balance(self):
        return self.available_amount - self.spent_amount

    @property
    def to_fund(self):
        return self.allocated_amount - self.available_amount
