from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow

CATEGORY_TYPES = ('income', 'expense', 'system')


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # income, expense, system
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    allocations = db.relationship('Allocation', back_populates='category', lazy=True)
