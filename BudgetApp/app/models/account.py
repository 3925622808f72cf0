from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow

class Account(db.Model):
    __tablename__ = 'accounts'

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(50), nullable=False, default='bank')  # cash, bank, credit, wallet
    currency = db.Column(db.String(3), nullable=False, default='USD')
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    lines = db.relationship('TransactionLine', backref='account', lazy=True)
