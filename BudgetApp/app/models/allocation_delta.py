# BudgetApp/app/models/allocation_delta.py

from BudgetApp.app.accounting_db import db
from BudgetApp.app.common import utcnow

DELTA_KINDS = ('spent', 'fund', 'move_in', 'move_out')


class AllocationDelta(db.Model):
    """Append-only record of every signed change made to an allocation.

    spent_amount is the running sum of the applied 'spent' deltas, so it can be
    rebuilt from this table. 'amount' is what was asked for, 'applied' what was
    actually booked after clamping at zero.
    """

    __tablename__ = "allocation_deltas"

    id = db.Column(db.Integer, primary_key=True)

    # No FK: deltas outlive a hard-deleted allocation
    allocation_id = db.Column(db.Integer, nullable=False, index=True)
    transaction_line_id = db.Column(db.Integer, db.ForeignKey("transaction_lines.id"), nullable=True)

    kind = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    applied = db.Column(db.Float, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
