# BudgetApp/app/services/envelopes.py

from __future__ import annotations

import warnings
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func

from BudgetApp.app.models.allocation import Allocation
from BudgetApp.app.models.allocation_delta import AllocationDelta
from BudgetApp.app.models.category import Category
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.models.transaction_allocation import TransactionAllocation
from BudgetApp.app.models.transaction_line import TransactionLine
from BudgetApp.app.errors import (
    InsufficientFundsError,
    NotFoundError,
    ReconciliationWarning,
    ValidationError,
)
from BudgetApp.app.services.currency import as_number
from BudgetApp.app.utils.money import money
import BudgetApp.app.common as common

# Float noise below this is treated as zero when checking for underflow
EPSILON = 1e-9


def allocation_to_dict(allocation: Allocation, sync_status: str = "synced") -> Dict[str, Any]:
    return {
        "id": allocation.id,
        "category_id": allocation.category_id,
        "month": allocation.month.isoformat(),
        "allocated_amount": allocation.allocated_amount,
        "available_amount": allocation.available_amount,
        "spent_amount": allocation.spent_amount,
        "balance": allocation.balance,
        "notes": allocation.notes,
        "sync_status": sync_status,
    }


class EnvelopeAggregator:
    """
    Owns the allocation rows and every change made to them.

    All the amounts an envelope carries are moved through here so each change
    lands in the allocation_deltas log next to the row it touched.

    With autocommit=True each public call is its own database transaction.
    The Ledger Store builds one with autocommit=False so allocation effects
    join the ledger mutation's transaction instead.
    """

    def __init__(self, session, tracker=None, autocommit=True):
        self.session = session
        self.tracker = tracker
        self.autocommit = autocommit

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _budget_changed(self, allocation):
        # spent is derived from the ledger, so only budget edits are stamped and tagged for sync
        allocation.budget_updated_at = common.utcnow()
        if self.tracker is not None:
            self.tracker.touch(allocation)

    def _find(self, category_id, month, lock=False) -> Optional[Allocation]:
        query = self.session.query(Allocation).filter(
            Allocation.category_id == category_id,
            Allocation.month == month,
        )
        if lock:
            query = query.with_for_update()
        return query.one_or_none()

    def find(self, category_id, month) -> Optional[Allocation]:
        """The envelope of a category for the month containing `month`, or None."""
        try:
            month = common.month_start(month)
        except ValueError as e:
            raise ValidationError(str(e))
        return self._find(category_id, month)

    def _locked(self, allocation_id) -> Allocation:
        allocation = (
            self.session.query(Allocation)
            .filter(Allocation.id == allocation_id)
            .with_for_update()
            .one_or_none()
        )
        if allocation is None:
            raise NotFoundError(f"Allocation {allocation_id} not found")
        return allocation

    def get(self, allocation_id) -> Allocation:
        allocation = self.session.get(Allocation, allocation_id)
        if allocation is None:
            raise NotFoundError(f"Allocation {allocation_id} not found")
        return allocation

    def _log(self, allocation, kind, amount, applied, line=None):
        self.session.add(
            AllocationDelta(
                allocation_id=allocation.id,
                transaction_line_id=line.id if line is not None else None,
                kind=kind,
                amount=amount,
                applied=applied,
            )
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _get_or_create(self, category_id, month) -> Allocation:
        try:
            month = common.month_start(month)
        except ValueError as e:
            raise ValidationError(str(e))

        allocation = self._find(category_id, month, lock=True)
        if allocation is not None:
            return allocation

        if self.session.get(Category, category_id) is None:
            raise ValidationError(f"Unknown category {category_id!r}")

        allocation = Allocation(
            category_id=category_id,
            month=month,
            allocated_amount=0.0,
            available_amount=0.0,
            spent_amount=0.0,
        )
        self.session.add(allocation)
        self.session.flush()
        common.logger.debug(f"Created allocation {allocation.id} for category {category_id} / {month}")
        return allocation

    def get_or_create(self, category_id, month) -> Allocation:
        """An empty envelope is not tagged for sync until its budget changes."""
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._get_or_create(category_id, month)
        return allocation

    def plan(self, category_id, month, allocated_amount, notes=None) -> Allocation:
        """Set the planned amount for a category/month. Funding and spending are left alone."""
        allocated_amount = as_number(allocated_amount, "allocated_amount")
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._get_or_create(category_id, month)
            allocation.allocated_amount = allocated_amount
            if notes is not None:
                allocation.notes = notes
            self._budget_changed(allocation)
        return allocation

    # ------------------------------------------------------------------
    # Spending
    # ------------------------------------------------------------------

    def _apply_spent_delta(self, category_id, month, signed_amount, line=None) -> Allocation:
        signed_amount = as_number(signed_amount, "amount")
        allocation = self._get_or_create(category_id, month)

        current = allocation.spent_amount or 0.0
        new_spent = current + signed_amount
        applied = signed_amount

        if new_spent < -EPSILON:
            message = (
                f"Allocation {allocation.id} spent_amount would drop to {new_spent:.2f} "
                f"(delta {signed_amount:.2f}); clamped to 0"
            )
            common.logger.warning(message)
            warnings.warn(message, ReconciliationWarning, stacklevel=3)
            applied = -current
            new_spent = 0.0
        elif new_spent < 0:
            applied = -current
            new_spent = 0.0

        allocation.spent_amount = new_spent
        self._log(allocation, "spent", signed_amount, applied, line)
        return allocation

    def apply_spent_delta(self, category_id, month, signed_amount, line=None) -> Allocation:
        """
        Add signed_amount to the spent amount of the category's envelope for month.

        The envelope is created if it does not exist yet. spent_amount never
        goes below zero: an underflowing reversal is clamped and reported with a
        ReconciliationWarning.
        """
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._apply_spent_delta(category_id, month, signed_amount, line)
        return allocation

    def rebuild_spent(self, allocation_id) -> float:
        """Recompute spent_amount from the delta log and store it."""
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._locked(allocation_id)
            total = (
                self.session.query(func.coalesce(func.sum(AllocationDelta.applied), 0.0))
                .filter(
                    AllocationDelta.allocation_id == allocation.id,
                    AllocationDelta.kind == "spent",
                )
                .scalar()
            )
            total = max(float(total), 0.0)
            if abs(total - allocation.spent_amount) > EPSILON:
                common.logger.warning(
                    f"Allocation {allocation.id} spent_amount {allocation.spent_amount} "
                    f"differs from delta log {total}; rewriting"
                )
                allocation.spent_amount = total
        return total

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    def _fund(self, allocation_id, amount) -> Allocation:
        amount = as_number(amount, "amount")
        allocation = self._locked(allocation_id)
        allocation.available_amount = allocation.available_amount + amount
        self._log(allocation, "fund", amount, amount)
        self._budget_changed(allocation)
        return allocation

    def fund(self, allocation_id, amount) -> Allocation:
        """Add amount to available_amount (a negative amount unfunds)."""
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._fund(allocation_id, amount)
        common.logger.debug(f"Funded allocation {allocation_id} with {amount}")
        return allocation

    def fund_many(self, funding: Iterable[Dict[str, Any]]) -> List[Allocation]:
        """Fund several allocations at once; either every entry lands or none does."""
        funding = list(funding or [])
        if not funding:
            raise ValidationError("Funding list is empty")

        funded = []
        with common.unit_of_work(self.session, self.autocommit):
            for entry in funding:
                allocation_id = entry.get("allocation_id")
                if allocation_id is None:
                    raise ValidationError("Each funding entry needs 'allocation_id'")
                funded.append(self._fund(allocation_id, entry.get("amount")))
        return funded

    def set_budget(self, allocation_id, allocated_amount=None, available_amount=None, notes=None) -> Allocation:
        """
        Overwrite the budgeting fields of an allocation.

        A change of available_amount is booked as a fund delta for the
        difference. spent_amount is derived from the ledger and never set here.
        """
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._locked(allocation_id)
            changed = False
            if allocated_amount is not None:
                allocated_amount = as_number(allocated_amount, "allocated_amount")
                if abs(allocated_amount - allocation.allocated_amount) > EPSILON:
                    allocation.allocated_amount = allocated_amount
                    changed = True
            if available_amount is not None:
                difference = as_number(available_amount, "available_amount") - allocation.available_amount
                if abs(difference) > EPSILON:
                    self._fund(allocation.id, difference)
            if notes is not None and notes != allocation.notes:
                allocation.notes = notes
                changed = True
            if changed:
                self._budget_changed(allocation)
        return allocation

    def move(self, from_id, to_id, amount):
        """
        Move money from one envelope's free balance to another.

        The source must hold at least `amount` of available minus spent.
        Debit and credit are committed together.
        """
        amount = as_number(amount, "amount")
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if from_id == to_id:
            raise ValidationError("Cannot move money to the same allocation")

        with common.unit_of_work(self.session, self.autocommit):
            # lock in id order so two opposite moves cannot deadlock
            rows = (
                self.session.query(Allocation)
                .filter(Allocation.id.in_([from_id, to_id]))
                .order_by(Allocation.id)
                .with_for_update()
                .all()
            )
            by_id = {row.id: row for row in rows}
            if from_id not in by_id or to_id not in by_id:
                raise NotFoundError("One or both allocations not found")

            source = by_id[from_id]
            target = by_id[to_id]

            free = source.available_amount - source.spent_amount
            if free + EPSILON < amount:
                raise InsufficientFundsError(f"Insufficient funds. Available: ${free:.2f}", available=free)

            source.available_amount = source.available_amount - amount
            target.available_amount = target.available_amount + amount

            self._log(source, "move_out", -amount, -amount)
            self._log(target, "move_in", amount, amount)
            self._budget_changed(source)
            self._budget_changed(target)

        common.logger.info(f"Moved {amount:.2f} from allocation {from_id} to {to_id}")
        return source, target

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def delete(self, allocation_id):
        """Remove an allocation outright. Refused while any expense line is linked to it."""
        with common.unit_of_work(self.session, self.autocommit):
            allocation = self._locked(allocation_id)
            linked = (
                self.session.query(func.count(TransactionAllocation.id))
                .filter(TransactionAllocation.allocation_id == allocation.id)
                .scalar()
            )
            if linked:
                raise ValidationError(
                    f"Allocation {allocation.id} is referenced by {linked} transaction line(s)"
                )
            if self.tracker is not None:
                self.tracker.tombstone(allocation)
            self.session.delete(allocation)
        common.logger.info(f"Deleted allocation {allocation_id}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _month_rows(self, month):
        return (
            self.session.query(Allocation, Category.name)
            .join(Category, Allocation.category_id == Category.id)
            .filter(Allocation.month == month)
            .order_by(Category.name, Allocation.id)
            .all()
        )

    def total_income(self, month) -> float:
        month = common.month_start(month)
        total = (
            self.session.query(func.coalesce(func.sum(func.abs(TransactionLine.base_amount)), 0.0))
            .join(Transaction, TransactionLine.transaction_id == Transaction.id)
            .filter(
                TransactionLine.direction == "income",
                TransactionLine.is_deleted.is_(False),
                Transaction.is_deleted.is_(False),
                Transaction.date >= month,
                Transaction.date < common.next_month(month),
            )
            .scalar()
        )
        return float(total)

    def allocations_for_month(self, month) -> List[Dict[str, Any]]:
        month = common.month_start(month)
        result = []
        for allocation, category_name in self._month_rows(month):
            status = self.tracker.status_of(allocation) if self.tracker is not None else "synced"
            row = allocation_to_dict(allocation, status)
            row["category_name"] = category_name
            row["to_fund"] = allocation.to_fund
            result.append(row)
        return result

    def summary(self, month) -> Dict[str, Any]:
        month = common.month_start(month)
        rows = [allocation for allocation, _ in self._month_rows(month)]

        total_allocated = sum(a.allocated_amount for a in rows)
        total_available = sum(a.available_amount for a in rows)
        total_spent = sum(a.spent_amount for a in rows)
        total_income = self.total_income(month)

        return {
            "month": month.isoformat(),
            "total_allocated": money(total_allocated),
            "total_available": money(total_available),
            "total_spent": money(total_spent),
            "total_balance": money(total_available - total_spent),
            "total_income": money(total_income),
            "unallocated_funds": money(total_income - total_available),
            "to_fund": money(total_allocated - total_available),
        }

    def unallocated_categories(self, month) -> List[Category]:
        month = common.month_start(month)
        has_allocation = (
            self.session.query(Allocation.id)
            .filter(Allocation.category_id == Category.id, Allocation.month == month)
            .exists()
        )
        return (
            self.session.query(Category)
            .filter(
                Category.type == "expense",
                Category.is_active.is_(True),
                ~has_allocation,
            )
            .order_by(Category.name)
            .all()
        )

    def allocation_transactions(self, allocation_id) -> List[Dict[str, Any]]:
        self.get(allocation_id)
        rows = (
            self.session.query(
                Transaction.id.label("transaction_id"),
                Transaction.date,
                Transaction.title,
                TransactionAllocation.amount,
                TransactionLine.id.label("line_id"),
                TransactionLine.account_id,
            )
            .select_from(TransactionAllocation)
            .join(TransactionLine, TransactionAllocation.transaction_line_id == TransactionLine.id)
            .join(Transaction, TransactionLine.transaction_id == Transaction.id)
            .filter(
                TransactionAllocation.allocation_id == allocation_id,
                Transaction.is_deleted.is_(False),
            )
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .all()
        )
        return [
            {
                "transaction_id": r.transaction_id,
                "date": r.date.isoformat(),
                "title": r.title,
                "amount": float(r.amount),
                "line_id": r.line_id,
                "account_id": r.account_id,
            }
            for r in rows
        ]
