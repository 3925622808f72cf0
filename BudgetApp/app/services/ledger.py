# BudgetApp/app/services/ledger.py

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from BudgetApp.app.models.account import Account
from BudgetApp.app.models.category import Category
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.models.transaction_allocation import TransactionAllocation
from BudgetApp.app.models.transaction_line import DIRECTIONS, TransactionLine
from BudgetApp.app.errors import NotFoundError, ValidationError
from BudgetApp.app.services.currency import exchange_rate_or_default, normalize
from BudgetApp.app.services.envelopes import EnvelopeAggregator
import BudgetApp.app.common as common

PATCH_FIELDS = ("date", "title", "description", "lines")


def transaction_type_for(directions: List[str]) -> str:
    distinct = set(directions)
    if distinct == {"transfer"}:
        return "transfer"
    if "transfer" in distinct:
        return "mixed"
    return "standard"


class LedgerStore:
    """
    Owns transactions and their lines and keeps the envelopes in step with them.

    Every mutation is one unit: header, lines, links and allocation deltas are
    committed together or rolled back together. Edits and deletes first undo
    the allocation effect recorded in the line links, then apply the new one,
    so the envelopes only ever reflect the current line set.
    """

    def __init__(self, session, tracker=None, autocommit=True):
        self.session = session
        self.tracker = tracker
        self.autocommit = autocommit
        self.envelopes = EnvelopeAggregator(session, tracker=tracker, autocommit=False)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_lines(self, lines) -> Tuple[List[Dict[str, Any]], str]:
        if not lines or not isinstance(lines, list):
            raise ValidationError("Transaction must include at least one line")

        prepared = []
        for index, line in enumerate(lines):
            if not isinstance(line, dict):
                raise ValidationError(f"Line {index} must be an object")

            account_id = line.get("account_id")
            amount = line.get("amount")
            currency = line.get("currency")
            direction = line.get("direction")
            category_id = line.get("category_id")

            if account_id in (None, "") or amount in (None, "") or not currency or not direction:
                raise ValidationError("Each line must have account_id, amount, currency, and direction")

            if direction not in DIRECTIONS:
                raise ValidationError(f"Direction must be one of: {', '.join(DIRECTIONS)}")

            if direction != "transfer" and category_id in (None, ""):
                raise ValidationError("Category is required for income and expense lines")
            if direction == "transfer" and category_id not in (None, ""):
                raise ValidationError("Category not allowed for transfer lines")

            exchange_rate = exchange_rate_or_default(line.get("exchange_rate"))
            base_amount = normalize(amount, exchange_rate)
            amount = float(amount)
            if amount == 0:
                raise ValidationError("Line amount cannot be zero")

            if self.session.get(Account, account_id) is None:
                raise ValidationError(f"Unknown account {account_id!r}")
            if category_id not in (None, "") and self.session.get(Category, category_id) is None:
                raise ValidationError(f"Unknown category {category_id!r}")

            prepared.append(
                {
                    "account_id": account_id,
                    "amount": amount,
                    "currency": str(currency).upper(),
                    "exchange_rate": exchange_rate,
                    "base_amount": base_amount,
                    "direction": direction,
                    "category_id": category_id if category_id not in (None, "") else None,
                    "notes": line.get("notes") or None,
                }
            )

        txn_type = transaction_type_for([p["direction"] for p in prepared])
        # Only the two-line shape is checked; legs are not compared with each other
        if txn_type == "transfer" and len(prepared) != 2:
            raise ValidationError("Transfer transactions must have exactly 2 lines")

        return prepared, txn_type

    @staticmethod
    def _validate_date(value):
        txn_date = common.parse_iso_date(value)
        if txn_date is None:
            raise ValidationError("Missing or invalid 'date' (expected YYYY-MM-DD)")
        return txn_date

    @staticmethod
    def _validate_title(value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Title is required")
        return value.strip()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _touch(self, row):
        if self.tracker is not None:
            self.tracker.touch(row)

    def _tombstone(self, row):
        if self.tracker is not None:
            self.tracker.tombstone(row)

    def _live(self, transaction_id) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None or txn.is_deleted:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def _insert_lines(self, txn, prepared):
        for data in prepared:
            line = TransactionLine(is_deleted=False, **data)
            txn.lines.append(line)
        self.session.flush()
        for line in txn.live_lines:
            self._touch(line)

    def _link_expenses(self, txn):
        for line in txn.live_lines:
            if line.direction != "expense" or line.category_id is None:
                continue
            expense = abs(line.amount)
            allocation = self.envelopes.apply_spent_delta(line.category_id, txn.date, expense, line)
            self.session.add(
                TransactionAllocation(
                    transaction_line_id=line.id,
                    allocation_id=allocation.id,
                    amount=expense,
                )
            )
            common.logger.debug(f"Deducted {expense:.2f} from allocation {allocation.id} for line {line.id}")

    def _revert_links(self, txn):
        links = (
            self.session.query(TransactionAllocation)
            .join(TransactionLine, TransactionAllocation.transaction_line_id == TransactionLine.id)
            .filter(TransactionLine.transaction_id == txn.id)
            .order_by(TransactionAllocation.id)
            .all()
        )
        for link in links:
            allocation = link.allocation
            self.envelopes.apply_spent_delta(allocation.category_id, allocation.month, -link.amount, link.line)
            common.logger.debug(f"Restored {link.amount:.2f} to allocation {allocation.id}")
            self.session.delete(link)
        self.session.flush()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id) -> Transaction:
        return self._live(transaction_id)

    def create_transaction(self, date, title, lines, description=None) -> Transaction:
        txn_date = self._validate_date(date)
        title = self._validate_title(title)
        prepared, txn_type = self._validate_lines(lines)

        with common.unit_of_work(self.session, self.autocommit):
            txn = Transaction(
                date=txn_date,
                title=title,
                description=description or None,
                type=txn_type,
                is_deleted=False,
                version=1,
            )
            self.session.add(txn)
            self.session.flush()  # ensures txn.id is available
            self._touch(txn)

            self._insert_lines(txn, prepared)
            self._link_expenses(txn)

        common.logger.info(f"Created transaction {txn.id} ({txn_type}) with {len(prepared)} line(s)")
        return txn

    def update_transaction(self, transaction_id, patch: Optional[Dict[str, Any]]) -> Transaction:
        patch = dict(patch or {})
        unknown = set(patch) - set(PATCH_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

        txn = self._live(transaction_id)

        new_date = self._validate_date(patch["date"]) if "date" in patch else txn.date
        new_title = self._validate_title(patch["title"]) if "title" in patch else txn.title
        prepared = txn_type = None
        if "lines" in patch:
            prepared, txn_type = self._validate_lines(patch["lines"])

        with common.unit_of_work(self.session, self.autocommit):
            # phase 1: undo what the current lines did to the envelopes
            self._revert_links(txn)

            # phase 2: new header and lines, then book them again
            txn.date = new_date
            txn.title = new_title
            if "description" in patch:
                txn.description = patch["description"] or None

            if prepared is not None:
                for old in txn.live_lines:
                    old.is_deleted = True
                    self._tombstone(old)
                self._insert_lines(txn, prepared)
                txn.type = txn_type

            txn.version = (txn.version or 0) + 1
            txn.updated_at = common.utcnow()
            self._touch(txn)

            self._link_expenses(txn)

        common.logger.info(f"Updated transaction {txn.id} (version {txn.version})")
        return txn

    def delete_transaction(self, transaction_id) -> Transaction:
        txn = self._live(transaction_id)

        with common.unit_of_work(self.session, self.autocommit):
            self._revert_links(txn)

            now = common.utcnow()
            for line in txn.live_lines:
                line.is_deleted = True
                self._tombstone(line)
            txn.is_deleted = True
            txn.deleted_at = now
            txn.updated_at = now
            self._tombstone(txn)

        common.logger.info(f"Deleted transaction {txn.id}")
        return txn
