# BudgetApp/app/services/sync_server.py
# Role: Server end of device sync. Hands out rows changed since a checkpoint and
#       applies rows pushed by a device through the ledger and envelope services.

from __future__ import annotations

from typing import List

from BudgetApp.app.models.account import Account
from BudgetApp.app.models.allocation import Allocation
from BudgetApp.app.models.category import Category
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.errors import ConcurrencyConflict, NotFoundError, ValidationError
from BudgetApp.app.device.transport import ACCEPTED, REJECTED, PushResult, SyncRow
from BudgetApp.app.services.envelopes import EPSILON, EnvelopeAggregator, allocation_to_dict
from BudgetApp.app.services.ledger import LedgerStore
from BudgetApp.app.services.transaction_list import transaction_to_dict
import BudgetApp.app.common as common

LINE_FIELDS = ("account_id", "amount", "currency", "exchange_rate", "direction", "category_id", "notes")


def account_to_dict(account):
    return {
        "name": account.name,
        "type": account.type,
        "currency": account.currency,
        "is_active": bool(account.is_active),
    }


def category_to_dict(category):
    return {
        "name": category.name,
        "type": category.type,
        "is_active": bool(category.is_active),
    }


def allocation_sync_data(allocation):
    data = allocation_to_dict(allocation)
    # spent is derived from each side's own ledger
    for key in ("id", "spent_amount", "balance", "sync_status"):
        data.pop(key)
    return data


def is_unbudgeted(allocation):
    """True for an envelope that only exists because spending landed in it."""
    return (
        abs(allocation.allocated_amount or 0.0) <= EPSILON
        and abs(allocation.available_amount or 0.0) <= EPSILON
        and not allocation.notes
    )


class ServerSyncService:
    """
    Pull: every row changed after `since`, in dependency order.
    Push: each row is its own database transaction. An update made against a
    server version the device has not seen yet is rejected as a conflict.
    """

    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def _changed(self, model, since, column=None):
        column = column if column is not None else model.updated_at
        query = self.session.query(model)
        if since is not None:
            query = query.filter(column > since)
        return query.order_by(column, model.id).all()

    def pull_changes(self, since=None) -> List[SyncRow]:
        rows = []

        for account in self._changed(Account, since):
            rows.append(SyncRow("accounts", account_to_dict(account), account.id,
                                server_modified_at=account.updated_at))

        for category in self._changed(Category, since):
            rows.append(SyncRow("categories", category_to_dict(category), category.id,
                                server_modified_at=category.updated_at))

        for txn in self._changed(Transaction, since):
            rows.append(SyncRow("transactions", transaction_to_dict(txn), txn.id,
                                server_modified_at=txn.updated_at, is_deleted=bool(txn.is_deleted)))

        # spent changes move updated_at but are not published
        for allocation in self._changed(Allocation, since, Allocation.budget_updated_at):
            rows.append(SyncRow("allocations", allocation_sync_data(allocation), allocation.id,
                                server_modified_at=allocation.budget_updated_at))

        common.logger.debug(f"Pull since {since}: {len(rows)} row(s)")
        return rows

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def apply_push(self, rows: List[SyncRow]) -> List[PushResult]:
        results = []
        for row in rows:
            try:
                if row.table == "transactions":
                    results.extend(self._push_transaction(row))
                elif row.table == "allocations":
                    results.append(self._push_allocation(row))
                else:
                    raise ValidationError(f"Table {row.table!r} cannot be pushed")
            except (ValidationError, NotFoundError, ConcurrencyConflict) as e:
                self.session.rollback()
                common.logger.warning(f"Rejected pushed {row.table} row (local id {row.local_id}): {e}")
                results.append(
                    PushResult(row.table, row.local_id, REJECTED, server_id=row.server_id, reason=str(e),
                               server_data=getattr(e, "server_data", None))
                )
        return results

    @staticmethod
    def _is_stale(row: SyncRow, server_modified_at) -> bool:
        if row.server_modified_at is None:
            return True
        return server_modified_at > row.server_modified_at

    def _push_transaction(self, row: SyncRow) -> List[PushResult]:
        ledger = LedgerStore(self.session)
        data = row.data

        if row.is_deleted:
            if row.server_id is None:
                raise ValidationError("Cannot delete a transaction the server has never seen")
            txn = self.session.get(Transaction, row.server_id)
            if txn is None:
                raise NotFoundError(f"Transaction {row.server_id} not found")
            if not txn.is_deleted:
                txn = ledger.delete_transaction(txn.id)
            return [PushResult("transactions", row.local_id, ACCEPTED, txn.id, txn.updated_at)]

        pushed_lines = data.get("lines") or []
        lines = [{key: line.get(key) for key in LINE_FIELDS} for line in pushed_lines]

        if row.server_id is None:
            txn = ledger.create_transaction(data.get("date"), data.get("title"), lines,
                                            description=data.get("description"))
        else:
            txn = self.session.get(Transaction, row.server_id)
            if txn is None:
                raise NotFoundError(f"Transaction {row.server_id} not found")
            if self._is_stale(row, txn.updated_at):
                raise ConcurrencyConflict(
                    f"Transaction {txn.id} changed on the server since the device last saw it",
                    server_data=transaction_to_dict(txn),
                )
            patch = {
                "date": data.get("date"),
                "title": data.get("title"),
                "description": data.get("description"),
            }
            # lines the server already holds are kept as they are
            current = [line.id for line in txn.live_lines]
            known = [line.get("server_id") for line in pushed_lines]
            if known != current:
                patch["lines"] = lines
            txn = ledger.update_transaction(txn.id, patch)

        results = [PushResult("transactions", row.local_id, ACCEPTED, txn.id, txn.updated_at)]
        for pushed, line in zip(pushed_lines, txn.live_lines):
            results.append(PushResult("transaction_lines", pushed.get("local_id"), ACCEPTED,
                                      line.id, txn.updated_at))
        return results

    def _push_allocation(self, row: SyncRow) -> PushResult:
        envelopes = EnvelopeAggregator(self.session, autocommit=False)
        data = row.data

        with common.unit_of_work(self.session):
            if row.is_deleted:
                if row.server_id is not None and self.session.get(Allocation, row.server_id) is not None:
                    envelopes.delete(row.server_id)
                return PushResult("allocations", row.local_id, ACCEPTED, row.server_id, common.utcnow())

            if row.server_id is not None:
                allocation = envelopes.get(row.server_id)
                if self._is_stale(row, allocation.budget_updated_at):
                    raise ConcurrencyConflict(
                        f"Allocation {allocation.id} was budgeted on the server since the device last saw it",
                        server_data=allocation_sync_data(allocation),
                    )
            else:
                allocation = envelopes.find(data.get("category_id"), data.get("month"))
                if allocation is None:
                    allocation = envelopes.get_or_create(data.get("category_id"), data.get("month"))
                elif not is_unbudgeted(allocation):
                    # another device budgeted this envelope first
                    raise ConcurrencyConflict(
                        f"Allocation for category {allocation.category_id} / {allocation.month} "
                        f"is already budgeted on the server",
                        server_data=allocation_sync_data(allocation),
                    )

            allocation = envelopes.set_budget(
                allocation.id,
                allocated_amount=data.get("allocated_amount"),
                available_amount=data.get("available_amount"),
                notes=data.get("notes"),
            )

        return PushResult("allocations", row.local_id, ACCEPTED, allocation.id, allocation.budget_updated_at)
