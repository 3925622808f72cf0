# BudgetApp/app/device/reconciler.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from BudgetApp.app.models.account import Account
from BudgetApp.app.models.allocation import Allocation
from BudgetApp.app.models.category import Category
from BudgetApp.app.models.transaction import Transaction
from BudgetApp.app.models.transaction_line import TransactionLine
from BudgetApp.app.device.models import SyncLog
from BudgetApp.app.device.settings import DeviceSettings
from BudgetApp.app.device.tracker import CONFLICT, DELETED, PENDING, SYNCED, SyncTracker
from BudgetApp.app.device.transport import PushResult, SyncRow, SyncTransport
from BudgetApp.app.errors import ValidationError
from BudgetApp.app.services.envelopes import allocation_to_dict
from BudgetApp.app.services.ledger import LedgerStore
from BudgetApp.app.services.transaction_list import transaction_to_dict
import BudgetApp.app.common as common

# Order pulled rows are applied in: referenced tables first
PULL_ORDER = ("accounts", "categories", "transactions", "allocations")

REFERENCE_MODELS = {
    "accounts": (Account, ("name", "type", "currency", "is_active")),
    "categories": (Category, ("name", "type", "is_active")),
}

APPLIED = "applied"
SKIPPED = "skipped"


@dataclass
class PushReport:
    accepted: int = 0
    rejected: int = 0


@dataclass
class PullReport:
    applied: int = 0
    skipped: int = 0
    conflicts: int = 0
    checkpoint: Optional[datetime] = None


class SyncReconciler:
    """
    Pushes local changes to the server and pulls the server's changes back.

    Local edits are tagged by the SyncTracker as they happen; this class only
    reads those tags. Rows pulled from the server go through a LedgerStore with
    no tracker so applying them never marks anything pending. Each acknowledged
    or pulled row is committed on its own, so a sync cut short resumes where
    it stopped.
    """

    def __init__(self, session, transport: SyncTransport, tracker=None, settings=None):
        self.session = session
        self.transport = transport
        self.tracker = tracker or SyncTracker(session)
        self.settings = settings or DeviceSettings(session)
        self.ledger = LedgerStore(session, tracker=None, autocommit=False)
        self.envelopes = self.ledger.envelopes

    def mark_synced(self, table_name, local_id, server_id, server_modified_at=None) -> bool:
        with common.unit_of_work(self.session):
            changed = self.tracker.mark_synced(table_name, local_id, server_id, server_modified_at)
        return changed

    def conflicts(self):
        return self.tracker.conflicts()

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _server_ids(self, line):
        account_id = self.tracker.server_id_for("accounts", line.account_id)
        category_id = None
        if line.category_id is not None:
            category_id = self.tracker.server_id_for("categories", line.category_id)
            if category_id is None:
                return None
        if account_id is None:
            return None
        return account_id, category_id

    def _settle_transaction(self, txn):
        self.tracker.settle("transactions", txn.id)
        for line in txn.lines:
            self.tracker.settle("transaction_lines", line.id)

    def _transaction_row(self, txn) -> Optional[SyncRow]:
        rec = self.tracker.record_for(txn)
        server_id = rec.server_id if rec is not None else None

        if txn.is_deleted:
            if server_id is None:
                common.logger.debug(f"Transaction {txn.id} never reached the server; settling tombstone")
                self._settle_transaction(txn)
                return None
            return SyncRow("transactions", {}, server_id, txn.id, rec.server_modified_at, is_deleted=True)

        data = transaction_to_dict(txn)
        lines = []
        for line, line_data in zip(txn.live_lines, data["lines"]):
            ids = self._server_ids(line)
            if ids is None:
                common.logger.warning(
                    f"Transaction {txn.id} references an account or category the server does not know yet; held back"
                )
                return None
            line_data["account_id"], line_data["category_id"] = ids
            line_data["local_id"] = line.id
            line_data["server_id"] = self.tracker.server_id_for("transaction_lines", line.id)
            lines.append(line_data)
        data["lines"] = lines
        return SyncRow("transactions", data, server_id, txn.id,
                       rec.server_modified_at if rec is not None else None)

    def _allocation_row(self, rec) -> Optional[SyncRow]:
        allocation = self.session.get(Allocation, rec.local_id)

        if allocation is None or rec.sync_status == DELETED:
            if rec.server_id is None:
                self.tracker.settle("allocations", rec.local_id)
                return None
            return SyncRow("allocations", {}, rec.server_id, rec.local_id, rec.server_modified_at, is_deleted=True)

        category_id = self.tracker.server_id_for("categories", allocation.category_id)
        if category_id is None:
            common.logger.warning(f"Allocation {allocation.id} category is unknown to the server; held back")
            return None

        data = {
            "category_id": category_id,
            "month": allocation.month.isoformat(),
            "allocated_amount": allocation.allocated_amount,
            "available_amount": allocation.available_amount,
            "notes": allocation.notes,
        }
        return SyncRow("allocations", data, rec.server_id, rec.local_id, rec.server_modified_at)

    def collect_push(self) -> List[SyncRow]:
        """Rows in pending or deleted state, transactions before allocations."""
        rows = []
        with common.unit_of_work(self.session):
            txn_ids = {rec.local_id for rec in self.tracker.outgoing("transactions")}
            for rec in self.tracker.outgoing("transaction_lines"):
                line = self.session.get(TransactionLine, rec.local_id)
                if line is not None:
                    txn_ids.add(line.transaction_id)

            for txn_id in sorted(txn_ids):
                txn = self.session.get(Transaction, txn_id)
                if txn is None:
                    continue
                row = self._transaction_row(txn)
                if row is not None:
                    rows.append(row)

            for rec in self.tracker.outgoing("allocations"):
                row = self._allocation_row(rec)
                if row is not None:
                    rows.append(row)
        return rows

    def _acknowledge(self, result: PushResult):
        self.tracker.mark_synced(result.table, result.local_id, result.server_id, result.server_modified_at)
        if result.table == "transactions":
            txn = self.session.get(Transaction, result.local_id)
            # old line versions were replaced on the server as well
            for line in txn.lines:
                if line.is_deleted:
                    self.tracker.settle("transaction_lines", line.id)

    def _reject(self, result: PushResult, row: Optional[SyncRow]):
        local_data = dict(row.data) if row is not None else {}
        server_data = dict(result.server_data or {})
        server_data.update(status=result.status, reason=result.reason, server_id=result.server_id)
        self.tracker.mark_conflict(result.table, result.local_id, local_data, server_data)

    def push(self) -> PushReport:
        report = PushReport()
        rows = self.collect_push()
        if not rows:
            return report

        results = self.transport.push(rows)
        pushed: Dict[tuple, SyncRow] = {(row.table, row.local_id): row for row in rows}

        for result in results:
            row = pushed.get((result.table, result.local_id))
            with common.unit_of_work(self.session):
                if result.accepted:
                    self._acknowledge(result)
                    if row is not None:
                        report.accepted += 1
                else:
                    self._reject(result, row)
                    report.rejected += 1

        common.logger.info(f"Push: {report.accepted} accepted, {report.rejected} rejected")
        return report

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    @staticmethod
    def _is_known(rec, row: SyncRow) -> bool:
        return (
            rec.server_modified_at is not None
            and row.server_modified_at is not None
            and row.server_modified_at <= rec.server_modified_at
        )

    def _conflict(self, table_name, local_id, local_data, row: SyncRow) -> str:
        server_data = dict(row.data)
        server_data["server_id"] = row.server_id
        server_data["server_modified_at"] = common.isoformat(row.server_modified_at)
        server_data["is_deleted"] = row.is_deleted
        self.tracker.mark_conflict(table_name, local_id, local_data, server_data)
        return CONFLICT

    def _acknowledge_pulled(self, table_name, local_id, rec, row: SyncRow):
        if rec is not None and rec.sync_status == SYNCED and rec.server_id == row.server_id:
            self.tracker.stamp(rec, row.server_modified_at)
        else:
            self.tracker.mark_synced(table_name, local_id, row.server_id, row.server_modified_at)

    def _apply_reference(self, row: SyncRow) -> str:
        model, fields = REFERENCE_MODELS[row.table]
        rec = self.tracker.by_server_id(row.table, row.server_id)

        if rec is None:
            obj = model(**{name: row.data.get(name) for name in fields})
            self.session.add(obj)
            self.session.flush()
            self.tracker.mark_synced(row.table, obj.id, row.server_id, row.server_modified_at)
            return APPLIED

        if self._is_known(rec, row):
            return SKIPPED

        obj = self.session.get(model, rec.local_id)
        for name in fields:
            setattr(obj, name, row.data.get(name))
        self.tracker.stamp(rec, row.server_modified_at)
        return APPLIED

    def _local_lines(self, row: SyncRow) -> List[dict]:
        lines = []
        for line in row.data.get("lines") or []:
            account_id = self.tracker.local_id_for("accounts", line.get("account_id"))
            if account_id is None:
                raise ValidationError(f"Pulled line {line.get('id')} references unknown account {line.get('account_id')}")
            category_id = None
            if line.get("category_id") is not None:
                category_id = self.tracker.local_id_for("categories", line.get("category_id"))
                if category_id is None:
                    raise ValidationError(
                        f"Pulled line {line.get('id')} references unknown category {line.get('category_id')}"
                    )
            local = dict(line)
            local["account_id"] = account_id
            local["category_id"] = category_id
            lines.append(local)
        return lines

    def _apply_transaction(self, row: SyncRow) -> str:
        rec = self.tracker.by_server_id("transactions", row.server_id)
        data = row.data

        if rec is not None:
            if rec.sync_status == DELETED:
                return SKIPPED
            if self._is_known(rec, row):
                return SKIPPED
            txn = self.session.get(Transaction, rec.local_id)
            if rec.sync_status in (PENDING, CONFLICT):
                return self._conflict("transactions", txn.id, transaction_to_dict(txn), row)

        if row.is_deleted:
            if rec is not None and not txn.is_deleted:
                self.ledger.delete_transaction(txn.id)
                self.tracker.stamp(rec, row.server_modified_at)
                return APPLIED
            return SKIPPED

        lines = self._local_lines(row)

        if rec is None:
            txn = self.ledger.create_transaction(data.get("date"), data.get("title"), lines,
                                                 description=data.get("description"))
            self.tracker.mark_synced("transactions", txn.id, row.server_id, row.server_modified_at)
        else:
            if txn.is_deleted:
                return SKIPPED
            patch = {
                "date": data.get("date"),
                "title": data.get("title"),
                "description": data.get("description"),
            }
            current = [self.tracker.server_id_for("transaction_lines", line.id) for line in txn.live_lines]
            if current != [line.get("id") for line in lines]:
                patch["lines"] = lines
            txn = self.ledger.update_transaction(txn.id, patch)
            self.tracker.stamp(rec, row.server_modified_at)

        for pulled, line in zip(lines, txn.live_lines):
            self.tracker.mark_synced("transaction_lines", line.id, pulled.get("id"), row.server_modified_at)
        return APPLIED

    def _apply_allocation(self, row: SyncRow) -> str:
        data = row.data
        rec = self.tracker.by_server_id("allocations", row.server_id)
        allocation = None

        if rec is None:
            category_id = self.tracker.local_id_for("categories", data.get("category_id"))
            if category_id is None:
                raise ValidationError(f"Pulled allocation {row.server_id} references unknown category")
            allocation = self.envelopes.find(category_id, data.get("month"))
            if allocation is not None:
                rec = self.tracker.record_for(allocation)
        else:
            allocation = self.session.get(Allocation, rec.local_id)
            category_id = allocation.category_id if allocation is not None else None

        if rec is not None:
            if rec.sync_status == DELETED or allocation is None:
                return SKIPPED
            if self._is_known(rec, row):
                return SKIPPED
            if rec.sync_status in (PENDING, CONFLICT):
                return self._conflict("allocations", allocation.id, allocation_to_dict(allocation, rec.sync_status), row)

        if allocation is None:
            allocation = self.envelopes.get_or_create(category_id, data.get("month"))

        self.envelopes.set_budget(
            allocation.id,
            allocated_amount=data.get("allocated_amount"),
            available_amount=data.get("available_amount"),
            notes=data.get("notes"),
        )
        self._acknowledge_pulled("allocations", allocation.id, rec, row)
        return APPLIED

    def _apply_pulled(self, row: SyncRow) -> str:
        if row.table in REFERENCE_MODELS:
            return self._apply_reference(row)
        if row.table == "transactions":
            return self._apply_transaction(row)
        if row.table == "allocations":
            return self._apply_allocation(row)
        raise ValidationError(f"Unknown table {row.table!r} in pull")

    def pull(self) -> PullReport:
        since = self.settings.last_sync_time()
        rows = sorted(self.transport.pull(since), key=lambda r: PULL_ORDER.index(r.table))

        report = PullReport(checkpoint=since)
        for row in rows:
            with common.unit_of_work(self.session):
                outcome = self._apply_pulled(row)
            if outcome == APPLIED:
                report.applied += 1
            elif outcome == CONFLICT:
                report.conflicts += 1
            else:
                report.skipped += 1
            if row.server_modified_at is not None and (
                report.checkpoint is None or row.server_modified_at > report.checkpoint
            ):
                report.checkpoint = row.server_modified_at

        if report.checkpoint is not None and report.checkpoint != since:
            with common.unit_of_work(self.session):
                self.settings.set_last_sync_time(report.checkpoint)

        common.logger.info(
            f"Pull: {report.applied} applied, {report.skipped} skipped, {report.conflicts} conflict(s)"
        )
        return report

    # ------------------------------------------------------------------
    # Full cycle
    # ------------------------------------------------------------------

    def sync(self):
        """Push, then pull, then write a sync_log row. A failure is logged and re-raised."""
        log = SyncLog(sync_direction="full")
        try:
            pushed = self.push()
            pulled = self.pull()
        except Exception as e:
            self.session.rollback()
            log.status = "failed"
            log.error_message = str(e)
            self.session.add(log)
            self.session.commit()
            common.logger.error(f"Sync failed: {e}")
            raise

        log.records_uploaded = pushed.accepted
        log.records_downloaded = pulled.applied
        log.conflicts_detected = pushed.rejected + pulled.conflicts
        log.status = "partial" if log.conflicts_detected else "success"
        self.session.add(log)
        self.session.commit()

        common.logger.info(f"Sync finished: {log.status}")
        return log
