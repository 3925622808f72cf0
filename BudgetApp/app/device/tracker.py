# BudgetApp/app/device/tracker.py

from __future__ import annotations

from typing import List, Optional

from BudgetApp.app.device.models import SyncConflict, SyncRecord
from BudgetApp.app.errors import ValidationError
import BudgetApp.app.common as common

PENDING = 'pending'
SYNCED = 'synced'
CONFLICT = 'conflict'
DELETED = 'deleted'


def table_of(row) -> str:
    return row.__table__.name


class SyncTracker:
    """
    Keeps the reconciliation state of device rows in sync_records.

    A local create or update tags a row pending unless it is already a
    tombstone; a local delete always tags it deleted. Rows without a record
    have never been changed locally (reference data or pulled effects) and
    read as synced.

    Nothing here commits: tagging happens inside the caller's unit of work.
    """

    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def record(self, table_name, local_id) -> Optional[SyncRecord]:
        return (
            self.session.query(SyncRecord)
            .filter(SyncRecord.table_name == table_name, SyncRecord.local_id == local_id)
            .one_or_none()
        )

    def record_for(self, row) -> Optional[SyncRecord]:
        return self.record(table_of(row), row.id)

    def by_server_id(self, table_name, server_id) -> Optional[SyncRecord]:
        if server_id is None:
            return None
        return (
            self.session.query(SyncRecord)
            .filter(SyncRecord.table_name == table_name, SyncRecord.server_id == server_id)
            .one_or_none()
        )

    def status_of(self, row) -> str:
        rec = self.record_for(row)
        return rec.sync_status if rec is not None else SYNCED

    def server_id_for(self, table_name, local_id) -> Optional[int]:
        rec = self.record(table_name, local_id)
        return rec.server_id if rec is not None else None

    def local_id_for(self, table_name, server_id) -> Optional[int]:
        rec = self.by_server_id(table_name, server_id)
        return rec.local_id if rec is not None else None

    def outgoing(self, table_name) -> List[SyncRecord]:
        """Records waiting to be pushed: pending edits and tombstones."""
        return (
            self.session.query(SyncRecord)
            .filter(
                SyncRecord.table_name == table_name,
                SyncRecord.sync_status.in_((PENDING, DELETED)),
            )
            .order_by(SyncRecord.local_id)
            .all()
        )

    def conflicts(self, include_resolved=False) -> List[SyncConflict]:
        query = self.session.query(SyncConflict)
        if not include_resolved:
            query = query.filter(SyncConflict.resolved.is_(False))
        return query.order_by(SyncConflict.id).all()

    # ------------------------------------------------------------------
    # Local changes
    # ------------------------------------------------------------------

    def _ensure(self, table_name, local_id) -> SyncRecord:
        rec = self.record(table_name, local_id)
        if rec is None:
            rec = SyncRecord(table_name=table_name, local_id=local_id, sync_status=PENDING)
            self.session.add(rec)
        return rec

    def touch(self, row) -> SyncRecord:
        rec = self._ensure(table_of(row), row.id)
        if rec.sync_status != DELETED:
            rec.sync_status = PENDING
        self.session.flush()
        return rec

    def tombstone(self, row) -> SyncRecord:
        rec = self._ensure(table_of(row), row.id)
        rec.sync_status = DELETED
        self.session.flush()
        return rec

    # ------------------------------------------------------------------
    # Server acknowledgements
    # ------------------------------------------------------------------

    def mark_synced(self, table_name, local_id, server_id, server_modified_at=None) -> bool:
        """
        Record that the server holds this row as `server_id`.

        Returns False when nothing changed: the row is already synced to the
        same server id, or it sits in conflict and must be resolved first.
        """
        if server_id is None:
            raise ValidationError(f"{table_name} {local_id}: server id is required")

        rec = self.record(table_name, local_id)
        if rec is not None and rec.sync_status == SYNCED:
            if rec.server_id == server_id:
                return False
            if rec.server_id is not None:
                raise ValidationError(
                    f"{table_name} {local_id} is already synced as {rec.server_id}, not {server_id}"
                )

        if rec is not None and rec.sync_status == CONFLICT:
            common.logger.warning(f"{table_name} {local_id} is in conflict; not marking synced")
            return False

        if rec is None:
            rec = SyncRecord(table_name=table_name, local_id=local_id)
            self.session.add(rec)

        rec.server_id = server_id
        rec.sync_status = SYNCED
        rec.server_modified_at = server_modified_at or common.utcnow()
        self.session.flush()
        return True

    def stamp(self, rec: SyncRecord, server_modified_at):
        """A newer server version of an already-synced row was applied locally."""
        rec.server_modified_at = server_modified_at
        self.session.flush()

    def settle(self, table_name, local_id):
        """
        Close a tombstone without a round trip: the row never reached the
        server, or the server dropped it together with its parent.
        """
        rec = self.record(table_name, local_id)
        if rec is not None and rec.sync_status == DELETED:
            rec.sync_status = SYNCED
            self.session.flush()

    def mark_conflict(self, table_name, local_id, local_data, server_data) -> SyncConflict:
        rec = self._ensure(table_name, local_id)
        rec.sync_status = CONFLICT
        conflict = SyncConflict(
            table_name=table_name,
            record_id=local_id,
            local_data=local_data,
            server_data=server_data,
        )
        self.session.add(conflict)
        self.session.flush()
        common.logger.warning(f"Sync conflict on {table_name} {local_id}")
        return conflict
