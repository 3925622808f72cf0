# BudgetApp/app/device/transport.py
# Role: The row shape exchanged between a device and the server, and the
#       transport seam. Wire transports (HTTP etc.) live outside this package.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from BudgetApp.app import app, db

ACCEPTED = 'accepted'
REJECTED = 'rejected'


@dataclass
class SyncRow:
    table: str
    data: Dict[str, Any] = field(default_factory=dict)
    server_id: Optional[int] = None
    local_id: Optional[int] = None
    server_modified_at: Optional[datetime] = None
    is_deleted: bool = False


@dataclass
class PushResult:
    table: str
    local_id: Optional[int]
    status: str
    server_id: Optional[int] = None
    server_modified_at: Optional[datetime] = None
    reason: Optional[str] = None
    # current server copy of a row rejected as stale
    server_data: Optional[Dict[str, Any]] = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED


class SyncTransport:
    """pull(since) -> rows changed after since; push(rows) -> one PushResult per pushed row."""

    def pull(self, since: Optional[datetime]) -> List[SyncRow]:
        raise NotImplementedError

    def push(self, rows: List[SyncRow]) -> List[PushResult]:
        raise NotImplementedError


class InProcessTransport(SyncTransport):
    """
    Talks to a server application living in the same process.

    With a session the calls run on it directly; otherwise each call opens an
    application context on the Flask app and uses its db.session.
    """

    def __init__(self, session=None, flask_app=None):
        self.session = session
        self.app = flask_app or app

    def _call(self, method, *args):
        from BudgetApp.app.services.sync_server import ServerSyncService

        if self.session is not None:
            return getattr(ServerSyncService(self.session), method)(*args)
        with self.app.app_context():
            return getattr(ServerSyncService(db.session), method)(*args)

    def pull(self, since):
        return self._call('pull_changes', since)

    def push(self, rows):
        return self._call('apply_push', rows)
