# BudgetApp/app/device/models.py

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, UniqueConstraint

from BudgetApp.app.device import DeviceBase
from BudgetApp.app.common import utcnow

SYNC_STATUSES = ('pending', 'synced', 'conflict', 'deleted')


class SyncRecord(DeviceBase):
    """Maps a local row to its server twin and carries its reconciliation state.

    Local and server rows live in different primary key spaces; this table is
    the only place the two are joined.
    """

    __tablename__ = 'sync_records'
    __table_args__ = (
        UniqueConstraint('table_name', 'local_id', name='uq_sync_record_local'),
        UniqueConstraint('table_name', 'server_id', name='uq_sync_record_server'),
    )

    id = Column(Integer, primary_key=True)
    table_name = Column(String(50), nullable=False)
    local_id = Column(Integer, nullable=False)
    server_id = Column(Integer, nullable=True)

    # One of SYNC_STATUSES
    sync_status = Column(String(20), nullable=False, default='pending', index=True)
    server_modified_at = Column(DateTime)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SyncConflict(DeviceBase):
    """Both versions of a row that diverged, kept for manual resolution."""

    __tablename__ = 'sync_conflicts'

    id = Column(Integer, primary_key=True)
    table_name = Column(String(50), nullable=False)
    record_id = Column(Integer, nullable=False)  # local id

    local_data = Column(JSON, nullable=False)
    server_data = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    resolved = Column(Boolean, default=False, nullable=False, index=True)
    # 'keep_local', 'keep_server' or 'merged' once somebody decides
    resolution = Column(String(20))


class SyncLog(DeviceBase):
    __tablename__ = 'sync_log'

    id = Column(Integer, primary_key=True)
    sync_direction = Column(String(20), nullable=False)  # upload, download, full
    sync_timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    records_uploaded = Column(Integer, default=0, nullable=False)
    records_downloaded = Column(Integer, default=0, nullable=False)
    conflicts_detected = Column(Integer, default=0, nullable=False)
    status = Column(String(20))  # success, partial, failed
    error_message = Column(Text)


class AppSetting(DeviceBase):
    __tablename__ = 'app_settings'

    key = Column(String(100), primary_key=True)
    value = Column(Text)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
