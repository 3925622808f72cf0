# BudgetApp/app/device/__init__.py
# Role: Bootstrap for the embedded per-device store.
#       The device keeps a SQLite mirror of the ledger tables (same models as the
#       server) plus device-only sync bookkeeping tables declared on DeviceBase.

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from BudgetApp.app import app, db
import BudgetApp.app.common as common

SCHEMA_VERSION = 1

# Declarative base for tables that only exist on the device
DeviceBase = declarative_base()

# Bound per engine when a device store is opened
DeviceSession = sessionmaker()


def create_device_engine(uri=None):
    """
    Engine for the device store. In-memory SQLite gets a single shared
    connection so every session sees the same database.
    """
    uri = uri or app.config['DEVICE_DATABASE_URI']
    kwargs = {}
    if uri.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if uri in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool

    engine = create_engine(uri, **kwargs)

    if uri.startswith('sqlite'):
        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

    return engine


def init_device_store(engine):
    """Create ledger and sync tables if missing and record the schema version."""
    from BudgetApp.app.device.settings import DeviceSettings

    db.metadata.create_all(engine)
    DeviceBase.metadata.create_all(engine)

    session = DeviceSession(bind=engine)
    try:
        settings = DeviceSettings(session)
        current = settings.schema_version()
        if current < SCHEMA_VERSION:
            # future migrations go here, keyed on `current`
            settings.set(DeviceSettings.SCHEMA_VERSION, str(SCHEMA_VERSION))
            session.commit()
            common.logger.info(f'Device store schema upgraded {current} -> {SCHEMA_VERSION}')
    finally:
        session.close()
