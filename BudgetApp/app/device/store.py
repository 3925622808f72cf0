from BudgetApp.app.device import DeviceSession, create_device_engine, init_device_store
from BudgetApp.app.device.reconciler import SyncReconciler
from BudgetApp.app.device.settings import DeviceSettings
from BudgetApp.app.device.tracker import SyncTracker
from BudgetApp.app.services.envelopes import EnvelopeAggregator
from BudgetApp.app.services.ledger import LedgerStore
import BudgetApp.app.common as common


class DeviceStore:
    """
    One device's embedded store: its own engine and session, with ledger and
    envelope services that tag every local change for the next push.
    """

    def __init__(self, uri=None):
        self.engine = create_device_engine(uri)
        init_device_store(self.engine)

        self.session = DeviceSession(bind=self.engine)
        self.tracker = SyncTracker(self.session)
        self.settings = DeviceSettings(self.session)
        self.ledger = LedgerStore(self.session, tracker=self.tracker)
        self.envelopes = EnvelopeAggregator(self.session, tracker=self.tracker)

        common.logger.debug(f'Device store opened on {self.engine.url}')

    def reconciler(self, transport):
        return SyncReconciler(self.session, transport, tracker=self.tracker, settings=self.settings)

    def close(self):
        self.session.close()
        self.engine.dispose()
