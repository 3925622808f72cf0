from BudgetApp.app.device.models import AppSetting
import BudgetApp.app.common as common


class DeviceSettings:
    """Key/value settings kept on the device (app_settings table)."""

    LAST_SYNC_TIME = 'last_sync_time'
    SCHEMA_VERSION = 'schema_version'

    def __init__(self, session):
        self.session = session

    def get(self, key, default=None):
        setting = self.session.get(AppSetting, key)
        if setting is None or setting.value is None:
            return default
        return setting.value

    def set(self, key, value):
        setting = self.session.get(AppSetting, key)
        if setting is None:
            setting = AppSetting(key=key)
            self.session.add(setting)
        setting.value = value
        self.session.flush()

    def schema_version(self):
        return int(self.get(self.SCHEMA_VERSION, 0))

    def last_sync_time(self):
        return common.parse_iso_datetime(self.get(self.LAST_SYNC_TIME))

    def set_last_sync_time(self, value):
        self.set(self.LAST_SYNC_TIME, common.isoformat(value))
