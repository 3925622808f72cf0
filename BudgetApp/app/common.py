import logging
from contextlib import contextmanager
from datetime import date as date_cls, datetime, timezone
from typing import Any, Optional

from BudgetApp.app import app

logger = logging.getLogger(__name__)


def logging_initiate():
    global logger

    logger = logging.getLogger(__name__)
    logger.setLevel(app.config.get('LOG_LEVEL', 'DEBUG'))

    if not logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.DEBUG)

        format = logging.Formatter('[%(asctime)s] p%(process)s {%(pathname)s:%(lineno)d} %(levelname)s - %(message)s','%m-%d %H:%M:%S')
        stream_handler.setFormatter(format)
        logger.addHandler(stream_handler)

    logger.debug('Budget ledger: logging started')


def utcnow() -> datetime:
    # naive UTC, matches what SQLite hands back from DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Any) -> Optional[date_cls]:
    """Parse an ISO-8601 date (YYYY-MM-DD) into a datetime.date."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date_cls):
        return value
    if isinstance(value, str):
        try:
            return date_cls.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def month_start(value: Any) -> date_cls:
    """
    Normalize a month reference to the first day of that month.

    Accepts a date/datetime, 'YYYY-MM' or 'YYYY-MM-DD'.
    """
    if isinstance(value, str) and len(value.strip()) == 7:
        value = value.strip() + '-01'
    d = parse_iso_date(value)
    if d is None:
        raise ValueError(f"Invalid month: {value!r}")
    return d.replace(day=1)


def next_month(month: date_cls) -> date_cls:
    if month.month == 12:
        return date_cls(month.year + 1, 1, 1)
    return date_cls(month.year, month.month + 1, 1)


def isoformat(value):
    return value.isoformat() if value is not None else None


@contextmanager
def unit_of_work(session, commit=True):
    """
    Run a block as one database transaction.

    With commit=False the block only flushes and leaves commit/rollback to
    whoever owns the surrounding unit.
    """
    try:
        yield session
        if commit:
            session.commit()
        else:
            session.flush()
    except Exception:
        if commit:
            session.rollback()
        raise
