# BudgetApp/app/services/currency.py

from numbers import Real

from BudgetApp.app.errors import ValidationError


def as_number(value, field):
    if isinstance(value, bool) or not isinstance(value, (Real, str)):
        raise ValidationError(f"'{field}' must be a number, got {value!r}")
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"'{field}' must be a number, got {value!r}")


def normalize(amount, exchange_rate=1):
    """
    Convert an entered amount to the base currency.

    The rate is supplied by the caller and stored on the line with the result,
    so a later change in market rates never moves historical figures.
    """
    amount = as_number(amount, "amount")
    if exchange_rate is None:
        exchange_rate = 1
    rate = as_number(exchange_rate, "exchange_rate")
    if rate <= 0:
        raise ValidationError(f"Exchange rate must be positive, got {exchange_rate!r}")
    return amount * rate


def exchange_rate_or_default(value):
    if value in (None, ""):
        return 1.0
    return as_number(value, "exchange_rate")
