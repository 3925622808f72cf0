import pytest

from BudgetApp.app.errors import ValidationError
from BudgetApp.app.services.currency import as_number, exchange_rate_or_default, normalize


def test_normalize_multiplies_by_rate():
    assert normalize(100, 1.5) == 150.0
    assert normalize("20", "0.5") == 10.0


def test_normalize_defaults_to_rate_one():
    assert normalize(42.5) == 42.5
    assert normalize(42.5, None) == 42.5


@pytest.mark.parametrize("rate", [0, -1.2])
def test_normalize_rejects_non_positive_rate(rate):
    with pytest.raises(ValidationError):
        normalize(10, rate)


@pytest.mark.parametrize("value", [True, None, "abc", [1]])
def test_as_number_rejects_non_numbers(value):
    with pytest.raises(ValidationError):
        as_number(value, "amount")


def test_exchange_rate_or_default():
    assert exchange_rate_or_default(None) == 1.0
    assert exchange_rate_or_default("") == 1.0
    assert exchange_rate_or_default("1.25") == 1.25
