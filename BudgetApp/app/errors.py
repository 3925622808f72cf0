"""Error taxonomy shared by the ledger, the envelopes and sync."""


class BudgetError(Exception):
    pass


class ValidationError(BudgetError, ValueError):
    """Malformed input or a broken reference (unknown account, category...)."""


class NotFoundError(BudgetError, LookupError):
    pass


class InsufficientFundsError(BudgetError):

    def __init__(self, message, available=None):
        super().__init__(message)
        self.available = available


class ConcurrencyConflict(BudgetError):
    """A pushed row was edited against a server version that has since moved on."""

    def __init__(self, message, server_data=None):
        super().__init__(message)
        self.server_data = server_data


class ReconciliationWarning(UserWarning):
    """A spent_amount reversal would have gone below zero and was clamped."""
