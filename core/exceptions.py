# core/exceptions.py


class PayoutError(Exception):
    """Base error for the detailer payout pipeline"""
    pass


class TransferError(PayoutError):
    """A Stripe transfer call failed or timed out. Always retryable."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class IneligibleDetailer(PayoutError):
    """Structural problem with the payee; retrying will not fix it."""
    pass
