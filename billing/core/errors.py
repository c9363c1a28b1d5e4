"""
Ledger error taxonomy.

Every error raised by the engine derives from LedgerError so adapters can
catch one type. The API layer maps each class to an HTTP status.
"""


class LedgerError(Exception):
    """Base class for engine errors."""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(LedgerError):
    """Bad input, e.g. a non-positive amount."""
    status_code = 422


class NotFoundError(LedgerError):
    """Unknown transaction, user or pairing."""
    status_code = 404


class AlreadyPaidOrNotFound(LedgerError):
    """
    The transaction is missing or was already paid.

    Benign: callers treat it as success-adjacent (someone else got there
    first), not as an alarm.
    """
    status_code = 409

    def __init__(self, transaction_id: int):
        super().__init__(f"Transaction {transaction_id} not found or already paid")
        self.transaction_id = transaction_id


class AmbiguousError(LedgerError):
    """The resolver cannot uniquely determine the counterparty."""
    status_code = 409


class StorageError(LedgerError):
    """Durable-store failure. Never retried silently by the engine."""
    status_code = 503


class VerificationError(LedgerError):
    """The slip verifier rejected the slip or returned garbage."""
    status_code = 502


class VerificationTimeoutError(VerificationError):
    """The slip verifier did not answer in time. Retryable."""
    status_code = 504
