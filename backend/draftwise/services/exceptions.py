"""
Error taxonomy for external capabilities and the credit ledger.

Misses (no usable data) are never raised; they come back as NOT_FOUND / TIMED_OUT
values. Everything here is either transient (a retry policy may try again),
fatal (never retried) or a ledger condition.
"""
from typing import Optional


class ExternalServiceError(Exception):
    """Base class for failures of a third-party capability"""

    def __init__(self, message: str, status_code: Optional[int] = None, service: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.service = service


class TransientServiceError(ExternalServiceError):
    """Retryable by caller policy"""


class FatalServiceError(ExternalServiceError):
    """Never retried"""


class RateLimitedError(TransientServiceError):
    pass


class ServiceUnavailableError(TransientServiceError):
    pass


class FetchTimeoutError(TransientServiceError):
    pass


class UnreachableError(TransientServiceError):
    pass


class UnauthorizedError(FatalServiceError):
    pass


class BadRequestError(FatalServiceError):
    pass


class ForbiddenError(FatalServiceError):
    pass


class LedgerError(Exception):
    """Base class for credit ledger failures"""


class AccountNotFoundError(LedgerError):
    def __init__(self, account_id):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class InsufficientCreditsError(LedgerError):
    def __init__(self, available: int, required: int, operation: str = ""):
        super().__init__(f"Insufficient credits: {available} available, {required} required")
        self.available = available
        self.required = required
        self.operation = operation


class ConcurrentAdjustmentError(LedgerError):
    """The balance moved between reading it and writing the adjusted value"""

    def __init__(self, account_id):
        super().__init__(f"Balance of account {account_id} changed during adjustment, retry")
        self.account_id = account_id


class OperationTimedOutError(Exception):
    """A bounded remote task did not finish inside its budget"""

    def __init__(self, message: str, attempts_used: int = 0, elapsed_ms: int = 0):
        super().__init__(message)
        self.attempts_used = attempts_used
        self.elapsed_ms = elapsed_ms


def error_for_status(status_code: int, message: str, service: str = "") -> ExternalServiceError:
    """Map an HTTP status from a third-party API onto the error taxonomy"""
    if status_code in (401, 403):
        return UnauthorizedError(message, status_code=status_code, service=service)
    if status_code == 429:
        return RateLimitedError(message, status_code=status_code, service=service)
    if 400 <= status_code < 500:
        return BadRequestError(message, status_code=status_code, service=service)
    return ServiceUnavailableError(message, status_code=status_code, service=service)


class ResourceNotFoundError(LookupError):
    """A resource the caller referenced does not exist or is not theirs"""

    def __init__(self, kind: str, resource_id):
        super().__init__(f"{kind} {resource_id} not found")
        self.kind = kind
        self.resource_id = resource_id
