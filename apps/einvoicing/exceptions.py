"""
Error taxonomy for electronic-document processing.

Enqueue-time failures (configuration, quota, numbering range) are caught at
the ``enqueue`` boundary and never block the business flow. Submission
failures are retried by the worker. Persistence failures reach the caller.
"""

from __future__ import annotations


class EInvoicingError(Exception):
    """Base class for e-invoicing errors."""


class ConfigurationError(EInvoicingError):
    """Provider not enabled, credentials missing, or no resolution/prefix configured."""


class QuotaExceededError(EInvoicingError):
    """Tenant has no document allowance left this period."""

    def __init__(self, tenant_id: str, used: int, limit: int, reason: str = "quota_exceeded"):
        self.tenant_id = tenant_id
        self.used = used
        self.limit = limit
        self.reason = reason
        super().__init__(f"Document quota exceeded for tenant {tenant_id}: {used}/{limit} ({reason})")


class RangeExceeded(EInvoicingError):
    """The resolution's authorized numbering range is exhausted."""

    def __init__(self, resolution_number: str, prefix: str, range_end: int):
        self.resolution_number = resolution_number
        self.prefix = prefix
        self.range_end = range_end
        super().__init__(
            f"Numbering range exhausted for resolution {resolution_number} prefix {prefix!r} "
            f"(authorized up to {range_end})"
        )


class PayloadBuildError(EInvoicingError):
    """Domain records are missing or inconsistent; the document cannot be built."""


class SubmissionError(EInvoicingError):
    """Provider call failed (network, timeout, validation)."""


class ProviderAuthenticationError(SubmissionError):
    """Login to the provider failed or credentials are invalid."""


class ProviderNetworkError(SubmissionError):
    """Connection failure or timeout talking to the provider. Always transient."""


class PersistenceError(EInvoicingError):
    """A state transition could not be written."""
