# app/domain/errors.py
from __future__ import annotations


class FilterValidationError(ValueError):
    """Search filters that can't be sent to a provider."""


class ScanLimitExceeded(Exception):
    def __init__(self, max_scans: int, retry_after_minutes: int) -> None:
        self.max_scans = max_scans
        self.retry_after_minutes = retry_after_minutes
        super().__init__(
            f"Scan limit reached: {max_scans} scans per hour. "
            f"Retry in {retry_after_minutes} minutes."
        )


class ProviderError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderRequestError(ProviderError):
    """400: the provider rejected the query."""


class ProviderAuthError(ProviderError):
    """401/403 or missing API key."""


class ProviderQuotaError(ProviderError):
    """429: provider quota exhausted."""
