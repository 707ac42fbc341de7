"""Exception hierarchy for CMS access, synchronization and local storage."""

from dataclasses import dataclass
from typing import Optional


class CMSError(Exception):
    """Base class for all errors raised by the CMS layer."""


class CMSConfigurationError(CMSError, ValueError):
    """Raised synchronously when a CMS configuration is missing or invalid."""


class CMSRequestError(CMSError):
    """A single HTTP exchange with the CMS failed."""


class CMSTimeoutError(CMSRequestError):
    """Request was cancelled because it exceeded the configured timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request timeout after {int(timeout * 1000)}ms")


class CMSNetworkError(CMSRequestError):
    """Transport-level failure (DNS, refused connection, reset, ...)."""


@dataclass(eq=False)
class CMSHTTPError(CMSRequestError):
    """CMS answered with a non-success status code."""
    status_code: int
    reason: str = ""

    def __post_init__(self):
        super().__init__(self.status_code, self.reason)

    def __str__(self) -> str:
        if self.reason:
            return f"HTTP {self.status_code}: {self.reason}"
        return f"HTTP {self.status_code}"


class CMSFetchError(CMSError):
    """Listing or fetching products failed after all retries."""


class SyncInProgressError(CMSError):
    """A synchronization run is already active in this process."""

    def __init__(self, message: str = "Sync is already in progress"):
        super().__init__(message)


@dataclass(eq=False)
class StoreError(Exception):
    """Failure reported by a local product or sync-status store."""
    message: str
    operation: Optional[str] = None

    def __post_init__(self):
        super().__init__(self.message, self.operation)

    def __str__(self) -> str:
        if self.operation:
            return f"Store {self.operation} failed: {self.message}"
        return self.message
