"""
Exceptions raised by the catalog crawler.

Transport, extraction and persist failures are recorded in the ledger by the
task that hit them. A LedgerError is the only failure that travels upwards.
"""

from typing import Optional

from .types import CrawlErrorType


class CrawlError(Exception):
    """Base exception for crawling errors"""

    def __init__(
        self,
        message: str,
        error_type: CrawlErrorType = CrawlErrorType.UNKNOWN,
        original_error: Optional[Exception] = None,
    ):
        self.error_type = error_type
        self.original_error = original_error
        super().__init__(message)


class TransportError(CrawlError):
    """A fetch could not complete"""

    def __init__(
        self,
        message: str,
        url: str,
        error_type: CrawlErrorType = CrawlErrorType.NETWORK,
        original_error: Optional[Exception] = None,
    ):
        self.url = url
        super().__init__(message, error_type, original_error)


class NetworkError(TransportError):
    """Connection-level failure"""

    def __init__(self, url: str, original_error: Optional[Exception] = None):
        super().__init__(f"Network error fetching {url}: {original_error}", url, CrawlErrorType.NETWORK, original_error)


class FetchTimeoutError(TransportError):
    """The transport gave up waiting for a response"""

    def __init__(self, url: str, timeout: Optional[float] = None, original_error: Optional[Exception] = None):
        self.timeout = timeout
        super().__init__(f"Timed out fetching {url} after {timeout}s", url, CrawlErrorType.TIMEOUT, original_error)


class HTTPStatusError(TransportError):
    """The server answered with an error status"""

    def __init__(self, url: str, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code} error for {url}", url, CrawlErrorType.HTTP_STATUS)


class ExtractionError(CrawlError):
    """A page did not have the expected structure"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, CrawlErrorType.EXTRACTION, original_error)


class PersistError(CrawlError):
    """The record store rejected a finished record"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, CrawlErrorType.PERSIST, original_error)


class LedgerError(CrawlError):
    """The ledger itself could not be read or written"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, CrawlErrorType.LEDGER, original_error)


class EntryNotFoundError(LedgerError):
    """A mutation referenced an id the ledger does not hold"""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry {entry_id} not found")
