from typing import Optional


class SecretsScannerError(Exception):
    """Base class for all errors raised by the scanner"""


class ConfigurationError(SecretsScannerError):
    pass


class InvalidRepositoryError(SecretsScannerError, ValueError):
    pass


class InvalidScanIdError(SecretsScannerError, ValueError):
    pass


class ScanAlreadyRunningError(SecretsScannerError):
    def __init__(self, scan_id: str):
        super().__init__(f"Scan already in progress: {scan_id}")
        self.scan_id = scan_id


class ScanNotFoundError(SecretsScannerError):
    def __init__(self, scan_id: str):
        super().__init__(f"Scan not found: {scan_id}")
        self.scan_id = scan_id


class StoreNotInitializedError(SecretsScannerError):
    pass


class HostApiError(SecretsScannerError):
    """A hosting API call failed for a reason other than rate limiting"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimitError(HostApiError):
    """The hosting API refused a call because the request quota is exhausted"""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        status: Optional[int] = None,
        reset: Optional[int] = None,
    ):
        super().__init__(message, status)
        self.reset = reset
