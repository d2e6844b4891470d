"""
Exception classes for the SEO report service.

All exceptions inherit from SEOReportError and carry a code, a message and
optional details. Only ConfigMissingError and RequestValidationError ever
reach the HTTP layer; UpstreamError and TrackingError are contained where
they occur.
"""

from typing import Optional


class SEOReportError(Exception):
    """Base exception for all report service errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigMissingError(SEOReportError):
    """Raised when upstream credentials are not configured."""

    def __init__(self, message: str = "DataForSEO credentials not configured") -> None:
        super().__init__("config_missing", message)


class RequestValidationError(SEOReportError):
    """Raised when a request body cannot be turned into a ReportRequest."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__("validation_error", message, details)


class UpstreamError(SEOReportError):
    """Raised inside the upstream client for a failed call; never leaves it."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, retryable: bool = False
    ) -> None:
        super().__init__("upstream_error", message, {"status_code": status_code})
        self.status_code = status_code
        self.retryable = retryable


class TrackingError(SEOReportError):
    """Raised when a usage event cannot be forwarded."""

    def __init__(self, message: str) -> None:
        super().__init__("tracking_failure", message)
