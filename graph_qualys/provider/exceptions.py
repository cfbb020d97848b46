"""Exception hierarchy for the Qualys API client."""

from __future__ import annotations


class QualysError(Exception):
    """Base exception for all Qualys API errors."""

    def __init__(self, endpoint: str, status: int | None, status_text: str) -> None:
        self.endpoint = endpoint
        self.status = status
        self.status_text = status_text
        super().__init__(f"API request error for {endpoint}: {status} {status_text}")


class QualysAPIError(QualysError):
    """Raised on non-throttle responses with status >= 400."""


class QualysAuthenticationError(QualysError):
    """Raised on 401 or 403 responses, or when credential verification fails."""


class QualysRateLimitError(QualysAPIError):
    """Raised when throttle responses persist past the retry ceiling."""

    def __init__(
        self,
        endpoint: str,
        status: int | None,
        status_text: str,
        attempts: int = 0,
    ) -> None:
        super().__init__(endpoint, status, status_text)
        self.attempts = attempts


class QualysResponseError(QualysAPIError):
    """Raised when a ``ServiceResponse`` carries a non-SUCCESS ``responseCode``."""


# Maps HTTP status codes to exception classes.
_STATUS_MAP: dict[int, type[QualysError]] = {
    401: QualysAuthenticationError,
    403: QualysAuthenticationError,
}


def build_exception(endpoint: str, status: int, status_text: str) -> QualysError:
    """Construct the appropriate exception for *status*."""
    exc_cls = _STATUS_MAP.get(status, QualysAPIError)
    return exc_cls(endpoint, status, status_text)
