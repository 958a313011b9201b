"""Custom TTS exceptions.

Synthesis failures fall into three families that callers must tell apart:

- rate limited (``TTSRateLimitError``): retry after the vendor's hint
- transient (``TTSAPIError``): network trouble, timeouts, 5xx responses
- permanent (``TTSAuthError``, ``TTSInputError``): never retried
"""

from typing import ClassVar

DEFAULT_RETRY_AFTER = 30.0


class TTSError(Exception):
    """Base exception for TTS-related errors."""

    retryable: ClassVar[bool] = False

    def __init__(
        self, message: str, original_error: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class TTSAuthError(TTSError):
    """Exception raised for authentication failures.

    This typically occurs when:
    - API key is missing or invalid
    - Account has insufficient credits
    - API key permissions are insufficient
    """

    pass


class TTSInputError(TTSError, ValueError):
    """Exception raised when the request itself is unusable.

    This typically occurs when:
    - Text is empty after cleanup
    - Voice identifier is unknown to the vendor
    - Vendor rejects the request body (4xx other than 401/403/429)
    """

    pass


class TTSAPIError(TTSError):
    """Exception raised for transient API communication errors.

    This typically occurs when:
    - API server is unavailable (5xx errors)
    - Request times out
    - Network connectivity issues
    - Vendor returns an empty or truncated payload
    """

    retryable: ClassVar[bool] = True

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.status_code = status_code


class TTSRateLimitError(TTSAPIError):
    """Exception raised when the vendor answers 429.

    Attributes:
        retry_after: Seconds the vendor asked us to wait before retrying
    """

    def __init__(
        self,
        message: str,
        retry_after: float = DEFAULT_RETRY_AFTER,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, 429, original_error)
        self.retry_after = retry_after


def parse_retry_after(value: str | None, default: float = DEFAULT_RETRY_AFTER) -> float:
    """Parse a Retry-After header value in seconds.

    HTTP-date forms are not used by speech vendors, so anything that is
    not a non-negative number falls back to ``default``.
    """
    if value is None:
        return default
    try:
        seconds = float(value.strip())
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


def error_for_status(
    status_code: int,
    detail: str,
    retry_after: str | None = None,
    original_error: Exception | None = None,
) -> TTSError:
    """Map an HTTP status from a speech vendor onto the error taxonomy."""
    if status_code == 429:
        return TTSRateLimitError(
            f"Rate limit exceeded: {detail}",
            parse_retry_after(retry_after),
            original_error,
        )
    if status_code in (401, 403):
        return TTSAuthError(f"Authentication failed: {detail}", original_error)
    if 400 <= status_code < 500:
        return TTSInputError(
            f"Request rejected ({status_code}): {detail}", original_error
        )
    if status_code >= 500:
        return TTSAPIError(f"Server error: {detail}", status_code, original_error)
    return TTSAPIError(f"API call failed: {detail}", status_code, original_error)
