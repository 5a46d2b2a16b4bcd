from __future__ import annotations

from dataclasses import dataclass

import httpx

from anatema import config
from anatema.storage import StorageQuotaError

from .errors import ApiErrorType

RETRYABLE_ERRORS = frozenset(
    {
        ApiErrorType.NETWORK_ERROR,
        ApiErrorType.TIMEOUT_ERROR,
        ApiErrorType.SERVER_ERROR,
    }
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff settings for REST calls.

    The wait before retry ``n`` is ``min(base_delay_s * 2 ** (n - 1), max_delay_s)``.
    """

    max_retries: int = config.API_RETRY_ATTEMPTS
    base_delay_s: float = config.API_BACKOFF_BASE_S
    max_delay_s: float = config.API_BACKOFF_MAX_S

    def __post_init__(self) -> None:
        # Clamp instead of raising to keep retry helpers low-friction.
        if self.max_retries < 1:
            object.__setattr__(self, "max_retries", 1)

        if self.base_delay_s < 0:
            object.__setattr__(self, "base_delay_s", 0.0)

        if self.max_delay_s < self.base_delay_s:
            object.__setattr__(self, "max_delay_s", float(self.base_delay_s))

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay_s * (2 ** (attempt - 1)), self.max_delay_s)


def is_retryable(error_type: ApiErrorType | None) -> bool:
    return error_type in RETRYABLE_ERRORS


def classify_status(status: int) -> ApiErrorType:
    """Error type for a non-2xx HTTP status.

    Only 5xx is worth retrying; client errors are terminal.
    """

    if status >= 500:
        return ApiErrorType.SERVER_ERROR
    if status == 0:
        return ApiErrorType.NETWORK_ERROR
    return ApiErrorType.UNKNOWN_ERROR


def classify_exception(error: Exception) -> tuple[ApiErrorType, str]:
    """Map a transport-level exception to an error type and a short message."""

    if isinstance(error, httpx.TimeoutException):
        return ApiErrorType.TIMEOUT_ERROR, "Request timeout"

    if "cors" in str(error).lower():
        return ApiErrorType.CORS_ERROR, "CORS policy error"

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ApiErrorType.NETWORK_ERROR, "Network connection error"

    if isinstance(error, StorageQuotaError):
        return ApiErrorType.QUOTA_ERROR, "Storage quota exceeded"

    return ApiErrorType.UNKNOWN_ERROR, str(error) or "Unknown error occurred"
