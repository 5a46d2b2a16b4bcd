from enum import Enum


class ApiErrorType(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    CORS_ERROR = "CORS_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    QUOTA_ERROR = "QUOTA_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ApiError(RuntimeError):
    """Base error for anatema.api."""
