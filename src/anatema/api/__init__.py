"""anatema.api

Resilient HTTP client for the application's REST API: timeouts, bounded
retry with backoff, and a durable offline queue replayed on reconnect.

    from anatema.api import RobustApiClient

    api = RobustApiClient()
    resp = api.post("/projects", {"name": "Survey 2024"})
    if not resp.success:
        print(resp.error_type, resp.error)
"""

from .client import ApiConfig, ApiResponse, RobustApiClient
from .errors import ApiErrorType
from .offline_queue import OfflineOperation, Priority, RequestOptions

__all__ = [
    "ApiConfig",
    "ApiErrorType",
    "ApiResponse",
    "OfflineOperation",
    "Priority",
    "RequestOptions",
    "RobustApiClient",
]
