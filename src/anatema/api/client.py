from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Generic, Optional, TypeVar

import httpx

from anatema import config
from anatema import logger as logger_mod
from anatema.storage import FileStore, StorageQuotaError

from ._retry import RetryPolicy, classify_exception, classify_status, is_retryable
from .errors import ApiError, ApiErrorType
from .offline_queue import OfflineQueue, RequestOptions

log = logger_mod.get_logger()

T = TypeVar("T")

QUEUED_MESSAGE = "Request queued for when online"


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    environment: str = "development"
    timeout_s: float = 10.0
    retry_attempts: int = 3

    @classmethod
    def preset(cls, environment: str) -> "ApiConfig":
        try:
            return API_PRESETS[environment]
        except KeyError as e:
            raise ApiError(f"Unknown API environment: {environment}") from e

    @classmethod
    def from_env(cls) -> "ApiConfig":
        """Explicit ``API_BASE_URL`` wins; otherwise use the environment preset."""

        if config.API_BASE_URL:
            return cls(
                base_url=config.API_BASE_URL,
                environment=config.API_ENVIRONMENT,
                timeout_s=config.API_TIMEOUT_S,
                retry_attempts=config.API_RETRY_ATTEMPTS,
            )
        return cls.preset(config.API_ENVIRONMENT)


API_PRESETS = {
    "development": ApiConfig("http://localhost:3001", "development", 10.0, 3),
    "production": ApiConfig("https://api.anatema.ai4educ.org", "production", 15.0, 3),
    "staging": ApiConfig("/api", "staging", 10.0, 2),
}


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[ApiErrorType] = None
    status: Optional[int] = None
    message: Optional[str] = None


class RobustApiClient:
    """HTTP client for the application's REST API.

    Adds a per-request timeout, bounded retry with exponential backoff for
    transient failures, and a durable offline queue: while offline, requests
    are stored and replayed once connectivity returns. Methods return an
    :class:`ApiResponse` and do not raise for HTTP or transport failures.

    Replayed operations are fire-and-forget: the caller already got
    the "queued" response and is not told how the replay went.
    """

    def __init__(
        self,
        api_config: ApiConfig | None = None,
        *,
        store: FileStore | None = None,
        transport: httpx.BaseTransport | None = None,
        online: bool = True,
    ):
        self._config = api_config or ApiConfig.from_env()
        self._transport = transport
        self._http = self._build_http()
        self._queue = OfflineQueue(store or FileStore.from_env())
        self._online = online
        self._drain_lock = threading.Lock()
        self._draining = False

    def _build_http(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._config.base_url,
            timeout=self._config.timeout_s,
            transport=self._transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "RobustApiClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def is_healthy(self) -> bool:
        return self._online

    @property
    def pending_operations(self) -> int:
        return len(self._queue)

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def environment(self) -> str:
        return self._config.environment

    @property
    def offline_queue(self) -> OfflineQueue:
        return self._queue

    def update_config(self, **changes: Any) -> None:
        self._config = replace(self._config, **changes)
        self._http.close()
        self._http = self._build_http()
        log.info(f"API configuration updated: {self._config}")

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Record connectivity; going back online replays the offline queue."""

        was_online = self._online
        self._online = online
        if online and not was_online:
            log.info("Network back online, processing offline queue")
            self.process_offline_queue()
        elif not online and was_online:
            log.warning("⚠️ Network offline, requests will be queued")

    def check_connectivity(self, path: str = config.HEALTH_ENDPOINT) -> bool:
        """Probe the health endpoint and update the online state from it."""

        try:
            resp = self._http.get(path, timeout=config.HEALTH_TIMEOUT_S)
            reachable = resp.is_success
        except httpx.HTTPError as e:
            log.warning(f"⚠️ Server not reachable: {e}")
            reachable = False
        self.set_online(reachable)
        return reachable

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(self, endpoint: str, options: RequestOptions | None = None) -> ApiResponse[Any]:
        options = options or RequestOptions()

        if not self._online and options.enable_offline_queue:
            try:
                self._queue.enqueue(endpoint, options)
            except StorageQuotaError as e:
                error_type, message = classify_exception(e)
                return ApiResponse(success=False, error=message, error_type=error_type)
            return ApiResponse(
                success=False,
                error=QUEUED_MESSAGE,
                error_type=ApiErrorType.NETWORK_ERROR,
                message=f"{len(self._queue)} operations pending",
            )

        retries = 1 if options.skip_retry else (options.retries or self._config.retry_attempts)
        policy = RetryPolicy(max_retries=retries)
        timeout = options.timeout_s or self._config.timeout_s

        result: ApiResponse[Any] = ApiResponse(
            success=False, error="Max retries exceeded", error_type=ApiErrorType.UNKNOWN_ERROR
        )
        for attempt in range(1, policy.max_retries + 1):
            log.debug(f"Attempt {attempt}/{policy.max_retries} for {endpoint}")
            result = self._send(endpoint, options, timeout)
            if result.success:
                return result

            if attempt == policy.max_retries or not is_retryable(result.error_type):
                log.error(
                    f"❌ {options.method} {endpoint} failed "
                    f"(attempt {attempt}/{policy.max_retries}): {result.error}"
                )
                return result

            delay = policy.delay_for(attempt)
            log.warning(
                f"⚠️ Retryable error for {endpoint} ({result.error_type.value}); "
                f"retrying in {delay:.1f}s (attempt {attempt})"
            )
            time.sleep(delay)

        return result

    def _send(self, endpoint: str, options: RequestOptions, timeout: float) -> ApiResponse[Any]:
        try:
            resp = self._http.request(
                options.method.upper(),
                endpoint,
                headers=options.headers or None,
                content=options.body,
                timeout=timeout,
            )
        except Exception as e:  # noqa: BLE001
            error_type, message = classify_exception(e)
            log.debug(f"Request to {endpoint} failed: {e}")
            return ApiResponse(success=False, error=message, error_type=error_type)

        if not resp.is_success:
            return ApiResponse(
                success=False,
                error=f"HTTP {resp.status_code}: {resp.reason_phrase}",
                error_type=classify_status(resp.status_code),
                status=resp.status_code,
            )

        if "application/json" in resp.headers.get("content-type", ""):
            try:
                data: Any = resp.json()
            except json.JSONDecodeError:
                data = resp.text
        else:
            data = resp.text
        return ApiResponse(success=True, data=data, status=resp.status_code)

    @staticmethod
    def _with_body(method: str, data: Any, options: RequestOptions | None) -> RequestOptions:
        options = options or RequestOptions()
        body = json.dumps(data) if data is not None else None
        return replace(options, method=method, body=body)

    def get(self, endpoint: str, options: RequestOptions | None = None) -> ApiResponse[Any]:
        return self.request(endpoint, replace(options or RequestOptions(), method="GET"))

    def post(
        self, endpoint: str, data: Any = None, options: RequestOptions | None = None
    ) -> ApiResponse[Any]:
        return self.request(endpoint, self._with_body("POST", data, options))

    def put(
        self, endpoint: str, data: Any = None, options: RequestOptions | None = None
    ) -> ApiResponse[Any]:
        return self.request(endpoint, self._with_body("PUT", data, options))

    def delete(self, endpoint: str, options: RequestOptions | None = None) -> ApiResponse[Any]:
        return self.request(endpoint, replace(options or RequestOptions(), method="DELETE"))

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    def process_offline_queue(self) -> int:
        """Replay queued operations once each, highest priority and oldest first.

        Returns the number of operations removed from the queue (sent or
        given up on). A call made while another drain is running returns 0.
        """

        if not self._online or len(self._queue) == 0:
            return 0

        with self._drain_lock:
            if self._draining:
                log.debug("Offline queue already being processed")
                return 0
            self._draining = True

        try:
            ops = self._queue.ordered()
            log.info(f"Processing {len(ops)} offline operations")
            done: set[str] = set()
            for op in ops:
                # Count the attempt before sending so a crash cannot reset it.
                op.attempts += 1
                self._queue.save()
                result = self._send(
                    op.endpoint,
                    replace(op.options, skip_retry=True),
                    op.options.timeout_s or self._config.timeout_s,
                )
                if result.success:
                    log.info(f"✅ Replayed offline operation: {op.options.method} {op.endpoint}")
                elif op.attempts >= config.OFFLINE_MAX_REPLAYS:
                    log.warning(
                        f"⚠️ Giving up on offline operation after {op.attempts} attempts: "
                        f"{op.options.method} {op.endpoint}"
                    )
                else:
                    continue
                done.add(op.id)
                self._queue.remove({op.id})

            log.info(f"Processed {len(done)} offline operations, {len(self._queue)} remaining")
            return len(done)
        finally:
            with self._drain_lock:
                self._draining = False

    def clear_offline_queue(self) -> None:
        self._queue.clear()
        log.info("Offline queue cleared")
