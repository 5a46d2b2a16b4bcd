import json
import threading

import httpx
import pytest


class Server:
    """Scripted httpx handler. Each reply is a Response, an exception, or a callable."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests), len(self.replies)) - 1
        reply = self.replies[idx]
        if callable(reply) and not isinstance(reply, httpx.Response):
            reply = reply(request)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _client(server, store, *, online=True, retry_attempts=3):
    from anatema.api.client import ApiConfig, RobustApiClient

    cfg = ApiConfig("http://api.test", "development", timeout_s=2.0, retry_attempts=retry_attempts)
    return RobustApiClient(cfg, store=store, transport=httpx.MockTransport(server), online=online)


def test_get_decodes_json(store, sleeps):
    server = Server(httpx.Response(200, json={"projects": [1, 2]}))
    with _client(server, store) as api:
        resp = api.get("/api/projects")

    assert resp.success is True
    assert resp.data == {"projects": [1, 2]}
    assert resp.status == 200
    assert str(server.requests[0].url) == "http://api.test/api/projects"
    assert server.requests[0].headers["content-type"] == "application/json"
    assert sleeps == []


def test_non_json_body_is_returned_as_text(store, sleeps):
    server = Server(httpx.Response(200, text="pong", headers={"content-type": "text/plain"}))
    resp = _client(server, store).get("/ping")
    assert resp.data == "pong"


def test_post_serialises_body(store, sleeps):
    server = Server(httpx.Response(201, json={"id": 7}))
    resp = _client(server, store).post("/api/labels", {"name": "Theme"})
    req = server.requests[0]
    assert req.method == "POST"
    assert json.loads(req.content) == {"name": "Theme"}
    assert resp.success is True
    assert resp.data == {"id": 7}


def test_server_errors_are_retried_with_backoff(store, sleeps):
    from anatema.api.errors import ApiErrorType

    server = Server(httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"ok": True}))
    resp = _client(server, store).get("/api/projects")

    assert resp.success is True
    assert len(server.requests) == 3
    assert sleeps == [1.0, 2.0]

    server = Server(httpx.Response(500))
    resp = _client(server, store).get("/api/projects")
    assert resp.success is False
    assert resp.error_type is ApiErrorType.SERVER_ERROR
    assert resp.error.startswith("HTTP 500")
    assert resp.status == 500
    assert len(server.requests) == 3


def test_client_errors_are_not_retried(store, sleeps):
    from anatema.api.errors import ApiErrorType

    server = Server(httpx.Response(404))
    resp = _client(server, store).get("/api/missing")

    assert resp.success is False
    assert resp.status == 404
    assert resp.error == "HTTP 404: Not Found"
    assert resp.error_type is ApiErrorType.UNKNOWN_ERROR
    assert len(server.requests) == 1
    assert sleeps == []


def test_timeout_is_classified_and_retried(store, sleeps):
    from anatema.api.errors import ApiErrorType

    server = Server(httpx.ReadTimeout("too slow"))
    resp = _client(server, store, retry_attempts=2).get("/api/slow")

    assert resp.error_type is ApiErrorType.TIMEOUT_ERROR
    assert resp.error == "Request timeout"
    assert len(server.requests) == 2
    assert sleeps == [1.0]


def test_skip_retry_and_per_request_retries(store, sleeps):
    from anatema.api.offline_queue import RequestOptions

    server = Server(httpx.ConnectError("refused"))
    api = _client(server, store)
    api.get("/a", RequestOptions(skip_retry=True))
    assert len(server.requests) == 1

    api.get("/b", RequestOptions(retries=5))
    assert len(server.requests) == 6
    assert sleeps == [1.0, 2.0, 4.0, 8.0]


def test_offline_requests_are_queued_and_replayed(store, sleeps):
    from anatema.api.client import QUEUED_MESSAGE
    from anatema.api.errors import ApiErrorType

    server = Server(httpx.Response(200, json={}))
    api = _client(server, store, online=False)

    resp = api.post("/api/labels", {"name": "A"})
    assert resp.success is False
    assert resp.error == QUEUED_MESSAGE
    assert resp.error_type is ApiErrorType.NETWORK_ERROR
    assert resp.message == "1 operations pending"
    api.get("/api/projects")
    api.post("/api/auth/refresh")
    assert api.pending_operations == 3
    assert server.requests == []

    api.set_online(True)

    assert api.pending_operations == 0
    assert [r.url.path for r in server.requests] == [
        "/api/auth/refresh",
        "/api/labels",
        "/api/projects",
    ]
    assert json.loads(server.requests[1].content) == {"name": "A"}
    assert store.get_json("offline-api-queue") == []


def test_offline_queue_can_be_bypassed(store, sleeps):
    from anatema.api.offline_queue import RequestOptions

    server = Server(httpx.Response(200, json={}))
    api = _client(server, store, online=False)
    resp = api.get("/api/live", RequestOptions(enable_offline_queue=False))
    assert resp.success is True
    assert api.pending_operations == 0


def test_queue_survives_restart(store, sleeps):
    server = Server(httpx.Response(200, json={}))
    first = _client(server, store, online=False)
    first.put("/api/labels/1", {"name": "B"})
    first.close()

    second = _client(server, store, online=False)
    assert second.pending_operations == 1
    second.set_online(True)
    assert second.pending_operations == 0
    assert server.requests[0].method == "PUT"


def test_failing_operation_is_dropped_after_three_replays(store, sleeps):
    server = Server(httpx.Response(500))
    api = _client(server, store, online=False)
    api.post("/api/labels", {"name": "A"})

    api.set_online(True)
    assert api.pending_operations == 1
    assert api.offline_queue.snapshot()[0].attempts == 1
    assert store.get_json("offline-api-queue")[0]["attempts"] == 1

    assert api.process_offline_queue() == 0
    assert api.process_offline_queue() == 1
    assert api.pending_operations == 0
    # One send per replay, no retry loop
    assert len(server.requests) == 3
    assert sleeps == []


def test_concurrent_drain_is_a_no_op(store, sleeps):
    entered = threading.Event()
    release = threading.Event()

    def slow(request):
        entered.set()
        release.wait(5)
        return httpx.Response(200, json={})

    server = Server(slow)
    api = _client(server, store, online=False)
    api.post("/api/a", {})
    api.post("/api/b", {})
    api._online = True

    results = []
    worker = threading.Thread(target=lambda: results.append(api.process_offline_queue()))
    worker.start()
    assert entered.wait(5)

    assert api.process_offline_queue() == 0

    release.set()
    worker.join(5)
    assert results == [2]
    assert len(server.requests) == 2


def test_check_connectivity_toggles_state(store, sleeps):
    server = Server(httpx.ConnectError("down"), httpx.Response(200, json={"status": "ok"}))
    api = _client(server, store)

    assert api.check_connectivity() is False
    assert api.is_healthy is False
    api.post("/api/labels", {"name": "A"})
    assert api.pending_operations == 1

    assert api.check_connectivity() is True
    assert api.is_healthy is True
    assert api.pending_operations == 0
    assert server.requests[0].url.path == "/api/health"


def test_clear_offline_queue(store, sleeps):
    api = _client(Server(httpx.Response(200)), store, online=False)
    api.get("/api/a")
    api.clear_offline_queue()
    assert api.pending_operations == 0
    assert store.get_json("offline-api-queue") == []


def test_update_config_rebuilds_http_client(store, sleeps):
    server = Server(httpx.Response(200, json={}))
    api = _client(server, store)
    api.update_config(base_url="http://other.test")
    api.get("/x")
    assert api.base_url == "http://other.test"
    assert server.requests[0].url.host == "other.test"


def test_presets_and_unknown_environment(monkeypatch):
    from anatema import config
    from anatema.api.client import ApiConfig
    from anatema.api.errors import ApiError

    assert ApiConfig.preset("production").base_url.startswith("https://")
    assert ApiConfig.preset("staging").retry_attempts == 2
    with pytest.raises(ApiError):
        ApiConfig.preset("qa")

    monkeypatch.setattr(config, "API_BASE_URL", "http://explicit.test")
    assert ApiConfig.from_env().base_url == "http://explicit.test"


def test_each_replay_is_persisted_before_the_next(store, sleeps):
    seen: list[list[tuple[str, int]]] = []

    def record(request):
        saved = store.get_json("offline-api-queue")
        seen.append([(item["endpoint"], item["attempts"]) for item in saved])
        return httpx.Response(200, json={})

    api = _client(Server(record), store, online=False)
    api.post("/api/labels", {"name": "A"})
    api.post("/api/auth/refresh")

    api.set_online(True)

    # The attempt is saved before sending; a finished operation is gone
    # from storage before the next one goes out.
    assert seen == [
        [("/api/labels", 0), ("/api/auth/refresh", 1)],
        [("/api/labels", 1)],
    ]
    assert store.get_json("offline-api-queue") == []


def test_storage_failures_do_not_escape_client_methods(store, sleeps, monkeypatch):
    from anatema.api.client import QUEUED_MESSAGE
    from anatema.storage import StorageError

    def broken(key, value):
        raise StorageError("disk unavailable")

    server = Server(httpx.Response(200, json={}))
    api = _client(server, store, online=False)
    monkeypatch.setattr(store, "set_json", broken)

    resp = api.post("/api/labels", {"name": "A"})
    assert resp.error == QUEUED_MESSAGE

    api.set_online(True)
    assert api.pending_operations == 0
    assert len(server.requests) == 1
    api.clear_offline_queue()


def test_full_store_reports_quota_error(tmp_path, sleeps):
    from anatema.api.errors import ApiErrorType
    from anatema.storage import FileStore

    api = _client(Server(httpx.Response(200)), FileStore(tmp_path / "full", quota_bytes=50), online=False)

    resp = api.post("/api/labels", {"name": "A"})

    assert resp.success is False
    assert resp.error_type is ApiErrorType.QUOTA_ERROR
    assert api.pending_operations == 0
