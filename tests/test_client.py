import concurrent.futures
import json
import threading

import httpx
import pytest

from docindex_client.client import ClientOptions, DocIndexClient
from docindex_client.errors import (
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    DecodeError,
    HttpFailureError,
    NotFoundError,
    PollTimeoutError,
    ServerError,
)
from docindex_client.poller import PollPolicy
from docindex_client.transport import CallContext, HttpResult, HttpTransport, ResponseMeta, current_call_context
from docindex_client.types import TaskHandle, TaskStatus


class DummyTransport:
    """Answers every request through ``responder(spec) -> (status, payload)``."""

    def __init__(self, responder) -> None:
        self.responder = responder
        self.closed = False
        self.specs = []

    def submit(self, spec, *, context=None):
        self.specs.append(spec)
        status, payload = self.responder(spec)
        content = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        future = concurrent.futures.Future()
        future.set_result(
            HttpResult(
                status=status,
                headers=(("content-type", "application/json"),),
                content=content,
                method=spec.method,
                url=spec.target(),
            )
        )
        return future

    def add_interceptor(self, interceptor):
        return self

    def close(self) -> None:
        self.closed = True


def make_client(responder, **kwargs) -> tuple[DocIndexClient, DummyTransport]:
    transport = DummyTransport(responder)
    client = DocIndexClient(server_url="http://localhost:7700", transport=transport, **kwargs)
    return client, transport


def test_execute_decodes_payload() -> None:
    client, transport = make_client(lambda spec: (200, {"results": [{"id": 1}], "total": 1}))
    data = client.execute("GET", "/indexes/movies/documents", lambda r: r.param("limit", "1"), decode_into=dict)
    assert data["total"] == 1
    assert transport.specs[0].target() == "http://localhost:7700/indexes/movies/documents?limit=1"


def test_execute_without_decoder_returns_result() -> None:
    client, _ = make_client(lambda spec: (204, b""))
    result = client.execute("DELETE", "indexes/movies")
    assert isinstance(result, HttpResult)
    assert result.status == 204


def test_empty_body_cannot_be_decoded() -> None:
    client, _ = make_client(lambda spec: (200, b""))
    with pytest.raises(DecodeError):
        client.execute("GET", "/stats", decode_into=dict)


@pytest.mark.parametrize(
    "status,error_type",
    [
        (400, BadRequestError),
        (401, AuthenticationError),
        (403, AuthorizationError),
        (404, NotFoundError),
        (409, HttpFailureError),
        (500, ServerError),
        (503, ServerError),
    ],
)
def test_status_codes_map_to_errors(status, error_type) -> None:
    client, _ = make_client(lambda spec: (status, {"message": "Index `movies` not found.", "code": "index_not_found"}))
    with pytest.raises(error_type) as info:
        client.execute("GET", "/indexes/movies")
    error = info.value
    assert isinstance(error, HttpFailureError)
    assert error.status == status
    assert error.method == "GET"
    assert error.url == "http://localhost:7700/indexes/movies"
    assert str(error).startswith(f"failure with status code: [{status}]")
    assert "Index `movies` not found." in str(error)


def test_execute_safe_captures_errors() -> None:
    client, _ = make_client(lambda spec: (404, {"message": "missing"}))
    result = client.execute_safe("GET", "/indexes/nope", decode_into=dict)
    assert result.ok is False
    assert isinstance(result.error, NotFoundError)


def test_api_key_is_sent_on_borrowed_transport() -> None:
    client, transport = make_client(lambda spec: (200, {"status": "available"}), api_key="masterKey")
    assert client.is_healthy()
    assert transport.specs[0].header("Authorization") == "Bearer masterKey"


def test_no_authorization_without_key() -> None:
    client, transport = make_client(lambda spec: (200, {"status": "available"}))
    client.execute("GET", "/health")
    assert transport.specs[0].header("Authorization") is None


def test_is_healthy_is_false_on_failure() -> None:
    client, _ = make_client(lambda spec: (500, {"message": "down"}))
    assert client.is_healthy() is False


def test_submit_task_returns_handle() -> None:
    payload = {"taskUid": 12, "indexUid": "movies", "status": "enqueued", "type": "documentAdditionOrUpdate"}
    client, transport = make_client(lambda spec: (202, payload))
    handle = client.submit_task("POST", "/indexes/movies/documents", client.json([{"id": 1, "title": "Carol"}]))
    assert handle == TaskHandle(task_uid=12, status=TaskStatus.ENQUEUED, index_uid="movies", type="documentAdditionOrUpdate")
    body = transport.specs[0].body.encode()
    assert body.content == b'[{"id":1,"title":"Carol"}]'
    assert body.content_type == "application/json"


def test_wait_for_task_polls_task_route() -> None:
    statuses = iter(["enqueued", "processing", "succeeded"])

    def responder(spec):
        return 200, {"uid": 12, "status": next(statuses), "indexUid": "movies", "duration": "PT0.1S"}

    client, transport = make_client(responder, poll_policy=PollPolicy(interval=0.001, timeout=5.0))
    record = client.wait_for_task(TaskHandle(task_uid=12, status=TaskStatus.ENQUEUED))
    assert record.is_successful
    assert record.duration == "PT0.1S"
    assert [spec.target() for spec in transport.specs] == ["http://localhost:7700/tasks/12"] * 3
    assert all(0 < spec.timeout <= 5.0 for spec in transport.specs)


def test_get_task_without_timeout_keeps_transport_default() -> None:
    client, transport = make_client(lambda spec: (200, {"uid": 3, "status": "succeeded"}))
    assert client.get_task(3).is_successful
    assert transport.specs[0].timeout is None
    client.get_task(3, timeout=0.5)
    assert transport.specs[1].timeout == 0.5


def test_wait_for_task_times_out() -> None:
    client, _ = make_client(lambda spec: (200, {"uid": 1, "status": "enqueued"}))
    with pytest.raises(PollTimeoutError) as info:
        client.wait_for_task(1, policy=PollPolicy(interval=0.01, timeout=0.05))
    assert info.value.last_status is TaskStatus.ENQUEUED


def test_response_filter_needs_http_transport() -> None:
    with pytest.raises(TypeError):
        make_client(lambda spec: (200, {}), response_filter=lambda meta, body: body)


@pytest.mark.parametrize(
    "options,expected",
    [
        (ClientOptions(), "http://localhost:7700"),
        (ClientOptions(host="search.internal", port=443, ssl=True), "https://search.internal:443"),
        (ClientOptions(server_url="localhost:7700"), "http://localhost:7700"),
        (ClientOptions(server_url="https://search.example.com/"), "https://search.example.com"),
    ],
)
def test_server_url_resolution(options, expected) -> None:
    assert options.resolve_server_url() == expected


def test_end_to_end_over_http_transport() -> None:
    lock = threading.Lock()
    polls = {"count": 0}
    seen_auth = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_auth.append(request.headers.get("authorization"))
        if request.method == "POST" and request.url.path == "/indexes":
            assert json.loads(request.content) == {"uid": "movies"}
            return httpx.Response(202, json={"taskUid": 1, "indexUid": "movies", "status": "enqueued"})
        if request.url.path == "/tasks/1":
            with lock:
                polls["count"] += 1
                status = "succeeded" if polls["count"] >= 3 else "processing"
            return httpx.Response(200, json={"uid": 1, "status": status, "indexUid": "movies"})
        return httpx.Response(404, json={"message": "route not found"})

    captured = []

    def capture(meta: ResponseMeta, body: bytes) -> bytes:
        context = current_call_context()
        if "captured" in context:
            context["captured"].append(meta.status)
        return body

    transport = HttpTransport.create(lambda config: setattr(config, "network", httpx.MockTransport(handler)))
    with transport:
        client = DocIndexClient(
            server_url="http://testserver",
            api_key="secret",
            transport=transport,
            response_filter=capture,
            poll_policy=PollPolicy(interval=0.001, timeout=5.0),
        )
        handle = client.submit_task("POST", "/indexes", client.json({"uid": "movies"}))
        record = client.wait_for_task(handle)
        context = CallContext(captured=captured)
        with pytest.raises(NotFoundError):
            client.execute("GET", "/nowhere", context=context)
    assert record.status is TaskStatus.SUCCEEDED
    assert polls["count"] == 3
    assert set(seen_auth) == {"Bearer secret"}
    assert captured == [404]
    assert transport.closed
