from docindex_client.auth import ApiKeyAuth
from docindex_client.transport import build_request
from docindex_client.transport.request import run_interceptors


def test_add_http_headers_sets_bearer_token() -> None:
    auth = ApiKeyAuth("masterKey")
    headers = auth.add_http_headers({"X-Trace": "1"})
    assert headers == {"X-Trace": "1", "Authorization": "Bearer masterKey"}


def test_add_http_headers_without_key_is_passthrough() -> None:
    auth = ApiKeyAuth(None)
    assert not auth.has_credentials
    assert auth.add_http_headers({"X-Trace": "1"}) == {"X-Trace": "1"}


def test_interceptor_adds_authorization() -> None:
    spec = run_interceptors(build_request("GET", "http://localhost:7700/keys"), [ApiKeyAuth("abc")])
    assert spec.header_values("authorization") == ["Bearer abc"]


def test_interceptor_keeps_explicit_authorization() -> None:
    spec = build_request("GET", "http://localhost:7700/keys", lambda r: r.header("Authorization", "Bearer tenant"))
    prepared = run_interceptors(spec, [ApiKeyAuth("abc")])
    assert prepared.header_values("Authorization") == ["Bearer tenant"]


def test_interceptor_without_key_adds_nothing() -> None:
    spec = run_interceptors(build_request("GET", "http://localhost:7700/health"), [ApiKeyAuth("")])
    assert spec.header("Authorization") is None
