"""Common transport abstractions."""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Protocol, Union, runtime_checkable
from urllib.parse import urlencode

if TYPE_CHECKING:
    import httpx

    from .body import Body
    from .request import RequestView

METHOD_GET = "GET"
METHOD_POST = "POST"
METHOD_PUT = "PUT"
METHOD_PATCH = "PATCH"
METHOD_DELETE = "DELETE"
METHOD_HEAD = "HEAD"
METHOD_OPTIONS = "OPTIONS"

KNOWN_METHODS = frozenset(
    {METHOD_GET, METHOD_POST, METHOD_PUT, METHOD_PATCH, METHOD_DELETE, METHOD_HEAD, METHOD_OPTIONS}
)

DEFAULT_CONNECT_TIMEOUT = 4.0
DEFAULT_READ_TIMEOUT = 30.0
MAX_TOTAL_CONNECTIONS = 1_000
MAX_KEEPALIVE_CONNECTIONS = 200

HeaderPairs = tuple[tuple[str, str], ...]


def find_header(headers: Iterable[tuple[str, str]], name: str) -> list[str]:
    lowered = name.lower()
    return [value for key, value in headers if key.lower() == lowered]


@dataclass(frozen=True)
class RequestSpec:
    """Fully built request handed to the transport.

    ``url`` is absolute and carries no knowledge of ``params``; the query
    string is appended by :meth:`target` so that parameter order is exactly
    the order the caller added them in. ``timeout``, ``connect_timeout`` and
    ``follow_redirects`` override the transport defaults for this call only.
    """

    method: str
    url: str
    headers: HeaderPairs = ()
    params: HeaderPairs = ()
    body: "Body | None" = None
    timeout: float | None = None
    connect_timeout: float | None = None
    follow_redirects: bool | None = None
    charset: str = "utf-8"
    result_hooks: tuple["ResultHook", ...] = ()

    def header(self, name: str) -> str | None:
        values = find_header(self.headers, name)
        return values[0] if values else None

    def header_values(self, name: str) -> list[str]:
        return find_header(self.headers, name)

    def target(self) -> str:
        if not self.params:
            return self.url
        base, hash_sign, fragment = self.url.partition("#")
        query = urlencode(self.params, encoding=self.charset)
        if "?" not in base:
            base = f"{base}?{query}"
        elif base.endswith(("?", "&")):
            base = f"{base}{query}"
        else:
            base = f"{base}&{query}"
        return f"{base}{hash_sign}{fragment}"


@dataclass(frozen=True)
class ResponseMeta:
    """Status line and headers of a response, handed to response filters."""

    status: int
    headers: HeaderPairs
    method: str
    url: str

    def header(self, name: str) -> str | None:
        values = find_header(self.headers, name)
        return values[0] if values else None


@dataclass(frozen=True)
class HttpResult:
    status: int
    headers: HeaderPairs
    content: bytes
    method: str
    url: str
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        values = find_header(self.headers, name)
        return values[0] if values else None

    def header_values(self, name: str) -> list[str]:
        return find_header(self.headers, name)

    @property
    def content_type(self) -> str | None:
        return self.header("content-type")

    @property
    def content_length(self) -> int | None:
        raw = self.header("content-length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    @property
    def charset(self) -> str:
        return parse_charset(self.content_type)

    def text(self) -> str:
        try:
            return self.content.decode(self.charset, errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return (
            f"HttpResult(status={self.status}, content-type={self.content_type}, "
            f"content-length={len(self.content)})"
        )


def parse_charset(content_type: str | None, default: str = "utf-8") -> str:
    if not content_type:
        return default
    for segment in content_type.split(";"):
        segment = segment.strip()
        if segment.lower().startswith("charset="):
            return segment[len("charset="):].strip().strip('"') or default
    return default


class CallContext(dict):
    """Per-call scratch space shared between the call site and response filters.

    A new instance is passed with each call; filters reach it through
    :func:`docindex_client.transport.current_call_context`, which only ever
    returns the context of the request currently being processed.
    """


Interceptor = Callable[["RequestView"], None]
ResponseFilter = Callable[[ResponseMeta, bytes], Union[bytes, Awaitable[bytes]]]
ResultHook = Callable[[HttpResult], Union[None, Awaitable[None]]]


@dataclass
class TransportConfig:
    """Defaults applied to every request sent through one transport."""

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    follow_redirects: bool = True
    max_connections: int = MAX_TOTAL_CONNECTIONS
    max_keepalive_connections: int = MAX_KEEPALIVE_CONNECTIONS
    trust_env: bool = True
    default_headers: dict[str, str] = field(default_factory=dict)
    interceptors: list[Interceptor] = field(default_factory=list)
    response_filters: list[ResponseFilter] = field(default_factory=list)
    network: "httpx.AsyncBaseTransport | None" = None

    def copy(self) -> "TransportConfig":
        return replace(
            self,
            default_headers=dict(self.default_headers),
            interceptors=list(self.interceptors),
            response_filters=list(self.response_filters),
        )


@runtime_checkable
class Transport(Protocol):
    """What the blocking facade and the client need from a transport."""

    @property
    def closed(self) -> bool: ...

    def submit(self, spec: RequestSpec, *, context: CallContext | None = None) -> concurrent.futures.Future[Any]: ...

    def add_interceptor(self, interceptor: Interceptor) -> Any: ...

    def close(self) -> None: ...


__all__ = [
    "CallContext",
    "HttpResult",
    "Interceptor",
    "KNOWN_METHODS",
    "METHOD_DELETE",
    "METHOD_GET",
    "METHOD_HEAD",
    "METHOD_OPTIONS",
    "METHOD_PATCH",
    "METHOD_POST",
    "METHOD_PUT",
    "RequestSpec",
    "ResponseFilter",
    "ResponseMeta",
    "ResultHook",
    "Transport",
    "TransportConfig",
    "find_header",
    "parse_charset",
]
