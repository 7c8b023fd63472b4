"""Synchronous facade over the asynchronous transport core."""

from __future__ import annotations

import concurrent.futures
from typing import Any, Callable, Mapping

from ..errors import ClientClosedError, NoResultError
from .base import (
    METHOD_DELETE,
    METHOD_GET,
    METHOD_HEAD,
    METHOD_OPTIONS,
    METHOD_PATCH,
    METHOD_POST,
    METHOD_PUT,
    CallContext,
    HttpResult,
    RequestSpec,
    Transport,
)
from .http import HttpTransport, StreamingResult
from .request import RequestBuilder, build_request

Configure = Callable[[RequestBuilder], Any]


def block(future: concurrent.futures.Future[Any]) -> Any:
    """Wait on the calling thread for ``future`` and unwrap its value."""
    try:
        result = future.result()
    except concurrent.futures.CancelledError as exc:
        raise ClientClosedError("Transport closed while request was in flight") from exc
    if result is None:
        raise NoResultError("blocking with an empty result")
    return result


class BlockingHttpClient:
    """Per-verb blocking calls sharing one transport core.

    The calling thread waits on the core's future; it never runs I/O itself.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._transport = transport or HttpTransport()
        self._owns_transport = transport is None
        self._default_headers = dict(default_headers or {})

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def closed(self) -> bool:
        return self._transport.closed

    def send(self, spec: RequestSpec, *, context: CallContext | None = None) -> HttpResult:
        return block(self._transport.submit(spec, context=context))

    def request(
        self,
        method: str,
        url: str,
        configure: Configure | None = None,
        *,
        context: CallContext | None = None,
    ) -> HttpResult:
        if self._transport.closed:
            raise ClientClosedError("Transport is closed")
        spec = build_request(method, url, configure, default_headers=self._default_headers)
        return self.send(spec, context=context)

    def get(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_GET, url, configure, **kwargs)

    def post(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_POST, url, configure, **kwargs)

    def put(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_PUT, url, configure, **kwargs)

    def patch(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_PATCH, url, configure, **kwargs)

    def delete(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_DELETE, url, configure, **kwargs)

    def head(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_HEAD, url, configure, **kwargs)

    def options(self, url: str, configure: Configure | None = None, **kwargs: Any) -> HttpResult:
        return self.request(METHOD_OPTIONS, url, configure, **kwargs)

    def stream(self, method: str, url: str, configure: Configure | None = None) -> StreamingResult:
        if not isinstance(self._transport, HttpTransport):
            raise TypeError("streaming requires an HttpTransport")
        if self._transport.closed:
            raise ClientClosedError("Transport is closed")
        spec = build_request(method, url, configure, default_headers=self._default_headers)
        return block(self._transport.submit_stream(spec))

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> "BlockingHttpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["BlockingHttpClient", "block"]
