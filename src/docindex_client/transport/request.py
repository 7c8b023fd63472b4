"""Request building and the interceptor view."""

from __future__ import annotations

import codecs
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Sequence

import httpx

from ..errors import ConfigurationError, InterceptorError
from ..logger import BoundLogger
from .base import KNOWN_METHODS, HeaderPairs, Interceptor, RequestSpec, ResultHook, find_header
from .body import DEFAULT_CHARSET, Payload

PairsLike = Mapping[str, str] | Iterable[tuple[str, str]]


def validate_method(method: Any) -> str:
    """Accept one of the known verbs, spelled exactly as on the wire."""
    if not isinstance(method, str) or method not in KNOWN_METHODS:
        raise ConfigurationError(f"not support http method [{method}]", context={"method": method})
    return method


def validate_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError("URL should not be blank", context={"url": url})
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Malformed URL {url!r}: {exc}", context={"url": url}) from exc
    if parsed.scheme not in {"http", "https"} or not parsed.host:
        raise ConfigurationError(f"URL must be absolute http(s): {url!r}", context={"url": url})
    return url


def _pairs(values: PairsLike) -> list[tuple[str, str]]:
    items = values.items() if isinstance(values, Mapping) else values
    return [(str(name), str(value)) for name, value in items]


class RequestBuilder:
    """Mutable request description handed to ``configure`` callbacks.

    ``header`` and ``param`` are additive: repeating a name keeps every value
    in insertion order. ``body`` stores the payload callback, which runs on
    each :meth:`build`, so building twice yields equal specs. ``result_hook``
    callbacks run in order on the finished :class:`HttpResult` of this call.
    """

    def __init__(self, method: str, url: str) -> None:
        self._method = method
        self._url = url
        self._headers: list[tuple[str, str]] = []
        self._params: list[tuple[str, str]] = []
        self._body_configure: Callable[[Payload], Any] | None = None
        self._timeout: float | None = None
        self._connect_timeout: float | None = None
        self._follow_redirects: bool | None = None
        self._charset = DEFAULT_CHARSET
        self._result_hooks: list[ResultHook] = []

    @property
    def method(self) -> str:
        return self._method

    @property
    def url(self) -> str:
        return self._url

    def header(self, name: str, value: str) -> "RequestBuilder":
        self._headers.append((name, str(value)))
        return self

    def headers(self, headers: PairsLike) -> "RequestBuilder":
        self._headers.extend(_pairs(headers))
        return self

    def param(self, name: str, value: str) -> "RequestBuilder":
        self._params.append((name, str(value)))
        return self

    def params(self, params: PairsLike) -> "RequestBuilder":
        self._params.extend(_pairs(params))
        return self

    def body(self, configure: Callable[[Payload], Any]) -> "RequestBuilder":
        self._body_configure = configure
        return self

    def timeout(self, seconds: float | None) -> "RequestBuilder":
        self._timeout = seconds
        return self

    def config(
        self,
        *,
        follow_redirects: bool | None = None,
        connect_timeout: float | None = None,
        read_timeout: float | None = None,
    ) -> "RequestBuilder":
        """Override transport defaults for this request; ``None`` leaves a setting alone."""
        if follow_redirects is not None:
            self._follow_redirects = follow_redirects
        if connect_timeout is not None:
            self._connect_timeout = connect_timeout
        if read_timeout is not None:
            self._timeout = read_timeout
        return self

    def charset(self, charset: str) -> "RequestBuilder":
        try:
            codecs.lookup(charset)
        except LookupError as exc:
            raise ConfigurationError(f"Unknown charset {charset!r}", context={"charset": charset}) from exc
        self._charset = charset
        return self

    def result_hook(self, hook: ResultHook) -> "RequestBuilder":
        if not callable(hook):
            raise TypeError("result hook must be callable")
        self._result_hooks.append(hook)
        return self

    def build(self) -> RequestSpec:
        body = None
        if self._body_configure is not None:
            payload = Payload()
            self._body_configure(payload)
            body = payload.body
            if body is not None:
                body.validate()
        return RequestSpec(
            method=self._method,
            url=self._url,
            headers=tuple(self._headers),
            params=tuple(self._params),
            body=body,
            timeout=self._timeout,
            connect_timeout=self._connect_timeout,
            follow_redirects=self._follow_redirects,
            charset=self._charset,
            result_hooks=tuple(self._result_hooks),
        )


def build_request(
    method: str,
    url: str,
    configure: Callable[[RequestBuilder], Any] | None = None,
    *,
    default_headers: Mapping[str, str] | None = None,
) -> RequestSpec:
    """Validate ``method`` and ``url`` then run ``configure`` on a fresh builder."""
    builder = RequestBuilder(validate_method(method), validate_url(url))
    if default_headers:
        builder.headers(default_headers)
    if configure is not None:
        configure(builder)
    return builder.build()


class RequestView:
    """What an interceptor may touch: headers and query parameters.

    Method and URL are readable but fixed, so an interceptor can never
    redirect a request elsewhere.
    """

    def __init__(self, spec: RequestSpec) -> None:
        self._method = spec.method
        self._url = spec.url
        self._headers = list(spec.headers)
        self._params = list(spec.params)

    @property
    def method(self) -> str:
        return self._method

    @property
    def url(self) -> str:
        return self._url

    @property
    def headers(self) -> HeaderPairs:
        return tuple(self._headers)

    @property
    def params(self) -> HeaderPairs:
        return tuple(self._params)

    def header_values(self, name: str) -> list[str]:
        return find_header(self._headers, name)

    def header(self, name: str, value: str) -> "RequestView":
        self._headers.append((name, str(value)))
        return self

    def set_header(self, name: str, value: str) -> "RequestView":
        self.remove_header(name)
        return self.header(name, value)

    def remove_header(self, name: str) -> "RequestView":
        lowered = name.lower()
        self._headers = [(key, value) for key, value in self._headers if key.lower() != lowered]
        return self

    def param(self, name: str, value: str) -> "RequestView":
        self._params.append((name, str(value)))
        return self

    def apply_to(self, spec: RequestSpec) -> RequestSpec:
        return replace(spec, headers=tuple(self._headers), params=tuple(self._params))


def run_interceptors(
    spec: RequestSpec,
    interceptors: Sequence[Interceptor],
    logger: BoundLogger | None = None,
) -> RequestSpec:
    if not interceptors:
        return spec
    view = RequestView(spec)
    for interceptor in interceptors:
        try:
            interceptor(view)
        except Exception as exc:
            name = getattr(interceptor, "__qualname__", repr(interceptor))
            if logger is not None:
                logger.error("Interceptor %s failed for %s %s: %s", name, spec.method, spec.url, exc)
            raise InterceptorError(f"Request interceptor {name} failed: {exc}", origin=interceptor) from exc
    return view.apply_to(spec)


__all__ = [
    "RequestBuilder",
    "RequestView",
    "build_request",
    "run_interceptors",
    "validate_method",
    "validate_url",
]
