"""HTTP transport built on top of httpx.

One :class:`HttpTransport` owns one ``httpx.AsyncClient`` and the event loop
it runs on. The loop lives on a dedicated daemon thread, so coroutines from
any caller loop and plain blocking threads share the same connection pool.
Every request goes through the same path::

    interceptors (caller thread) -> network send -> body read -> response filters

``submit`` returns a ``concurrent.futures.Future`` that completes exactly
once; ``send`` awaits it from a coroutine and the blocking facade waits on
it from a thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import threading
import time
from contextvars import ContextVar
from typing import Any, AsyncIterator, Callable, Coroutine, Iterator, TypeVar

import httpx

from ..errors import (
    ClientClosedError,
    ConfigurationError,
    ConnectionError,
    RequestTimeoutError,
    ResponseFilterError,
    ResultHookError,
)
from ..logger import BoundLogger, create_logger
from .base import (
    CallContext,
    HttpResult,
    Interceptor,
    RequestSpec,
    ResponseFilter,
    ResponseMeta,
    ResultHook,
    TransportConfig,
    find_header,
)
from .body import EncodedBody
from .request import RequestBuilder, build_request, run_interceptors, validate_method, validate_url

T = TypeVar("T")

_call_context: ContextVar[CallContext | None] = ContextVar("docindex_call_context", default=None)


def current_call_context() -> CallContext | None:
    """Context passed with the request being processed, as seen by a response filter."""
    return _call_context.get()


class HttpTransport:
    def __init__(
        self,
        config: TransportConfig | None = None,
        *,
        logger: BoundLogger | None = None,
    ) -> None:
        self._config = (config or TransportConfig()).copy()
        self._logger = (logger or create_logger()).child("http")
        self._lock = threading.Lock()
        self._interceptors: list[Interceptor] = list(self._config.interceptors)
        self._filters: list[ResponseFilter] = list(self._config.response_filters)
        self._streams: set[httpx.Response] = set()
        self._closed = False
        self._released = threading.Event()
        self._shutdown_task: asyncio.Task[None] | None = None
        self._client = httpx.AsyncClient(
            headers=self._config.default_headers,
            timeout=httpx.Timeout(self._config.read_timeout, connect=self._config.connect_timeout),
            limits=httpx.Limits(
                max_connections=self._config.max_connections,
                max_keepalive_connections=self._config.max_keepalive_connections,
            ),
            follow_redirects=self._config.follow_redirects,
            trust_env=self._config.trust_env,
            transport=self._config.network,
        )
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="docindex-io", daemon=True)
        self._thread.start()

    @classmethod
    def create(
        cls,
        configure: Callable[[TransportConfig], Any] | None = None,
        *,
        logger: BoundLogger | None = None,
    ) -> "HttpTransport":
        """Build a transport from the defaults, adjusted by ``configure``."""
        config = TransportConfig()
        if configure is not None:
            configure(config)
        return cls(config, logger=logger)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def config(self) -> TransportConfig:
        return self._config.copy()

    def add_interceptor(self, interceptor: Interceptor) -> "HttpTransport":
        if not callable(interceptor):
            raise TypeError("interceptor must be callable")
        with self._lock:
            self._interceptors.append(interceptor)
        return self

    def add_response_filter(self, response_filter: ResponseFilter) -> "HttpTransport":
        if not callable(response_filter):
            raise TypeError("response filter must be callable")
        with self._lock:
            self._filters.append(response_filter)
        return self

    def submit(self, spec: RequestSpec, *, context: CallContext | None = None) -> concurrent.futures.Future[HttpResult]:
        prepared = self._prepare(spec)
        with self._lock:
            filters = tuple(self._filters)
        return self._schedule(self._execute(prepared, filters, context))

    async def send(self, spec: RequestSpec, *, context: CallContext | None = None) -> HttpResult:
        return await self._wrap(self.submit(spec, context=context))

    async def request(
        self,
        method: str,
        url: str,
        configure: Callable[[RequestBuilder], Any] | None = None,
        *,
        context: CallContext | None = None,
    ) -> HttpResult:
        return await self.send(build_request(method, url, configure), context=context)

    def submit_stream(self, spec: RequestSpec) -> concurrent.futures.Future["StreamingResult"]:
        prepared = self._prepare(spec)
        return self._schedule(self._open_stream(prepared))

    async def open_stream(self, spec: RequestSpec) -> "StreamingResult":
        return await self._wrap(self.submit_stream(spec))

    def close(self) -> None:
        """Release pooled connections; in-flight calls fail with ``ClientClosedError``.

        Safe to call more than once and from several threads; every caller
        off the I/O thread returns only after the pool is released. Called
        from the I/O thread itself (a response filter or result hook), the
        shutdown is scheduled and runs once the current callback returns.
        """
        on_loop = threading.current_thread() is self._thread
        with self._lock:
            first = not self._closed
            self._closed = True
        if not first:
            if not on_loop:
                self._released.wait()
            return
        if on_loop:
            self._shutdown_task = self._loop.create_task(self._shutdown_and_stop())
            return
        shutdown = asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop)
        try:
            shutdown.result()
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
        self._logger.info("HTTP transport closed")

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _prepare(self, spec: RequestSpec) -> RequestSpec:
        self._ensure_open()
        validate_method(spec.method)
        validate_url(spec.url)
        with self._lock:
            interceptors = tuple(self._interceptors)
        return run_interceptors(spec, interceptors, self._logger)

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError("Transport is closed")

    def _schedule(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        with self._lock:
            if self._closed:
                coro.close()
                raise ClientClosedError("Transport is closed")
            return asyncio.run_coroutine_threadsafe(coro, self._loop)

    async def _wrap(self, future: concurrent.futures.Future[T]) -> T:
        try:
            return await asyncio.wrap_future(future)
        except asyncio.CancelledError:
            if self._closed and future.cancelled():
                raise ClientClosedError("Transport closed while request was in flight") from None
            raise

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            try:
                self._loop.run_until_complete(self._loop.shutdown_asyncgens())
                self._loop.close()
            finally:
                self._released.set()

    async def _shutdown(self) -> None:
        current = asyncio.current_task()
        pending = [task for task in asyncio.all_tasks() if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for response in list(self._streams):
            await response.aclose()
        self._streams.clear()
        await self._client.aclose()

    async def _shutdown_and_stop(self) -> None:
        try:
            await self._shutdown()
        finally:
            self._loop.stop()
        self._logger.info("HTTP transport closed")

    async def _execute(
        self,
        spec: RequestSpec,
        filters: tuple[ResponseFilter, ...],
        context: CallContext | None,
    ) -> HttpResult:
        _call_context.set(context if context is not None else CallContext())
        try:
            return await self._exchange(spec, filters)
        except asyncio.CancelledError as exc:
            if self._closed:
                raise ClientClosedError("Transport closed while request was in flight") from exc
            raise

    async def _exchange(self, spec: RequestSpec, filters: tuple[ResponseFilter, ...]) -> HttpResult:
        request, encoded = self._build_request(spec)
        try:
            target = str(request.url)
            self._logger.debug("HTTP -> %s %s", spec.method, target)
            start = time.perf_counter()
            response = await self._send(request, spec, target)

            headers = tuple(response.headers.multi_items())
            meta = ResponseMeta(status=response.status_code, headers=headers, method=spec.method, url=target)
            body = await self._apply_filters(meta, response.content, filters)
            elapsed = time.perf_counter() - start
            self._logger.debug(
                "HTTP <- %s %s status=%d bytes=%d cost=%dms",
                spec.method,
                target,
                response.status_code,
                len(body),
                int(elapsed * 1000),
            )
            result = HttpResult(
                status=response.status_code,
                headers=headers,
                content=body,
                method=spec.method,
                url=target,
                elapsed=elapsed,
            )
            await self._run_result_hooks(result, spec.result_hooks)
            return result
        finally:
            if encoded is not None:
                await encoded.aclose()

    async def _send(
        self,
        request: httpx.Request,
        spec: RequestSpec,
        target: str,
        *,
        stream: bool = False,
    ) -> httpx.Response:
        follow = httpx.USE_CLIENT_DEFAULT if spec.follow_redirects is None else spec.follow_redirects
        try:
            return await self._client.send(request, stream=stream, follow_redirects=follow)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"HTTP request timeout: {spec.method} {target}") from exc
        except httpx.HTTPError as exc:
            raise ConnectionError(f"Cannot connect to {target}: {exc}") from exc

    async def _apply_filters(
        self,
        meta: ResponseMeta,
        body: bytes,
        filters: tuple[ResponseFilter, ...],
    ) -> bytes:
        for response_filter in filters:
            name = getattr(response_filter, "__qualname__", repr(response_filter))
            try:
                outcome = response_filter(meta, body)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as exc:
                self._logger.error("Response filter %s failed for %s %s: %s", name, meta.method, meta.url, exc)
                raise ResponseFilterError(f"Response filter {name} failed: {exc}", origin=response_filter) from exc
            if not isinstance(outcome, (bytes, bytearray, memoryview)):
                raise ResponseFilterError(
                    f"Response filter {name} returned {type(outcome).__name__}, expected bytes",
                    origin=response_filter,
                )
            body = bytes(outcome)
        return body

    async def _run_result_hooks(self, result: HttpResult, hooks: tuple[ResultHook, ...]) -> None:
        for hook in hooks:
            name = getattr(hook, "__qualname__", repr(hook))
            try:
                outcome = hook(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                self._logger.error("Result hook %s failed for %s %s: %s", name, result.method, result.url, exc)
                raise ResultHookError(f"Result hook {name} failed: {exc}", origin=hook) from exc

    async def _open_stream(self, spec: RequestSpec) -> "StreamingResult":
        request, encoded = self._build_request(spec)
        try:
            target = str(request.url)
            self._logger.debug("HTTP -> %s %s (stream)", spec.method, target)
            response = await self._send(request, spec, target, stream=True)
        finally:
            if encoded is not None:
                await encoded.aclose()
        self._streams.add(response)
        return StreamingResult(self, response, spec.method, target)

    async def _close_stream(self, response: httpx.Response) -> None:
        self._streams.discard(response)
        await response.aclose()

    def _build_request(self, spec: RequestSpec) -> tuple[httpx.Request, EncodedBody | None]:
        headers = list(spec.headers)
        encoded: EncodedBody | None = None
        content = None
        files = None
        if spec.body is not None:
            try:
                encoded = spec.body.encode(spec.charset)
            except OSError as exc:
                raise ConfigurationError(f"Cannot read request body: {exc}") from exc
            content = encoded.content
            files = encoded.files
            if encoded.content_type and not find_header(headers, "content-type"):
                headers.append(("Content-Type", encoded.content_type))
            if (
                encoded.content_length is not None
                and content is not None
                and not isinstance(content, bytes)
                and not find_header(headers, "content-length")
            ):
                headers.append(("Content-Length", str(encoded.content_length)))
        try:
            return (
                self._client.build_request(
                    spec.method,
                    spec.target(),
                    headers=headers,
                    content=content,
                    files=files,
                    timeout=self._timeout_for(spec),
                ),
                encoded,
            )
        except Exception:
            if encoded is not None:
                encoded.close()
            raise

    def _timeout_for(self, spec: RequestSpec) -> Any:
        if spec.timeout is None and spec.connect_timeout is None:
            return httpx.USE_CLIENT_DEFAULT
        read = spec.timeout if spec.timeout is not None else self._config.read_timeout
        if spec.connect_timeout is not None:
            connect = spec.connect_timeout
        else:
            # a per-call deadline also bounds the connect phase
            connect = min(self._config.connect_timeout, read)
        return httpx.Timeout(read, connect=connect)


class StreamingResult:
    """A response whose body is read chunk by chunk from the live connection."""

    def __init__(self, transport: HttpTransport, response: httpx.Response, method: str, url: str) -> None:
        self._transport = transport
        self._response = response
        self._chunks = response.aiter_bytes()
        self._closed = False
        self.status = response.status_code
        self.headers = tuple(response.headers.multi_items())
        self.method = method
        self.url = url

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        values = find_header(self.headers, name)
        return values[0] if values else None

    def iter_bytes(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self._transport._schedule(self._next_chunk()).result()
                if chunk is None:
                    break
                yield chunk
        finally:
            self.close()

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._transport._wrap(self._transport._schedule(self._next_chunk()))
                if chunk is None:
                    break
                yield chunk
        finally:
            await self.aclose()

    def close(self) -> None:
        if self._closed or self._transport.closed:
            self._closed = True
            return
        self._closed = True
        self._transport._schedule(self._transport._close_stream(self._response)).result()

    async def aclose(self) -> None:
        if self._closed or self._transport.closed:
            self._closed = True
            return
        self._closed = True
        await self._transport._wrap(self._transport._schedule(self._transport._close_stream(self._response)))

    async def _next_chunk(self) -> bytes | None:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None
        except httpx.HTTPError as exc:
            raise ConnectionError(f"Stream from {self.url} failed: {exc}") from exc

    def __enter__(self) -> "StreamingResult":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> "StreamingResult":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["HttpTransport", "StreamingResult", "current_call_context"]
