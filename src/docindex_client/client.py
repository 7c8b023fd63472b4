"""High-level client wiring the transport core, authentication and task polling."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from .auth import ApiKeyAuth
from .errors import (
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    HttpFailureError,
    NoResultError,
    NotFoundError,
    ServerError,
)
from .logger import LogLevel, create_logger
from .parser import DEFAULT_JSON_HANDLER, JsonHandler, decode, extract_error_message
from .poller import AsyncTaskPoller, PollPolicy, TaskPoller, TaskRef
from .transport import (
    BlockingHttpClient,
    CallContext,
    HttpResult,
    HttpTransport,
    Payload,
    RequestBuilder,
    RequestSpec,
    ResponseFilter,
    Transport,
    TransportConfig,
    build_request,
)
from .types import ExecuteResult, TaskHandle, TaskRecord

T = TypeVar("T")

DEFAULT_PORT = 7700

Configure = Callable[[RequestBuilder], Any]


def _with_timeout(timeout: float | None) -> Configure | None:
    if timeout is None:
        return None
    return lambda r: r.timeout(timeout)


@dataclass
class ClientOptions:
    server_url: str | None = None
    host: str = "localhost"
    port: int = DEFAULT_PORT
    ssl: bool = False
    api_key: str | None = None
    transport: Transport | None = None
    poll_policy: PollPolicy | None = None
    response_filter: ResponseFilter | None = None
    json_handler: JsonHandler | None = None
    logger: object | None = None
    log_level: LogLevel = "info"

    def resolve_server_url(self) -> str:
        if self.server_url:
            url = self.server_url if "://" in self.server_url else f"http://{self.server_url}"
            return url.rstrip("/")
        scheme = "https" if self.ssl else "http"
        return f"{scheme}://{self.host}:{self.port}"


class DocIndexClient:
    """Primary entry point for talking to a document index server."""

    def __init__(
        self,
        *,
        server_url: str | None = None,
        host: str = "localhost",
        port: int = DEFAULT_PORT,
        ssl: bool = False,
        api_key: str | None = None,
        transport: Transport | None = None,
        poll_policy: PollPolicy | None = None,
        response_filter: ResponseFilter | None = None,
        json_handler: JsonHandler | None = None,
        logger: object | None = None,
        log_level: LogLevel = "info",
    ) -> None:
        options = ClientOptions(
            server_url=server_url,
            host=host,
            port=port,
            ssl=ssl,
            api_key=api_key,
            transport=transport,
            poll_policy=poll_policy,
            response_filter=response_filter,
            json_handler=json_handler,
            logger=logger,
            log_level=log_level,
        )
        self.server_url = options.resolve_server_url()
        self._logger = create_logger(logger=options.logger, level=options.log_level)
        self._logger.info("Initializing DocIndexClient for %s", self.server_url)
        self._auth = ApiKeyAuth(options.api_key, self._logger)
        self._json = options.json_handler or DEFAULT_JSON_HANDLER
        self._owns_transport = options.transport is None
        self._transport = options.transport or self._create_transport(options.response_filter)
        if options.transport is not None and options.response_filter is not None:
            if not isinstance(options.transport, HttpTransport):
                raise TypeError("response_filter requires an HttpTransport")
            options.transport.add_response_filter(options.response_filter)
        self._blocking = BlockingHttpClient(self._transport)
        policy = options.poll_policy or PollPolicy()
        self._poller = TaskPoller(self.get_task, policy=policy, logger=self._logger)
        self._async_poller = AsyncTaskPoller(self.get_task_async, policy=policy, logger=self._logger)

    @property
    def transport(self) -> Transport:
        return self._transport

    def url_for(self, path: str) -> str:
        return f"{self.server_url}/{path.lstrip('/')}"

    def json(self, value: Any) -> Callable[[Payload], Any]:
        """Body callback sending ``value`` serialized with the configured JSON handler."""
        text = value if isinstance(value, str) else self._json.dumps(value)
        return lambda payload: payload.raw(lambda raw: raw.json(text))

    def execute(
        self,
        method: str,
        path: str,
        configure: Configure | None = None,
        *,
        decode_into: Callable[[Any], T] | None = None,
        context: CallContext | None = None,
    ) -> Any:
        spec = self._build(method, path, configure)
        result = self._blocking.send(spec, context=context)
        return self._handle_response(result, decode_into)

    async def execute_async(
        self,
        method: str,
        path: str,
        configure: Configure | None = None,
        *,
        decode_into: Callable[[Any], T] | None = None,
        context: CallContext | None = None,
    ) -> Any:
        spec = self._build(method, path, configure)
        if isinstance(self._transport, HttpTransport):
            result = await self._transport.send(spec, context=context)
        else:
            result = await asyncio.wrap_future(self._transport.submit(spec, context=context))
        if result is None:
            raise NoResultError("request completed with an empty result")
        return self._handle_response(result, decode_into)

    def execute_safe(
        self,
        method: str,
        path: str,
        configure: Configure | None = None,
        *,
        decode_into: Callable[[Any], T] | None = None,
    ) -> ExecuteResult[Any]:
        try:
            data = self.execute(method, path, configure, decode_into=decode_into)
            return ExecuteResult(ok=True, data=data)
        except Exception as exc:
            return ExecuteResult(ok=False, error=exc)

    def submit_task(self, method: str, path: str, configure: Configure | None = None) -> TaskHandle:
        """Issue a mutating call and return the handle of the task it enqueued."""
        return self.execute(method, path, configure, decode_into=TaskHandle.from_payload)

    def get_task(self, task_uid: int, *, timeout: float | None = None) -> TaskRecord:
        return self.execute("GET", f"/tasks/{task_uid}", _with_timeout(timeout), decode_into=TaskRecord.from_payload)

    async def get_task_async(self, task_uid: int, *, timeout: float | None = None) -> TaskRecord:
        return await self.execute_async(
            "GET", f"/tasks/{task_uid}", _with_timeout(timeout), decode_into=TaskRecord.from_payload
        )

    def wait_for_task(
        self,
        task: TaskRef,
        *,
        policy: PollPolicy | None = None,
        cancel: threading.Event | None = None,
    ) -> TaskRecord:
        return self._poller.wait(task, policy=policy, cancel=cancel)

    async def wait_for_task_async(
        self,
        task: TaskRef,
        *,
        policy: PollPolicy | None = None,
        cancel: threading.Event | None = None,
    ) -> TaskRecord:
        return await self._async_poller.wait(task, policy=policy, cancel=cancel)

    def is_healthy(self) -> bool:
        result = self.execute_safe("GET", "/health", decode_into=dict)
        return bool(result.ok and result.data and result.data.get("status") == "available")

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> "DocIndexClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _build(self, method: str, path: str, configure: Configure | None) -> RequestSpec:
        auth_headers = None if self._owns_transport else self._auth.add_http_headers()
        return build_request(method, self.url_for(path), configure, default_headers=auth_headers)

    def _handle_response(self, result: HttpResult, decode_into: Callable[[Any], T] | None) -> Any:
        status = result.status
        if result.ok:
            if decode_into is None:
                return result
            return decode(result.content, decode_into, handler=self._json)
        message = extract_error_message(result.text())
        kwargs = {"status": status, "method": result.method, "url": result.url, "context": result.text()}
        if status == 400:
            raise BadRequestError(message, **kwargs)
        if status == 401:
            raise AuthenticationError(message, **kwargs)
        if status == 403:
            raise AuthorizationError(message, **kwargs)
        if status == 404:
            raise NotFoundError(message, **kwargs)
        if status >= 500:
            raise ServerError(message, **kwargs)
        raise HttpFailureError(message, **kwargs)

    def _create_transport(self, response_filter: ResponseFilter | None) -> Transport:
        config = TransportConfig()
        if self._auth.has_credentials:
            config.interceptors.append(self._auth)
        if response_filter is not None:
            config.response_filters.append(response_filter)
        return HttpTransport(config, logger=self._logger)


__all__ = ["ClientOptions", "DocIndexClient"]
