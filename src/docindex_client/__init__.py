"""Public surface for the document index Python client."""

from .auth import ApiKeyAuth
from .client import ClientOptions, DocIndexClient
from .errors import (
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    ClientClosedError,
    ConfigurationError,
    ConnectionError,
    DecodeError,
    DocIndexError,
    HttpFailureError,
    InterceptorError,
    NoResultError,
    NotFoundError,
    PollCancelledError,
    PollTimeoutError,
    RequestTimeoutError,
    ResponseFilterError,
    ResultHookError,
    ServerError,
    UnknownTaskStatusError,
)
from .poller import AsyncTaskPoller, PollPolicy, TaskPoller
from .transport import (
    BlockingHttpClient,
    CallContext,
    HttpResult,
    HttpTransport,
    RequestBuilder,
    RequestSpec,
    RequestView,
    ResponseMeta,
    StreamingResult,
    TransportConfig,
    build_request,
    current_call_context,
)
from .types import ExecuteResult, TaskHandle, TaskRecord, TaskStatus
from .version import __version__

__all__ = [
    "__version__",
    "ApiKeyAuth",
    "AsyncTaskPoller",
    "AuthenticationError",
    "AuthorizationError",
    "BadRequestError",
    "BlockingHttpClient",
    "CallContext",
    "ClientClosedError",
    "ClientOptions",
    "ConfigurationError",
    "ConnectionError",
    "DecodeError",
    "DocIndexClient",
    "DocIndexError",
    "ExecuteResult",
    "HttpFailureError",
    "HttpResult",
    "HttpTransport",
    "InterceptorError",
    "NoResultError",
    "NotFoundError",
    "PollCancelledError",
    "PollPolicy",
    "PollTimeoutError",
    "RequestBuilder",
    "RequestSpec",
    "RequestTimeoutError",
    "RequestView",
    "ResponseFilterError",
    "ResponseMeta",
    "ResultHookError",
    "ServerError",
    "StreamingResult",
    "TaskHandle",
    "TaskPoller",
    "TaskRecord",
    "TaskStatus",
    "TransportConfig",
    "UnknownTaskStatusError",
    "build_request",
    "current_call_context",
]
