"""Transport core, request building and the blocking facade."""

from .base import (
    KNOWN_METHODS,
    CallContext,
    HttpResult,
    Interceptor,
    RequestSpec,
    ResponseFilter,
    ResponseMeta,
    ResultHook,
    Transport,
    TransportConfig,
)
from .blocking import BlockingHttpClient
from .body import Binary, Body, FormData, FormUrlEncoded, Payload, Raw
from .http import HttpTransport, StreamingResult, current_call_context
from .request import RequestBuilder, RequestView, build_request

__all__ = [
    "Binary",
    "BlockingHttpClient",
    "Body",
    "CallContext",
    "FormData",
    "FormUrlEncoded",
    "HttpResult",
    "HttpTransport",
    "Interceptor",
    "KNOWN_METHODS",
    "Payload",
    "Raw",
    "RequestBuilder",
    "RequestSpec",
    "RequestView",
    "ResponseFilter",
    "ResponseMeta",
    "ResultHook",
    "StreamingResult",
    "Transport",
    "TransportConfig",
    "build_request",
    "current_call_context",
]
